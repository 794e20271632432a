import json
from typing import Dict, List

import structlog

from checkout_service.core.errors import ValidationError
from checkout_service.payments.gateway import StripeGateway
from checkout_service.schemas import CartLine, CheckoutRequest, CheckoutResponse, PaymentLineItem

log = structlog.get_logger(__name__)

# Stripe rejects metadata values longer than this
METADATA_VALUE_LIMIT = 500


def resolve_cart_id(lines: List[CartLine]):
    """The one cart id shared by every line, or None when no line carries one."""
    cart_ids = {line.cart_id or None for line in lines}
    if len(cart_ids) > 1:
        raise ValidationError("Cart items belong to more than one cart")
    return next(iter(cart_ids), None)


def validate_lines(lines: List[CartLine]) -> None:
    for i, line in enumerate(lines):
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError(f"cartItems[{i}].quantity must be a positive integer")
        if line.price is None or line.price < 0:
            raise ValidationError(f"cartItems[{i}].price must be a non-negative amount")


def to_payment_line(line: CartLine) -> PaymentLineItem:
    name = line.name or f"Product {line.product_id}"
    return PaymentLineItem(
        name=name,
        description=line.description or name,
        unit_price=line.price,
        quantity=line.quantity,
    )


class CheckoutService:
    def __init__(self, gateway: StripeGateway, frontend_url: str):
        self.gateway = gateway
        self.frontend_url = frontend_url.rstrip("/")

    def build_metadata(self, req: CheckoutRequest, cart_id, order_ref: str, items: List[PaymentLineItem]) -> Dict[str, str]:
        metadata = {
            "userId": req.user_id,
            "address": json.dumps(req.shipping_address or {}),
            "orderId": order_ref,
            "items": ", ".join(it.name for it in items)[:METADATA_VALUE_LIMIT],
        }
        if cart_id:
            metadata["cartid"] = cart_id
        if req.user_email:
            metadata["email"] = str(req.user_email)
        if req.user_name:
            metadata["name"] = req.user_name
        return metadata

    def create_checkout(self, req: CheckoutRequest) -> CheckoutResponse:
        if not req.user_id:
            raise ValidationError("User ID is required")
        if not req.cart_items:
            raise ValidationError("Cart items are required")
        validate_lines(req.cart_items)
        cart_id = resolve_cart_id(req.cart_items)

        total = sum(line.price * line.quantity for line in req.cart_items)
        items = [to_payment_line(line) for line in req.cart_items]
        order_ref = f"order_{req.user_email or ''}_{req.user_id}"

        session = self.gateway.create_checkout_session(
            items,
            metadata=self.build_metadata(req, cart_id, order_ref, items),
            success_url=f"{self.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.frontend_url}/cancel",
            customer_email=str(req.user_email) if req.user_email else None,
            client_reference_id=order_ref,
        )
        log.info("checkout_created", user_id=req.user_id, cart_id=cart_id,
                 stripe_session_id=session.session_id, total_amount=total)

        return CheckoutResponse(
            session_id=session.session_id,
            session_url=session.session_url,
            order_id=order_ref,
            total_amount=total,
            orders=[line.model_dump(exclude_none=True) for line in req.cart_items],
        )
