"""
Order creation for completed checkout sessions.

``create_order_with_payment`` is safe to call any number of times for the same
Stripe session: the upfront lookup returns an existing order early, and the
unique constraint on ``orders.stripe_session_id`` settles concurrent
deliveries that both got past that lookup.

Steps up to and including the order-item insert are hard-fail. Inventory,
cart clearing, the confirmation email and the ``order.created`` event are
best-effort: their failures are logged and reported in the result only.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from checkout_service.core.errors import (
    BestEffortError,
    ConflictError,
    EmptyCartError,
    PersistenceError,
    ValidationError,
)
from checkout_service.db.models import CartItem, Order, OrderItem, OrderStatus, Product
from checkout_service.schemas import OrderItemRead, OrderRead
from checkout_service.store.order_store import OrderStore

log = structlog.get_logger(__name__)

DEFAULT_DELIVERY_OPTION = "pay_on_website"


def effective_price(product: Optional[Product]) -> Optional[int]:
    if product is None:
        return None
    if product.sale_price is not None:
        return product.sale_price
    return product.price


@dataclass
class PricedLine:
    cart_item: CartItem
    unit_price: int

    @property
    def line_total(self) -> int:
        return self.unit_price * self.cart_item.quantity


def price_cart(cart_items: List[CartItem]) -> List[PricedLine]:
    lines = []
    for ci in cart_items:
        unit = effective_price(ci.product)
        if unit is None:
            raise ValidationError(f"Missing price for product {ci.product_id}")
        lines.append(PricedLine(cart_item=ci, unit_price=unit))
    return lines


def cart_total(lines: List[PricedLine]) -> int:
    return sum(line.line_total for line in lines)


@dataclass
class OrderResult:
    success: bool
    order: Order
    is_existing: bool
    message: str = ""
    order_items: List[OrderItem] = field(default_factory=list)
    cart_cleared: Optional[Dict[str, Any]] = None
    email_sent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "order": OrderRead.model_validate(self.order).model_dump(mode="json"),
            "orderItems": [OrderItemRead.model_validate(it).model_dump(mode="json") for it in self.order_items],
            "isExisting": self.is_existing,
            "message": self.message,
            "cartCleared": self.cart_cleared,
            "emailSent": self.email_sent,
        }


class OrderService:
    def __init__(self, store: OrderStore, mailer=None, events=None, currency: str = "usd"):
        self.store = store
        self.currency = currency
        self.mailer = mailer
        self.events = events

    def create_order_with_payment(
        self,
        user_id: Optional[str],
        cart_id: Optional[str],
        address: Optional[Dict[str, Any]],
        status: Optional[str],
        session_id: Optional[str],
        *,
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> OrderResult:
        if not user_id:
            raise ValidationError("User ID is required")
        if not session_id:
            raise ValidationError("Stripe session ID is required")
        if not cart_id:
            raise ValidationError("Cart ID is required")

        bound = log.bind(stripe_session_id=session_id, cart_id=cart_id, user_id=user_id)

        existing = self.store.find_order_by_session(session_id)
        if existing is not None:
            bound.info("order_already_exists", order_id=existing.id)
            return OrderResult(success=True, order=existing, is_existing=True, message="Order already exists")

        cart_items = self.store.list_cart_items(cart_id)
        if not cart_items:
            bound.warning("cart_empty")
            raise EmptyCartError(cart_id)

        lines = price_cart(cart_items)
        total = cart_total(lines)
        product_names = {line.cart_item.product_id: line.cart_item.product.name for line in lines}

        try:
            order = self.store.insert_order(
                user_id=user_id,
                stripe_session_id=session_id,
                total_amount=total,
                currency=self.currency,
                status=status or OrderStatus.PROCESSING.value,
                shipping_address=address,
            )
        except ConflictError:
            order = self.store.find_order_by_session(session_id)
            if order is None:
                raise PersistenceError("Failed to fetch existing order after duplicate key error")
            bound.info("order_duplicate_key_resolved", order_id=order.id)
            return OrderResult(
                success=True,
                order=order,
                is_existing=True,
                message="Order already exists (handled duplicate key)",
            )
        bound = bound.bind(order_id=order.id)

        rows = [
            {
                "product_id": line.cart_item.product_id,
                "quantity": line.cart_item.quantity,
                "price": line.unit_price,
                "selected_color": line.cart_item.selected_color or None,
                "selected_size": line.cart_item.selected_size or None,
                "delivery_option": line.cart_item.delivery_option or DEFAULT_DELIVERY_OPTION,
                "status": "pending",
            }
            for line in lines
        ]
        try:
            order_items = self.store.insert_order_items(order, rows)
        except PersistenceError:
            bound.error("order_items_insert_failed", exc_info=True)
            raise
        bound.info("order_created", total_amount=total, items=len(order_items))

        # best-effort from here on
        self._update_inventory(lines, bound)
        cart_cleared = self._clear_cart(cart_id, bound)
        email_sent = self._notify(order, order_items, product_names, customer_email, customer_name, bound)
        self._publish(order, order_items, bound)

        return OrderResult(
            success=True,
            order=order,
            is_existing=False,
            order_items=order_items,
            cart_cleared=cart_cleared,
            email_sent=email_sent,
        )

    def _update_inventory(self, lines: List[PricedLine], bound) -> bool:
        quantities: Dict[str, int] = OrderedDict()
        for line in lines:
            pid = line.cart_item.product_id
            quantities[pid] = quantities.get(pid, 0) + line.cart_item.quantity
        try:
            self.store.increment_sold_items(quantities)
        except PersistenceError:
            bound.error("inventory_update_failed", products=list(quantities), exc_info=True)
            return False
        return True

    def _clear_cart(self, cart_id: str, bound) -> Dict[str, Any]:
        try:
            deleted = self.store.delete_cart_items(cart_id)
        except PersistenceError as e:
            bound.error("cart_clear_failed", exc_info=True)
            return {"success": False, "deletedCount": 0, "message": str(e), "cartId": cart_id}
        return {
            "success": True,
            "deletedCount": len(deleted),
            "message": "Cart items cleared successfully" if deleted else "No cart items found",
            "deletedItems": deleted,
            "cartId": cart_id,
        }

    def _notify(self, order, order_items, names, to, name, bound) -> bool:
        if self.mailer is None or not to:
            bound.info("order_email_skipped", has_recipient=bool(to))
            return False
        try:
            items = []
            for it in order_items:
                d = OrderItemRead.model_validate(it).model_dump()
                d["product_name"] = names.get(it.product_id)
                items.append(d)
            self.mailer.send_order_confirmation(OrderRead.model_validate(order).model_dump(), items, to, name)
        except (BestEffortError, PydanticValidationError):
            bound.error("order_email_failed", to=to, exc_info=True)
            return False
        return True

    def _publish(self, order, order_items, bound) -> bool:
        if self.events is None:
            return False
        try:
            self.events.send(
                key=order.id,
                value={
                    "type": "order.created",
                    "order_id": order.id,
                    "user_id": order.user_id,
                    "stripe_session_id": order.stripe_session_id,
                    "amount": order.total_amount,
                    "currency": order.currency,
                    "items": [
                        {"product_id": it.product_id, "quantity": it.quantity, "price": it.price}
                        for it in order_items
                    ],
                },
            )
        except BestEffortError:
            bound.error("order_event_failed", exc_info=True)
            return False
        return True

    def find_order_for_session(self, session_id: str) -> Dict[str, Any]:
        """Report whether an earlier webhook delivery already produced an order."""
        order = self.store.find_order_by_session(session_id)
        if order is None:
            return {"success": False, "message": "No order found for session", "order": None}
        return {"success": True, "message": "Order already exists from previous webhook", "order": order}

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.store.get_order(order_id)
