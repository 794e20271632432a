import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import sessionmaker

from checkout_service.core.errors import AuthenticationError, CheckoutServiceError, ValidationError
from checkout_service.db.models import OrderStatus
from checkout_service.payments.gateway import StripeGateway
from checkout_service.schemas import WebhookEvent
from checkout_service.services.orders import OrderService
from checkout_service.store.order_store import OrderStore

log = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


@dataclass
class CheckoutCompleted:
    """Arguments for one order-creation run, extracted from a completed session."""
    session_id: str
    user_id: Optional[str]
    cart_id: Optional[str]
    address: Dict[str, Any]
    status: str = OrderStatus.PROCESSING.value
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None


class WebhookProcessor:
    def __init__(self, gateway: StripeGateway):
        self.gateway = gateway

    def parse(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not signature:
            raise AuthenticationError("Stripe signature missing")
        self.gateway.verify_signature(payload, signature)
        try:
            return WebhookEvent.model_validate_json(payload)
        except PydanticValidationError as e:
            raise ValidationError("Failed to parse webhook body") from e

    def dispatch(self, event: WebhookEvent) -> Optional[CheckoutCompleted]:
        """Return the order-creation job for a completed checkout, or None."""
        bound = log.bind(stripe_event_id=event.id, event_type=event.type)
        obj = event.data.object
        if event.type == CHECKOUT_COMPLETED:
            job = checkout_completed_job(obj)
            bound.info("checkout_completed_received", stripe_session_id=job.session_id, cart_id=job.cart_id)
            return job
        if event.type == PAYMENT_SUCCEEDED:
            bound.info("payment_intent_succeeded", payment_intent_id=obj.get("id"))
        elif event.type == PAYMENT_FAILED:
            bound.warning("payment_intent_failed", payment_intent_id=obj.get("id"),
                          error=(obj.get("last_payment_error") or {}).get("message"))
        else:
            bound.debug("webhook_event_ignored")
        return None


def checkout_completed_job(session: Dict[str, Any]) -> CheckoutCompleted:
    metadata = session.get("metadata") or {}
    try:
        address = json.loads(metadata["address"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError("Failed to parse metadata") from e
    if not isinstance(address, dict):
        raise ValidationError("Failed to parse metadata")
    details = session.get("customer_details") or {}
    return CheckoutCompleted(
        session_id=session.get("id"),
        user_id=metadata.get("userId"),
        cart_id=metadata.get("cartid"),
        address=address,
        customer_email=details.get("email") or session.get("customer_email") or metadata.get("email"),
        customer_name=details.get("name") or metadata.get("name"),
    )


def run_order_creation(session_factory: sessionmaker, job: CheckoutCompleted, mailer=None, events=None, currency: str = "usd"):
    """Background task body: runs after the webhook has been acknowledged."""
    bound = log.bind(stripe_session_id=job.session_id, cart_id=job.cart_id)
    with session_factory() as db:
        service = OrderService(OrderStore(db), mailer=mailer, events=events, currency=currency)
        try:
            result = service.create_order_with_payment(
                job.user_id,
                job.cart_id,
                job.address,
                job.status,
                job.session_id,
                customer_email=job.customer_email,
                customer_name=job.customer_name,
            )
        except CheckoutServiceError:
            # the webhook is already acknowledged, so failures end here
            bound.error("order_creation_failed", exc_info=True)
            return None
        bound.info("order_creation_finished", order_id=result.order.id, is_existing=result.is_existing,
                   email_sent=result.email_sent)
        return result
