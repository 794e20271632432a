"""
Stripe wrapper used by the checkout and webhook handlers.

The client is constructed explicitly (no module-level ``stripe.api_key``) and
passes its key on every call, so several gateways with different keys can live
in one process.
"""
from typing import Any, Dict, List, Optional

import stripe
import structlog

from checkout_service.core.errors import (
    AuthenticationError,
    SessionNotFoundError,
    UpstreamGatewayError,
)
from checkout_service.schemas import CheckoutSession, PaymentLineItem, PaymentStatus

log = structlog.get_logger(__name__)


def _plain(value: Any) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(value)


class StripeGateway:
    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300, currency: str = "usd"):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.currency = currency

    def create_checkout_session(
        self,
        line_items: List[PaymentLineItem],
        *,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        client_reference_id: Optional[str] = None,
    ) -> CheckoutSession:
        stripe_items = [
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": it.name, "description": it.description},
                    "unit_amount": it.unit_price,
                },
                "quantity": it.quantity,
            }
            for it in line_items
        ]
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                line_items=stripe_items,
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=client_reference_id,
                customer_email=customer_email,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            log.error("checkout_session_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamGatewayError(str(e)) from e
        log.info("checkout_session_created", stripe_session_id=session.id)
        return CheckoutSession(session_id=session.id, session_url=session.url)

    def verify_signature(self, payload: bytes, signature: str) -> None:
        """Authenticate a raw webhook body. Must run before the body is parsed."""
        if not self.webhook_secret:
            log.error("webhook_secret_missing")
            raise AuthenticationError("Webhook secret is not configured")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature, self.webhook_secret, self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            log.warning("webhook_signature_invalid", error=str(e))
            raise AuthenticationError("Invalid webhook signature") from e
        except UnicodeDecodeError as e:
            raise AuthenticationError("Webhook body is not valid UTF-8") from e

    def retrieve_session(self, session_id: str) -> PaymentStatus:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                raise SessionNotFoundError(f"Session {session_id} not found") from e
            raise UpstreamGatewayError(str(e)) from e
        except stripe.StripeError as e:
            log.error("session_retrieve_failed", stripe_session_id=session_id, error=str(e))
            raise UpstreamGatewayError(str(e)) from e

        amount_total = session.amount_total
        return PaymentStatus(
            status=session.payment_status,
            payment_intent_id=session.payment_intent if isinstance(session.payment_intent, str) else getattr(session.payment_intent, "id", None),
            amount_total=amount_total / 100 if amount_total is not None else None,
            customer_email=session.customer_email,
            customer_details=_plain(session.customer_details),
            metadata=_plain(session.metadata) or {},
            client_reference_id=session.client_reference_id,
        )
