
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from typing import Optional
import structlog

from checkout_service.api.deps import (
    get_checkout_service,
    get_gateway,
    get_mailer,
    get_order_service,
    get_webhook_processor,
)
from checkout_service.core.errors import (
    AuthenticationError,
    NotificationError,
    PersistenceError,
    SessionNotFoundError,
    UpstreamGatewayError,
    ValidationError,
)
from checkout_service.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    OrderRead,
    OrderWithItems,
    PaymentStatus,
    SendTestEmail,
    SessionOrderLookup,
)
from checkout_service.services.checkout import CheckoutService
from checkout_service.services.orders import OrderService
from checkout_service.services.webhooks import WebhookProcessor, run_order_creation

log = structlog.get_logger(__name__)

router = APIRouter()

@router.post("/v1/checkout", response_model=CheckoutResponse)
def create_payment(payload: CheckoutRequest, checkout: CheckoutService = Depends(get_checkout_service)):
    try:
        return checkout.create_checkout(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UpstreamGatewayError as e:
        raise HTTPException(status_code=502, detail=f"Failed to create payment session: {e}")

@router.post("/v1/webhook")
async def webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    payload = await request.body()
    try:
        event = processor.parse(payload, stripe_signature)
        job = processor.dispatch(event)
    except (AuthenticationError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    if job is not None:
        state = request.app.state
        background_tasks.add_task(
            run_order_creation,
            state.session_factory,
            job,
            mailer=state.mailer,
            events=state.events,
            currency=state.settings.CURRENCY,
        )
    return {"received": True, "success": True}

@router.get("/v1/verify/{session_id}", response_model=PaymentStatus)
def verify_payment(session_id: str, gateway = Depends(get_gateway)):
    try:
        return gateway.retrieve_session(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except UpstreamGatewayError:
        raise HTTPException(status_code=502, detail="Failed to verify payment")

@router.get("/v1/orders/{order_id}", response_model=OrderWithItems)
def get_order(order_id: str, orders: OrderService = Depends(get_order_service)):
    try:
        obj = orders.get_order(order_id)
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Order store unavailable")
    if not obj:
        raise HTTPException(status_code=404, detail="Order not found")
    return obj

@router.get("/v1/sessions/{session_id}/order", response_model=SessionOrderLookup)
def get_session_order(session_id: str, orders: OrderService = Depends(get_order_service)):
    try:
        found = orders.find_order_for_session(session_id)
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Order store unavailable")
    order = found["order"]
    return SessionOrderLookup(
        success=found["success"],
        message=found["message"],
        order=OrderRead.model_validate(order) if order is not None else None,
    )

@router.post("/v1/test-email")
def test_email(payload: SendTestEmail, mailer = Depends(get_mailer)):
    try:
        mailer.send_email(str(payload.to), payload.subject, payload.body)
    except NotificationError as e:
        log.error("test_email_failed", to=str(payload.to), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to send test email")
    return {"success": True, "message": "Test email sent successfully"}
