from fastapi import Depends, Request
from sqlalchemy.orm import Session

from checkout_service.core.config import Settings
from checkout_service.services.checkout import CheckoutService
from checkout_service.services.orders import OrderService
from checkout_service.services.webhooks import WebhookProcessor
from checkout_service.store.order_store import OrderStore

def get_db(request: Request):
    db = request.app.state.session_factory()
    try: yield db
    finally: db.close()

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_gateway(request: Request):
    return request.app.state.gateway

def get_mailer(request: Request):
    return request.app.state.mailer

def get_order_service(request: Request, db: Session = Depends(get_db)) -> OrderService:
    state = request.app.state
    return OrderService(OrderStore(db), mailer=state.mailer, events=state.events, currency=state.settings.CURRENCY)

def get_checkout_service(request: Request) -> CheckoutService:
    return CheckoutService(request.app.state.gateway, request.app.state.settings.FRONTEND_URL)

def get_webhook_processor(request: Request) -> WebhookProcessor:
    return WebhookProcessor(request.app.state.gateway)
