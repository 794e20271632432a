import json
import time
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from checkout_service.core.config import Settings
from checkout_service.core.errors import NotificationError, SessionNotFoundError
from checkout_service.db.models import CartItem, Order, OrderItem, Product
from checkout_service.db.session import Base, make_engine, make_session_factory
from checkout_service.main import create_app
from checkout_service.payments.gateway import StripeGateway
from checkout_service.payments.signing import sign_webhook_payload
from checkout_service.schemas import CheckoutSession

WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway(StripeGateway):
    """Stripe gateway with real signature checks and canned session calls."""

    def __init__(self):
        super().__init__("sk_test_fake", WEBHOOK_SECRET)
        self.sessions = []
        self.statuses = {}
        self.fail_with: Optional[Exception] = None

    def create_checkout_session(self, line_items, **kwargs):
        if self.fail_with is not None:
            raise self.fail_with
        sid = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({"session_id": sid, "line_items": line_items, **kwargs})
        return CheckoutSession(session_id=sid, session_url=f"https://checkout.stripe.test/pay/{sid}")

    def retrieve_session(self, session_id):
        if session_id not in self.statuses:
            raise SessionNotFoundError(session_id)
        return self.statuses[session_id]


class FakeMailer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send_email(self, to, subject, body, html=None):
        if self.fail:
            raise NotificationError("smtp unavailable")
        self.sent.append({"to": to, "subject": subject, "body": body})

    def send_order_confirmation(self, order, items, to, customer_name=None):
        if self.fail:
            raise NotificationError("smtp unavailable")
        self.sent.append({"to": to, "order": order, "items": items, "name": customer_name})


class FakeEvents:
    def __init__(self):
        self.sent = []

    def send(self, key, value):
        self.sent.append((key, value))


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def seed(session_factory):
    """Insert products and cart lines through a short-lived session."""
    def _seed(products=(), cart_id: Optional[str] = None, lines=()):
        with session_factory() as s:
            for p in products:
                s.add(Product(**{"sold_items": 0, "sale_price": None, **p}))
            for line in lines:
                s.add(CartItem(cart_id=cart_id, **line))
            s.commit()
    return _seed


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def events():
    return FakeEvents()


@pytest.fixture
def settings():
    return Settings(
        POSTGRES_DSN="sqlite://",
        STRIPE_SECRET_KEY="sk_test_fake",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        FRONTEND_URL="https://shop.test/",
        KAFKA_BOOTSTRAP="",
        LOG_JSON=False,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def app(settings, session_factory, gateway, mailer, events):
    return create_app(settings, session_factory=session_factory, gateway=gateway, mailer=mailer, events=events)


@pytest.fixture
def client(app):
    return TestClient(app)


def completed_event(session_id: str, metadata: Dict[str, Any], event_id: str = "evt_1", **session_fields) -> bytes:
    obj = {"id": session_id, "object": "checkout.session", "payment_status": "paid", "metadata": metadata}
    obj.update(session_fields)
    event = {"id": event_id, "type": "checkout.session.completed", "created": int(time.time()), "data": {"object": obj}}
    return json.dumps(event).encode("utf-8")


def post_webhook(client, payload: bytes, signature: Optional[str] = None, secret: str = WEBHOOK_SECRET):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else sign_webhook_payload(payload, secret)
    return client.post("/payments/v1/webhook", content=payload, headers=headers)


def count_orders(s) -> int:
    return s.scalar(select(func.count()).select_from(Order))


def count_order_items(s) -> int:
    return s.scalar(select(func.count()).select_from(OrderItem))


def count_cart_items(s, cart_id: str) -> int:
    return s.scalar(select(func.count()).select_from(CartItem).where(CartItem.cart_id == cart_id))


def sold_items(s, product_id: str) -> int:
    return s.scalar(select(Product.sold_items).where(Product.id == product_id))
