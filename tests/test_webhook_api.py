import json

import pytest

from checkout_service.payments.signing import sign_webhook_payload

from conftest import WEBHOOK_SECRET, completed_event, count_cart_items, count_orders, post_webhook, sold_items

ADDRESS = {"line1": "1 Main St", "city": "Lalitpur", "country": "NP"}


def metadata(**overrides):
    md = {"userId": "u1", "cartid": "c1", "address": json.dumps(ADDRESS)}
    md.update(overrides)
    return md


@pytest.fixture
def cart(seed):
    seed(
        products=[{"id": "p1", "name": "Linen Shirt", "price": 1000, "sold_items": 10}],
        cart_id="c1",
        lines=[{"product_id": "p1", "quantity": 2, "selected_size": "L"}],
    )


def paid_event(session_id="cs_test_1", event_id="evt_1"):
    return completed_event(
        session_id,
        metadata(),
        event_id=event_id,
        customer_details={"email": "cust@example.com", "name": "Asha"},
    )


def test_missing_signature(client):
    r = client.post("/payments/v1/webhook", content=paid_event(), headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Stripe signature missing"


def test_signature_checked_before_body_is_parsed(client):
    r = post_webhook(client, b"this is not json", signature="t=1,v1=deadbeef")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid webhook signature"


def test_signature_from_wrong_secret(client, cart, session_factory):
    r = post_webhook(client, paid_event(), secret="whsec_someone_else")
    assert r.status_code == 400
    with session_factory() as s:
        assert count_orders(s) == 0


def test_tampered_body(client, cart, session_factory):
    payload = paid_event()
    signature = sign_webhook_payload(payload, WEBHOOK_SECRET)
    r = post_webhook(client, payload.replace(b"u1", b"u2"), signature=signature)
    assert r.status_code == 400
    with session_factory() as s:
        assert count_orders(s) == 0


def test_signed_garbage_body(client):
    r = post_webhook(client, b"{not json")
    assert r.status_code == 400
    assert r.json()["detail"] == "Failed to parse webhook body"


def test_unparseable_address_metadata(client, cart, session_factory):
    r = post_webhook(client, completed_event("cs_bad", metadata(address="{oops")))
    assert r.status_code == 400
    assert r.json()["detail"] == "Failed to parse metadata"
    with session_factory() as s:
        assert count_orders(s) == 0


def test_completed_checkout_creates_order(client, cart, session_factory, mailer):
    r = post_webhook(client, paid_event())
    assert r.status_code == 200
    assert r.json() == {"received": True, "success": True}

    with session_factory() as s:
        assert count_orders(s) == 1
        assert count_cart_items(s, "c1") == 0
        assert sold_items(s, "p1") == 12

    lookup = client.get("/payments/v1/sessions/cs_test_1/order").json()
    assert lookup["success"] is True
    order = lookup["order"]
    assert order["total_amount"] == 2000
    assert order["status"] == "processing"
    assert order["shipping_address"] == ADDRESS

    detail = client.get(f"/payments/v1/orders/{order['id']}").json()
    assert len(detail["items"]) == 1
    assert detail["items"][0]["price"] == 1000
    assert detail["items"][0]["quantity"] == 2
    assert detail["items"][0]["selected_size"] == "L"
    assert detail["items"][0]["delivery_option"] == "pay_on_website"

    assert mailer.sent[0]["to"] == "cust@example.com"
    assert mailer.sent[0]["name"] == "Asha"


def test_redelivered_event_keeps_single_order(client, cart, session_factory, seed, mailer):
    assert post_webhook(client, paid_event()).status_code == 200
    # the cart was cleared; a fresh line must not be turned into a second order
    seed(cart_id="c1", lines=[{"product_id": "p1", "quantity": 1}])
    assert post_webhook(client, paid_event(event_id="evt_2")).status_code == 200

    with session_factory() as s:
        assert count_orders(s) == 1
        assert sold_items(s, "p1") == 12
        assert count_cart_items(s, "c1") == 1
    assert len(mailer.sent) == 1


def test_email_falls_back_to_metadata(client, cart, mailer):
    payload = completed_event("cs_test_1", metadata(email="meta@example.com", name="Meta"))
    assert post_webhook(client, payload).status_code == 200
    assert mailer.sent[0]["to"] == "meta@example.com"


def test_empty_cart_still_acknowledged(client, session_factory):
    r = post_webhook(client, completed_event("cs_empty", metadata(cartid="nothing-here")))
    assert r.status_code == 200
    with session_factory() as s:
        assert count_orders(s) == 0


def test_missing_cart_id_still_acknowledged(client, cart, session_factory):
    md = metadata()
    del md["cartid"]
    assert post_webhook(client, completed_event("cs_nocart", md)).status_code == 200
    with session_factory() as s:
        assert count_orders(s) == 0


def test_completed_checkout_publishes_event(client, cart, events):
    post_webhook(client, paid_event())
    key, value = events.sent[0]
    assert value["type"] == "order.created"
    assert value["stripe_session_id"] == "cs_test_1"
    assert value["amount"] == 2000


@pytest.mark.parametrize(
    "event_type,obj",
    [
        ("payment_intent.succeeded", {"id": "pi_1", "object": "payment_intent"}),
        ("payment_intent.payment_failed", {"id": "pi_2", "last_payment_error": {"message": "card declined"}}),
        ("customer.created", {"id": "cus_1"}),
    ],
)
def test_other_events_acknowledged_without_orders(client, cart, session_factory, event_type, obj):
    payload = json.dumps({"id": "evt_9", "type": event_type, "data": {"object": obj}}).encode("utf-8")
    r = post_webhook(client, payload)
    assert r.status_code == 200
    assert r.json()["received"] is True
    with session_factory() as s:
        assert count_orders(s) == 0


def test_session_without_order(client):
    r = client.get("/payments/v1/sessions/cs_none/order")
    assert r.status_code == 200
    assert r.json() == {"success": False, "message": "No order found for session", "order": None}


def test_unknown_order(client):
    r = client.get("/payments/v1/orders/does-not-exist")
    assert r.status_code == 404
    assert r.json()["detail"] == "Order not found"


def test_send_test_email(client, mailer):
    r = client.post("/payments/v1/test-email", json={"to": "ops@example.com"})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert mailer.sent[0]["to"] == "ops@example.com"
    assert mailer.sent[0]["subject"] == "Test Email from Order Service"


def test_send_test_email_failure(client, mailer):
    mailer.fail = True
    r = client.post("/payments/v1/test-email", json={"to": "ops@example.com", "subject": "hi", "body": "there"})
    assert r.status_code == 500
    assert r.json()["detail"] == "Failed to send test email"


@pytest.mark.parametrize("address", ["[]", json.dumps(["not", "an", "object"]), '"1 Main St"', "null"])
def test_address_metadata_must_be_an_object(client, cart, session_factory, events, address):
    r = post_webhook(client, completed_event("cs_list", metadata(address=address)))
    assert r.status_code == 400
    assert r.json()["detail"] == "Failed to parse metadata"
    with session_factory() as s:
        assert count_orders(s) == 0
        assert count_cart_items(s, "c1") == 1
    assert events.sent == []


def test_checkout_then_completed_callback(client, gateway, seed, session_factory, mailer):
    # current catalogue prices differ from what the storefront sent at checkout
    seed(
        products=[
            {"id": "p1", "name": "Linen Shirt", "price": 1200, "sale_price": 900, "sold_items": 5},
            {"id": "p2", "name": "Canvas Tote", "price": 500},
        ],
        cart_id="c1",
        lines=[{"product_id": "p1", "quantity": 2}, {"product_id": "p2", "quantity": 1}],
    )
    checkout = client.post(
        "/payments/v1/checkout",
        json={
            "userId": "u1",
            "userEmail": "cust@example.com",
            "shippingAddress": ADDRESS,
            "cartItems": [{"product_id": "p1", "cart_id": "c1", "quantity": 2, "price": 1000}],
        },
    )
    assert checkout.status_code == 200
    assert checkout.json()["totalAmount"] == 2000
    session_id = checkout.json()["sessionId"]

    r = post_webhook(client, completed_event(session_id, gateway.sessions[0]["metadata"]))
    assert r.status_code == 200

    with session_factory() as s:
        assert count_orders(s) == 1
        assert count_cart_items(s, "c1") == 0
        assert sold_items(s, "p1") == 7
        assert sold_items(s, "p2") == 1

    order = client.get(f"/payments/v1/sessions/{session_id}/order").json()["order"]
    assert order["user_id"] == "u1"
    assert order["total_amount"] == 2 * 900 + 500
    assert order["shipping_address"] == ADDRESS

    detail = client.get(f"/payments/v1/orders/{order['id']}").json()
    assert sorted((it["product_id"], it["quantity"], it["price"]) for it in detail["items"]) == [
        ("p1", 2, 900),
        ("p2", 1, 500),
    ]
    assert mailer.sent[0]["to"] == "cust@example.com"
