import json
import logging
import time

import pytest
from fastapi.testclient import TestClient
from conftest import make_event, post_event, sign_payload, start_checkout

from storefront import crud, webhooks
from storefront.errors import WebhookSignatureInvalid


@pytest.fixture
def pending_order(alice, make_product):
    """Alice has one cart line and a pending order for it."""
    product = make_product(price="120.00")
    alice.post("/api/cart", json={"product_id": product.id, "quantity": 1})
    session = start_checkout(alice)
    return {"order_id": session["order_id"], "user_id": alice.user["id"], "session_id": session["session_id"]}


def metadata(order):
    return {"orderId": str(order["order_id"]), "userId": order["user_id"]}


def intent_event(order, event_type="payment_intent.succeeded", event_id="evt_1"):
    return make_event(event_type, {"id": "pi_live_1", "object": "payment_intent", "metadata": metadata(order)}, event_id)


def status_of(db, order):
    return crud.get_order(db, order["order_id"], order["user_id"]).status


def test_duplicate_payment_intent_succeeded(client, alice, db, pending_order, caplog):
    with caplog.at_level(logging.INFO, logger="storefront"):
        first = post_event(client, intent_event(pending_order))
        # alice shops again before the processor redelivers
        alice.post("/api/cart", json={"product_id": 1, "quantity": 1})
        second = post_event(client, intent_event(pending_order))

    assert first.status_code == second.status_code == 200
    assert first.json()["outcome"] == "applied"
    assert second.json()["outcome"] == "already_paid"

    order = crud.get_order(db, pending_order["order_id"], pending_order["user_id"])
    assert order.status == "paid"
    assert order.payment_reference == "pi_live_1"
    assert len(alice.get("/api/cart").json()) == 1
    assert sum("[AUDIT] Payment confirmed" in r.getMessage() for r in caplog.records) == 1


def test_success_page_and_webhook_race_confirms_once(client, alice, db, gateway, pending_order, caplog):
    gateway.mark_paid(pending_order["session_id"])
    with caplog.at_level(logging.INFO, logger="storefront.audit"):
        post_event(client, intent_event(pending_order))
        page = alice.get("/api/checkout/success", params={"session_id": pending_order["session_id"]})

    assert page.status_code == 400
    assert page.json()["code"] == "PAYMENT_ALREADY_PROCESSED"
    assert status_of(db, pending_order) == "paid"
    assert sum("[AUDIT] Payment confirmed" in r.getMessage() for r in caplog.records) == 1


def test_paid_order_stays_paid_after_failure_events(client, db, pending_order):
    post_event(client, intent_event(pending_order))
    for event_type in ("payment_intent.payment_failed", "checkout.session.expired", "checkout.session.async_payment_failed"):
        response = post_event(client, make_event(event_type, {"id": "x", "metadata": metadata(pending_order)}, event_id=event_type))
        assert response.status_code == 200
    assert status_of(db, pending_order) == "paid"


def test_payment_failed_then_retry_succeeds(client, db, alice, pending_order):
    post_event(client, intent_event(pending_order, "payment_intent.payment_failed"))
    assert status_of(db, pending_order) == "failed"
    # cart untouched by a failure
    assert len(alice.get("/api/cart").json()) == 1

    post_event(client, intent_event(pending_order, event_id="evt_2"))
    assert status_of(db, pending_order) == "paid"


def test_checkout_session_completed(client, db, pending_order):
    unpaid = {"id": "cs_1", "payment_status": "unpaid", "payment_intent": "pi_9", "metadata": metadata(pending_order)}
    response = post_event(client, make_event("checkout.session.completed", unpaid))
    assert response.json()["outcome"] == "awaiting_payment"
    assert status_of(db, pending_order) == "pending"

    paid = dict(unpaid, payment_status="paid")
    post_event(client, make_event("checkout.session.completed", paid, event_id="evt_2"))
    order = crud.get_order(db, pending_order["order_id"], pending_order["user_id"])
    assert order.status == "paid"
    assert order.payment_reference == "pi_9"


def test_async_payment_events(client, db, pending_order):
    obj = {"id": "cs_1", "payment_intent": "pi_async", "metadata": metadata(pending_order)}
    post_event(client, make_event("checkout.session.async_payment_succeeded", obj))
    assert status_of(db, pending_order) == "paid"


def test_expired_session_cancels_pending_order(client, db, pending_order):
    post_event(client, make_event("checkout.session.expired", {"id": "cs_1", "metadata": metadata(pending_order)}))
    assert status_of(db, pending_order) == "cancelled"


def test_dispute_is_logged_without_changes(client, db, pending_order, caplog):
    dispute = {"id": "dp_1", "charge": "ch_1", "reason": "fraudulent", "amount": 12000, "currency": "usd"}
    with caplog.at_level(logging.WARNING, logger="storefront.security"):
        response = post_event(client, make_event("charge.dispute.created", dispute))
    assert response.json()["outcome"] == "logged"
    assert any("ch_1" in r.getMessage() and "manual review" in r.getMessage() for r in caplog.records)
    assert status_of(db, pending_order) == "pending"


def test_unknown_event_type_is_acknowledged(client):
    response = post_event(client, make_event("customer.created", {"id": "cus_1"}))
    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "ignored"}


def test_missing_metadata_is_acknowledged(client, db, pending_order):
    response = post_event(client, make_event("payment_intent.succeeded", {"id": "pi_1", "metadata": {}}))
    assert response.status_code == 200
    assert response.json()["outcome"] == "missing_metadata"
    assert status_of(db, pending_order) == "pending"


def test_foreign_order_is_acknowledged_with_security_warning(client, bob, db, pending_order, caplog):
    forged = {"orderId": str(pending_order["order_id"]), "userId": bob.user["id"]}
    with caplog.at_level(logging.WARNING, logger="storefront.security"):
        response = post_event(client, make_event("payment_intent.succeeded", {"id": "pi_1", "metadata": forged}))

    assert response.status_code == 200
    assert response.json()["outcome"] == "order_not_found"
    assert any("Security" in r.getMessage() for r in caplog.records)
    assert status_of(db, pending_order) == "pending"


def test_bad_signature_is_400(client, db, pending_order, caplog):
    with caplog.at_level(logging.WARNING, logger="storefront.security"):
        response = post_event(client, intent_event(pending_order), secret="whsec_wrong")
    assert response.status_code == 400
    assert response.json()["code"] == "WEBHOOK_SIGNATURE_INVALID"
    assert any("path=/api/webhooks/stripe" in r.getMessage() for r in caplog.records)
    assert status_of(db, pending_order) == "pending"


def test_missing_signature_is_400(client):
    response = client.post("/api/webhooks/stripe", content=b"{}", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_tampered_body_is_rejected(client, db, pending_order):
    payload = json.dumps(intent_event(pending_order)).encode("utf-8")
    header = sign_payload(payload)
    tampered = payload.replace(b"pi_live_1", b"pi_evil_1")
    response = client.post("/api/webhooks/stripe", content=tampered, headers={"Stripe-Signature": header})
    assert response.status_code == 400
    assert status_of(db, pending_order) == "pending"


def test_missing_webhook_secret_is_503(client, settings):
    settings.stripe_webhook_secret = None
    response = post_event(client, make_event("customer.created", {}))
    assert response.status_code == 503


def test_verify_event_rejects_stale_timestamp():
    payload = json.dumps(make_event("customer.created", {})).encode("utf-8")
    header = sign_payload(payload, "whsec_x", timestamp=int(time.time()) - 3600)
    with pytest.raises(WebhookSignatureInvalid):
        webhooks.verify_event(payload, header, "whsec_x", tolerance=300)

    fresh = sign_payload(payload, "whsec_x")
    assert webhooks.verify_event(payload, fresh, "whsec_x")["type"] == "customer.created"


def test_reconciliation_errors_return_500(app, pending_order, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(webhooks, "apply_payment_outcome", explode)
    client = TestClient(app, raise_server_exceptions=False)
    response = post_event(client, intent_event(pending_order))
    assert response.status_code == 500
    assert "database unavailable" not in response.text
