"""
Stripe webhook verification and dispatch.

The signature is checked against the exact raw request bytes before any
field of the payload is read. Each verified event is routed by type to the
same reconciliation function the success page uses.
"""

import json
import logging
from typing import Callable, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from storefront.checkout import Outcome, Status, apply_payment_outcome, order_ids_from_metadata
from storefront.errors import OrderNotFound, WebhookSignatureInvalid
from storefront.observability import security_logger, tracer, webhook_events_total

logger = logging.getLogger("storefront.webhooks")


def verify_event(
    payload: bytes,
    signature: Optional[str],
    secret: str,
    tolerance: int = 300,
    path: str = "/api/webhooks/stripe",
) -> dict:
    """
    Verify a Stripe-Signature header against the raw body and return the
    parsed event.

    Raises:
        WebhookSignatureInvalid: missing/invalid signature, stale timestamp,
        or a body that is not JSON
    """
    if not signature:
        security_logger.warning("Security: webhook received without signature - path=%s", path)
        raise WebhookSignatureInvalid()

    try:
        stripe.WebhookSignature.verify_header(payload, signature, secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        security_logger.warning(
            "Security: webhook signature verification failed - path=%s: %s", path, exc.user_message or exc,
        )
        raise WebhookSignatureInvalid() from exc

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise WebhookSignatureInvalid("Invalid webhook payload") from exc
    if not isinstance(event, dict) or "type" not in event:
        raise WebhookSignatureInvalid("Invalid webhook payload")
    return event


def _event_object(event: dict) -> dict:
    return (event.get("data") or {}).get("object") or {}


def _reconcile(db: Session, event: dict, obj: dict, status: Status, payment_reference: Optional[str]) -> str:
    ids = order_ids_from_metadata(obj.get("metadata"))
    if ids is None:
        logger.warning("Webhook %s (%s) has no orderId/userId metadata, ignoring", event.get("id"), event["type"])
        return "missing_metadata"

    order_id, user_id = ids
    try:
        result = apply_payment_outcome(
            db, order_id, user_id, status,
            payment_reference=payment_reference,
            source=f"webhook:{event['type']}",
        )
    except OrderNotFound:
        # redelivery cannot fix this, so acknowledge it
        return "order_not_found"

    if result.outcome is Outcome.ALREADY_PAID:
        logger.info("Order %s already paid, skipping duplicate webhook %s", order_id, event.get("id"))
    return result.outcome.value


def handle_payment_intent_succeeded(db: Session, event: dict) -> str:
    intent = _event_object(event)
    return _reconcile(db, event, intent, Status.PAID, intent.get("id"))


def handle_payment_intent_failed(db: Session, event: dict) -> str:
    intent = _event_object(event)
    error = intent.get("last_payment_error") or {}
    logger.warning("Payment intent %s failed: %s", intent.get("id"), error.get("code") or "unknown")
    return _reconcile(db, event, intent, Status.FAILED, None)


def handle_checkout_session_completed(db: Session, event: dict) -> str:
    session = _event_object(event)
    if session.get("payment_status") != "paid":
        # delayed payment methods settle later via async_payment_* events
        logger.info("Checkout session %s completed with payment_status=%s", session.get("id"), session.get("payment_status"))
        return "awaiting_payment"
    return _reconcile(db, event, session, Status.PAID, session.get("payment_intent"))


def handle_async_payment_succeeded(db: Session, event: dict) -> str:
    session = _event_object(event)
    return _reconcile(db, event, session, Status.PAID, session.get("payment_intent"))


def handle_async_payment_failed(db: Session, event: dict) -> str:
    return _reconcile(db, event, _event_object(event), Status.FAILED, None)


def handle_checkout_session_expired(db: Session, event: dict) -> str:
    return _reconcile(db, event, _event_object(event), Status.CANCELLED, None)


def handle_charge_dispute_created(db: Session, event: dict) -> str:
    # No automatic action on disputes: they are logged for manual review.
    dispute = _event_object(event)
    amount = dispute.get("amount") or 0
    security_logger.warning(
        "Payment dispute created: chargeId=%s, reason=%s, amount=%.2f%s - manual review required",
        dispute.get("charge"), dispute.get("reason"), amount / 100, (dispute.get("currency") or "").upper(),
    )
    return "logged"


EVENT_HANDLERS: Dict[str, Callable[[Session, dict], str]] = {
    "payment_intent.succeeded": handle_payment_intent_succeeded,
    "payment_intent.payment_failed": handle_payment_intent_failed,
    "checkout.session.completed": handle_checkout_session_completed,
    "checkout.session.async_payment_succeeded": handle_async_payment_succeeded,
    "checkout.session.async_payment_failed": handle_async_payment_failed,
    "checkout.session.expired": handle_checkout_session_expired,
    "charge.dispute.created": handle_charge_dispute_created,
}


def handle_event(db: Session, event: dict) -> str:
    """
    Dispatch a verified event. Unknown types are acknowledged without action
    (the processor adds event types over time). Exceptions propagate so the
    endpoint answers 500 and the processor redelivers.
    """
    event_type = event["type"]
    logger.info("Received Stripe webhook: type=%s, id=%s", event_type, event.get("id"))

    with tracer.start_as_current_span("handle_webhook_event") as span:
        span.set_attribute("webhook.type", event_type)
        span.set_attribute("webhook.id", str(event.get("id")))

        handler = EVENT_HANDLERS.get(event_type)
        if handler is None:
            logger.info("Unhandled webhook event type: %s", event_type)
            outcome = "ignored"
        else:
            outcome = handler(db, event)

        span.set_attribute("webhook.outcome", outcome)

    webhook_events_total.labels(type=event_type if handler else "other", outcome=outcome).inc()
    return outcome
