"""
Checkout and payment reconciliation.

Order states:

    pending --> paid          payment confirmed (success page or webhook)
    pending --> failed        processor reports the payment failed
    failed  --> paid          a later attempt on the same session succeeded
    pending --> cancelled     session expired / abandoned order swept

Nothing leaves `paid`.

Both confirmation triggers (the success page the customer lands on, and the
processor's webhook) call apply_payment_outcome(). It looks the order up by
id AND user id, treats an already-paid order as a no-op, and otherwise moves
the order with a single status-guarded UPDATE. When the two triggers race,
the database lets exactly one UPDATE match; only that caller clears the
cart, writes the audit line and counts revenue.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from storefront import crud, models, schemas
from storefront.errors import (
    CartEmpty,
    CheckoutFailed,
    OrderNotFound,
    PaymentAlreadyProcessed,
    PaymentNotCompleted,
    PaymentNotConfigured,
)
from storefront.observability import (
    audit_logger,
    orders_total,
    revenue_total,
    security_logger,
    tracer,
)
from storefront.payments import (
    PaymentGateway,
    PaymentProviderError,
    line_items_for,
)

logger = logging.getLogger("storefront.checkout")

Status = models.OrderStatus

# target status -> statuses it may be reached from. A declined card can be
# retried on the same processor session, so a success may arrive for an
# order already marked failed.
ALLOWED_SOURCES = {
    Status.PAID: (Status.PENDING.value, Status.FAILED.value),
    Status.FAILED: (Status.PENDING.value,),
    Status.CANCELLED: (Status.PENDING.value,),
}


class Outcome(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_PAID = "already_paid"
    NOT_APPLICABLE = "not_applicable"


@dataclass
class TransitionResult:
    outcome: Outcome
    order: models.Order

    @property
    def applied(self) -> bool:
        return self.outcome is Outcome.APPLIED


@dataclass
class CheckoutResult:
    order: models.Order
    session_id: str
    url: Optional[str]


def order_ids_from_metadata(metadata) -> Optional[tuple]:
    """(order_id, user_id) from processor metadata, or None if unusable."""
    metadata = metadata or {}
    user_id = metadata.get("userId")
    try:
        order_id = int(metadata.get("orderId") or 0)
    except (TypeError, ValueError):
        return None
    if order_id <= 0 or not user_id:
        return None
    return order_id, user_id


# ============================================================================
# CHECKOUT CREATION
# ============================================================================

def create_checkout(
    db: Session,
    gateway: Optional[PaymentGateway],
    user_id: str,
    shipping_address: schemas.ShippingAddress,
    base_url: str,
) -> CheckoutResult:
    """
    Turn the user's cart into a pending order and a processor session.

    The cart is left alone: it is cleared only once payment is confirmed, so
    a customer who abandons the payment page still has their cart.
    """
    if gateway is None:
        raise PaymentNotConfigured()

    with tracer.start_as_current_span("create_checkout") as span:
        span.set_attribute("checkout.user_id", user_id)

        cart_items = crud.get_cart_items(db, user_id)
        if not cart_items:
            raise CartEmpty()

        order, lines = crud.create_order(db, user_id, cart_items, shipping_address.model_dump())
        span.set_attribute("order.id", order.id)
        span.set_attribute("order.total_amount", float(order.total_amount))
        orders_total.labels(status="created").inc()
        logger.info("Created pending order %s for user %s (total %s)", order.id, user_id, order.total_amount)

        base_url = base_url.rstrip("/")
        try:
            session = gateway.create_checkout_session(
                line_items=line_items_for(lines),
                metadata={"orderId": str(order.id), "userId": user_id},
                success_url=f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/cart",
                customer_email=shipping_address.email,
            )
        except PaymentProviderError as exc:
            # the order stays pending; the sweep cancels it eventually
            span.record_exception(exc)
            span.set_attribute("error", True)
            logger.error("Payment provider error for order %s", order.id, exc_info=exc)
            raise CheckoutFailed() from exc

        crud.set_order_payment_session(db, order.id, user_id, session.id)
        span.add_event("checkout_session_created", {"order_id": order.id})

    return CheckoutResult(order=order, session_id=session.id, url=session.url)


# ============================================================================
# RECONCILIATION
# ============================================================================

def apply_payment_outcome(
    db: Session,
    order_id: int,
    user_id: str,
    new_status: Status,
    payment_reference: Optional[str] = None,
    source: str = "unknown",
) -> TransitionResult:
    """
    Apply a processor-reported outcome to an order. Safe to call any number
    of times for the same event.

    Raises:
        OrderNotFound: no order with this id belongs to user_id
    """
    with tracer.start_as_current_span("apply_payment_outcome") as span:
        span.set_attribute("order.id", order_id)
        span.set_attribute("payment.new_status", new_status.value)
        span.set_attribute("payment.source", source)

        order = crud.get_order(db, order_id, user_id)
        if order is None:
            security_logger.warning(
                "Security: payment outcome for unknown or foreign order - userId=%s, orderId=%s, source=%s",
                user_id, order_id, source,
            )
            raise OrderNotFound()

        if order.status == Status.PAID.value:
            span.set_attribute("payment.outcome", Outcome.ALREADY_PAID.value)
            return TransitionResult(Outcome.ALREADY_PAID, order)

        try:
            changed = crud.transition_order_status(
                db,
                order_id,
                user_id,
                from_statuses=ALLOWED_SOURCES[new_status],
                to_status=new_status.value,
                payment_reference=payment_reference if new_status is Status.PAID else None,
            )
            if changed and new_status is Status.PAID:
                crud.clear_cart(db, user_id, commit=False)
            db.commit()
        except Exception:
            db.rollback()
            raise

        order = crud.get_order(db, order_id, user_id)
        if not changed:
            outcome = Outcome.ALREADY_PAID if order.status == Status.PAID.value else Outcome.NOT_APPLICABLE
            span.set_attribute("payment.outcome", outcome.value)
            if outcome is Outcome.NOT_APPLICABLE and new_status is Status.PAID:
                logger.error(
                    "Payment reported for order %s in status %s, needs manual review (reference=%s, source=%s)",
                    order_id, order.status, payment_reference, source,
                )
            elif outcome is Outcome.NOT_APPLICABLE:
                logger.info(
                    "Ignoring %s for order %s in status %s (source=%s)",
                    new_status.value, order_id, order.status, source,
                )
            return TransitionResult(outcome, order)

        span.set_attribute("payment.outcome", Outcome.APPLIED.value)
        orders_total.labels(status=new_status.value).inc()

        if new_status is Status.PAID:
            revenue_total.inc(float(order.total_amount))
            audit_logger.info(
                "[AUDIT] Payment confirmed: orderId=%s, userId=%s, amount=%s, source=%s",
                order_id, user_id, order.total_amount, source,
            )
        elif new_status is Status.FAILED:
            logger.warning("Order payment failed: orderId=%s, userId=%s", order_id, user_id)
        else:
            logger.info("Order cancelled: orderId=%s, userId=%s", order_id, user_id)

        return TransitionResult(Outcome.APPLIED, order)


def confirm_checkout_session(
    db: Session,
    gateway: Optional[PaymentGateway],
    user_id: str,
    session_id: str,
    path: str = "/api/checkout/success",
) -> TransitionResult:
    """
    Success-page confirmation: the customer returns with ?session_id=...

    The order id comes from the processor's copy of the session metadata,
    never from the client, and is then looked up together with the caller's
    own user id.

    Raises:
        PaymentAlreadyProcessed: the order was already paid, by an earlier
        visit to the success page or by the webhook
    """
    if gateway is None:
        raise PaymentNotConfigured()

    try:
        session = gateway.retrieve_checkout_session(session_id)
    except PaymentProviderError as exc:
        raise CheckoutFailed("Failed to process payment confirmation") from exc

    if session.payment_status != "paid":
        raise PaymentNotCompleted()

    ids = order_ids_from_metadata(session.metadata)
    if ids is None:
        logger.warning("Checkout session %s has no order metadata", session_id)
        raise OrderNotFound()

    order_id, _ = ids
    result = apply_payment_outcome(
        db, order_id, user_id, Status.PAID,
        payment_reference=session.payment_intent,
        source="success_page",
    )
    if result.outcome is Outcome.ALREADY_PAID:
        security_logger.warning(
            "Security: Duplicate payment confirmation - userId=%s, orderId=%s, path=%s",
            user_id, order_id, path,
        )
        raise PaymentAlreadyProcessed()
    return result

