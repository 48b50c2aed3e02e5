"""
Stripe adapter.

The rest of the app talks to the processor only through PaymentGateway, in
plain Python values (ProcessorSession), so checkout logic never depends on
the shape of Stripe's objects and tests can substitute a fake gateway.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import stripe

logger = logging.getLogger("storefront.payments")


class PaymentProviderError(Exception):
    """The processor could not be reached or rejected the request."""


@dataclass
class LineItem:
    name: str
    description: str
    unit_amount_cents: int
    quantity: int
    image: Optional[str] = None


@dataclass
class ProcessorSession:
    id: str
    url: Optional[str]
    payment_status: str
    payment_intent: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def line_items_for(lines: Sequence[Tuple[object, int]]) -> List[LineItem]:
    """[(product, quantity)] -> processor line items priced in cents."""
    items = []
    for product, quantity in lines:
        images = product.images or []
        items.append(LineItem(
            name=product.name,
            description=product.description,
            unit_amount_cents=to_cents(product.price),
            quantity=quantity,
            image=images[0] if images else None,
        ))
    return items


def _as_dict(obj) -> Dict[str, str]:
    if not obj:
        return {}
    return {key: obj[key] for key in obj.keys()}


def _to_processor_session(session) -> ProcessorSession:
    payment_intent = getattr(session, "payment_intent", None)
    # payment_intent is an id string unless it was expanded
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = payment_intent.id
    return ProcessorSession(
        id=session.id,
        url=getattr(session, "url", None),
        payment_status=getattr(session, "payment_status", None) or "unpaid",
        payment_intent=payment_intent,
        metadata=_as_dict(getattr(session, "metadata", None)),
    )


class PaymentGateway:
    def create_checkout_session(
        self,
        line_items: List[LineItem],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> ProcessorSession:
        raise NotImplementedError

    def retrieve_checkout_session(self, session_id: str) -> ProcessorSession:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: str, currency: str = "usd"):
        self.api_key = api_key
        self.currency = currency

    def create_checkout_session(self, line_items, metadata, success_url, cancel_url, customer_email=None):
        params = {
            "api_key": self.api_key,
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {
                            "name": item.name,
                            "description": item.description,
                            "images": [item.image] if item.image else [],
                        },
                        "unit_amount": item.unit_amount_cents,
                    },
                    "quantity": item.quantity,
                }
                for item in line_items
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            # On the session for the success page, and on the payment intent
            # for payment_intent.* webhook events.
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session creation failed: %s", exc.user_message or exc.__class__.__name__)
            raise PaymentProviderError(str(exc)) from exc
        return _to_processor_session(session)

    def retrieve_checkout_session(self, session_id):
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            logger.error("Stripe checkout session lookup failed for %s: %s", session_id, exc.__class__.__name__)
            raise PaymentProviderError(str(exc)) from exc
        return _to_processor_session(session)


def build_gateway(settings) -> Optional[PaymentGateway]:
    if not settings.payments_enabled:
        logger.warning("STRIPE_SECRET_KEY not set: checkout is disabled")
        return None
    return StripeGateway(settings.stripe_secret_key, settings.stripe_currency)
