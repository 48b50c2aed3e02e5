from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront import webhooks
from storefront.config import Settings
from storefront.database import get_db
from storefront.dependencies import get_settings_dep
from storefront.errors import PaymentNotConfigured

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    """
    Stripe event receiver. Answers 200 for every verified event it does not
    want redelivered; errors other than a bad signature answer 500 so Stripe
    retries.
    """
    if not settings.webhooks_enabled:
        raise PaymentNotConfigured("Webhook secret not configured")

    # signature covers the exact bytes, so read them before any parsing
    payload = await request.body()
    event = webhooks.verify_event(
        payload,
        request.headers.get("stripe-signature"),
        settings.stripe_webhook_secret,
        settings.webhook_tolerance_seconds,
        path=request.url.path,
    )
    outcome = await run_in_threadpool(webhooks.handle_event, db, event)
    return {"received": True, "outcome": outcome}
