"""
Periodic housekeeping: expired login sessions and abandoned pending orders.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Callable, Dict

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront import crud
from storefront.auth import clear_expired_sessions, utcnow
from storefront.checkout import Status, apply_payment_outcome
from storefront.errors import OrderNotFound

logger = logging.getLogger("storefront.maintenance")


def cancel_stale_pending_orders(db: Session, older_than_hours: int) -> int:
    """
    Cancel orders still pending after `older_than_hours`.

    Goes through apply_payment_outcome, so an order that a webhook marks
    paid while the sweep is running stays paid.
    """
    cutoff = utcnow() - timedelta(hours=older_than_hours)
    cancelled = 0
    for order in crud.get_stale_pending_orders(db, cutoff):
        try:
            result = apply_payment_outcome(db, order.id, order.user_id, Status.CANCELLED, source="maintenance")
        except OrderNotFound:
            continue
        if result.applied:
            cancelled += 1
    return cancelled


def run_maintenance(session_factory: Callable[[], Session], pending_order_ttl_hours: int) -> Dict[str, int]:
    db = session_factory()
    try:
        sessions = clear_expired_sessions(db)
        orders = cancel_stale_pending_orders(db, pending_order_ttl_hours)
    finally:
        db.close()

    if sessions or orders:
        logger.info("Maintenance: removed %d expired sessions, cancelled %d stale orders", sessions, orders)
    return {"expired_sessions": sessions, "cancelled_orders": orders}


async def maintenance_loop(session_factory, interval_seconds: int, pending_order_ttl_hours: int) -> None:
    """Run run_maintenance every `interval_seconds` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(run_maintenance, session_factory, pending_order_ttl_hours)
        except Exception:
            logger.exception("Maintenance run failed")
