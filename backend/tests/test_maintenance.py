from datetime import timedelta

from storefront import auth, crud, models
from storefront.checkout import Status, apply_payment_outcome
from storefront.maintenance import cancel_stale_pending_orders, run_maintenance


def make_order(db, product, user_id, age_hours):
    crud.add_to_cart(db, user_id, product.id, 1)
    order, _ = crud.create_order(db, user_id, crud.get_cart_items(db, user_id), {})
    order.created_at = auth.utcnow() - timedelta(hours=age_hours)
    db.commit()
    return order


def test_stale_pending_orders_are_cancelled(db, make_product):
    product = make_product()
    stale = make_order(db, product, "u1", age_hours=72)
    fresh = make_order(db, product, "u2", age_hours=1)
    paid = make_order(db, product, "u3", age_hours=72)
    apply_payment_outcome(db, paid.id, "u3", Status.PAID)

    assert cancel_stale_pending_orders(db, older_than_hours=48) == 1

    assert crud.get_order(db, stale.id, "u1").status == "cancelled"
    assert crud.get_order(db, fresh.id, "u2").status == "pending"
    assert crud.get_order(db, paid.id, "u3").status == "paid"


def test_run_maintenance_sweeps_sessions_and_orders(db, session_factory, make_product):
    make_order(db, make_product(), "u1", age_hours=100)
    expired = auth.create_session(db, "u1", ttl_hours=1)
    expired.expire = auth.utcnow() - timedelta(hours=1)
    auth.create_session(db, "u1", ttl_hours=1)
    db.commit()

    assert run_maintenance(session_factory, pending_order_ttl_hours=48) == {
        "expired_sessions": 1,
        "cancelled_orders": 1,
    }
    assert db.query(models.LoginSession).count() == 1
