from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from storefront import checkout, schemas
from storefront.auth import get_current_user_id
from storefront.config import Settings
from storefront.database import get_db
from storefront.dependencies import get_payment_gateway, get_settings_dep
from storefront.payments import PaymentGateway
from storefront.rate_limit import rate_limit

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("", response_model=schemas.CheckoutSession, dependencies=[Depends(rate_limit("checkout"))])
def create_checkout(
    body: schemas.CheckoutRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings_dep),
):
    base_url = settings.public_base_url or str(request.base_url)
    result = checkout.create_checkout(db, gateway, user_id, body.shipping_address, base_url)
    return schemas.CheckoutSession(url=result.url, session_id=result.session_id, order_id=result.order.id)


@router.get("/success", response_model=schemas.CheckoutConfirmation)
def checkout_success(
    request: Request,
    session_id: str = Query(..., min_length=1, max_length=255),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway),
):
    result = checkout.confirm_checkout_session(db, gateway, user_id, session_id, path=request.url.path)
    return schemas.CheckoutConfirmation(order=schemas.Order.model_validate(result.order))
