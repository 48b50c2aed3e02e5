from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront import crud, schemas
from storefront.auth import get_current_user_id
from storefront.database import get_db
from storefront.errors import OrderNotFound

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("", response_model=List[schemas.Order])
def list_orders(
    skip: int = Query(0, ge=0, le=schemas.PAGINATION_OFFSET_MAX),
    limit: int = Query(schemas.PAGINATION_LIMIT_DEFAULT, ge=1, le=schemas.PAGINATION_LIMIT_MAX),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return crud.get_orders(db, user_id, skip=skip, limit=limit)


@router.get("/{order_id}", response_model=schemas.OrderWithItems)
def get_order(order_id: int, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    # another user's order is reported exactly like a missing one
    order = crud.get_order(db, order_id, user_id)
    if order is None:
        raise OrderNotFound()
    return order
