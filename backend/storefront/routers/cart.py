from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from storefront import crud, schemas
from storefront.auth import get_current_user_id
from storefront.database import get_db
from storefront.errors import NotFound
from storefront.rate_limit import rate_limit

router = APIRouter(
    prefix="/api/cart",
    tags=["cart"],
    dependencies=[Depends(rate_limit("cart"))],
)


@router.get("", response_model=List[schemas.CartItemWithProduct])
def get_cart(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return crud.get_cart_items(db, user_id)


@router.post("", response_model=schemas.CartItemWithProduct, status_code=201)
def add_to_cart(
    item: schemas.CartItemCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if crud.get_product(db, item.product_id) is None:
        raise NotFound("Product not found")
    return crud.add_to_cart(db, user_id, item.product_id, item.quantity)


@router.patch("/{item_id}", response_model=schemas.CartItemWithProduct)
def update_cart_item(
    item_id: int,
    update: schemas.CartItemUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    item = crud.update_cart_item(db, item_id, user_id, update.quantity)
    if item is None:
        raise NotFound("Cart item not found")
    return item


@router.delete("/{item_id}", status_code=204)
def remove_cart_item(item_id: int, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    if not crud.remove_from_cart(db, item_id, user_id):
        raise NotFound("Cart item not found")
    return Response(status_code=204)


@router.delete("", status_code=204)
def clear_cart(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    crud.clear_cart(db, user_id)
    return Response(status_code=204)
