from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from storefront import crud, schemas
from storefront.auth import get_current_user_id
from storefront.database import get_db
from storefront.errors import NotFound

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


@router.get("", response_model=List[schemas.WishlistItemWithProduct])
def get_wishlist(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return crud.get_wishlist_items(db, user_id)


@router.post("", response_model=schemas.WishlistItemWithProduct, status_code=201)
def add_to_wishlist(
    item: schemas.WishlistItemCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if crud.get_product(db, item.product_id) is None:
        raise NotFound("Product not found")
    return crud.add_to_wishlist(db, user_id, item.product_id)


@router.get("/{product_id}", response_model=schemas.WishlistStatus)
def wishlist_status(product_id: int, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return schemas.WishlistStatus(product_id=product_id, in_wishlist=crud.is_in_wishlist(db, user_id, product_id))


@router.delete("/{product_id}", status_code=204)
def remove_from_wishlist(product_id: int, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    if not crud.remove_from_wishlist(db, user_id, product_id):
        raise NotFound("Wishlist item not found")
    return Response(status_code=204)
