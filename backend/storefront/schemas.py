"""
Pydantic Schemas
================

Request/response shapes for the API, and the validation bounds every
external input is checked against.

Naming:
- XxxCreate / XxxUpdate: request bodies
- Xxx: response bodies (built from ORM objects via from_attributes)
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# VALIDATION BOUNDS
# ============================================================================

PAGINATION_LIMIT_MAX = 100
PAGINATION_LIMIT_DEFAULT = 20
PAGINATION_OFFSET_MAX = 10000

CART_QUANTITY_MIN = 1
CART_QUANTITY_MAX = 999

PRICE_MIN = Decimal("0")
PRICE_MAX = Decimal("999999.99")

SEARCH_MAX_LENGTH = 200
# Alphanumeric, spaces, dash, ampersand, apostrophe, period
SEARCH_PATTERN = r"^[a-zA-Z0-9\s\-&'.]+$"

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

SortBy = Literal["price-asc", "price-desc", "newest", "name"]

Money = Decimal


# ============================================================================
# CATALOG
# ============================================================================

class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = Field(None, max_length=5000)
    image_url: Optional[str] = None


class CategoryCreate(CategoryBase):
    pass


class Category(CategoryBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class ProductBase(BaseModel):
    name: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., max_length=5000)
    price: Money = Field(..., ge=PRICE_MIN, le=PRICE_MAX, decimal_places=2)
    compare_at_price: Optional[Money] = Field(None, ge=PRICE_MIN, le=PRICE_MAX, decimal_places=2)
    category_id: Optional[int] = None
    images: List[str] = Field(default_factory=list)
    material: Optional[str] = None
    gemstone: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    in_stock: bool = True
    stock_quantity: int = Field(0, ge=0)
    is_featured: bool = False
    is_new_arrival: bool = False


class ProductCreate(ProductBase):
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class ProductUpdate(BaseModel):
    """
    Partial update. Slug is deliberately absent: it is the product's public
    identity and never changes once created.
    """
    name: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[Money] = Field(None, ge=PRICE_MIN, le=PRICE_MAX, decimal_places=2)
    compare_at_price: Optional[Money] = Field(None, ge=PRICE_MIN, le=PRICE_MAX, decimal_places=2)
    category_id: Optional[int] = None
    images: Optional[List[str]] = None
    material: Optional[str] = None
    gemstone: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    in_stock: Optional[bool] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    is_featured: Optional[bool] = None
    is_new_arrival: Optional[bool] = None


class Product(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    created_at: Optional[datetime] = None


class ProductWithCategory(Product):
    category: Optional[Category] = None


class ProductFilter(BaseModel):
    """Query parameters accepted by the product listing."""
    search: Optional[str] = Field(None, max_length=SEARCH_MAX_LENGTH)
    category_slug: Optional[str] = None
    min_price: Optional[Money] = Field(None, ge=PRICE_MIN, le=PRICE_MAX)
    max_price: Optional[Money] = Field(None, ge=PRICE_MIN, le=PRICE_MAX)
    material: Optional[str] = None
    in_stock: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_new_arrival: Optional[bool] = None
    sort_by: SortBy = "newest"
    limit: Optional[int] = Field(None, ge=1, le=PAGINATION_LIMIT_MAX)
    offset: Optional[int] = Field(None, ge=0, le=PAGINATION_OFFSET_MAX)


class SearchSuggestion(BaseModel):
    query: str
    frequency: int
    result_count: int


# ============================================================================
# CART / WISHLIST
# ============================================================================

class CartItemCreate(BaseModel):
    product_id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=CART_QUANTITY_MIN, le=CART_QUANTITY_MAX)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=CART_QUANTITY_MIN, le=CART_QUANTITY_MAX)


class CartItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int


class CartItemWithProduct(CartItem):
    product: Product


class WishlistItemCreate(BaseModel):
    product_id: int = Field(..., ge=1)


class WishlistItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int


class WishlistItemWithProduct(WishlistItem):
    product: Product


class WishlistStatus(BaseModel):
    product_id: int
    in_wishlist: bool


# ============================================================================
# CHECKOUT / ORDERS
# ============================================================================

class ShippingAddress(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254, pattern=EMAIL_PATTERN)
    phone: str = Field(..., min_length=10, max_length=30)
    address: str = Field(..., min_length=5, max_length=100)
    city: str = Field(..., min_length=2, max_length=50)
    state: str = Field(..., min_length=2, max_length=50)
    zip_code: str = Field(..., min_length=5, max_length=20)
    country: str = Field(..., min_length=2, max_length=50)

    @field_validator("*", mode="before")
    @classmethod
    def strip_whitespace(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class CheckoutRequest(BaseModel):
    shipping_address: ShippingAddress


class CheckoutSession(BaseModel):
    url: Optional[str]
    session_id: str
    order_id: int


class OrderItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    price_at_purchase: Money


class OrderItemWithProduct(OrderItem):
    product: Product


class Order(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    total_amount: Money
    shipping_address: Optional[Dict[str, Any]] = None
    payment_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderWithItems(Order):
    items: List[OrderItemWithProduct] = []


class CheckoutConfirmation(BaseModel):
    order: Order


# ============================================================================
# AUTH
# ============================================================================

class UserCreate(BaseModel):
    email: str = Field(..., max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class UserLogin(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., max_length=128)


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
