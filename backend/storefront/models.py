"""
Database Models
===============

Defines the database schema using SQLAlchemy ORM.

Tables:
- categories: Jewelry categories (rings, necklaces, ...)
- products: Items for sale
- cart_items: One row per (user, product) in a shopping cart
- wishlist_items: One row per (user, product) in a wishlist
- orders: Customer orders and their payment state
- order_items: Products in each order, with the price paid
- users: Registered customers
- sessions: Server-side login sessions (cookie holds only the sid)
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from storefront.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ============================================================================
# CATALOG
# ============================================================================

class Category(Base):
    """
    Product categories. Read-mostly reference data.

    Relationships:
        products: All products in this category
    """
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    slug = Column(String(200), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    products = relationship("Product", back_populates="category")


class Product(Base):
    """
    Products available for purchase.

    Attributes:
        slug: URL identifier, unique, never changed after creation
        price: Current price in USD (Numeric, not Float, so cents are exact)
        compare_at_price: Optional "was" price for discount display
        images: Ordered list of image URLs
        material/gemstone/weight/dimensions: Display attributes
        stock_quantity: Units available (>= 0)

    Relationships:
        category: Owning category (nullable)
        order_items: All order items containing this product
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(200), nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False)

    price = Column(Numeric(10, 2), nullable=False)
    compare_at_price = Column(Numeric(10, 2), nullable=True)

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    images = Column(JSON, nullable=False, default=list)

    material = Column(Text, nullable=True)
    gemstone = Column(Text, nullable=True)
    weight = Column(Text, nullable=True)
    dimensions = Column(Text, nullable=True)

    in_stock = Column(Boolean, nullable=False, default=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    is_featured = Column(Boolean, nullable=False, default=False, index=True)
    is_new_arrival = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category", back_populates="products")
    order_items = relationship("OrderItem", back_populates="product")


# ============================================================================
# CART / WISHLIST
# ============================================================================

class CartItem(Base):
    """
    A product in a user's cart.

    The unique (user_id, product_id) constraint is what makes add-to-cart an
    atomic upsert: a repeat add increments quantity instead of inserting.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product")


class WishlistItem(Base):
    __tablename__ = "wishlist_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_wishlist_items_user_product"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product")


# ============================================================================
# ORDER MODEL
# ============================================================================

class Order(Base):
    """
    Customer orders.

    Attributes:
        user_id: Owner. Every lookup is scoped by it.
        status: pending, paid, failed or cancelled
        total_amount: Frozen at creation (snapshot, never recomputed)
        shipping_address: Structured address as JSON
        payment_session_id: Processor checkout session created for this order
        payment_reference: Processor payment intent id, set when paid

    Relationships:
        items: All items in this order
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)

    total_amount = Column(Numeric(10, 2), nullable=False)
    shipping_address = Column(JSON, nullable=True)

    payment_session_id = Column(String(255), nullable=True, index=True)
    payment_reference = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    """
    Individual items within an order.

    price_at_purchase is copied from Product.price when the order is created,
    so the order history is unaffected by later catalog price changes.
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")


# ============================================================================
# USERS / SESSIONS
# ============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(254), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class LoginSession(Base):
    """
    Login sessions. `sess` holds the serialized session blob
    ({"user_id": ...}); rows past `expire` are ignored and swept.
    """
    __tablename__ = "sessions"

    sid = Column(String(128), primary_key=True)
    sess = Column(JSON, nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    expire = Column(DateTime(timezone=True), nullable=False, index=True)
