"""
CRUD Operations
===============

Database reads and writes for the catalog, carts, wishlists and orders.
Routes, the checkout module and the maintenance sweep all go through here.

Ownership rule: every cart, wishlist and order query that takes a row id
also takes the user_id and filters on BOTH. A bare id from the client is
never enough to read or change another user's data.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy.sql import func

from storefront import models, schemas

CENTS = Decimal("0.01")

# ============================================================================
# CATEGORY CRUD OPERATIONS
# ============================================================================

def get_categories(db: Session) -> List[models.Category]:
    return db.query(models.Category).order_by(models.Category.name).all()


def get_category(db: Session, category_id: int) -> Optional[models.Category]:
    return db.query(models.Category).filter(models.Category.id == category_id).first()


def get_category_by_slug(db: Session, slug: str) -> Optional[models.Category]:
    return db.query(models.Category).filter(models.Category.slug == slug).first()


def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    db_category = models.Category(**category.model_dump())
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return db_category


# ============================================================================
# PRODUCT CRUD OPERATIONS
# ============================================================================

def get_product(db: Session, product_id: int) -> Optional[models.Product]:
    """
    Retrieve a single product by ID.

    SQL generated:
        SELECT * FROM products WHERE id = product_id LIMIT 1
    """
    return db.query(models.Product).filter(models.Product.id == product_id).first()


def get_product_by_slug(db: Session, slug: str) -> Optional[models.Product]:
    """
    Retrieve a single product by slug, with its category loaded.

    SQL generated:
        SELECT products.*, categories.*
        FROM products LEFT OUTER JOIN categories ON categories.id = products.category_id
        WHERE products.slug = ?
    """
    return (
        db.query(models.Product)
        .options(joinedload(models.Product.category))
        .filter(models.Product.slug == slug)
        .first()
    )


def _text_match(term: str):
    """Case-insensitive substring match over the searchable text columns."""
    pattern = f"%{term}%"
    return or_(
        models.Product.name.ilike(pattern),
        models.Product.description.ilike(pattern),
        models.Product.material.ilike(pattern),
        models.Product.gemstone.ilike(pattern),
    )


SORT_ORDERS = {
    "price-asc": (models.Product.price.asc(), models.Product.id.asc()),
    "price-desc": (models.Product.price.desc(), models.Product.id.asc()),
    "newest": (models.Product.created_at.desc(), models.Product.id.desc()),
    "name": (models.Product.name.asc(), models.Product.id.asc()),
}


def get_products(db: Session, params: Optional[schemas.ProductFilter] = None) -> List[models.Product]:
    """
    Retrieve products matching optional filters, sorted and paginated.

    Args:
        db: Database session
        params: ProductFilter (all fields optional)

    Returns:
        List of Product objects

    Filters (all combined with AND):
        category_slug   → category_id = <id of slug>   (unknown slug → no rows)
        search          → name/description/material/gemstone ILIKE %term%
        min_price       → price >= min_price  (inclusive)
        max_price       → price <= max_price  (inclusive)
        material        → material = ?
        in_stock, is_featured, is_new_arrival → boolean equality

    Sorting:
        price-asc | price-desc | newest (default) | name
        id is used as a tiebreaker so pagination is stable.

    SQL generated (example):
        SELECT * FROM products
        WHERE category_id = ? AND price >= ? AND price <= ?
        ORDER BY created_at DESC, id DESC
        LIMIT ? OFFSET ?
    """
    params = params or schemas.ProductFilter()
    query = db.query(models.Product)
    conditions = []

    if params.category_slug:
        category = get_category_by_slug(db, params.category_slug)
        if category is None:
            return []
        conditions.append(models.Product.category_id == category.id)

    if params.search:
        conditions.append(_text_match(params.search))

    if params.min_price is not None:
        conditions.append(models.Product.price >= params.min_price)

    if params.max_price is not None:
        conditions.append(models.Product.price <= params.max_price)

    if params.material:
        conditions.append(models.Product.material == params.material)

    if params.in_stock is not None:
        conditions.append(models.Product.in_stock.is_(params.in_stock))

    if params.is_featured is not None:
        conditions.append(models.Product.is_featured.is_(params.is_featured))

    if params.is_new_arrival is not None:
        conditions.append(models.Product.is_new_arrival.is_(params.is_new_arrival))

    if conditions:
        query = query.filter(and_(*conditions))

    query = query.order_by(*SORT_ORDERS.get(params.sort_by, SORT_ORDERS["newest"]))

    if params.offset:
        query = query.offset(params.offset)
    if params.limit:
        query = query.limit(params.limit)

    return query.all()


def get_featured_products(db: Session, limit: int = 8) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.is_featured.is_(True))
        .order_by(models.Product.id)
        .limit(limit)
        .all()
    )


def get_new_arrivals(db: Session, limit: int = 8) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.is_new_arrival.is_(True))
        .order_by(models.Product.created_at.desc(), models.Product.id.desc())
        .limit(limit)
        .all()
    )


def search_products(db: Session, term: str, limit: int = 20) -> List[models.Product]:
    """
    Substring search over name, description, material and gemstone.

    SQL generated:
        SELECT * FROM products
        WHERE name ILIKE '%term%' OR description ILIKE '%term%'
           OR material ILIKE '%term%' OR gemstone ILIKE '%term%'
        LIMIT ?
    """
    return (
        db.query(models.Product)
        .filter(_text_match(term))
        .order_by(models.Product.name)
        .limit(limit)
        .all()
    )


def get_all_products_with_category(db: Session) -> List[models.Product]:
    return db.query(models.Product).options(joinedload(models.Product.category)).all()


def create_product(db: Session, product: schemas.ProductCreate) -> models.Product:
    """
    Create a new product.

    Process:
        1. Convert Pydantic schema → SQLAlchemy model
        2. Add to session (in-memory)
        3. Commit to database (persist)
        4. Refresh to get DB-generated fields (id, timestamps)
    """
    db_product = models.Product(**product.model_dump())
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    return db_product


def update_product(
    db: Session,
    product_id: int,
    product_update: schemas.ProductUpdate
) -> Optional[models.Product]:
    """
    Update an existing product (partial update).

    Only fields explicitly sent by the client are changed:
        {"price": "899.00"}  → only price updated

    Orders already placed keep their price_at_purchase; changing the price
    here never rewrites history.

    SQL generated:
        UPDATE products SET price = ?, updated_at = NOW() WHERE id = ?
    """
    db_product = get_product(db, product_id)

    if db_product is None:
        return None

    update_data = product_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_product, field, value)

    db.commit()
    db.refresh(db_product)

    return db_product


# ============================================================================
# CART CRUD OPERATIONS
# ============================================================================

def _insert_for(db: Session):
    """Dialect-specific INSERT that supports ON CONFLICT."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def get_cart_items(db: Session, user_id: str) -> List[models.CartItem]:
    """
    Retrieve a user's cart with products loaded.

    SQL generated:
        SELECT cart_items.*, products.*
        FROM cart_items JOIN products ON products.id = cart_items.product_id
        WHERE cart_items.user_id = ?
    """
    return (
        db.query(models.CartItem)
        .join(models.Product, models.Product.id == models.CartItem.product_id)
        .options(joinedload(models.CartItem.product))
        .filter(models.CartItem.user_id == user_id)
        .order_by(models.CartItem.id)
        .all()
    )


def get_cart_item(db: Session, item_id: int, user_id: str) -> Optional[models.CartItem]:
    return (
        db.query(models.CartItem)
        .filter(models.CartItem.id == item_id, models.CartItem.user_id == user_id)
        .first()
    )


def add_to_cart(db: Session, user_id: str, product_id: int, quantity: int) -> models.CartItem:
    """
    Add a product to the cart, or increase its quantity if already there.

    Args:
        db: Database session
        user_id: Cart owner
        product_id: Product to add (caller checks that it exists)
        quantity: Units to add (>= 1)

    Returns:
        The (single) CartItem row for (user_id, product_id)

    A read-then-write ("is it in the cart? then update, else insert") lets
    two concurrent adds both insert. Instead this is one statement against
    the unique (user_id, product_id) constraint:

    SQL generated:
        INSERT INTO cart_items (user_id, product_id, quantity) VALUES (?, ?, ?)
        ON CONFLICT (user_id, product_id)
        DO UPDATE SET quantity = cart_items.quantity + excluded.quantity
    """
    insert = _insert_for(db)
    stmt = insert(models.CartItem).values(user_id=user_id, product_id=product_id, quantity=quantity)
    stmt = stmt.on_conflict_do_update(
        index_elements=[models.CartItem.user_id, models.CartItem.product_id],
        set_={"quantity": models.CartItem.quantity + stmt.excluded.quantity},
    )
    db.execute(stmt)
    db.commit()

    return (
        db.query(models.CartItem)
        .filter(models.CartItem.user_id == user_id, models.CartItem.product_id == product_id)
        .populate_existing()
        .one()
    )


def update_cart_item(db: Session, item_id: int, user_id: str, quantity: int) -> Optional[models.CartItem]:
    """
    Set the quantity of a cart row owned by user_id.

    Returns:
        Updated CartItem, or None when the row does not exist for this user

    SQL generated:
        UPDATE cart_items SET quantity = ? WHERE id = ? AND user_id = ?
    """
    db_item = get_cart_item(db, item_id, user_id)
    if db_item is None:
        return None

    db_item.quantity = quantity
    db.commit()
    db.refresh(db_item)
    return db_item


def remove_from_cart(db: Session, item_id: int, user_id: str) -> bool:
    """
    Delete one cart row owned by user_id.

    Returns:
        True if deleted, False if no such row for this user
    """
    deleted = (
        db.query(models.CartItem)
        .filter(models.CartItem.id == item_id, models.CartItem.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted > 0


def clear_cart(db: Session, user_id: str, commit: bool = True) -> int:
    """
    Delete every cart row of a user.

    commit=False lets the payment confirmation clear the cart inside its own
    transaction, together with the order status change.

    SQL generated:
        DELETE FROM cart_items WHERE user_id = ?
    """
    deleted = (
        db.query(models.CartItem)
        .filter(models.CartItem.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if commit:
        db.commit()
    return deleted


# ============================================================================
# WISHLIST CRUD OPERATIONS
# ============================================================================

def get_wishlist_items(db: Session, user_id: str) -> List[models.WishlistItem]:
    return (
        db.query(models.WishlistItem)
        .join(models.Product, models.Product.id == models.WishlistItem.product_id)
        .options(joinedload(models.WishlistItem.product))
        .filter(models.WishlistItem.user_id == user_id)
        .order_by(models.WishlistItem.id)
        .all()
    )


def get_wishlist_item(db: Session, user_id: str, product_id: int) -> Optional[models.WishlistItem]:
    return (
        db.query(models.WishlistItem)
        .filter(models.WishlistItem.user_id == user_id, models.WishlistItem.product_id == product_id)
        .first()
    )


def is_in_wishlist(db: Session, user_id: str, product_id: int) -> bool:
    return get_wishlist_item(db, user_id, product_id) is not None


def add_to_wishlist(db: Session, user_id: str, product_id: int) -> models.WishlistItem:
    """
    Add a product to the wishlist. Adding it again is a no-op.

    SQL generated:
        INSERT INTO wishlist_items (user_id, product_id) VALUES (?, ?)
        ON CONFLICT (user_id, product_id) DO NOTHING
    """
    insert = _insert_for(db)
    stmt = insert(models.WishlistItem).values(user_id=user_id, product_id=product_id)
    stmt = stmt.on_conflict_do_nothing(
        index_elements=[models.WishlistItem.user_id, models.WishlistItem.product_id]
    )
    db.execute(stmt)
    db.commit()
    return get_wishlist_item(db, user_id, product_id)


def remove_from_wishlist(db: Session, user_id: str, product_id: int) -> bool:
    deleted = (
        db.query(models.WishlistItem)
        .filter(models.WishlistItem.user_id == user_id, models.WishlistItem.product_id == product_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted > 0


# ============================================================================
# ORDER CRUD OPERATIONS
# ============================================================================

def get_order(db: Session, order_id: int, user_id: str) -> Optional[models.Order]:
    """
    Retrieve a single order owned by user_id (includes items and products).

    There is deliberately no lookup by id alone: an order that exists but
    belongs to someone else is indistinguishable from one that does not
    exist.

    SQL generated:
        SELECT * FROM orders WHERE id = ? AND user_id = ?
        SELECT * FROM order_items WHERE order_id IN (?)
        SELECT * FROM products WHERE id IN (...)
    """
    return (
        db.query(models.Order)
        .options(selectinload(models.Order.items).selectinload(models.OrderItem.product))
        .filter(models.Order.id == order_id, models.Order.user_id == user_id)
        .populate_existing()
        .first()
    )


def get_orders(db: Session, user_id: str, skip: int = 0, limit: int = 100) -> List[models.Order]:
    """
    Retrieve a user's orders, newest first.

    SQL generated:
        SELECT * FROM orders WHERE user_id = ?
        ORDER BY created_at DESC OFFSET ? LIMIT ?
    """
    return (
        db.query(models.Order)
        .filter(models.Order.user_id == user_id)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def create_order(
    db: Session,
    user_id: str,
    cart_items: Iterable[models.CartItem],
    shipping_address: dict,
) -> Tuple[models.Order, List[Tuple[models.Product, int]]]:
    """
    Create a pending order from cart rows.

    Args:
        db: Database session
        user_id: Order owner
        cart_items: CartItem rows with products loaded
        shipping_address: Validated address (stored as JSON)

    Returns:
        (Order, [(product, quantity), ...]) - the lines are what the payment
        session is built from, so the processor charges exactly what the
        order records.

    Process:
        1. Read each product's current price once
        2. total = Σ price × quantity, rounded to cents
        3. Insert Order (status pending, total frozen)
        4. Insert one OrderItem per line with price_at_purchase = that price
        5. Commit (atomic: an order never exists with missing items)

    SQL generated (one transaction):
        BEGIN;
        INSERT INTO orders (user_id, status, total_amount, shipping_address) VALUES (?, 'pending', ?, ?);
        INSERT INTO order_items (order_id, product_id, quantity, price_at_purchase) VALUES (?, ?, ?, ?);
        ...
        COMMIT;
    """
    lines = []
    total = Decimal("0")
    for item in cart_items:
        product = item.product
        price = Decimal(product.price).quantize(CENTS)
        lines.append((product, item.quantity, price))
        total += price * item.quantity

    db_order = models.Order(
        user_id=user_id,
        status=models.OrderStatus.PENDING.value,
        total_amount=total.quantize(CENTS),
        shipping_address=shipping_address,
    )
    db.add(db_order)
    db.flush()  # assigns db_order.id without committing

    for product, quantity, price in lines:
        db.add(models.OrderItem(
            order_id=db_order.id,
            product_id=product.id,
            quantity=quantity,
            price_at_purchase=price,  # snapshot, not a reference to the live price
        ))

    db.commit()
    db.refresh(db_order)

    return db_order, [(product, quantity) for product, quantity, _ in lines]


def set_order_payment_session(db: Session, order_id: int, user_id: str, session_id: str) -> None:
    db.query(models.Order).filter(
        models.Order.id == order_id, models.Order.user_id == user_id
    ).update(
        {models.Order.payment_session_id: session_id}, synchronize_session=False
    )
    db.commit()


def transition_order_status(
    db: Session,
    order_id: int,
    user_id: str,
    from_statuses: Iterable[str],
    to_status: str,
    payment_reference: Optional[str] = None,
) -> bool:
    """
    Move an order to `to_status` only if it is currently in `from_statuses`.

    Does NOT commit: the caller decides what else belongs in the same
    transaction (clearing the cart on payment).

    Returns:
        True if this call changed the row, False if the guard did not match
        (someone else already moved it, or it is not this user's order)

    This is the single write that makes reconciliation race-safe: two
    triggers confirming the same payment both run this UPDATE, the database
    serializes them, and only one sees rowcount == 1.

    SQL generated:
        UPDATE orders SET status = ?, payment_reference = ?, updated_at = NOW()
        WHERE id = ? AND user_id = ? AND status IN (?, ...)
    """
    values = {models.Order.status: to_status, models.Order.updated_at: func.now()}
    if payment_reference is not None:
        values[models.Order.payment_reference] = payment_reference

    updated = (
        db.query(models.Order)
        .filter(
            models.Order.id == order_id,
            models.Order.user_id == user_id,
            models.Order.status.in_(list(from_statuses)),
        )
        .update(values, synchronize_session=False)
    )
    return updated == 1


def get_stale_pending_orders(db: Session, created_before: datetime) -> List[models.Order]:
    return (
        db.query(models.Order)
        .filter(
            models.Order.status == models.OrderStatus.PENDING.value,
            models.Order.created_at < created_before,
        )
        .all()
    )
