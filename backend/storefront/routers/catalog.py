"""
Catalog endpoints: categories, products, search, and the admin writes
that keep them current.
"""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront import crud, schemas
from storefront.auth import get_optional_user_id, require_admin
from storefront.cache import ResponseCache
from storefront.database import get_db
from storefront.dependencies import get_response_cache, get_search_engine
from storefront.errors import Conflict, NotFound
from storefront.rate_limit import rate_limit
from storefront.search import SearchEngine

logger = logging.getLogger("storefront.catalog")

router = APIRouter(prefix="/api", tags=["catalog"])


# ============================================================================
# CATEGORIES
# ============================================================================

@router.get("/categories", response_model=List[schemas.Category])
def list_categories(db: Session = Depends(get_db)):
    return crud.get_categories(db)


@router.get("/categories/{slug}", response_model=schemas.Category)
def get_category(slug: str, db: Session = Depends(get_db)):
    category = crud.get_category_by_slug(db, slug)
    if category is None:
        raise NotFound("Category not found")
    return category


@router.post(
    "/categories",
    response_model=schemas.Category,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def create_category(category: schemas.CategoryCreate, db: Session = Depends(get_db)):
    try:
        return crud.create_category(db, category)
    except IntegrityError:
        db.rollback()
        raise Conflict("A category with this slug already exists")


# ============================================================================
# PRODUCTS
# ============================================================================

@router.get("/products", response_model=List[schemas.Product])
def list_products(params: Annotated[schemas.ProductFilter, Query()], db: Session = Depends(get_db)):
    return crud.get_products(db, params)


@router.get("/products/featured", response_model=List[schemas.Product])
def featured_products(limit: int = Query(8, ge=1, le=schemas.PAGINATION_LIMIT_MAX), db: Session = Depends(get_db)):
    return crud.get_featured_products(db, limit=limit)


@router.get("/products/new-arrivals", response_model=List[schemas.Product])
def new_arrivals(limit: int = Query(8, ge=1, le=schemas.PAGINATION_LIMIT_MAX), db: Session = Depends(get_db)):
    return crud.get_new_arrivals(db, limit=limit)


@router.get(
    "/products/search",
    response_model=List[schemas.Product],
    dependencies=[Depends(rate_limit("search"))],
)
def search(
    q: str = Query(..., min_length=1, max_length=schemas.SEARCH_MAX_LENGTH, pattern=schemas.SEARCH_PATTERN),
    limit: int = Query(schemas.PAGINATION_LIMIT_DEFAULT, ge=1, le=schemas.PAGINATION_LIMIT_MAX),
    db: Session = Depends(get_db),
    engine: SearchEngine = Depends(get_search_engine),
    user_id: Optional[str] = Depends(get_optional_user_id),
):
    """
    Substring search first; when it finds nothing, fall back to fuzzy
    ranking over the whole catalog so near-miss spellings still match.
    """
    q = q.strip()
    results = crud.search_products(db, q, limit=limit)
    if not results:
        ranked = engine.rank(q, crud.get_all_products_with_category(db))
        results = [r.product for r in ranked[:limit]]
        if results:
            logger.info("Fuzzy search for %r matched %d products", q, len(results))

    engine.record(q, len(results), user_id)
    return results


@router.get("/products/search/suggestions", response_model=List[schemas.SearchSuggestion])
def search_suggestions(
    prefix: str = Query(..., min_length=1, max_length=schemas.SEARCH_MAX_LENGTH),
    limit: int = Query(5, ge=1, le=20),
    engine: SearchEngine = Depends(get_search_engine),
):
    return [
        schemas.SearchSuggestion(query=s.query, frequency=s.frequency, result_count=s.result_count)
        for s in engine.suggestions(prefix, limit=limit)
    ]


@router.get("/products/{slug}", response_model=schemas.ProductWithCategory)
def get_product(slug: str, db: Session = Depends(get_db)):
    product = crud.get_product_by_slug(db, slug)
    if product is None:
        raise NotFound("Product not found")
    return product


def _check_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is not None and crud.get_category(db, category_id) is None:
        raise NotFound("Category not found")


@router.post(
    "/products",
    response_model=schemas.Product,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def create_product(product: schemas.ProductCreate, db: Session = Depends(get_db)):
    _check_category(db, product.category_id)
    try:
        db_product = crud.create_product(db, product)
    except IntegrityError:
        db.rollback()
        raise Conflict("A product with this slug already exists")
    logger.info("[AUDIT] Product created: id=%s, slug=%s", db_product.id, db_product.slug)
    return db_product


@router.patch(
    "/products/{product_id}",
    response_model=schemas.Product,
    dependencies=[Depends(require_admin)],
)
def update_product(product_id: int, update: schemas.ProductUpdate, db: Session = Depends(get_db)):
    if "category_id" in update.model_fields_set:
        _check_category(db, update.category_id)
    product = crud.update_product(db, product_id, update)
    if product is None:
        raise NotFound("Product not found")
    logger.info("[AUDIT] Product updated: id=%s, fields=%s", product_id, sorted(update.model_fields_set))
    return product


# ============================================================================
# CACHE ADMIN
# ============================================================================

@router.get("/cache", dependencies=[Depends(require_admin)])
def cache_stats(cache: ResponseCache = Depends(get_response_cache)):
    return cache.snapshot()


@router.delete("/cache", dependencies=[Depends(require_admin)])
def clear_cache(cache: ResponseCache = Depends(get_response_cache)):
    return {"cleared": cache.clear()}


# ============================================================================
# SEARCH ANALYTICS ADMIN
# ============================================================================

@router.get("/search/analytics", dependencies=[Depends(require_admin)])
def search_analytics(
    limit: int = Query(20, ge=1, le=100),
    engine: SearchEngine = Depends(get_search_engine),
):
    return {**engine.stats(), "top_queries": engine.top_queries(limit)}


@router.delete("/search/analytics", dependencies=[Depends(require_admin)])
def clear_search_analytics(
    days_old: int = Query(30, ge=0, le=365),
    engine: SearchEngine = Depends(get_search_engine),
):
    removed = engine.clear_old_analytics(days_old)
    logger.info("[AUDIT] Search analytics older than %d days cleared: %d records", days_old, removed)
    return {"removed": removed}
