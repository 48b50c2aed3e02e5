import pytest
from pydantic import ValidationError

from conftest import SHIPPING_ADDRESS
from storefront import schemas


def test_shipping_address_strips_whitespace():
    address = schemas.ShippingAddress(**{**SHIPPING_ADDRESS, "city": "  London  "})
    assert address.city == "London"


@pytest.mark.parametrize("field,value", [
    ("phone", "12345"),
    ("zip_code", "123"),
    ("address", "1 A"),
    ("email", "not-an-email"),
])
def test_shipping_address_rejects_bad_fields(field, value):
    with pytest.raises(ValidationError):
        schemas.ShippingAddress(**{**SHIPPING_ADDRESS, field: value})


def test_cart_quantity_bounds():
    assert schemas.CartItemCreate(product_id=1).quantity == 1
    with pytest.raises(ValidationError):
        schemas.CartItemCreate(product_id=1, quantity=0)
    with pytest.raises(ValidationError):
        schemas.CartItemUpdate(quantity=1000)


def test_product_filter_bounds():
    with pytest.raises(ValidationError):
        schemas.ProductFilter(limit=101)
    with pytest.raises(ValidationError):
        schemas.ProductFilter(min_price="-1")
    with pytest.raises(ValidationError):
        schemas.ProductFilter(sort_by="popularity")
    assert schemas.ProductFilter().sort_by == "newest"


def test_product_update_has_no_slug():
    update = schemas.ProductUpdate(price="10.00")
    assert "slug" not in schemas.ProductUpdate.model_fields
    assert update.model_dump(exclude_unset=True) == {"price": update.price}
