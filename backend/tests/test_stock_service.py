"""Tests for count-based stock accounting."""

import pytest

from serialpos.errors import InsufficientStockError, NotFoundError, ValidationError
from serialpos.extensions import db
from serialpos.models import Product
from serialpos.services import stock_service


def test_decrement_and_increment_move_counter(db_session, make_product):
    cable = make_product("Cable", 900, stock=5)

    assert stock_service.decrement(cable.id, 3) is True
    assert stock_service.increment(cable.id, 1) is True
    db.session.commit()

    assert db.session.get(Product, cable.id).stock == 3


def test_decrement_below_zero_rejected(db_session, make_product):
    cable = make_product("Cable", 900, stock=2)

    with pytest.raises(InsufficientStockError) as exc:
        stock_service.decrement(cable.id, 3)
    assert exc.value.details["available"] == 2
    db.session.rollback()

    assert db.session.get(Product, cable.id).stock == 2


def test_serial_products_are_not_counted(db_session, make_product, make_units):
    phone = make_product("Phone", 50000, serial_type="IMEI")
    make_units(phone, 3)

    assert stock_service.decrement(phone.id, 1) is False
    assert stock_service.increment(phone.id, 1) is False
    assert stock_service.available_stock(phone) == 3


@pytest.mark.parametrize("qty", [0, -1, 1.5, "2", True])
def test_quantity_must_be_positive_int(db_session, make_product, qty):
    cable = make_product("Cable", 900, stock=5)
    with pytest.raises(ValidationError):
        stock_service.decrement(cable.id, qty)


def test_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        stock_service.decrement(424242, 1)


def test_availability_check(db_session, make_product, make_units):
    cable = make_product("Cable", 900, stock=0)
    phone = make_product("Phone", 50000, serial_type="IMEI")
    make_units(phone, 2)
    retired = make_product("Old Phone", 10000, stock=4, is_active=False)

    empty = stock_service.check_product_availability(cable.id)
    assert not empty["is_available"]
    assert empty["message"] == "Out of stock"

    serial = stock_service.check_product_availability(phone.id)
    assert serial["is_available"]
    assert serial["available_serial_units"] == 2

    inactive = stock_service.check_product_availability(retired.id)
    assert not inactive["is_available"]
    assert inactive["message"] == "Product is inactive"
