# Overview: Stock accounting for products sold by count (no serialized units).

from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, SerializedUnit
from .concurrency import lock_for_update
from .serial_service import UNIT_AVAILABLE

"""
Stock invariants

- Only products with requires_imei_serial = False have their ``stock``
  counter moved by sales; for serial-tracked products these calls are no-ops
  and availability is the count of AVAILABLE units.
- stock never goes below zero.
- Functions do not commit; the caller owns the transaction.
"""


def _check_qty(qty) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": qty})
    return qty


def _locked_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def decrement(product_id: int, qty: int) -> bool:
    """Returns True if the counter moved, False for serial-tracked products."""
    qty = _check_qty(qty)
    product = _locked_product(product_id)
    if product.requires_imei_serial:
        return False

    if product.stock < qty:
        raise InsufficientStockError(
            f"Insufficient stock for '{product.name}'",
            details={"product_id": product.id, "requested": qty, "available": product.stock},
        )
    product.stock -= qty
    db.session.flush()
    return True


def increment(product_id: int, qty: int) -> bool:
    qty = _check_qty(qty)
    product = _locked_product(product_id)
    if product.requires_imei_serial:
        return False

    product.stock += qty
    db.session.flush()
    return True


def available_stock(product: Product) -> int:
    if product.requires_imei_serial:
        return (
            db.session.query(SerializedUnit)
            .filter_by(product_id=product.id, status=UNIT_AVAILABLE)
            .count()
        )
    return max(0, product.stock or 0)


def check_product_availability(product_id: int) -> dict:
    """Quick availability check used by the sale screen before adding to cart."""
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    available = available_stock(product) if product.is_active else 0
    if not product.is_active:
        message = "Product is inactive"
    elif available <= 0:
        message = "Out of stock"
    else:
        message = f"{available} available"

    return {
        "product_id": product.id,
        "product_name": product.name,
        "is_available": available > 0,
        "stock": product.stock,
        "requires_imei_serial": product.requires_imei_serial,
        "available_serial_units": available if product.requires_imei_serial else None,
        "available": available,
        "message": message,
    }
