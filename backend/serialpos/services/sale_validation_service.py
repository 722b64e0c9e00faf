# Overview: Pre-flight validation of a cart before any write.

"""
Sale Transaction Validator

WHY: The cart on screen was built from data that may be minutes old. Before a
sale is processed every line is re-checked against current storage and all
problems are reported together so the cashier can fix them in one pass.

DESIGN:
- Fail-soft: never raises for business problems; collects errors and
  warnings into a SaleValidationResult.
- Read-only: no reservation, no writes.
- A missing customer is a warning (the sale proceeds as walk-in), not an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, Product, Sale, SerializedUnit
from ..time_utils import as_utc_naive, utcnow
from . import stock_service
from .serial_service import UNIT_AVAILABLE

PAYMENT_CASH = "CASH"
PAYMENT_INSTALLMENT = "INSTALLMENT"
PAYMENT_TYPES = (PAYMENT_CASH, PAYMENT_INSTALLMENT)

DEFAULT_MAX_PRICE_CENTS = 999_999_999
MODIFICATION_WINDOW = timedelta(hours=24)


@dataclass
class CartItem:
    product_id: int
    quantity: int
    unit_price_cents: int
    serial_unit_ids: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        if not isinstance(data, dict):
            raise ValidationError("Each cart item must be an object")
        try:
            product_id = int(data["product_id"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError("product_id is required for every cart item")
        serial_ids = data.get("serial_unit_ids") or []
        if not isinstance(serial_ids, list):
            raise ValidationError("serial_unit_ids must be a list")
        try:
            serial_ids = [int(v) for v in serial_ids]
        except (TypeError, ValueError):
            raise ValidationError("serial_unit_ids must contain integer ids")
        return cls(
            product_id=product_id,
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
            serial_unit_ids=serial_ids,
        )


@dataclass
class SaleRequest:
    items: list[CartItem]
    payment_type: str = PAYMENT_CASH
    customer_id: int | None = None
    amount_received_cents: int | None = None
    discount_cents: int = 0
    notes: str | None = None
    idempotency_key: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleRequest":
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        raw_items = data.get("items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")
        customer_id = data.get("customer_id")
        if customer_id in (None, ""):
            customer_id = None
        else:
            try:
                customer_id = int(customer_id)
            except (TypeError, ValueError):
                raise ValidationError("customer_id must be an integer id")
        return cls(
            items=[CartItem.from_dict(i) for i in raw_items],
            payment_type=str(data.get("payment_type") or PAYMENT_CASH).strip().upper(),
            customer_id=customer_id,
            amount_received_cents=data.get("amount_received_cents"),
            discount_cents=data.get("discount_cents") or 0,
            notes=data.get("notes"),
            idempotency_key=(data.get("idempotency_key") or None),
        )


@dataclass
class ValidatedItem:
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    available_stock: int
    requires_imei_serial: bool
    serial_unit_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "available_stock": self.available_stock,
            "requires_imei_serial": self.requires_imei_serial,
            "serial_unit_ids": self.serial_unit_ids,
        }


@dataclass
class SaleValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    validated_items: list[ValidatedItem] = field(default_factory=list)
    subtotal_cents: int = 0
    discount_cents: int = 0
    total_cents: int = 0
    customer_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "validated_items": [i.to_dict() for i in self.validated_items],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "customer_id": self.customer_id,
        }


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _max_price() -> int:
    return current_app.config.get("MAX_PRICE_CENTS", DEFAULT_MAX_PRICE_CENTS)


def validate_sale(request: SaleRequest) -> SaleValidationResult:
    result = SaleValidationResult(is_valid=False)
    errors, warnings = result.errors, result.warnings

    if not request.items:
        errors.append("Cart is empty")
        return result

    payment_type = (request.payment_type or "").upper()
    if payment_type not in PAYMENT_TYPES:
        errors.append(f"Unknown payment type: {request.payment_type}")

    max_price = _max_price()
    requested_by_product: dict[int, int] = {}
    products: dict[int, Product] = {}
    all_selected: list[int] = []
    subtotal = 0

    for position, item in enumerate(request.items, start=1):
        if not _is_int(item.quantity) or item.quantity <= 0:
            errors.append(f"Line {position}: quantity must be a positive integer")
            continue

        product = products.get(item.product_id) or db.session.get(Product, item.product_id)
        if not product:
            errors.append(f"Line {position}: product {item.product_id} not found")
            continue
        if not product.is_active:
            errors.append(f"Product '{product.name}' is not available for sale")
            continue
        products[product.id] = product

        price_ok = _is_int(item.unit_price_cents) and 0 < item.unit_price_cents <= max_price
        if not price_ok:
            errors.append(f"Invalid price for '{product.name}'")

        requested_by_product[product.id] = requested_by_product.get(product.id, 0) + item.quantity
        available = stock_service.available_stock(product)

        if product.requires_imei_serial:
            if len(item.serial_unit_ids) != item.quantity:
                errors.append(
                    f"Select exactly {item.quantity} IMEI/serial unit(s) for '{product.name}'"
                    f" ({len(item.serial_unit_ids)} selected)"
                )
            for unit_id in item.serial_unit_ids:
                unit = db.session.get(SerializedUnit, unit_id)
                if not unit or unit.product_id != product.id:
                    errors.append(f"Unit {unit_id} does not belong to '{product.name}'")
                elif unit.status != UNIT_AVAILABLE:
                    label = unit.imei_number or unit.serial_number or unit_id
                    errors.append(f"Unit {label} of '{product.name}' is no longer available")
            all_selected.extend(item.serial_unit_ids)
        elif item.serial_unit_ids:
            warnings.append(f"'{product.name}' is not serial-tracked; selected units ignored")

        if price_ok:
            line_total = item.quantity * item.unit_price_cents
            subtotal += line_total
            result.validated_items.append(ValidatedItem(
                product_id=product.id,
                product_name=product.name,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                total_price_cents=line_total,
                available_stock=available,
                requires_imei_serial=product.requires_imei_serial,
                serial_unit_ids=list(item.serial_unit_ids) if product.requires_imei_serial else [],
            ))

    for product_id, requested in requested_by_product.items():
        product = products[product_id]
        available = stock_service.available_stock(product)
        if requested > available:
            errors.append(
                f"Insufficient stock for '{product.name}': requested {requested}, available {available}"
            )

    seen: set[int] = set()
    repeated: set[int] = set()
    for unit_id in all_selected:
        if unit_id in seen:
            repeated.add(unit_id)
        seen.add(unit_id)
    if repeated:
        errors.append(f"Serialized unit(s) selected more than once: {sorted(repeated)}")

    discount = request.discount_cents
    if not _is_int(discount) or discount < 0:
        errors.append("Discount must be a non-negative amount")
        discount = 0
    elif discount > subtotal:
        errors.append("Discount cannot exceed the subtotal")

    total = max(0, subtotal - discount)
    if payment_type == PAYMENT_CASH:
        received = request.amount_received_cents
        if received is not None:
            if not _is_int(received) or received < 0:
                errors.append("Amount received must be a non-negative amount")
            elif received < total:
                errors.append(f"Amount received ({received}) is less than the total ({total})")

    customer_id = request.customer_id
    if customer_id is not None:
        customer = db.session.get(Customer, customer_id)
        if not customer or not customer.is_active:
            warnings.append("Customer not found; the sale will be recorded without a customer")
            customer_id = None
    if payment_type == PAYMENT_INSTALLMENT and customer_id is None:
        warnings.append("Installment sale has no customer")

    result.subtotal_cents = subtotal
    result.discount_cents = discount
    result.total_cents = total
    result.customer_id = customer_id
    result.is_valid = not errors
    return result


@dataclass
class ModificationCheck:
    can_modify: bool
    reason: str | None = None

    def to_dict(self) -> dict:
        return {"can_modify": self.can_modify, "reason": self.reason}


def validate_sale_modification(sale: Sale | None, actor, now: datetime | None = None) -> ModificationCheck:
    """
    Who may change an existing sale (payments, notes).

    - Only admin/manager may touch another user's sale.
    - Sales older than 24 hours: admin only.
    - Fully paid sales: admin only.
    """
    if sale is None:
        return ModificationCheck(False, "Sale not found")

    role = (actor.role or "").lower()
    if sale.user_id != actor.id and role not in ("admin", "manager"):
        return ModificationCheck(False, "You may not modify another user's sale")

    now = now or utcnow()
    created_at = as_utc_naive(sale.created_at)
    if created_at and now - created_at > MODIFICATION_WINDOW and role != "admin":
        return ModificationCheck(False, "Sales older than 24 hours can only be modified by an admin")

    if sale.payment_status == "PAID" and role != "admin":
        return ModificationCheck(False, "Fully paid sales can only be modified by an admin")

    return ModificationCheck(True)
