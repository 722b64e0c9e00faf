# Overview: Serialized inventory ledger; IMEI/serial formats, uniqueness and unit lifecycle.

"""
Serialized Inventory Ledger

WHY: Phones and similar devices are sold as individually identified units.
A unit must never be sold twice, and a unit taken off the shelf by a sale that
later fails must come back.

LIFECYCLE:
    AVAILABLE -> RESERVED -> SOLD
    RESERVED  -> AVAILABLE  (release, sale rollback, reservation expiry)
    SOLD      -> AVAILABLE  (sale deletion)

DESIGN:
- Every transition is one conditional UPDATE (``WHERE status = ...``), so two
  concurrent sales cannot both claim the same unit; the loser sees a smaller
  row count.
- Reservations carry a first-class token and expiry (reservation_token,
  reserved_until). Expired reservations are swept by a single range query.
- Transition functions do not commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app

from ..errors import NotFoundError, SerialIntegrityError, ValidationError
from ..extensions import db
from ..models import Product, SerializedUnit
from ..time_utils import utcnow

_log = logging.getLogger(__name__)

IMEI = "IMEI"
SERIAL = "SERIAL"
BOTH = "BOTH"

UNIT_AVAILABLE = "AVAILABLE"
UNIT_RESERVED = "RESERVED"
UNIT_SOLD = "SOLD"

IMEI_LENGTH = 15
SERIAL_MIN_LENGTH = 3
SERIAL_MAX_LENGTH = 50
_SERIAL_PATTERN = re.compile(r"^[A-Za-z0-9\-_.]+$")
_NON_DIGITS = re.compile(r"\D")


@dataclass
class FormatResult:
    is_valid: bool
    error: str | None = None


@dataclass
class DuplicateCheckResult:
    is_valid: bool
    is_duplicate: bool = False
    existing_product_id: int | None = None
    existing_product_name: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "is_duplicate": self.is_duplicate,
            "existing_product_id": self.existing_product_id,
            "existing_product_name": self.existing_product_name,
            "error": self.error,
        }


@dataclass
class BulkValidationResult:
    valid: list[str] = field(default_factory=list)
    duplicates: list[dict] = field(default_factory=list)
    invalid: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "duplicates": self.duplicates, "invalid": self.invalid}


def _kind(kind: str) -> str:
    k = (kind or "").strip().upper()
    if k not in (IMEI, SERIAL):
        raise ValidationError(f"Unknown identifier kind: {kind}")
    return k


def _column(kind: str):
    return SerializedUnit.imei_number if kind == IMEI else SerializedUnit.serial_number


# =============================================================================
# FORMAT
# =============================================================================

def normalize_imei(value: str | None) -> str:
    """Scanners and users add spaces and dashes; keep digits only."""
    return _NON_DIGITS.sub("", value or "")


def normalize_serial(value: str | None) -> str:
    return (value or "").strip().upper()


def normalize(value: str | None, kind: str) -> str:
    return normalize_imei(value) if _kind(kind) == IMEI else normalize_serial(value)


def luhn_check_digit(body: str) -> int:
    """Check digit for a 14-digit IMEI body (standard Luhn, doubling from the right)."""
    total = 0
    for offset, ch in enumerate(reversed(body)):
        digit = int(ch)
        if offset % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return (10 - (total % 10)) % 10


def generate_test_imei(rng: random.Random | None = None) -> str:
    """Random IMEI with a valid check digit. For fixtures and demos."""
    rng = rng or random.Random()
    body = "".join(str(rng.randint(0, 9)) for _ in range(IMEI_LENGTH - 1))
    return body + str(luhn_check_digit(body))


def validate_format(value: str | None, kind: str) -> FormatResult:
    kind = _kind(kind)
    if value is None or not str(value).strip():
        return FormatResult(False, f"{kind} is required")

    s = str(value).strip()
    if kind == IMEI:
        if len(s) != IMEI_LENGTH:
            return FormatResult(False, "IMEI must be exactly 15 digits")
        if not s.isdigit():
            return FormatResult(False, "IMEI must contain digits only")
        if luhn_check_digit(s[:14]) != int(s[14]):
            return FormatResult(False, "IMEI check digit is invalid")
        return FormatResult(True)

    if len(s) < SERIAL_MIN_LENGTH or len(s) > SERIAL_MAX_LENGTH:
        return FormatResult(False, f"Serial number must be {SERIAL_MIN_LENGTH}-{SERIAL_MAX_LENGTH} characters")
    if not _SERIAL_PATTERN.match(s):
        return FormatResult(False, "Serial number may only contain letters, digits, '-', '_' and '.'")
    return FormatResult(True)


# =============================================================================
# UNIQUENESS
# =============================================================================

def check_duplicate(value: str | None, kind: str, exclude_product_id: int | None = None) -> DuplicateCheckResult:
    """
    Format check, then a global lookup.

    IMEI and serial numbers are unique across all products. exclude_product_id
    lets a product editor re-submit its own units without tripping the check.
    """
    kind = _kind(kind)
    fmt = validate_format(value, kind)
    if not fmt.is_valid:
        return DuplicateCheckResult(is_valid=False, error=fmt.error)

    q = (
        db.session.query(SerializedUnit.product_id, Product.name)
        .join(Product, Product.id == SerializedUnit.product_id)
        .filter(_column(kind) == str(value).strip())
    )
    if exclude_product_id is not None:
        q = q.filter(SerializedUnit.product_id != exclude_product_id)

    existing = q.first()
    if existing:
        return DuplicateCheckResult(
            is_valid=False,
            is_duplicate=True,
            existing_product_id=existing.product_id,
            existing_product_name=existing.name,
            error=f"{kind} already registered to product '{existing.name}'",
        )
    return DuplicateCheckResult(is_valid=True)


def validate_bulk(values: list[str], kind: str, exclude_product_id: int | None = None) -> BulkValidationResult:
    """
    Validate a batch of identifiers.

    Repeats inside the batch are reported before storage is consulted; each
    repeated value is reported once.
    """
    kind = _kind(kind)
    result = BulkValidationResult()

    normalized = [normalize(v, kind) for v in values]
    normalized = [v for v in normalized if v]

    counts: dict[str, int] = {}
    for v in normalized:
        counts[v] = counts.get(v, 0) + 1

    seen: set[str] = set()
    for v in normalized:
        if v in seen:
            continue
        seen.add(v)

        if counts[v] > 1:
            result.invalid.append({"value": v, "error": f"Repeated {counts[v]} times in this batch"})
            continue

        check = check_duplicate(v, kind, exclude_product_id=exclude_product_id)
        if check.is_duplicate:
            result.duplicates.append({
                "value": v,
                "existing_product_id": check.existing_product_id,
                "existing_product_name": check.existing_product_name,
            })
        elif not check.is_valid:
            result.invalid.append({"value": v, "error": check.error})
        else:
            result.valid.append(v)

    return result


# =============================================================================
# REGISTRATION
# =============================================================================

def _allowed_kinds(product: Product) -> set[str]:
    t = (product.imei_serial_type or "").upper()
    if t == BOTH:
        return {IMEI, SERIAL}
    if t in (IMEI, SERIAL):
        return {t}
    return set()


def add_units(product_id: int, items: list[dict]) -> dict:
    """
    Register new units for a product.

    Each item: {"imei_number"?, "serial_number"?, "notes"?}. At least one
    identifier is required and only the kinds the product tracks are accepted.
    Valid items are inserted, the rest are returned with a reason. Commits.
    """
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if not product.has_imei_serial:
        raise ValidationError("Product does not track IMEI/serial numbers", details={"product_id": product_id})

    allowed = _allowed_kinds(product)
    batch_seen: set[tuple[str, str]] = set()
    created: list[SerializedUnit] = []
    rejected: list[dict] = []

    for index, item in enumerate(items):
        imei = normalize_imei(item.get("imei_number")) or None
        serial = normalize_serial(item.get("serial_number")) or None

        errors = []
        if not imei and not serial:
            errors.append("IMEI or serial number is required")
        for kind, value in ((IMEI, imei), (SERIAL, serial)):
            if not value:
                continue
            if kind not in allowed:
                errors.append(f"Product does not track {kind}")
                continue
            if (kind, value) in batch_seen:
                errors.append(f"{kind} {value} repeated in this batch")
                continue
            check = check_duplicate(value, kind)
            if not check.is_valid:
                errors.append(check.error)

        if errors:
            rejected.append({"index": index, "imei_number": imei, "serial_number": serial, "errors": errors})
            continue

        if imei:
            batch_seen.add((IMEI, imei))
        if serial:
            batch_seen.add((SERIAL, serial))

        unit = SerializedUnit(
            product_id=product.id,
            imei_number=imei,
            serial_number=serial,
            status=UNIT_AVAILABLE,
            notes=item.get("notes"),
        )
        db.session.add(unit)
        created.append(unit)

    db.session.commit()
    _log.info("registered %d serialized units for product %s (%d rejected)", len(created), product_id, len(rejected))
    return {"created": [u.to_dict() for u in created], "rejected": rejected}


# =============================================================================
# QUERIES
# =============================================================================

def available_units(product_id: int) -> list[SerializedUnit]:
    return (
        db.session.query(SerializedUnit)
        .filter_by(product_id=product_id, status=UNIT_AVAILABLE)
        .order_by(SerializedUnit.id.asc())
        .all()
    )


def count_available(product_id: int) -> int:
    return db.session.query(SerializedUnit).filter_by(product_id=product_id, status=UNIT_AVAILABLE).count()


def units_for_sale(sale_id: int) -> list[SerializedUnit]:
    return db.session.query(SerializedUnit).filter_by(sale_id=sale_id).order_by(SerializedUnit.id.asc()).all()


# =============================================================================
# TRANSITIONS (caller commits)
# =============================================================================

def _default_ttl() -> timedelta:
    return timedelta(minutes=current_app.config.get("SERIAL_RESERVATION_TTL_MINUTES", 10))


def reserve(unit_ids: list[int], token: str, ttl: timedelta | None = None, now: datetime | None = None) -> int:
    """
    AVAILABLE -> RESERVED for the given ids that are still AVAILABLE.

    Returns how many units were reserved. Units taken by someone else are
    skipped, so the caller compares the count with what it asked for.
    """
    ids = list(dict.fromkeys(unit_ids))
    if not ids:
        return 0
    if not token:
        raise ValidationError("Reservation token is required")

    now = now or utcnow()
    ttl = ttl or _default_ttl()
    return (
        db.session.query(SerializedUnit)
        .filter(SerializedUnit.id.in_(ids), SerializedUnit.status == UNIT_AVAILABLE)
        .update(
            {
                SerializedUnit.status: UNIT_RESERVED,
                SerializedUnit.reservation_token: token,
                SerializedUnit.reserved_until: now + ttl,
                SerializedUnit.updated_at: now,
            },
            synchronize_session="fetch",
        )
    )


def release(token: str) -> int:
    """RESERVED units held under ``token`` -> AVAILABLE. Safe to call repeatedly."""
    if not token:
        return 0
    return (
        db.session.query(SerializedUnit)
        .filter(SerializedUnit.status == UNIT_RESERVED, SerializedUnit.reservation_token == token)
        .update(
            {
                SerializedUnit.status: UNIT_AVAILABLE,
                SerializedUnit.reservation_token: None,
                SerializedUnit.reserved_until: None,
                SerializedUnit.updated_at: utcnow(),
            },
            synchronize_session="fetch",
        )
    )


def mark_sold(
    unit_ids: list[int],
    sale_id: int,
    sale_item_id: int,
    token: str | None = None,
    now: datetime | None = None,
) -> int:
    """
    Terminal transition to SOLD.

    With a token only units RESERVED under that token qualify; without one only
    AVAILABLE units do. Anything short of the full set raises
    SerialIntegrityError and the caller must roll back.
    """
    ids = list(dict.fromkeys(unit_ids))
    if not ids:
        return 0

    now = now or utcnow()
    q = db.session.query(SerializedUnit).filter(SerializedUnit.id.in_(ids))
    if token:
        q = q.filter(SerializedUnit.status == UNIT_RESERVED, SerializedUnit.reservation_token == token)
    else:
        q = q.filter(SerializedUnit.status == UNIT_AVAILABLE)

    updated = q.update(
        {
            SerializedUnit.status: UNIT_SOLD,
            SerializedUnit.sale_id: sale_id,
            SerializedUnit.sale_item_id: sale_item_id,
            SerializedUnit.sold_at: now,
            SerializedUnit.reservation_token: None,
            SerializedUnit.reserved_until: None,
            SerializedUnit.updated_at: now,
        },
        synchronize_session="fetch",
    )
    if updated != len(ids):
        raise SerialIntegrityError(
            "Serialized unit could not be marked as sold",
            details={"unit_ids": ids, "updated": updated, "sale_id": sale_id},
        )
    return updated


def restore(sale_id: int) -> int:
    """SOLD units of a sale -> AVAILABLE, unlinking them from the sale."""
    return (
        db.session.query(SerializedUnit)
        .filter(SerializedUnit.sale_id == sale_id, SerializedUnit.status == UNIT_SOLD)
        .update(
            {
                SerializedUnit.status: UNIT_AVAILABLE,
                SerializedUnit.sale_id: None,
                SerializedUnit.sale_item_id: None,
                SerializedUnit.sold_at: None,
                SerializedUnit.updated_at: utcnow(),
            },
            synchronize_session="fetch",
        )
    )


def release_expired(now: datetime | None = None) -> int:
    """Sweep: RESERVED units whose reserved_until has passed -> AVAILABLE."""
    now = now or utcnow()
    return (
        db.session.query(SerializedUnit)
        .filter(SerializedUnit.status == UNIT_RESERVED, SerializedUnit.reserved_until < now)
        .update(
            {
                SerializedUnit.status: UNIT_AVAILABLE,
                SerializedUnit.reservation_token: None,
                SerializedUnit.reserved_until: None,
                SerializedUnit.updated_at: now,
            },
            synchronize_session="fetch",
        )
    )

