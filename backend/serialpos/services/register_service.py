# Overview: Cash-register session ledger; open, movements, sale linkage and close.

"""
Cash-Register Session Ledger

WHY: Cashier accountability. Each user works against one open drawer session;
every cash effect (opening float, manual income/expense, cash sales,
installment payments, reversals) is an append-only movement, and the drawer is
counted at close.

LIFECYCLE (per user):
    NONE -> OPEN -> CLOSED   (CLOSED is final)

INVARIANTS:
- At most one OPEN register per user (query check + partial unique index).
- Movements are only added/deleted while the register is OPEN.
- Only INCOME/EXPENSE movements are user-deletable.
- balance = opening + sum(INCOME) + sum(SALE) - sum(EXPENSE); the OPENING
  movement mirrors opening_amount_cents and is not counted twice, CLOSING is
  informational.
- expected closing = opening + sum(SALE). Manual income/expense are reported
  separately and do not move the expected drawer count.
- total_sales_cents is always recomputed from SALE movements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashMovement, CashRegister, CashRegisterSale
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_audit_event

_log = logging.getLogger(__name__)

REGISTER_OPEN = "OPEN"
REGISTER_CLOSED = "CLOSED"

MOVEMENT_OPENING = "OPENING"
MOVEMENT_INCOME = "INCOME"
MOVEMENT_EXPENSE = "EXPENSE"
MOVEMENT_SALE = "SALE"
MOVEMENT_CLOSING = "CLOSING"

USER_MOVEMENT_TYPES = (MOVEMENT_INCOME, MOVEMENT_EXPENSE)

INCOME_CATEGORIES = (
    "cash_sales",
    "card_sales",
    "transfer_sales",
    "other_income",
    "supplier_refunds",
    "loans_received",
)

EXPENSE_CATEGORIES = (
    "inventory_purchases",
    "operating_expenses",
    "utilities",
    "payroll",
    "taxes",
    "maintenance",
    "advertising",
    "transport",
    "other_expenses",
)

# SALE movement categories
CATEGORY_CASH_SALE = "cash_sales"
CATEGORY_INSTALLMENT = "installment_payments"
CATEGORY_SALE_REVERSAL = "sale_reversal"


@dataclass(frozen=True)
class RegisterSession:
    """Handle for an OPEN register, passed explicitly to sale processing."""
    id: int
    user_id: int
    opening_amount_cents: int
    opened_at: datetime

    @classmethod
    def from_model(cls, register: CashRegister) -> "RegisterSession":
        return cls(
            id=register.id,
            user_id=register.user_id,
            opening_amount_cents=register.opening_amount_cents,
            opened_at=register.opened_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "opening_amount_cents": self.opening_amount_cents,
        }


@dataclass
class CloseResult:
    register: CashRegister
    expected_closing_amount_cents: int
    discrepancy_cents: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "register": self.register.to_dict(),
            "expected_closing_amount_cents": self.expected_closing_amount_cents,
            "discrepancy_cents": self.discrepancy_cents,
            "warnings": self.warnings,
        }


# =============================================================================
# PURE CALCULATIONS
# =============================================================================

def _sum_type(movements: Iterable, movement_type: str) -> int:
    return sum(m.amount_cents for m in movements if m.type == movement_type)


def compute_balance(opening_amount_cents: int, movements: Iterable) -> int:
    movements = list(movements)
    return (
        opening_amount_cents
        + _sum_type(movements, MOVEMENT_INCOME)
        + _sum_type(movements, MOVEMENT_SALE)
        - _sum_type(movements, MOVEMENT_EXPENSE)
    )


def compute_expected_closing(opening_amount_cents: int, movements: Iterable) -> int:
    return opening_amount_cents + _sum_type(list(movements), MOVEMENT_SALE)


def compute_discrepancy(actual_cents: int, expected_cents: int) -> int:
    return actual_cents - expected_cents


def _check_amount(value, *, allow_zero: bool, label: str = "Amount") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer amount in cents", details={"value": value})
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{label} must be {'zero or ' if allow_zero else ''}positive", details={"value": value})
    return value


# =============================================================================
# QUERIES
# =============================================================================

def get_register(register_id: int) -> CashRegister:
    register = db.session.get(CashRegister, register_id)
    if not register:
        raise NotFoundError("Cash register not found", details={"cash_register_id": register_id})
    return register


def _open_register_model(user_id: int) -> CashRegister | None:
    return (
        db.session.query(CashRegister)
        .filter_by(user_id=user_id, status=REGISTER_OPEN)
        .first()
    )


def get_open_register(user_id: int) -> RegisterSession | None:
    register = _open_register_model(user_id)
    return RegisterSession.from_model(register) if register else None


def list_movements(register_id: int) -> list[CashMovement]:
    return (
        db.session.query(CashMovement)
        .filter_by(cash_register_id=register_id)
        .order_by(CashMovement.id.asc())
        .all()
    )


def list_registers(
    *,
    user_id: int | None = None,
    status: str | None = None,
    limit: int = 20,
) -> list[CashRegister]:
    q = db.session.query(CashRegister)
    if user_id is not None:
        q = q.filter(CashRegister.user_id == user_id)
    if status:
        q = q.filter(CashRegister.status == status.upper())
    return q.order_by(CashRegister.opened_at.desc(), CashRegister.id.desc()).limit(limit).all()


def current_balance(register_id: int) -> int:
    register = get_register(register_id)
    return compute_balance(register.opening_amount_cents, list_movements(register_id))


def _locked_open(register_id: int) -> CashRegister:
    register = lock_for_update(db.session.query(CashRegister).filter_by(id=register_id)).first()
    if not register:
        raise NotFoundError("Cash register not found", details={"cash_register_id": register_id})
    if register.status != REGISTER_OPEN:
        raise ConflictError("Cash register is closed", details={"cash_register_id": register_id})
    return register


def refresh_totals(register: CashRegister) -> int:
    """Recompute total_sales_cents from SALE movements. Does not commit."""
    total = (
        db.session.query(func.coalesce(func.sum(CashMovement.amount_cents), 0))
        .filter(
            CashMovement.cash_register_id == register.id,
            CashMovement.type == MOVEMENT_SALE,
        )
        .scalar()
    )
    register.total_sales_cents = int(total or 0)
    return register.total_sales_cents


# =============================================================================
# LIFECYCLE
# =============================================================================

def open_register(user_id: int, opening_amount_cents: int, notes: str | None = None) -> RegisterSession:
    """Open a drawer session for ``user_id``. Conflict if one is already open."""
    _check_amount(opening_amount_cents, allow_zero=True, label="Opening amount")

    existing = _open_register_model(user_id)
    if existing:
        raise ConflictError(
            "User already has an open cash register",
            details={"cash_register_id": existing.id},
        )

    now = utcnow()
    register = CashRegister(
        user_id=user_id,
        status=REGISTER_OPEN,
        opening_amount_cents=opening_amount_cents,
        total_sales_cents=0,
        notes=notes,
        opened_at=now,
        last_movement_at=now,
    )
    db.session.add(register)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User already has an open cash register")

    db.session.add(CashMovement(
        cash_register_id=register.id,
        type=MOVEMENT_OPENING,
        category="opening",
        amount_cents=opening_amount_cents,
        description="Opening balance",
        user_id=user_id,
        created_at=now,
    ))
    append_audit_event(
        event_type="register.opened",
        entity_type="cash_register",
        entity_id=register.id,
        actor_user_id=user_id,
        cash_register_id=register.id,
        payload={"opening_amount_cents": opening_amount_cents},
    )

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User already has an open cash register")

    _log.info("cash register %s opened for user %s with %s", register.id, user_id, opening_amount_cents)
    return RegisterSession.from_model(register)


def add_movement(
    register_id: int,
    movement_type: str,
    category: str,
    amount_cents: int,
    description: str,
    user_id: int | None = None,
) -> CashMovement:
    """Manual INCOME / EXPENSE movement on an OPEN register."""
    movement_type = (movement_type or "").strip().upper()
    if movement_type not in USER_MOVEMENT_TYPES:
        raise ValidationError("Movement type must be INCOME or EXPENSE", details={"type": movement_type})
    _check_amount(amount_cents, allow_zero=False)
    if not description or not description.strip():
        raise ValidationError("Description is required")

    category = (category or "").strip().lower()
    allowed = INCOME_CATEGORIES if movement_type == MOVEMENT_INCOME else EXPENSE_CATEGORIES
    if category not in allowed:
        raise ValidationError(
            f"Unknown {movement_type.lower()} category: {category}",
            details={"allowed": list(allowed)},
        )

    def _op():
        register = _locked_open(register_id)
        now = utcnow()
        movement = CashMovement(
            cash_register_id=register.id,
            type=movement_type,
            category=category,
            amount_cents=amount_cents,
            description=description.strip(),
            user_id=user_id,
            created_at=now,
        )
        db.session.add(movement)
        register.last_movement_at = now
        db.session.flush()
        append_audit_event(
            event_type="register.movement_added",
            entity_type="cash_movement",
            entity_id=movement.id,
            actor_user_id=user_id,
            cash_register_id=register.id,
            payload={"type": movement_type, "category": category, "amount_cents": amount_cents},
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def delete_movement(movement_id: int, user_id: int | None = None) -> None:
    def _op():
        movement = db.session.get(CashMovement, movement_id)
        if not movement:
            raise NotFoundError("Movement not found", details={"movement_id": movement_id})
        if movement.type not in USER_MOVEMENT_TYPES:
            raise ValidationError(
                "Only income and expense movements can be deleted",
                details={"movement_id": movement_id, "type": movement.type},
            )
        register = _locked_open(movement.cash_register_id)

        append_audit_event(
            event_type="register.movement_deleted",
            entity_type="cash_movement",
            entity_id=movement.id,
            actor_user_id=user_id,
            cash_register_id=register.id,
            payload=movement.to_dict(),
        )
        db.session.delete(movement)
        register.last_movement_at = utcnow()
        db.session.commit()

    run_with_retry(_op)


def record_sale_movement(
    register_id: int,
    amount_cents: int,
    *,
    reference_id: str | int | None,
    user_id: int | None,
    category: str = CATEGORY_CASH_SALE,
    description: str | None = None,
) -> CashMovement:
    """
    Append a SALE movement (signed; negative reverses an earlier amount) and
    refresh total_sales_cents. Does not commit.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents == 0:
        raise ValidationError("Sale movement amount must be a non-zero integer", details={"value": amount_cents})

    register = _locked_open(register_id)
    now = utcnow()
    movement = CashMovement(
        cash_register_id=register.id,
        type=MOVEMENT_SALE,
        category=category,
        amount_cents=amount_cents,
        description=description or f"Sale {reference_id}",
        reference_id=str(reference_id) if reference_id is not None else None,
        user_id=user_id,
        created_at=now,
    )
    db.session.add(movement)
    register.last_movement_at = now
    db.session.flush()
    refresh_totals(register)
    return movement


def link_cash_sale(
    register_id: int,
    sale_id: int,
    *,
    amount_received_cents: int,
    change_given_cents: int,
    discount_applied_cents: int,
    payment_method: str = "CASH",
) -> CashRegisterSale:
    """Insert the register/sale link row. Does not commit."""
    link = CashRegisterSale(
        cash_register_id=register_id,
        sale_id=sale_id,
        payment_method=payment_method,
        amount_received_cents=amount_received_cents,
        change_given_cents=change_given_cents,
        discount_applied_cents=discount_applied_cents,
    )
    db.session.add(link)
    db.session.flush()
    return link


def preview_close(register_id: int, actual_amount_cents: int) -> dict:
    register = get_register(register_id)
    movements = list_movements(register_id)
    expected = compute_expected_closing(register.opening_amount_cents, movements)
    discrepancy = compute_discrepancy(actual_amount_cents, expected)
    return {
        "cash_register_id": register.id,
        "expected_closing_amount_cents": expected,
        "actual_closing_amount_cents": actual_amount_cents,
        "discrepancy_cents": discrepancy,
        "reason_required": discrepancy != 0,
    }


def close_register(
    register_id: int,
    actual_amount_cents: int,
    reason: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    require_reason: bool = False,
) -> CloseResult:
    """
    Count the drawer and close the session (irreversible).

    A non-zero discrepancy without a reason is reported as a warning, or
    rejected when require_reason is set.
    """
    _check_amount(actual_amount_cents, allow_zero=True, label="Closing amount")
    reason = (reason or "").strip() or None

    def _op():
        register = lock_for_update(db.session.query(CashRegister).filter_by(id=register_id)).first()
        if not register:
            raise NotFoundError("Cash register not found", details={"cash_register_id": register_id})
        if register.status != REGISTER_OPEN:
            raise ConflictError("Cash register is already closed", details={"cash_register_id": register_id})

        movements = list_movements(register.id)
        expected = compute_expected_closing(register.opening_amount_cents, movements)
        discrepancy = compute_discrepancy(actual_amount_cents, expected)

        warnings = []
        if discrepancy != 0 and not reason:
            if require_reason:
                raise ValidationError(
                    "A reason is required when the counted amount differs from the expected amount",
                    details={"expected_closing_amount_cents": expected, "discrepancy_cents": discrepancy},
                )
            warnings.append(f"Closing discrepancy of {discrepancy} recorded without a reason")

        now = utcnow()
        refresh_totals(register)
        register.expected_closing_amount_cents = expected
        register.actual_closing_amount_cents = actual_amount_cents
        register.discrepancy_cents = discrepancy
        register.discrepancy_reason = reason
        register.session_notes = notes
        register.status = REGISTER_CLOSED
        register.closed_at = now
        register.closed_by_user_id = user_id
        register.last_movement_at = now

        db.session.add(CashMovement(
            cash_register_id=register.id,
            type=MOVEMENT_CLOSING,
            category="closing",
            amount_cents=actual_amount_cents,
            description="Closing count",
            user_id=user_id,
            created_at=now,
        ))
        append_audit_event(
            event_type="register.closed",
            entity_type="cash_register",
            entity_id=register.id,
            actor_user_id=user_id,
            cash_register_id=register.id,
            note=reason,
            payload={
                "expected_closing_amount_cents": expected,
                "actual_closing_amount_cents": actual_amount_cents,
                "discrepancy_cents": discrepancy,
            },
        )
        db.session.commit()

        if discrepancy:
            _log.warning("cash register %s closed with discrepancy %s", register.id, discrepancy)
        return CloseResult(register, expected, discrepancy, warnings)

    return run_with_retry(_op)


def get_register_sales_summary(register_id: int) -> dict:
    """Per-session rollup of movements and linked cash sales."""
    register = get_register(register_id)
    movements = list_movements(register_id)

    sale_movements = [m for m in movements if m.type == MOVEMENT_SALE]
    cash_sales = [m for m in sale_movements if m.category == CATEGORY_CASH_SALE]
    installments = [m for m in sale_movements if m.category == CATEGORY_INSTALLMENT]
    reversals = [m for m in sale_movements if m.category == CATEGORY_SALE_REVERSAL]

    links = db.session.query(CashRegisterSale).filter_by(cash_register_id=register_id).all()

    return {
        "cash_register_id": register.id,
        "status": register.status,
        "opening_amount_cents": register.opening_amount_cents,
        "cash_sales_count": len(links),
        "cash_sales_amount_cents": sum(m.amount_cents for m in cash_sales),
        "amount_received_cents": sum(link.amount_received_cents for link in links),
        "change_given_cents": sum(link.change_given_cents for link in links),
        "discounts_cents": sum(link.discount_applied_cents for link in links),
        "installment_payments_count": len(installments),
        "installment_payments_amount_cents": sum(m.amount_cents for m in installments),
        "reversals_amount_cents": sum(m.amount_cents for m in reversals),
        "total_sales_cents": _sum_type(movements, MOVEMENT_SALE),
        "total_income_cents": _sum_type(movements, MOVEMENT_INCOME),
        "total_expense_cents": _sum_type(movements, MOVEMENT_EXPENSE),
        "balance_cents": compute_balance(register.opening_amount_cents, movements),
        "expected_closing_amount_cents": compute_expected_closing(register.opening_amount_cents, movements),
    }
