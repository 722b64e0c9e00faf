# Overview: Sale transaction processor; books a validated cart and reverses it on deletion.

"""
Sale Transaction Processor

WHY: A sale touches several tables (header, lines, serialized units, stock,
cash register, payments). Either all of it lands or none of it does, and a
concurrent sale must never walk away with the same serialized unit.

STATE MACHINE:
    VALIDATING -> RESERVING -> WRITING -> COMMITTING -> COMMITTED
    any state  -> ROLLING_BACK -> FAILED

DESIGN:
- The reservation of serialized units is committed on its own so concurrent
  checkouts see it immediately. It is the only step that outlives a failure,
  so it is recorded in a compensation log and released on rollback.
- Header, lines, unit transitions, stock decrements and register linkage run
  in ONE database transaction. A failure rolls all of them back, including
  stock decrements.
- process_sale and delete_sale never raise for business failures; they
  return a result object with an error code.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    PosError,
    SerialIntegrityError,
    StockRaceError,
    StoreError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    CashMovement,
    CashRegister,
    CashRegisterSale,
    Payment,
    PaymentInstallment,
    Product,
    Sale,
    SaleItem,
)
from . import permission_service, register_service, serial_service, stock_service
from .concurrency import lock_for_update, run_with_retry
from .installment_service import derive_payment_status
from .ledger_service import append_audit_event
from .register_service import RegisterSession
from .sale_validation_service import PAYMENT_CASH, SaleRequest, SaleValidationResult, validate_sale

_log = logging.getLogger(__name__)

GENERIC_FAILURE = "The sale could not be completed. No changes were saved; please try again."


class SaleState(str, enum.Enum):
    VALIDATING = "VALIDATING"
    RESERVING = "RESERVING"
    WRITING = "WRITING"
    COMMITTING = "COMMITTING"
    COMMITTED = "COMMITTED"
    ROLLING_BACK = "ROLLING_BACK"
    FAILED = "FAILED"


@dataclass
class SaleProcessResult:
    success: bool
    sale_id: int | None = None
    sale: Sale | None = None
    error: str | None = None
    error_code: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    state: SaleState | None = None
    duplicate: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "sale_id": self.sale_id,
            "sale": sale_to_dict(self.sale) if self.sale is not None else None,
            "error": self.error,
            "error_code": self.error_code,
            "errors": self.errors,
            "warnings": self.warnings,
            "state": self.state.value if self.state else None,
            "duplicate": self.duplicate,
        }


@dataclass
class SaleDeletionResult:
    success: bool
    error: str | None = None
    error_code: str | None = None
    restored_units: int = 0
    restored_stock: list[dict] = field(default_factory=list)
    deleted_installments: int = 0
    reversed_cash_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "error": self.error,
            "error_code": self.error_code,
            "restored_units": self.restored_units,
            "restored_stock": self.restored_stock,
            "deleted_installments": self.deleted_installments,
            "reversed_cash_cents": self.reversed_cash_cents,
        }


class CompensationLog:
    """Undo actions for steps that were committed before the main write."""

    def __init__(self):
        self._steps: list[tuple[str, Callable[[], None]]] = []

    def register(self, name: str, undo: Callable[[], None]) -> None:
        self._steps.append((name, undo))

    def __len__(self) -> int:
        return len(self._steps)

    def unwind(self) -> list[str]:
        """Run undo actions newest first. A failing undo does not stop the rest."""
        done = []
        while self._steps:
            name, undo = self._steps.pop()
            try:
                undo()
                done.append(name)
            except Exception:
                db.session.rollback()
                _log.exception("compensation step %s failed", name)
        return done


def new_reservation_token() -> str:
    return f"SALE-{uuid.uuid4().hex}"


def _release_reservation(token: str) -> None:
    serial_service.release(token)
    db.session.commit()


def _find_by_idempotency_key(key: str | None) -> Sale | None:
    if not key:
        return None
    return db.session.query(Sale).filter_by(idempotency_key=key).first()


class SaleTransaction:
    """One attempt to book a sale. Use process_sale() rather than this directly."""

    def __init__(self, request: SaleRequest, actor, register: RegisterSession | None = None):
        self.request = request
        self.actor = actor
        self.register = register
        self.state = SaleState.VALIDATING
        self.history: list[SaleState] = [SaleState.VALIDATING]
        self.validation: SaleValidationResult | None = None
        self.token: str | None = None
        self.compensations = CompensationLog()
        self.sale: Sale | None = None
        self.warnings: list[str] = []

    def _transition(self, state: SaleState) -> None:
        self.state = state
        self.history.append(state)

    def run(self) -> SaleProcessResult:
        existing = _find_by_idempotency_key(self.request.idempotency_key)
        if existing and existing.user_id != self.actor.id:
            self._transition(SaleState.FAILED)
            return SaleProcessResult(
                success=False,
                error="This idempotency key was already used by another user",
                error_code=ConflictError.code,
                state=self.state,
            )
        if existing:
            self._transition(SaleState.COMMITTED)
            return SaleProcessResult(
                success=True,
                sale_id=existing.id,
                sale=existing,
                warnings=["Duplicate submission; the existing sale was returned"],
                state=self.state,
                duplicate=True,
            )

        self.validation = validate_sale(self.request)
        self.warnings.extend(self.validation.warnings)
        if not self.validation.is_valid:
            db.session.rollback()
            self._transition(SaleState.FAILED)
            return SaleProcessResult(
                success=False,
                error="; ".join(self.validation.errors),
                error_code=ValidationError.code,
                errors=list(self.validation.errors),
                warnings=self.warnings,
                state=self.state,
            )

        try:
            self._reserve()
            self._write()
            self._commit()
        except Exception as exc:
            return self._rollback(exc)

        _log.info("sale %s committed by user %s (total %s)", self.sale.id, self.actor.id, self.sale.total_amount_cents)
        return SaleProcessResult(
            success=True,
            sale_id=self.sale.id,
            sale=self.sale,
            warnings=self.warnings,
            state=self.state,
        )

    # -- steps ---------------------------------------------------------------

    def _reserve(self) -> None:
        self._transition(SaleState.RESERVING)
        unit_ids = [uid for item in self.validation.validated_items for uid in item.serial_unit_ids]
        if not unit_ids:
            return

        token = new_reservation_token()
        reserved = serial_service.reserve(unit_ids, token)
        if reserved != len(unit_ids):
            serial_service.release(token)
            db.session.commit()
            raise StockRaceError(
                "Some selected units were just taken by another sale. Please review the cart and try again.",
                details={"requested": len(unit_ids), "reserved": reserved},
            )
        db.session.commit()

        self.token = token
        self.compensations.register("release_reservation", lambda: _release_reservation(token))

    def _write(self) -> None:
        self._transition(SaleState.WRITING)
        v = self.validation
        is_cash = self.request.payment_type.upper() == PAYMENT_CASH
        total_paid = v.total_cents if is_cash else 0

        sale = Sale(
            customer_id=v.customer_id,
            user_id=self.actor.id,
            subtotal_cents=v.subtotal_cents,
            discount_cents=v.discount_cents,
            total_amount_cents=v.total_cents,
            total_paid_cents=total_paid,
            payment_type=self.request.payment_type.upper(),
            payment_status=derive_payment_status(total_paid, v.total_cents),
            idempotency_key=self.request.idempotency_key,
            notes=self.request.notes,
        )
        db.session.add(sale)
        db.session.flush()
        self.sale = sale

        for line_number, item in enumerate(v.validated_items, start=1):
            line = SaleItem(
                sale_id=sale.id,
                product_id=item.product_id,
                line_number=line_number,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                total_price_cents=item.total_price_cents,
            )
            db.session.add(line)
            db.session.flush()

            if item.requires_imei_serial:
                serial_service.mark_sold(item.serial_unit_ids, sale.id, line.id, token=self.token)
            else:
                stock_service.decrement(item.product_id, item.quantity)

        if is_cash:
            self._record_cash(sale)

        append_audit_event(
            event_type="sale.created",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=self.actor.id,
            sale_id=sale.id,
            payload={
                "payment_type": sale.payment_type,
                "total_amount_cents": sale.total_amount_cents,
                "lines": len(v.validated_items),
            },
        )

    def _record_cash(self, sale: Sale) -> None:
        received = self.request.amount_received_cents
        if received is None:
            received = sale.total_amount_cents
        change = max(0, received - sale.total_amount_cents)

        db.session.add(Payment(
            sale_id=sale.id,
            amount_cents=sale.total_amount_cents,
            payment_method="CASH",
            created_by_user_id=self.actor.id,
        ))

        register = self.register or register_service.get_open_register(self.actor.id)
        if register is None:
            self.warnings.append("No open cash register; the cash was not recorded in a register")
            return

        if sale.total_amount_cents:
            register_service.record_sale_movement(
                register.id,
                sale.total_amount_cents,
                reference_id=sale.id,
                user_id=self.actor.id,
                category=register_service.CATEGORY_CASH_SALE,
                description=f"Cash sale #{sale.id}",
            )
        register_service.link_cash_sale(
            register.id,
            sale.id,
            amount_received_cents=received,
            change_given_cents=change,
            discount_applied_cents=sale.discount_cents,
        )

    def _commit(self) -> None:
        self._transition(SaleState.COMMITTING)
        db.session.commit()
        self._transition(SaleState.COMMITTED)

    def _rollback(self, exc: Exception) -> SaleProcessResult:
        failed_in = self.state
        self._transition(SaleState.ROLLING_BACK)
        db.session.rollback()
        self.sale = None
        undone = self.compensations.unwind()
        self._transition(SaleState.FAILED)

        if isinstance(exc, IntegrityError):
            existing = _find_by_idempotency_key(self.request.idempotency_key)
            if existing:
                return SaleProcessResult(
                    success=True,
                    sale_id=existing.id,
                    sale=existing,
                    warnings=["Duplicate submission; the existing sale was returned"],
                    state=SaleState.COMMITTED,
                    duplicate=True,
                )

        if isinstance(exc, (SerialIntegrityError, StoreError)):
            _log.error("sale rolled back in %s: %s (undone: %s)", failed_in.value, exc, undone)
            message, code = GENERIC_FAILURE, exc.code
        elif isinstance(exc, PosError):
            _log.warning("sale rolled back in %s: %s (undone: %s)", failed_in.value, exc, undone)
            message, code = exc.message, exc.code
        elif isinstance(exc, SQLAlchemyError):
            _log.exception("sale rolled back in %s after database error (undone: %s)", failed_in.value, undone)
            message, code = GENERIC_FAILURE, StoreError.code
        else:
            _log.exception("sale rolled back in %s after unexpected error (undone: %s)", failed_in.value, undone)
            message, code = GENERIC_FAILURE, "INTERNAL_ERROR"

        return SaleProcessResult(
            success=False,
            error=message,
            error_code=code,
            warnings=self.warnings,
            state=self.state,
        )


def process_sale(request: SaleRequest, actor, register: RegisterSession | None = None) -> SaleProcessResult:
    """Validate, reserve and book a sale. ``actor`` needs ``id`` (and ``role``)."""
    return SaleTransaction(request, actor, register=register).run()


# =============================================================================
# READ
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def sale_to_dict(sale: Sale) -> dict:
    data = sale.to_dict()
    items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.line_number.asc()).all()
    units = serial_service.units_for_sale(sale.id)
    data["items"] = []
    for item in items:
        row = item.to_dict()
        row["serial_units"] = [u.to_dict() for u in units if u.sale_item_id == item.id]
        data["items"].append(row)
    link = db.session.query(CashRegisterSale).filter_by(sale_id=sale.id).first()
    data["cash_register_sale"] = link.to_dict() if link else None
    return data


def _cash_by_register(sale_id: int) -> list[tuple[CashRegister, int]]:
    """Net SALE-movement amount per register for this sale."""
    rows = (
        db.session.query(CashMovement.cash_register_id, func.sum(CashMovement.amount_cents))
        .filter(
            CashMovement.type == register_service.MOVEMENT_SALE,
            CashMovement.reference_id == str(sale_id),
        )
        .group_by(CashMovement.cash_register_id)
        .all()
    )
    result = []
    for register_id, net in rows:
        if net:
            result.append((db.session.get(CashRegister, register_id), int(net)))
    return result


def get_sale_deletion_impact(sale_id: int) -> dict:
    """What delete_sale would restore and remove. Read-only."""
    sale = get_sale(sale_id)
    items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.line_number.asc()).all()
    units = serial_service.units_for_sale(sale.id)
    installments = db.session.query(PaymentInstallment).filter_by(sale_id=sale.id).all()
    payments = db.session.query(Payment).filter_by(sale_id=sale.id).all()

    stock_lines = []
    for item in items:
        product = db.session.get(Product, item.product_id)
        if product and not product.requires_imei_serial:
            stock_lines.append({"product_id": product.id, "product_name": product.name, "quantity": item.quantity})

    registers = []
    for register, net in _cash_by_register(sale.id):
        registers.append({
            "cash_register_id": register.id,
            "status": register.status,
            "net_amount_cents": net,
            "will_reverse": register.status == register_service.REGISTER_OPEN,
        })

    return {
        "sale_id": sale.id,
        "total_amount_cents": sale.total_amount_cents,
        "payment_type": sale.payment_type,
        "items_count": len(items),
        "serial_units": [
            {"id": u.id, "product_id": u.product_id, "imei_number": u.imei_number, "serial_number": u.serial_number}
            for u in units
        ],
        "stock_to_restore": stock_lines,
        "installments_count": len(installments),
        "installments_total_cents": sum(i.amount_paid_cents for i in installments),
        "payments_count": len(payments),
        "payments_total_cents": sum(p.amount_cents for p in payments),
        "registers": registers,
    }


# =============================================================================
# DELETE
# =============================================================================

def delete_sale(sale_id: int, actor, reason: str | None) -> SaleDeletionResult:
    """
    Permanently delete a sale and reverse its effects.

    Requires DELETE_SALE and a non-empty reason, both checked before any
    write. Runs as one transaction: restore units, restore stock, reverse cash
    on still-open registers, remove payments/installments/links/lines/header,
    record an audit event.
    """
    try:
        permission_service.require_permission(actor, "DELETE_SALE")
    except PermissionDeniedError as exc:
        return SaleDeletionResult(success=False, error=exc.message, error_code=exc.code)

    reason = (reason or "").strip()
    if not reason:
        return SaleDeletionResult(
            success=False,
            error="A reason is required to delete a sale",
            error_code=ValidationError.code,
        )

    def _op() -> SaleDeletionResult:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        snapshot = sale_to_dict(sale)
        items = db.session.query(SaleItem).filter_by(sale_id=sale.id).all()

        restored_units = serial_service.restore(sale.id)

        restored_stock = []
        for item in items:
            if stock_service.increment(item.product_id, item.quantity):
                restored_stock.append({"product_id": item.product_id, "quantity": item.quantity})

        reversed_cash = 0
        for register, net in _cash_by_register(sale.id):
            if register.status != register_service.REGISTER_OPEN:
                continue
            register_service.record_sale_movement(
                register.id,
                -net,
                reference_id=sale.id,
                user_id=actor.id,
                category=register_service.CATEGORY_SALE_REVERSAL,
                description=f"Reversal of deleted sale #{sale.id}",
            )
            reversed_cash += net

        installment_count = db.session.query(PaymentInstallment).filter_by(sale_id=sale.id).count()
        db.session.query(Payment).filter_by(sale_id=sale.id).delete(synchronize_session=False)
        db.session.query(PaymentInstallment).filter_by(sale_id=sale.id).delete(synchronize_session=False)
        db.session.query(CashRegisterSale).filter_by(sale_id=sale.id).delete(synchronize_session=False)
        db.session.query(SaleItem).filter_by(sale_id=sale.id).delete(synchronize_session=False)
        # children are gone; drop any loaded collections before the header delete
        db.session.expire(sale, ["items", "installments"])
        db.session.delete(sale)

        append_audit_event(
            event_type="sale.deleted",
            entity_type="sale",
            entity_id=sale_id,
            actor_user_id=actor.id,
            sale_id=sale_id,
            note=reason,
            payload={
                "sale": snapshot,
                "restored_units": restored_units,
                "restored_stock": restored_stock,
                "reversed_cash_cents": reversed_cash,
            },
        )
        db.session.commit()

        return SaleDeletionResult(
            success=True,
            restored_units=restored_units,
            restored_stock=restored_stock,
            deleted_installments=installment_count,
            reversed_cash_cents=reversed_cash,
        )

    try:
        result = run_with_retry(_op)
    except PosError as exc:
        db.session.rollback()
        return SaleDeletionResult(success=False, error=exc.message, error_code=exc.code)
    except SQLAlchemyError:
        db.session.rollback()
        _log.exception("sale %s deletion failed", sale_id)
        return SaleDeletionResult(
            success=False,
            error="The sale could not be deleted. No changes were saved.",
            error_code=StoreError.code,
        )

    _log.info(
        "sale %s deleted by user %s: %d units and %d stock lines restored",
        sale_id, actor.id, result.restored_units, len(result.restored_stock),
    )
    return result
