# Overview: Installment ledger for sales paid over time.

"""
Installment Ledger

WHY: Installment sales are paid in several partial payments that can be
corrected (edited) or removed. The sale's total_paid_cents and
payment_status must always agree with the recorded installments.

INVARIANTS:
- sum(installments) <= total_amount_cents, checked on add and edit.
- total_paid_cents and payment_status are recomputed from ALL installments
  after every change, never adjusted incrementally.
- When the acting user has an OPEN register, the cash delta of each change
  (positive for add, signed for edit, negative for delete) is appended as a
  SALE movement.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Payment, PaymentInstallment, Sale
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_audit_event
from . import register_service

_log = logging.getLogger(__name__)

STATUS_PENDING = "PENDING"
STATUS_PARTIAL = "PARTIAL"
STATUS_PAID = "PAID"

PAYMENT_METHODS = ("CASH", "CARD", "TRANSFER", "OTHER")


def derive_payment_status(total_paid_cents: int, total_amount_cents: int) -> str:
    if total_paid_cents >= total_amount_cents:
        return STATUS_PAID
    if total_paid_cents > 0:
        return STATUS_PARTIAL
    return STATUS_PENDING


def sum_installments(sale_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(PaymentInstallment.amount_paid_cents), 0))
        .filter(PaymentInstallment.sale_id == sale_id)
        .scalar()
    )
    return int(total or 0)


def recompute_sale_totals(sale: Sale) -> Sale:
    """Refresh total_paid_cents / payment_status from installments. Does not commit."""
    sale.total_paid_cents = sum_installments(sale.id)
    sale.payment_status = derive_payment_status(sale.total_paid_cents, sale.total_amount_cents)
    return sale


def _check_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Payment amount must be a positive integer amount in cents", details={"value": amount_cents})
    return amount_cents


def _check_method(method: str | None) -> str:
    method = (method or "CASH").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method: {method}", details={"allowed": list(PAYMENT_METHODS)})
    return method


def _locked_installment_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    if sale.payment_type != "INSTALLMENT":
        raise ValidationError("Sale is not an installment sale", details={"sale_id": sale_id})
    return sale


def _locked_installment(installment_id: int) -> PaymentInstallment:
    inst = lock_for_update(db.session.query(PaymentInstallment).filter_by(id=installment_id)).first()
    if not inst:
        raise NotFoundError("Installment not found", details={"installment_id": installment_id})
    return inst


def _record_register_delta(user_id: int | None, sale_id: int, delta_cents: int, description: str):
    if not user_id or delta_cents == 0:
        return None
    register = register_service.get_open_register(user_id)
    if register is None:
        return None
    return register_service.record_sale_movement(
        register.id,
        delta_cents,
        reference_id=sale_id,
        user_id=user_id,
        category=register_service.CATEGORY_INSTALLMENT,
        description=description,
    )


def add_payment(
    sale_id: int,
    amount_cents: int,
    payment_method: str = "CASH",
    notes: str | None = None,
    user_id: int | None = None,
) -> PaymentInstallment:
    _check_amount(amount_cents)
    payment_method = _check_method(payment_method)

    def _op():
        sale = _locked_installment_sale(sale_id)
        recompute_sale_totals(sale)

        remaining = sale.total_amount_cents - sale.total_paid_cents
        if amount_cents > remaining:
            raise ValidationError(
                f"Payment exceeds the remaining balance ({remaining})",
                details={"sale_id": sale.id, "remaining_cents": remaining, "amount_cents": amount_cents},
            )

        inst = PaymentInstallment(
            sale_id=sale.id,
            amount_paid_cents=amount_cents,
            payment_method=payment_method,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(inst)
        db.session.flush()

        db.session.add(Payment(
            sale_id=sale.id,
            installment_id=inst.id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            notes=notes,
            created_by_user_id=user_id,
        ))
        recompute_sale_totals(sale)
        movement = _record_register_delta(user_id, sale.id, amount_cents, f"Installment payment for sale #{sale.id}")

        append_audit_event(
            event_type="installment.added",
            entity_type="payment_installment",
            entity_id=inst.id,
            actor_user_id=user_id,
            sale_id=sale.id,
            cash_register_id=movement.cash_register_id if movement else None,
            payload={"amount_cents": amount_cents, "total_paid_cents": sale.total_paid_cents},
        )
        db.session.commit()
        return inst

    return run_with_retry(_op)


def edit_payment(
    installment_id: int,
    new_amount_cents: int,
    notes: str | None = None,
    user_id: int | None = None,
) -> PaymentInstallment:
    _check_amount(new_amount_cents)

    def _op():
        inst = _locked_installment(installment_id)
        sale = _locked_installment_sale(inst.sale_id)
        recompute_sale_totals(sale)

        old_amount = inst.amount_paid_cents
        max_allowed = sale.total_amount_cents - (sale.total_paid_cents - old_amount)
        if new_amount_cents > max_allowed:
            raise ValidationError(
                f"Payment exceeds the remaining balance ({max_allowed})",
                details={"installment_id": inst.id, "max_allowed_cents": max_allowed},
            )

        delta = new_amount_cents - old_amount
        inst.amount_paid_cents = new_amount_cents
        if notes is not None:
            inst.notes = notes

        payment = db.session.query(Payment).filter_by(installment_id=inst.id).first()
        if payment:
            payment.amount_cents = new_amount_cents
            if notes is not None:
                payment.notes = notes
        else:
            db.session.add(Payment(
                sale_id=sale.id,
                installment_id=inst.id,
                amount_cents=new_amount_cents,
                payment_method=inst.payment_method,
                notes=inst.notes,
                created_by_user_id=user_id,
            ))

        db.session.flush()
        recompute_sale_totals(sale)
        movement = _record_register_delta(user_id, sale.id, delta, f"Installment correction for sale #{sale.id}")

        append_audit_event(
            event_type="installment.edited",
            entity_type="payment_installment",
            entity_id=inst.id,
            actor_user_id=user_id,
            sale_id=sale.id,
            cash_register_id=movement.cash_register_id if movement else None,
            payload={"old_amount_cents": old_amount, "new_amount_cents": new_amount_cents},
        )
        db.session.commit()
        return inst

    return run_with_retry(_op)


def delete_payment(installment_id: int, user_id: int | None = None) -> Sale:
    """Remove an installment; returns the sale with refreshed totals."""
    def _op():
        inst = _locked_installment(installment_id)
        sale = _locked_installment_sale(inst.sale_id)
        old_amount = inst.amount_paid_cents

        db.session.query(Payment).filter_by(installment_id=inst.id).delete(synchronize_session=False)
        db.session.delete(inst)
        db.session.flush()

        recompute_sale_totals(sale)
        movement = _record_register_delta(user_id, sale.id, -old_amount, f"Installment removed from sale #{sale.id}")

        append_audit_event(
            event_type="installment.deleted",
            entity_type="payment_installment",
            entity_id=installment_id,
            actor_user_id=user_id,
            sale_id=sale.id,
            cash_register_id=movement.cash_register_id if movement else None,
            payload={"amount_cents": old_amount, "total_paid_cents": sale.total_paid_cents},
        )
        db.session.commit()
        _log.info("installment %s removed from sale %s", installment_id, sale.id)
        return sale

    return run_with_retry(_op)


def list_installments(sale_id: int) -> list[PaymentInstallment]:
    return (
        db.session.query(PaymentInstallment)
        .filter_by(sale_id=sale_id)
        .order_by(PaymentInstallment.payment_date.asc(), PaymentInstallment.id.asc())
        .all()
    )


def get_installment_summary(sale_id: int) -> dict:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    installments = list_installments(sale_id)
    return {
        "sale_id": sale.id,
        "payment_type": sale.payment_type,
        "total_amount_cents": sale.total_amount_cents,
        "total_paid_cents": sale.total_paid_cents,
        "remaining_cents": sale.remaining_cents,
        "payment_status": sale.payment_status,
        "installment_count": len(installments),
        "installments": [i.to_dict() for i in installments],
    }
