# Overview: Flask API routes for installment payments.

# backend/serialpos/routes/installments.py
"""
Installment Payment API Routes

SECURITY:
- RECORD_PAYMENT to add a payment
- EDIT_PAYMENT / DELETE_PAYMENT to correct recorded payments; the sale must
  also pass the modification rules (ownership, 24h window, fully paid)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..extensions import db
from ..models import PaymentInstallment, Sale
from ..services import installment_service
from ..services.sale_validation_service import validate_sale_modification

installments_bp = Blueprint("installments", __name__, url_prefix="/api/installments")


def _modification_denied(installment_id: int):
    inst = db.session.get(PaymentInstallment, installment_id)
    if inst is None:
        return jsonify({"error": "Installment not found"}), 404
    check = validate_sale_modification(db.session.get(Sale, inst.sale_id), g.auth)
    if not check.can_modify:
        return jsonify({"error": check.reason}), 403
    return None


@installments_bp.get("/sales/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def installment_summary_route(sale_id: int):
    try:
        return jsonify(installment_service.get_installment_summary(sale_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status


@installments_bp.post("/sales/<int:sale_id>")
@require_auth
@require_permission("RECORD_PAYMENT")
def add_installment_route(sale_id: int):
    """
    Record a payment against an installment sale.

    Request body:
    {
        "amount_cents": 100000,
        "payment_method": "CASH" | "CARD" | "TRANSFER" | "OTHER",
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json() or {}
        inst = installment_service.add_payment(
            sale_id,
            data.get("amount_cents"),
            payment_method=data.get("payment_method", "CASH"),
            notes=data.get("notes"),
            user_id=g.auth.id,
        )
        return jsonify({
            "installment": inst.to_dict(),
            "summary": installment_service.get_installment_summary(sale_id),
        }), 201

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record installment")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.put("/<int:installment_id>")
@require_auth
@require_permission("EDIT_PAYMENT")
def edit_installment_route(installment_id: int):
    """Request body: {"amount_cents": 120000, "notes": "..."}"""
    try:
        denied = _modification_denied(installment_id)
        if denied:
            return denied

        data = request.get_json() or {}
        inst = installment_service.edit_payment(
            installment_id,
            data.get("amount_cents"),
            notes=data.get("notes"),
            user_id=g.auth.id,
        )
        return jsonify({
            "installment": inst.to_dict(),
            "summary": installment_service.get_installment_summary(inst.sale_id),
        })

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to edit installment")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.delete("/<int:installment_id>")
@require_auth
@require_permission("DELETE_PAYMENT")
def delete_installment_route(installment_id: int):
    try:
        denied = _modification_denied(installment_id)
        if denied:
            return denied

        sale = installment_service.delete_payment(installment_id, user_id=g.auth.id)
        return jsonify({"deleted": True, "summary": installment_service.get_installment_summary(sale.id)})

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete installment")
        return jsonify({"error": "Internal server error"}), 500
