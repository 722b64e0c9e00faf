# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/serialpos/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import PosError, http_status_for
from ..services import ledger_service, register_service, sales_service
from ..services.sale_validation_service import SaleRequest, validate_sale, validate_sale_modification

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/validate")
@require_auth
@require_permission("CREATE_SALE")
def validate_sale_route():
    """
    Dry-run validation of a cart. Never writes.

    Request body: same as POST /api/sales
    """
    try:
        sale_request = SaleRequest.from_dict(request.get_json() or {})
        return jsonify(validate_sale(sale_request).to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to validate sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
@sales_bp.post("/")
@require_auth
@require_permission("CREATE_SALE")
def process_sale_route():
    """
    Process a sale.

    Requires: CREATE_SALE permission

    Request body:
    {
        "items": [
            {"product_id": 1, "quantity": 1, "unit_price_cents": 50000, "serial_unit_ids": [7]},
            {"product_id": 2, "quantity": 3, "unit_price_cents": 1500}
        ],
        "payment_type": "CASH" | "INSTALLMENT",
        "customer_id": 4,                 (optional)
        "amount_received_cents": 60000,   (CASH, optional: defaults to the total)
        "discount_cents": 0,
        "notes": "...",
        "idempotency_key": "client-generated-uuid"  (optional)
    }
    """
    try:
        sale_request = SaleRequest.from_dict(request.get_json() or {})
        register = register_service.get_open_register(g.auth.id)
        result = sales_service.process_sale(sale_request, g.auth, register=register)

        if result.success:
            return jsonify(result.to_dict()), 200 if result.duplicate else 201
        return jsonify(result.to_dict()), http_status_for(result.error_code)

    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sales_service.sale_to_dict(sale)})
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.get("/<int:sale_id>/deletion-impact")
@require_auth
@require_permission("VIEW_SALES")
def sale_deletion_impact_route(sale_id: int):
    try:
        return jsonify(sales_service.get_sale_deletion_impact(sale_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to compute sale deletion impact")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/modification-check")
@require_auth
@require_permission("VIEW_SALES")
def sale_modification_check_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify(validate_sale_modification(sale, g.auth).to_dict())


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    """
    Permanently delete a sale and restore its inventory.

    Requires: DELETE_SALE permission (checked by the service)
    Request body: {"reason": "Customer returned the device"}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.delete_sale(sale_id, g.auth, data.get("reason"))
        if result.success:
            return jsonify(result.to_dict())
        return jsonify(result.to_dict()), http_status_for(result.error_code)

    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/audit-events")
@require_auth
@require_permission("DELETE_SALE")
def sale_audit_events_route(sale_id: int):
    """Audit trail of a sale; still readable after the sale was deleted."""
    events = ledger_service.list_events(sale_id=sale_id)
    return jsonify({"events": [e.to_dict() for e in events]})
