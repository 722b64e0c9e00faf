# Overview: Flask API routes for cash-register sessions; parses input and returns JSON responses.

# backend/serialpos/routes/registers.py
"""
Cash Register API Routes

DESIGN:
- One OPEN register per user; open -> close (immutable once closed)
- Manual INCOME / EXPENSE movements while open
- Closing reports expected amount and discrepancy

SECURITY:
- MANAGE_OWN_REGISTER to open and work your own register
- VIEW_ALL_REGISTERS to see (and close) other users' registers
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..extensions import db
from ..models import CashMovement
from ..services import permission_service, register_service

registers_bp = Blueprint("registers", __name__, url_prefix="/api/cash-registers")


def _ensure_register_access(register):
    if register.user_id == g.auth.id:
        return None
    if permission_service.has_permission(g.auth, "VIEW_ALL_REGISTERS"):
        return None
    return jsonify({"error": "Register access denied"}), 403


def _register_payload(register) -> dict:
    movements = register_service.list_movements(register.id)
    data = register.to_dict()
    data["balance_cents"] = register_service.compute_balance(register.opening_amount_cents, movements)
    data["expected_closing_amount_cents_now"] = register_service.compute_expected_closing(
        register.opening_amount_cents, movements
    )
    data["movements"] = [m.to_dict() for m in movements]
    return data


@registers_bp.get("/categories")
@require_auth
def movement_categories_route():
    return jsonify({
        "income": list(register_service.INCOME_CATEGORIES),
        "expense": list(register_service.EXPENSE_CATEGORIES),
    })


@registers_bp.post("/open")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def open_register_route():
    """
    Open a register for the current user.

    Request body:
    {
        "opening_amount_cents": 100000,
        "notes": "Morning shift"  (optional)
    }
    """
    try:
        data = request.get_json() or {}
        session = register_service.open_register(
            g.auth.id,
            data.get("opening_amount_cents", 0),
            notes=data.get("notes"),
        )
        register = register_service.get_register(session.id)
        return jsonify({"register": _register_payload(register)}), 201

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to open register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/current")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def current_register_route():
    session = register_service.get_open_register(g.auth.id)
    if session is None:
        return jsonify({"register": None})
    return jsonify({"register": _register_payload(register_service.get_register(session.id))})


@registers_bp.get("")
@require_auth
@require_permission("VIEW_ALL_REGISTERS")
def list_registers_route():
    """Query: ?status=OPEN|CLOSED&user_id=3&limit=20"""
    try:
        registers = register_service.list_registers(
            user_id=request.args.get("user_id", type=int),
            status=request.args.get("status"),
            limit=min(request.args.get("limit", default=20, type=int), 200),
        )
        return jsonify({"registers": [r.to_dict() for r in registers]})
    except Exception:
        current_app.logger.exception("Failed to list registers")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def get_register_route(register_id: int):
    try:
        register = register_service.get_register(register_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status

    denied = _ensure_register_access(register)
    if denied:
        return denied
    return jsonify({"register": _register_payload(register)})


@registers_bp.post("/<int:register_id>/movements")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def add_movement_route(register_id: int):
    """
    Record a manual movement.

    Request body:
    {
        "type": "INCOME" | "EXPENSE",
        "category": "operating_expenses",
        "amount_cents": 2500,
        "description": "Cleaning supplies"
    }
    """
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_register_access(register)
        if denied:
            return denied

        data = request.get_json() or {}
        movement = register_service.add_movement(
            register_id,
            data.get("type"),
            data.get("category"),
            data.get("amount_cents"),
            data.get("description"),
            user_id=g.auth.id,
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add movement")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.delete("/movements/<int:movement_id>")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def delete_movement_route(movement_id: int):
    try:
        movement = db.session.get(CashMovement, movement_id)
        if movement is None:
            return jsonify({"error": "Movement not found"}), 404
        denied = _ensure_register_access(register_service.get_register(movement.cash_register_id))
        if denied:
            return denied

        register_service.delete_movement(movement_id, user_id=g.auth.id)
        return jsonify({"deleted": True, "movement_id": movement_id})

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete movement")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>/close-preview")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def close_preview_route(register_id: int):
    """Query: ?actual_amount_cents=150000"""
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_register_access(register)
        if denied:
            return denied
        actual = request.args.get("actual_amount_cents", type=int)
        if actual is None:
            return jsonify({"error": "actual_amount_cents is required"}), 400
        return jsonify(register_service.preview_close(register_id, actual))
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status


@registers_bp.post("/<int:register_id>/close")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def close_register_route(register_id: int):
    """
    Close a register.

    Request body:
    {
        "actual_amount_cents": 150000,
        "discrepancy_reason": "...",  (optional; recommended when amounts differ)
        "notes": "..."                (optional)
    }
    """
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_register_access(register)
        if denied:
            return denied

        data = request.get_json() or {}
        if "actual_amount_cents" not in data:
            return jsonify({"error": "actual_amount_cents is required"}), 400

        result = register_service.close_register(
            register_id,
            data.get("actual_amount_cents"),
            reason=data.get("discrepancy_reason"),
            notes=data.get("notes"),
            user_id=g.auth.id,
            require_reason=bool(data.get("require_reason", False)),
        )
        return jsonify(result.to_dict())

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to close register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>/summary")
@require_auth
@require_permission("MANAGE_OWN_REGISTER")
def register_summary_route(register_id: int):
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_register_access(register)
        if denied:
            return denied
        return jsonify(register_service.get_register_sales_summary(register_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
