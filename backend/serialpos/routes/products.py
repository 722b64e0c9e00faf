# Overview: Flask API routes for products, availability and serialized units.

# backend/serialpos/routes/products.py
"""
Product & Serialized Unit API Routes

- Availability check for the sale screen
- IMEI / serial format, duplicate and bulk checks
- Registration and listing of serialized units

SECURITY:
- VIEW_INVENTORY for reads and checks
- MANAGE_SERIALS to register new units
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import PosError
from ..extensions import db
from ..models import Product, SerializedUnit
from ..services import serial_service, stock_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products_route():
    """List active products with current availability (?include_inactive=true for all)."""
    try:
        q = db.session.query(Product)
        if request.args.get("include_inactive", "").lower() != "true":
            q = q.filter(Product.is_active.is_(True))
        products = q.order_by(Product.name.asc()).all()

        rows = []
        for product in products:
            row = product.to_dict()
            row["available"] = stock_service.available_stock(product)
            rows.append(row)
        return jsonify({"products": rows})

    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/availability")
@require_auth
@require_permission("VIEW_INVENTORY")
def product_availability_route(product_id: int):
    try:
        return jsonify(stock_service.check_product_availability(product_id))
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to check product availability")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/serial-units")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_serial_units_route(product_id: int):
    """List a product's units, optionally filtered by ?status=AVAILABLE|RESERVED|SOLD."""
    try:
        q = db.session.query(SerializedUnit).filter_by(product_id=product_id)
        status = request.args.get("status")
        if status:
            q = q.filter(SerializedUnit.status == status.strip().upper())
        units = q.order_by(SerializedUnit.id.asc()).all()
        return jsonify({"product_id": product_id, "units": [u.to_dict() for u in units]})

    except Exception:
        current_app.logger.exception("Failed to list serial units")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/serial-units")
@require_auth
@require_permission("MANAGE_SERIALS")
def add_serial_units_route(product_id: int):
    """
    Register units for a product.

    Request body:
    {
        "items": [
            {"imei_number": "490154203237518", "serial_number": "SN-001", "notes": "..."}
        ]
    }
    """
    try:
        data = request.get_json() or {}
        items = data.get("items")
        if not isinstance(items, list) or not items:
            return jsonify({"error": "items must be a non-empty list"}), 400

        result = serial_service.add_units(product_id, items)
        status = 201 if result["created"] else 400
        return jsonify(result), status

    except PosError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add serial units")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/identifiers/validate")
@require_auth
@require_permission("VIEW_INVENTORY")
def validate_identifier_route():
    """Body: {"value": "...", "kind": "IMEI" | "SERIAL"}"""
    try:
        data = request.get_json() or {}
        result = serial_service.validate_format(data.get("value"), data.get("kind", ""))
        return jsonify({"is_valid": result.is_valid, "error": result.error})
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.post("/identifiers/check-duplicate")
@require_auth
@require_permission("VIEW_INVENTORY")
def check_duplicate_route():
    """Body: {"value": "...", "kind": "IMEI" | "SERIAL", "exclude_product_id": 3}"""
    try:
        data = request.get_json() or {}
        kind = data.get("kind", "")
        value = serial_service.normalize(data.get("value"), kind)
        result = serial_service.check_duplicate(value, kind, exclude_product_id=data.get("exclude_product_id"))
        return jsonify(result.to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to check identifier")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/identifiers/validate-bulk")
@require_auth
@require_permission("VIEW_INVENTORY")
def validate_bulk_route():
    """Body: {"values": ["...", ...], "kind": "IMEI" | "SERIAL", "exclude_product_id": 3}"""
    try:
        data = request.get_json() or {}
        values = data.get("values")
        if not isinstance(values, list):
            return jsonify({"error": "values must be a list"}), 400
        result = serial_service.validate_bulk(
            values, data.get("kind", ""), exclude_product_id=data.get("exclude_product_id")
        )
        return jsonify(result.to_dict())
    except PosError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to validate identifiers")
        return jsonify({"error": "Internal server error"}), 500
