# backend/serialpos/routes/system.py
"""
System health and caller identity endpoints.
"""

import time
from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth
from ..extensions import db
from ..models import Product, SerializedUnit, User
from ..services import permission_service
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "serial_units": db.session.query(SerializedUnit).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    sweeper = current_app.extensions.get("reservation_sweeper")
    body = {
        "status": database["status"],
        "time": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "reservation_sweeper": {"running": bool(sweeper and sweeper.running)},
        },
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503


@system_bp.get("/api/auth/me")
@require_auth
def me():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.permissions_for_role(user.role)),
    })
