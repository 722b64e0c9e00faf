"""
Authorization tests for the API.

Verifies:
- Unauthenticated requests return 401
- Employee role denied manager/admin operations (403)
- Revoked and expired tokens are rejected
"""

import pytest

from serialpos.decorators import require_permission
from serialpos.permissions import DEFAULT_ROLE_PERMISSIONS, get_all_permission_codes
from serialpos.services import permission_service, session_service


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/products"),
            ("GET", "/api/products/1/availability"),
            ("POST", "/api/products/1/serial-units"),
            ("POST", "/api/sales"),
            ("POST", "/api/sales/validate"),
            ("GET", "/api/sales/1"),
            ("DELETE", "/api/sales/1"),
            ("POST", "/api/cash-registers/open"),
            ("GET", "/api/cash-registers/current"),
            ("POST", "/api/installments/sales/1"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401

    def test_revoked_token(self, client, db_session, employee_user):
        token = session_service.create_session(employee_user.id)
        assert session_service.revoke_session(token)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_expired_token(self, client, db_session, employee_user):
        token = session_service.create_session(employee_user.id, ttl_hours=-1)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


# =============================================================================
# EMPLOYEE DENIED PRIVILEGED OPERATIONS - 403
# =============================================================================


class TestEmployeeDenied:

    def test_cannot_register_serial_units(self, client, employee_headers):
        resp = client.post(
            "/api/products/1/serial-units",
            json={"items": [{"imei_number": "490154203237518"}]},
            headers=employee_headers,
        )
        assert resp.status_code == 403

    def test_cannot_list_all_registers(self, client, employee_headers):
        resp = client.get("/api/cash-registers", headers=employee_headers)
        assert resp.status_code == 403

    def test_cannot_edit_payments(self, client, employee_headers):
        resp = client.put("/api/installments/1", json={"amount_cents": 100}, headers=employee_headers)
        assert resp.status_code == 403

    def test_cannot_delete_sale(self, client, employee_headers):
        resp = client.delete("/api/sales/1", json={"reason": "test"}, headers=employee_headers)
        assert resp.status_code == 403
        assert resp.get_json()["error_code"] == "PERMISSION_DENIED"

    def test_cannot_read_sale_audit_trail(self, client, employee_headers):
        resp = client.get("/api/sales/1/audit-events", headers=employee_headers)
        assert resp.status_code == 403


# =============================================================================
# IDENTITY
# =============================================================================


class TestIdentity:

    def test_me_lists_role_permissions(self, client, manager_headers):
        resp = client.get("/api/auth/me", headers=manager_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["user"]["role"] == "manager"
        assert "MANAGE_SERIALS" in data["permissions"]
        assert "DELETE_SALE" not in data["permissions"]


# =============================================================================
# PUBLIC ENDPOINTS - NO AUTH REQUIRED
# =============================================================================


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"

    def test_no_cross_origin_headers(self, client, db_session):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.status_code == 200
        assert "Access-Control-Allow-Origin" not in resp.headers


# =============================================================================
# PERMISSION CODES
# =============================================================================


class TestPermissionCodes:

    def test_role_defaults_use_known_codes(self):
        known = set(get_all_permission_codes())
        for role, codes in DEFAULT_ROLE_PERMISSIONS.items():
            assert set(codes) <= known, role

    def test_unknown_code_is_never_granted(self, admin):
        assert permission_service.has_permission(admin, "DELETE_SALE")
        assert not permission_service.has_permission(admin, "DELETE_SALES")

    def test_route_with_unknown_code_fails_at_decoration(self):
        with pytest.raises(ValueError, match="Unknown permission code"):
            require_permission("VIEW_EVERYTHING")
