# Overview: Role-based permission checks.

"""
Permission checking.

Roles map to a static permission set (permissions.roles). Fail closed:
unknown roles, unknown permission codes and inactive users grant nothing.
"""

from __future__ import annotations

from ..errors import PermissionDeniedError
from ..permissions import DEFAULT_ROLE_PERMISSIONS, validate_permission_code


def permissions_for_role(role: str | None) -> set[str]:
    if not role:
        return set()
    return set(DEFAULT_ROLE_PERMISSIONS.get(role.lower(), []))


def has_permission(actor, permission_code: str) -> bool:
    """``actor`` is anything with ``role`` (and optionally ``is_active``)."""
    if actor is None or getattr(actor, "is_active", True) is False:
        return False
    if not validate_permission_code(permission_code):
        return False
    return permission_code in permissions_for_role(actor.role)


def require_permission(actor, permission_code: str) -> None:
    if not has_permission(actor, permission_code):
        raise PermissionDeniedError(
            f"Permission denied: {permission_code} required",
            details={"required_permission": permission_code},
        )
