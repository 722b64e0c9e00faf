# Overview: Permission system package.
# Re-exports all public APIs for convenient imports.

from .definitions import (
    PermissionCategory,
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    REGISTER_PERMISSIONS,
    PAYMENT_PERMISSIONS,
)
from .roles import ROLES, DEFAULT_ROLE_PERMISSIONS


def get_all_permission_codes() -> list[str]:
    return [code for code, _name, _desc, _cat in PERMISSION_DEFINITIONS]


def validate_permission_code(code: str) -> bool:
    return code in get_all_permission_codes()


__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "REGISTER_PERMISSIONS",
    "PAYMENT_PERMISSIONS",
    "ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "validate_permission_code",
]
