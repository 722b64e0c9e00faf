# Overview: Default permission sets for the built-in roles.

from .definitions import PERMISSION_DEFINITIONS

ROLES = ("admin", "manager", "employee")

_EMPLOYEE = [
    "VIEW_INVENTORY",
    "CREATE_SALE",
    "VIEW_SALES",
    "MANAGE_OWN_REGISTER",
    "RECORD_PAYMENT",
]

_MANAGER = _EMPLOYEE + [
    "MANAGE_SERIALS",
    "VIEW_ALL_REGISTERS",
    "EDIT_PAYMENT",
    "DELETE_PAYMENT",
]

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [code for code, _name, _desc, _cat in PERMISSION_DEFINITIONS],
    "manager": _MANAGER,
    "employee": _EMPLOYEE,
}
