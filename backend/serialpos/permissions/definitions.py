# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)


class PermissionCategory:
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    REGISTERS = "REGISTERS"
    PAYMENTS = "PAYMENTS"


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, stock and serialized unit availability",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_SERIALS",
        "Manage Serialized Units",
        "Register IMEI / serial numbers for products",
        PermissionCategory.INVENTORY,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "CREATE_SALE",
        "Create Sale",
        "Validate and process sales",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "View sale headers, lines and deletion impact",
        PermissionCategory.SALES,
    ),
    (
        "DELETE_SALE",
        "Delete Sale",
        "Permanently delete a sale and restore its inventory",
        PermissionCategory.SALES,
    ),
]


# -- REGISTERS --

REGISTER_PERMISSIONS = [
    (
        "MANAGE_OWN_REGISTER",
        "Manage Own Register",
        "Open, record movements on and close your own cash register",
        PermissionCategory.REGISTERS,
    ),
    (
        "VIEW_ALL_REGISTERS",
        "View All Registers",
        "View register sessions of other users",
        PermissionCategory.REGISTERS,
    ),
]


# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    (
        "RECORD_PAYMENT",
        "Record Installment Payment",
        "Add a payment to an installment sale",
        PermissionCategory.PAYMENTS,
    ),
    (
        "EDIT_PAYMENT",
        "Edit Installment Payment",
        "Change the amount or notes of a recorded installment",
        PermissionCategory.PAYMENTS,
    ),
    (
        "DELETE_PAYMENT",
        "Delete Installment Payment",
        "Remove a recorded installment",
        PermissionCategory.PAYMENTS,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + REGISTER_PERMISSIONS
    + PAYMENT_PERMISSIONS
)
