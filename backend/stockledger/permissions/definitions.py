# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "Browse and search the product catalog",
        PermissionCategory.INVENTORY,
    ),
    (
        "ADD_PRODUCTS",
        "Add Products",
        "Create new catalog entries",
        PermissionCategory.INVENTORY,
    ),
    (
        "EDIT_PRODUCTS",
        "Edit Products",
        "Edit product details and adjust stock counts",
        PermissionCategory.INVENTORY,
    ),
    (
        "DELETE_PRODUCTS",
        "Delete Products",
        "Remove products from the catalog",
        PermissionCategory.INVENTORY,
    ),
    (
        "RESTOCK",
        "Restock",
        "Record incoming stock",
        PermissionCategory.INVENTORY,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "PROCESS_SALES",
        "Process Sales",
        "Sell products by SKU or barcode",
        PermissionCategory.SALES,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "VIEW_REPORTS",
        "View Reports",
        "Inventory, low stock and sales reports",
        PermissionCategory.REPORTS,
    ),
]


# -- DATA --

DATA_PERMISSIONS = [
    (
        "EXPORT_DATA",
        "Export Data",
        "Download a JSON backup of products and sales",
        PermissionCategory.DATA,
    ),
    (
        "IMPORT_DATA",
        "Import Data",
        "Replace all products and sales from a JSON backup",
        PermissionCategory.DATA,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create terminal users",
        PermissionCategory.USERS,
    ),
    (
        "VIEW_SECURITY_LOG",
        "View Security Log",
        "Review logins, failures and lockouts",
        PermissionCategory.USERS,
    ),
]


# Combined list of all permissions (preserves ordering)
PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + REPORT_PERMISSIONS
    + DATA_PERMISSIONS
    + USER_PERMISSIONS
)
