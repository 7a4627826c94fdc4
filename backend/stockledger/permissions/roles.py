# Overview: Fixed role -> permission mapping.

from .definitions import PERMISSION_DEFINITIONS

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CLERK = "clerk"

ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CLERK)

DEFAULT_ROLE_PERMISSIONS = {
    # Everything
    ROLE_ADMIN: frozenset(perm[0] for perm in PERMISSION_DEFINITIONS),
    # Everything except deleting products and user administration
    ROLE_MANAGER: frozenset({
        "VIEW_INVENTORY",
        "ADD_PRODUCTS",
        "EDIT_PRODUCTS",
        "RESTOCK",
        "PROCESS_SALES",
        "VIEW_REPORTS",
        "EXPORT_DATA",
        "IMPORT_DATA",
    }),
    # Counter staff: look up and sell
    ROLE_CLERK: frozenset({
        "VIEW_INVENTORY",
        "PROCESS_SALES",
    }),
}
