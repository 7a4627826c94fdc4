# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    REPORT_PERMISSIONS,
    DATA_PERMISSIONS,
    USER_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, ROLES, ROLE_ADMIN, ROLE_MANAGER, ROLE_CLERK
from .helpers import (
    PermissionSet,
    get_all_permission_codes,
    get_permission_definition,
    permissions_for_role,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "DATA_PERMISSIONS",
    "USER_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_MANAGER",
    "ROLE_CLERK",
    "PermissionSet",
    "get_all_permission_codes",
    "get_permission_definition",
    "permissions_for_role",
    "validate_permission_code",
]
