# Overview: Utility functions for permission lookups and validation.

from dataclasses import dataclass

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permission_definition(code):
    """Get full definition for a permission code."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in get_all_permission_codes()


@dataclass(frozen=True)
class PermissionSet:
    """Resolved permissions of the current user, with UI-friendly flags."""
    codes: frozenset = frozenset()

    def has(self, code: str) -> bool:
        return code in self.codes

    @property
    def can_view_inventory(self) -> bool:
        return self.has("VIEW_INVENTORY")

    @property
    def can_add_products(self) -> bool:
        return self.has("ADD_PRODUCTS")

    @property
    def can_edit_products(self) -> bool:
        return self.has("EDIT_PRODUCTS")

    @property
    def can_delete_products(self) -> bool:
        return self.has("DELETE_PRODUCTS")

    @property
    def can_process_sales(self) -> bool:
        return self.has("PROCESS_SALES")

    @property
    def can_restock(self) -> bool:
        return self.has("RESTOCK")

    @property
    def can_export_data(self) -> bool:
        return self.has("EXPORT_DATA")

    @property
    def can_import_data(self) -> bool:
        return self.has("IMPORT_DATA")

    @property
    def can_view_reports(self) -> bool:
        return self.has("VIEW_REPORTS")

    @property
    def can_manage_users(self) -> bool:
        return self.has("MANAGE_USERS")

    @property
    def can_view_security_log(self) -> bool:
        return self.has("VIEW_SECURITY_LOG")

    def to_dict(self) -> dict:
        return {
            "permissions": sorted(self.codes),
            "can_view_inventory": self.can_view_inventory,
            "can_add_products": self.can_add_products,
            "can_edit_products": self.can_edit_products,
            "can_delete_products": self.can_delete_products,
            "can_process_sales": self.can_process_sales,
            "can_restock": self.can_restock,
            "can_export_data": self.can_export_data,
            "can_import_data": self.can_import_data,
            "can_view_reports": self.can_view_reports,
            "can_manage_users": self.can_manage_users,
            "can_view_security_log": self.can_view_security_log,
        }


def permissions_for_role(role):
    """PermissionSet for a role; unknown roles get nothing."""
    return PermissionSet(codes=DEFAULT_ROLE_PERMISSIONS.get(role, frozenset()))
