"""
Permission System Constants and Definitions

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Roles are fixed: admin and cashier
- The boundary layer resolves the actor once and checks one permission per
  operation; services receive the already-authorized ActorContext
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import AuthorizationError


class PermissionCategory:
    """Permission categories for organization."""
    CATALOG = "CATALOG"
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    REPORTS = "REPORTS"


# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        "VIEW_CATALOG",
        "View Catalog",
        "Browse products, categories, and stock levels",
        PermissionCategory.CATALOG
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit, soft-delete, and restore products",
        PermissionCategory.CATALOG
    ),
    (
        "RECEIVE_INVENTORY",
        "Receive Inventory",
        "Record incoming stock",
        PermissionCategory.INVENTORY
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Correct stock counts (shrink, miscounts)",
        PermissionCategory.INVENTORY
    ),
    (
        "VIEW_STOCK_MOVEMENTS",
        "View Stock Movements",
        "Browse the stock movement ledger",
        PermissionCategory.INVENTORY
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Ring up and post sales (POS access)",
        PermissionCategory.SALES
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "List sales and reprint receipts",
        PermissionCategory.SALES
    ),
    (
        "VOID_SALE",
        "Void Sale",
        "Void posted sales and restore their stock",
        PermissionCategory.SALES
    ),
    (
        "VIEW_REPORTS",
        "View Reports",
        "Daily sales summary, top sellers, low stock",
        PermissionCategory.REPORTS
    ),
]

ALL_PERMISSION_CODES = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)

ROLE_ADMIN = "admin"
ROLE_CASHIER = "cashier"

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: ALL_PERMISSION_CODES,
    ROLE_CASHIER: frozenset({"VIEW_CATALOG", "CREATE_SALE", "VIEW_SALES"}),
}

ROLES = tuple(DEFAULT_ROLE_PERMISSIONS)


def permissions_for_role(role: str) -> frozenset[str]:
    return DEFAULT_ROLE_PERMISSIONS.get(role, frozenset())


@dataclass(frozen=True)
class ActorContext:
    """Identity of whoever performs an operation, as vouched for by the boundary."""
    user_id: int
    username: str
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def for_user(cls, user) -> "ActorContext":
        return cls(
            user_id=user.id,
            username=user.username,
            role=user.role,
            permissions=permissions_for_role(user.role),
        )

    def can(self, permission_code: str) -> bool:
        return permission_code in self.permissions


def authorize(actor: ActorContext, permission_code: str) -> ActorContext:
    """Single capability check; raises AuthorizationError when the actor lacks it."""
    if permission_code not in ALL_PERMISSION_CODES:
        raise ValueError(f"Unknown permission code: {permission_code}")
    if not actor.can(permission_code):
        raise AuthorizationError(
            "Permission denied",
            details={"required_permission": permission_code, "role": actor.role},
        )
    return actor
