"""
Role and capability definitions.

WHY: Routes check capabilities, never role names. Each capability lists the
roles that hold it, so granting a capability to a role is a one-line change
here rather than a hunt through route decorators.

DESIGN PRINCIPLES:
- Roles are a closed set (admin, cashier)
- Capabilities are granular (one action per capability)
- Admin holds every capability
"""

from __future__ import annotations

import enum


class Role(str, enum.Enum):
    ADMIN = "admin"
    CASHIER = "cashier"

    @classmethod
    def parse(cls, value: str) -> "Role":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"role must be one of: {', '.join(r.value for r in cls)}")


# =============================================================================
# CAPABILITY DEFINITIONS
# =============================================================================

# Each capability is defined as: (code, description)
CAPABILITY_DEFINITIONS = [
    ("VIEW_PRODUCTS", "View catalog products and stock levels"),
    ("MANAGE_PRODUCTS", "Create, edit and soft-delete catalog products"),
    ("ADJUST_STOCK", "Record restock, adjustment, damage and return movements"),
    ("VIEW_LEDGER", "View a product's inventory ledger"),
    ("CREATE_SALE", "Record a sale at the point of sale"),
    ("VIEW_SALES", "View sales and sales summaries"),
    ("VOID_SALE", "Void a completed sale and restore its stock"),
    ("VIEW_LOGS", "View the system log"),
]

CAPABILITIES = {code for code, _ in CAPABILITY_DEFINITIONS}

_CASHIER_CAPABILITIES = {
    "VIEW_PRODUCTS",
    "CREATE_SALE",
    "VIEW_SALES",
}

ROLE_CAPABILITIES: dict[Role, frozenset[str]] = {
    Role.ADMIN: frozenset(CAPABILITIES),
    Role.CASHIER: frozenset(_CASHIER_CAPABILITIES),
}


def role_has_capability(role: Role | str, capability: str) -> bool:
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability}")
    try:
        role = role if isinstance(role, Role) else Role.parse(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())
