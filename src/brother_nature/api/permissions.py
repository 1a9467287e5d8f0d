"""
Role-based permission system (RBAC).

Roles (lowest to highest):
    User → Steward → Admin

Permissions are listed explicitly per role; nothing is inherited implicitly.
Stewards judge contributions and may trigger rewards. Admins hold every
permission; role changes themselves are an operator task (``bn-server
set-role``).
"""

from enum import Enum


class Role(Enum):
    """
    Account roles. Stored as lowercase strings in the database.

    Roles:
        USER: Forum contributor; may link a wallet and receive rewards.
        STEWARD: Community steward; may trigger and inspect rewards.
        ADMIN: Platform administrator.
    """

    USER = "user"
    STEWARD = "steward"
    ADMIN = "admin"


class Permission(Enum):
    """Actions checked by the API layer."""

    LINK_WALLET = "link_wallet"
    VIEW_OWN_REWARDS = "view_own_rewards"
    TRIGGER_REWARDS = "trigger_rewards"
    VIEW_ALL_REWARDS = "view_all_rewards"


ROLE_PERMISSIONS: dict[Role, set[Permission]] = {
    Role.USER: {
        Permission.LINK_WALLET,
        Permission.VIEW_OWN_REWARDS,
    },
    Role.STEWARD: {
        Permission.LINK_WALLET,
        Permission.VIEW_OWN_REWARDS,
        Permission.TRIGGER_REWARDS,
        Permission.VIEW_ALL_REWARDS,
    },
    Role.ADMIN: {
        Permission.LINK_WALLET,
        Permission.VIEW_OWN_REWARDS,
        Permission.TRIGGER_REWARDS,
        Permission.VIEW_ALL_REWARDS,
    },
}


def parse_role(role: str) -> Role | None:
    """Return the Role for ``role`` (case-insensitive), or None if unknown."""
    try:
        return Role(role.lower())
    except ValueError:
        return None


def has_permission(role: str, permission: Permission) -> bool:
    """
    Check if a role has a specific permission.

    Unknown role strings have no permissions.

    Example:
        >>> has_permission("steward", Permission.TRIGGER_REWARDS)
        True
        >>> has_permission("user", Permission.TRIGGER_REWARDS)
        False
    """
    role_enum = parse_role(role)
    if role_enum is None:
        return False
    return permission in ROLE_PERMISSIONS.get(role_enum, set())
