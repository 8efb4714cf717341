"""Permission model for the campus placement portal.

Permission string format: "resource:action"
Examples:
  - approvals:decide
  - organizations:members
  - accounts:manage

Every permission maps to the set of roles allowed to exercise it. Scope
checks (same organization, ownership, decision scope) are applied on top by
``campus.core.rbac.checker``.
"""

from enum import Enum
from typing import Dict, FrozenSet, NamedTuple

from campus.db.models.account import AccountRole


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    APPROVALS = "approvals"
    ORGANIZATIONS = "organizations"
    ACCOUNTS = "accounts"
    NOTIFICATIONS = "notifications"
    PROFILE = "profile"


class Action(str, Enum):
    """Actions that can be performed on resources."""

    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DECIDE = "decide"      # approve / reject
    STATS = "stats"
    MEMBERS = "members"    # list members of an organization
    MANAGE = "manage"      # admin-only lifecycle operations
    VERIFY = "verify"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'approvals:decide'."""
        parts = perm_str.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Resource(parts[0]), Action(parts[1]))


ALL_ROLES: FrozenSet[AccountRole] = frozenset(AccountRole)
REVIEWERS: FrozenSet[AccountRole] = frozenset({AccountRole.TPO, AccountRole.ADMIN})
ADMIN_ONLY: FrozenSet[AccountRole] = frozenset({AccountRole.ADMIN})


PERMISSION_ROLES: Dict[Permission, FrozenSet[AccountRole]] = {
    # Approval workflow
    Permission(Resource.APPROVALS, Action.LIST): REVIEWERS,
    Permission(Resource.APPROVALS, Action.DECIDE): REVIEWERS,
    Permission(Resource.APPROVALS, Action.STATS): REVIEWERS,

    # Organizations
    Permission(Resource.ORGANIZATIONS, Action.MEMBERS): ALL_ROLES,
    Permission(Resource.ORGANIZATIONS, Action.READ): ADMIN_ONLY,
    Permission(Resource.ORGANIZATIONS, Action.CREATE): ADMIN_ONLY,
    Permission(Resource.ORGANIZATIONS, Action.UPDATE): ADMIN_ONLY,
    Permission(Resource.ORGANIZATIONS, Action.DELETE): ADMIN_ONLY,
    Permission(Resource.ORGANIZATIONS, Action.VERIFY): ADMIN_ONLY,

    # Accounts
    Permission(Resource.ACCOUNTS, Action.LIST): ADMIN_ONLY,
    Permission(Resource.ACCOUNTS, Action.READ): ADMIN_ONLY,
    Permission(Resource.ACCOUNTS, Action.CREATE): ADMIN_ONLY,
    Permission(Resource.ACCOUNTS, Action.UPDATE): ADMIN_ONLY,
    Permission(Resource.ACCOUNTS, Action.MANAGE): ADMIN_ONLY,
    Permission(Resource.ACCOUNTS, Action.DELETE): ADMIN_ONLY,

    # Own notifications and profile
    Permission(Resource.NOTIFICATIONS, Action.LIST): ALL_ROLES,
    Permission(Resource.NOTIFICATIONS, Action.UPDATE): ALL_ROLES,
    Permission(Resource.PROFILE, Action.READ): ALL_ROLES,
    Permission(Resource.PROFILE, Action.UPDATE): ALL_ROLES,
}


def roles_for(permission: Permission) -> FrozenSet[AccountRole]:
    """Roles allowed to exercise a permission; unknown permissions allow nobody."""
    return PERMISSION_ROLES.get(permission, frozenset())


def get_role_permissions(role: AccountRole) -> list[str]:
    """Permission strings granted to a role."""
    return sorted(str(p) for p, roles in PERMISSION_ROLES.items() if role in roles)


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string names a known permission."""
    try:
        return Permission.from_string(perm_str) in PERMISSION_ROLES
    except ValueError:
        return False
