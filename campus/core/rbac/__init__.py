"""Role-based access control for the campus placement portal.

Defines the roles, the permission-to-role matrix and the authorization guard.
"""

from .permissions import Permission, Resource, Action, PERMISSION_ROLES
from .checker import (
    CallerContext,
    resolve_caller,
    require_role,
    require_permission,
    require_same_organization,
    require_ownership,
    require_decision_scope,
)

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "PERMISSION_ROLES",
    "CallerContext",
    "resolve_caller",
    "require_role",
    "require_permission",
    "require_same_organization",
    "require_ownership",
    "require_decision_scope",
]
