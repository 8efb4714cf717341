"""API routers for the campus placement portal."""

from . import admin
from . import approvals
from . import auth
from . import health
from . import notifications
from . import organizations

__all__ = [
    "admin",
    "approvals",
    "auth",
    "health",
    "notifications",
    "organizations",
]
