"""Database models for the campus placement portal."""

from campus.db.models.approval import ApprovalHistory, ApprovalMixin
from campus.db.models.organization import Organization, OrganizationKind
from campus.db.models.account import Account, AccountRole
from campus.db.models.session import Session
from campus.db.models.password_reset_token import PasswordResetToken
from campus.db.models.notification import (
    Notification,
    NotificationKind,
    NotificationPriority,
)

__all__ = [
    "ApprovalHistory",
    "ApprovalMixin",
    "Organization",
    "OrganizationKind",
    "Account",
    "AccountRole",
    "Session",
    "PasswordResetToken",
    "Notification",
    "NotificationKind",
    "NotificationPriority",
]
