"""Authorization guard.

Resolves the caller from a signed access token into an immutable
``CallerContext`` and offers pure allow/deny checks over (caller, action,
target). Nothing here is cached; the caller is re-read from the database
on every request so role or status changes take effect immediately.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from campus.core.approval.states import ApprovalStatus
from campus.core.errors import (
    AccountDisabled,
    AccountPendingApproval,
    AccountRejected,
    CrossOrganizationAccess,
    InsufficientRole,
    NotOwner,
    OrganizationDisabled,
    UnknownAccount,
)
from campus.core.security import ACCESS, decode_token, verify_token
from campus.db.models import Account, AccountRole, Organization, OrganizationKind
from .permissions import REVIEWERS, Permission, roles_for
from .roles import TPO_DECIDABLE_ACCOUNT_ROLES, TPO_DECIDABLE_ORGANIZATION_KINDS


@dataclass(frozen=True)
class CallerContext:
    """Who is making the request, as resolved for this request only."""

    account_id: UUID
    email: str
    role: AccountRole
    organization_id: Optional[UUID] = None
    organization_kind: Optional[OrganizationKind] = None
    session_jti: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    @classmethod
    def from_account(cls, account: Account, session_jti: Optional[str] = None) -> "CallerContext":
        organization = account.organization
        return cls(
            account_id=account.id,
            email=account.email,
            role=AccountRole(account.role),
            organization_id=account.organization_id,
            organization_kind=OrganizationKind(organization.kind) if organization else None,
            session_jti=session_jti,
        )


def check_account_usable(account: Account) -> None:
    """Raise unless the account may act on the platform.

    Raises:
        AccountDisabled: Deactivated account
        AccountPendingApproval / AccountRejected: Undecided or refused account
        OrganizationDisabled: Non-admin whose organization is not approved or deactivated
    """
    if not account.is_active:
        raise AccountDisabled("Account is deactivated")

    if account.approval_status == ApprovalStatus.PENDING.value:
        raise AccountPendingApproval()
    if account.approval_status == ApprovalStatus.REJECTED.value:
        raise AccountRejected()

    if account.role == AccountRole.ADMIN.value:
        return

    organization = account.organization
    if (
        organization is None
        or not organization.is_active
        or organization.approval_status != ApprovalStatus.APPROVED.value
    ):
        raise OrganizationDisabled()


def resolve_caller(token: str, db: Session) -> CallerContext:
    """Verify an access token and load the caller.

    Raises:
        InvalidCredential / TokenExpired: Token verification failed
        UnknownAccount: Token subject no longer exists
        AccountDisabled and subclasses: see ``check_account_usable``
    """
    account_id = verify_token(token, db, token_type=ACCESS)

    account = db.query(Account).filter(Account.id == account_id).first()
    if account is None:
        raise UnknownAccount("Account not found")

    check_account_usable(account)
    return CallerContext.from_account(account, session_jti=decode_token(token, ACCESS)["jti"])


def require_role(caller: CallerContext, allowed: Iterable[AccountRole]) -> None:
    """Raise InsufficientRole unless the caller's role is in ``allowed``."""
    allowed = frozenset(allowed)
    if caller.role not in allowed:
        raise InsufficientRole(
            f"Role {caller.role.value} may not perform this action; requires one of: "
            + ", ".join(sorted(r.value for r in allowed))
        )


def require_permission(caller: CallerContext, permission: Union[Permission, str]) -> None:
    """Role check against the permission matrix."""
    if isinstance(permission, str):
        permission = Permission.from_string(permission)
    require_role(caller, roles_for(permission))


def require_same_organization(caller: CallerContext, organization_id: Optional[UUID]) -> None:
    """Admins pass; everyone else must belong to ``organization_id``."""
    if caller.is_admin:
        return
    if organization_id is None or caller.organization_id != organization_id:
        raise CrossOrganizationAccess("Resource belongs to another organization")


def require_ownership(caller: CallerContext, owner_id: Optional[UUID]) -> None:
    """Admins pass; everyone else must own the resource."""
    if caller.is_admin:
        return
    if owner_id is None or caller.account_id != owner_id:
        raise NotOwner("Resource belongs to another account")


def require_decision_scope(caller: CallerContext, target: Union[Organization, Account]) -> None:
    """Restrict what a reviewer may decide.

    Admins decide anything. TPOs decide only company organizations and
    recruiter accounts.
    """
    require_role(caller, REVIEWERS)
    if caller.is_admin:
        return

    if isinstance(target, Organization):
        if OrganizationKind(target.kind) not in TPO_DECIDABLE_ORGANIZATION_KINDS:
            raise InsufficientRole("TPOs may only decide company organizations")
    elif AccountRole(target.role) not in TPO_DECIDABLE_ACCOUNT_ROLES:
        raise InsufficientRole("TPOs may only decide recruiter accounts")

