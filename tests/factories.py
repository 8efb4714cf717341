"""Factory functions for creating test database records.

Each factory creates a model instance, adds it to the session and commits,
so API requests running on their own sessions see the rows. All fields have
sensible defaults but can be overridden via keyword arguments.

Usage::

    from tests.factories import create_organization, create_account

    def test_something(db_session):
        company = create_organization(db_session, kind="company", status="pending")
        recruiter = create_account(db_session, role="recruiter", organization=company)
        assert recruiter.organization.name == company.name
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from campus.core.approval.states import Approved, Pending, Rejected
from campus.core.rbac.roles import required_organization_kind
from campus.core.security import get_password_hash
from campus.db.models import Account, AccountRole, Organization


_counter = 0

TEST_PASSWORD = "testpass123"
_password_hash: Optional[str] = None

FACTORY_ADMIN_EMAIL = "factory-admin@example.com"


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


def _test_password_hash() -> str:
    global _password_hash
    if _password_hash is None:
        _password_hash = get_password_hash(TEST_PASSWORD)
    return _password_hash


def _state(status: str, approved_by: Optional[UUID], notes: Optional[str] = None):
    if status == "pending":
        return Pending()
    if status == "approved":
        return Approved(by=approved_by, at=datetime.utcnow(), notes=notes)
    if status == "rejected":
        return Rejected(by=approved_by, at=datetime.utcnow(), notes=notes)
    raise ValueError(f"Unknown status {status!r}")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


def create_admin(
    session: Session,
    *,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> Account:
    """Self-approved admin, the way the bootstrap seed creates one."""
    email = email or FACTORY_ADMIN_EMAIL
    existing = session.query(Account).filter(Account.email == email).first()
    if existing:
        return existing

    admin = Account(
        email=email,
        password_hash=get_password_hash(password) if password else _test_password_hash(),
        first_name="Test",
        last_name="Admin",
        role=AccountRole.ADMIN.value,
        is_active=True,
        is_verified=True,
    )
    session.add(admin)
    session.flush()
    admin.approval_state = Approved(by=admin.id, at=datetime.utcnow())
    session.commit()
    return admin


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------


def create_organization(
    session: Session,
    *,
    name: Optional[str] = None,
    domain: Optional[str] = None,
    kind: str = "university",
    status: str = "approved",
    approved_by: Optional[UUID] = None,
    notes: Optional[str] = None,
    is_active: bool = True,
    is_verified: Optional[bool] = None,
) -> Organization:
    n = _next_id()
    if status != "pending" and approved_by is None:
        approved_by = create_admin(session).id

    organization = Organization(
        name=name or f"Test {kind.title()} {n}",
        domain=domain or f"{kind}-{n}.example.com",
        kind=kind,
        is_active=is_active,
        is_verified=status == "approved" if is_verified is None else is_verified,
    )
    organization.approval_state = _state(status, approved_by, notes)
    session.add(organization)
    session.commit()
    return organization


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


def create_account(
    session: Session,
    *,
    role: str = "student",
    organization: Optional[Organization] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: str = "Tester",
    status: str = "approved",
    approved_by: Optional[UUID] = None,
    is_active: bool = True,
) -> Account:
    n = _next_id()
    kind = required_organization_kind(role)
    if kind is not None and organization is None:
        organization = create_organization(session, kind=kind.value)
    if status != "pending" and approved_by is None:
        approved_by = create_admin(session).id

    account = Account(
        email=email or f"{role}-{n}@example.com",
        password_hash=get_password_hash(password) if password else _test_password_hash(),
        first_name=first_name or f"{role.title()}{n}",
        last_name=last_name,
        role=role,
        organization_id=organization.id if organization else None,
        is_active=is_active,
        is_verified=status == "approved",
    )
    account.approval_state = _state(status, approved_by)
    session.add(account)
    session.commit()
    return account
