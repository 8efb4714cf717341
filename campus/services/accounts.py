"""Account lifecycle: registration, authentication and administration."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus.core.approval.states import Approved, ApprovalStatus, Pending
from campus.core.errors import (
    Conflict,
    InvalidCredential,
    NotFound,
    ValidationError,
)
from campus.core.rbac.checker import CallerContext, check_account_usable
from campus.core.rbac.roles import (
    AUTO_APPROVED_ROLES,
    SELF_REGISTRABLE_ROLES,
    check_role_organization,
    parse_role,
)
from campus.core.security import (
    get_password_hash,
    revoke_account_sessions,
    verify_password,
)
from campus.db.models import Account, Organization
from campus.services.organizations import OrganizationService

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    return email.strip().lower()


def check_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


class AccountService:
    def __init__(self, db: Session):
        self.db = db
        self.organizations = OrganizationService(db)

    # -- lookups ---------------------------------------------------------

    def get(self, account_id: UUID) -> Account:
        account = self.db.query(Account).filter(Account.id == account_id).first()
        if account is None:
            raise NotFound("Account", account_id)
        return account

    def get_by_email(self, email: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.email == normalize_email(email)).first()

    def ensure_email_free(self, email: str, exclude_id: Optional[UUID] = None) -> None:
        query = self.db.query(Account).filter(Account.email == normalize_email(email))
        if exclude_id is not None:
            query = query.filter(Account.id != exclude_id)
        if query.first() is not None:
            raise Conflict(f"Email {email} is already registered")

    def list(
        self,
        *,
        role: Optional[str] = None,
        approval_status: Optional[str] = None,
        organization_id: Optional[UUID] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Account], int]:
        query = self.db.query(Account)
        if role:
            query = query.filter(Account.role == parse_role(role).value)
        if approval_status:
            try:
                query = query.filter(Account.approval_status == ApprovalStatus(approval_status).value)
            except ValueError:
                raise ValidationError(f"Invalid approval status {approval_status!r}")
        if organization_id:
            query = query.filter(Account.organization_id == organization_id)
        if is_active is not None:
            query = query.filter(Account.is_active.is_(is_active))
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                or_(
                    Account.email.like(pattern),
                    func.lower(Account.first_name).like(pattern),
                    func.lower(Account.last_name).like(pattern),
                )
            )
        total = query.count()
        items = (
            query.order_by(Account.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    # -- registration ----------------------------------------------------

    def register(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role,
        phone: Optional[str] = None,
        organization_id: Optional[UUID] = None,
        organization: Optional[Dict[str, Any]] = None,
    ) -> Account:
        """
        Self-registration.

        The account either joins an existing organization or registers a new
        one in the same call. All validation happens before anything is
        written. Recruiters and new organizations start pending; students
        and TPOs joining an approved university are approved at once.

        Raises:
            ValidationError: Admin role, missing or mismatched organization,
                unusable organization, weak password
            Conflict: Duplicate email, organization name or domain
        """
        role = parse_role(role)
        if role not in SELF_REGISTRABLE_ROLES:
            raise ValidationError(f"Role {role.value} cannot self-register")
        if organization_id is not None and organization is not None:
            raise ValidationError("Provide either organization_id or organization, not both")
        check_password_strength(password)
        self.ensure_email_free(email)

        new_organization = None
        if organization is not None:
            kind = organization.get("kind")
            check_role_organization(role, kind)
            if role in AUTO_APPROVED_ROLES:
                raise ValidationError(
                    "Students and TPOs must join an existing approved university"
                )
            new_organization = self.organizations.build(**organization)
            target_status = ApprovalStatus.PENDING.value
        elif organization_id is not None:
            existing = self.db.query(Organization).filter(Organization.id == organization_id).first()
            if existing is None:
                raise ValidationError(f"Organization {organization_id} does not exist")
            check_role_organization(role, existing.kind)
            if not existing.is_active or existing.approval_status == ApprovalStatus.REJECTED.value:
                raise ValidationError("Organization is not accepting registrations")
            if role in AUTO_APPROVED_ROLES and existing.approval_status != ApprovalStatus.APPROVED.value:
                raise ValidationError("Organization is awaiting approval")
            target_status = existing.approval_status
        else:
            check_role_organization(role, None)

        account = Account(
            id=uuid.uuid4(),
            email=normalize_email(email),
            password_hash=get_password_hash(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone,
            role=role.value,
            is_active=True,
            is_verified=False,
        )
        if role in AUTO_APPROVED_ROLES and target_status == ApprovalStatus.APPROVED.value:
            account.approval_state = Approved(
                by=account.id,
                at=datetime.utcnow(),
                notes="Auto-approved on registration",
            )
        else:
            account.approval_state = Pending()

        try:
            if new_organization is not None:
                self.db.add(new_organization)
                self.db.flush()
                account.organization_id = new_organization.id
            else:
                account.organization_id = organization_id
            self.db.add(account)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Email, organization name or domain already exists")

        self.db.refresh(account)
        logger.info(
            "Registered %s account %s (%s)", account.role, account.email, account.approval_status
        )
        return account

    def create_by_admin(
        self,
        caller: CallerContext,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role,
        phone: Optional[str] = None,
        organization_id: Optional[UUID] = None,
    ) -> Account:
        """Admin creation bypasses review: created approved, verified, approved_by = admin."""
        role = parse_role(role)
        check_password_strength(password)
        self.ensure_email_free(email)

        kind = None
        if organization_id is not None:
            organization = self.organizations.get(organization_id)
            if not organization.is_active:
                raise ValidationError("Organization is deactivated")
            if organization.approval_status == ApprovalStatus.REJECTED.value:
                raise ValidationError("Cannot create an approved account in a rejected organization")
            kind = organization.kind
        check_role_organization(role, kind)

        account = Account(
            email=normalize_email(email),
            password_hash=get_password_hash(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone,
            role=role.value,
            organization_id=organization_id,
            is_active=True,
            is_verified=True,
        )
        account.approval_state = Approved(
            by=caller.account_id,
            at=datetime.utcnow(),
            notes="Created by administrator",
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict(f"Email {email} is already registered")
        self.db.refresh(account)
        logger.info("Admin %s created %s account %s", caller.account_id, role.value, account.email)
        return account

    # -- authentication --------------------------------------------------

    def authenticate(self, email: str, password: str) -> Account:
        """
        Check credentials and that the account may sign in.

        Raises:
            InvalidCredential: Unknown email or wrong password
            AccountDisabled and subclasses: Deactivated, pending, rejected,
                or organization not usable
        """
        account = self.get_by_email(email)
        if account is None or not verify_password(password, account.password_hash):
            raise InvalidCredential("Incorrect email or password")

        check_account_usable(account)

        account.last_login = datetime.utcnow()
        self.db.commit()
        return account

    def change_password(
        self,
        account_id: UUID,
        current_password: str,
        new_password: str,
        keep_session: Optional[str] = None,
    ) -> int:
        """Change a password and revoke every other session. Returns the revoked count."""
        account = self.get(account_id)
        if not verify_password(current_password, account.password_hash):
            raise InvalidCredential("Current password is incorrect")
        check_password_strength(new_password)
        account.password_hash = get_password_hash(new_password)
        self.db.commit()
        return revoke_account_sessions(account.id, self.db, except_jti=keep_session)

    # -- administration --------------------------------------------------

    def update(
        self,
        account_id: UUID,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        organization_id: Optional[UUID] = None,
        password: Optional[str] = None,
    ) -> Account:
        """Admin update. Role and approval fields are not editable here."""
        account = self.get(account_id)

        if email is not None and normalize_email(email) != account.email:
            self.ensure_email_free(email, exclude_id=account.id)
            account.email = normalize_email(email)
        if first_name is not None:
            account.first_name = first_name.strip()
        if last_name is not None:
            account.last_name = last_name.strip()
        if phone is not None:
            account.phone = phone

        if organization_id is not None and organization_id != account.organization_id:
            organization = self.organizations.get(organization_id)
            check_role_organization(account.role, organization.kind)
            if not organization.is_active or organization.approval_status == ApprovalStatus.REJECTED.value:
                raise ValidationError("Target organization is deactivated or rejected")
            account.organization_id = organization.id

        if password is not None:
            check_password_strength(password)
            account.password_hash = get_password_hash(password)
            revoke_account_sessions(account.id, self.db)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Email is already registered")
        self.db.refresh(account)
        return account

    def set_active(self, account_id: UUID, active: bool, caller: CallerContext) -> Account:
        """Deactivate or reactivate. Deactivation revokes all sessions."""
        account = self.get(account_id)
        if not active and account.id == caller.account_id:
            raise ValidationError("You cannot deactivate your own account")
        account.is_active = active
        self.db.commit()
        if not active:
            revoke_account_sessions(account.id, self.db)
        self.db.refresh(account)
        logger.info("Account %s active=%s by %s", account_id, active, caller.account_id)
        return account

    def delete(self, account_id: UUID, caller: CallerContext, *, hard: bool = False) -> Dict[str, Any]:
        """Soft delete by default; hard delete is the admin escape hatch."""
        account = self.get(account_id)
        if account.id == caller.account_id:
            raise ValidationError("You cannot delete your own account")

        if not hard:
            self.set_active(account.id, False, caller)
            return {"id": account.id, "hard_deleted": False}

        decided = (
            self.db.query(func.count(Account.id))
            .filter(Account.approved_by == account.id, Account.id != account.id)
            .scalar()
            + self.db.query(func.count(Organization.id)).filter(Organization.approved_by == account.id).scalar()
        )
        if decided:
            raise Conflict(
                "Account has recorded approval decisions; deactivate it instead"
            )

        self.db.delete(account)
        self.db.commit()
        logger.info("Account %s permanently deleted by %s", account_id, caller.account_id)
        return {"id": account_id, "hard_deleted": True}
