"""Organization lifecycle outside the approval decisions.

Self-registration, admin creation, verification toggle, member listing
and deletion with optional member migration.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus.core.approval.states import Approved, ApprovalStatus, Pending
from campus.core.errors import Conflict, NotFound, ValidationError
from campus.core.rbac.checker import CallerContext, require_same_organization
from campus.core.rbac.roles import parse_organization_kind as parse_kind
from campus.db.models import Account, AccountRole, Organization

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("description", "website", "contact_email", "contact_phone", "address", "logo_url")


def normalize_domain(domain: str) -> str:
    return domain.strip().lower()


class OrganizationService:
    def __init__(self, db: Session):
        self.db = db

    # -- lookups ---------------------------------------------------------

    def get(self, organization_id: UUID) -> Organization:
        organization = self.db.query(Organization).filter(Organization.id == organization_id).first()
        if organization is None:
            raise NotFound("Organization", organization_id)
        return organization

    def ensure_unique(self, name: str, domain: str, exclude_id: Optional[UUID] = None) -> None:
        """Raise Conflict if another organization already uses the name or domain."""
        query = self.db.query(Organization).filter(
            or_(
                func.lower(Organization.name) == name.strip().lower(),
                Organization.domain == normalize_domain(domain),
            )
        )
        if exclude_id is not None:
            query = query.filter(Organization.id != exclude_id)
        existing = query.first()
        if existing is None:
            return
        if existing.domain == normalize_domain(domain):
            raise Conflict(f"An organization with domain {domain} already exists")
        raise Conflict(f"An organization named {name} already exists")

    def build(self, name: str, domain: str, kind, **profile: Any) -> Organization:
        """Validate and construct a pending organization without adding it to the session."""
        kind = parse_kind(kind)
        if not name or not name.strip():
            raise ValidationError("Organization name is required")
        if not domain or not domain.strip():
            raise ValidationError("Organization domain is required")
        self.ensure_unique(name, domain)

        organization = Organization(
            name=name.strip(),
            domain=normalize_domain(domain),
            kind=kind.value,
            is_verified=False,
            is_active=True,
            **{k: v for k, v in profile.items() if k in PROFILE_FIELDS},
        )
        organization.approval_state = Pending()
        return organization

    def list_public(self, kind: Optional[str] = None) -> List[Organization]:
        """Approved, active organizations, for registration forms."""
        query = self.db.query(Organization).filter(
            Organization.approval_status == ApprovalStatus.APPROVED.value,
            Organization.is_active.is_(True),
        )
        if kind:
            query = query.filter(Organization.kind == parse_kind(kind).value)
        return query.order_by(Organization.name.asc()).all()

    def list(
        self,
        *,
        kind: Optional[str] = None,
        approval_status: Optional[str] = None,
        is_verified: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Organization], int]:
        query = self.db.query(Organization)
        if kind:
            query = query.filter(Organization.kind == parse_kind(kind).value)
        if approval_status:
            try:
                query = query.filter(Organization.approval_status == ApprovalStatus(approval_status).value)
            except ValueError:
                raise ValidationError(f"Invalid approval status {approval_status!r}")
        if is_verified is not None:
            query = query.filter(Organization.is_verified.is_(is_verified))
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                or_(func.lower(Organization.name).like(pattern), Organization.domain.like(pattern))
            )
        total = query.count()
        items = (
            query.order_by(Organization.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def members(self, organization_id: UUID, caller: CallerContext) -> List[Account]:
        organization = self.get(organization_id)
        require_same_organization(caller, organization.id)
        return (
            self.db.query(Account)
            .filter(Account.organization_id == organization.id)
            .order_by(Account.created_at.asc())
            .all()
        )

    def member_counts(self, organization_id: UUID) -> Dict[str, int]:
        rows = (
            self.db.query(Account.role, func.count(Account.id))
            .filter(Account.organization_id == organization_id)
            .group_by(Account.role)
            .all()
        )
        counts = {role.value: 0 for role in AccountRole if role != AccountRole.ADMIN}
        counts.update({role: count for role, count in rows})
        counts["total"] = sum(count for _, count in rows)
        return counts

    # -- writes ----------------------------------------------------------

    def register(self, name: str, domain: str, kind, **profile: Any) -> Organization:
        """Self-registration: pending and unverified until reviewed."""
        organization = self.build(name, domain, kind, **profile)
        self.db.add(organization)
        self._commit()
        self.db.refresh(organization)
        logger.info("Organization %s (%s) registered, pending review", organization.name, organization.kind)
        return organization

    def create_by_admin(self, caller: CallerContext, name: str, domain: str, kind, **profile: Any) -> Organization:
        """Admin creation bypasses review: created approved and verified."""
        organization = self.build(name, domain, kind, **profile)
        organization.is_verified = True
        organization.approval_state = Approved(
            by=caller.account_id,
            at=datetime.utcnow(),
            notes="Created by administrator",
        )
        self.db.add(organization)
        self._commit()
        self.db.refresh(organization)
        logger.info("Organization %s created by admin %s", organization.name, caller.account_id)
        return organization

    def update(self, organization_id: UUID, **fields: Any) -> Organization:
        organization = self.get(organization_id)
        name = fields.get("name")
        domain = fields.get("domain")
        if name or domain:
            self.ensure_unique(name or organization.name, domain or organization.domain, exclude_id=organization.id)
            if name:
                organization.name = name.strip()
            if domain:
                organization.domain = normalize_domain(domain)
        for key in PROFILE_FIELDS:
            if fields.get(key) is not None:
                setattr(organization, key, fields[key])
        self._commit()
        self.db.refresh(organization)
        return organization

    def set_verified(self, organization_id: UUID, verified: bool) -> Organization:
        """Toggle the trust flag only; approval status is untouched."""
        organization = self.get(organization_id)
        organization.is_verified = verified
        self.db.commit()
        self.db.refresh(organization)
        logger.info("Organization %s verified=%s", organization_id, verified)
        return organization

    def delete(
        self,
        organization_id: UUID,
        *,
        migrate_to: Optional[UUID] = None,
        hard: bool = False,
    ) -> Dict[str, Any]:
        """
        Remove an organization.

        Members must be migrated first (``migrate_to``, same kind). A soft
        delete deactivates the organization; a hard delete removes the row.

        Raises:
            NotFound: Organization or migration target missing
            ValidationError: Target is the same organization, another kind, or not usable
            Conflict: Members remain and no migration target was given
        """
        organization = self.get(organization_id)
        member_count = (
            self.db.query(func.count(Account.id))
            .filter(Account.organization_id == organization.id)
            .scalar()
        )

        migrated = 0
        try:
            if migrate_to is not None:
                target = self.get(migrate_to)
                if target.id == organization.id:
                    raise ValidationError("Cannot migrate members to the same organization")
                if target.kind != organization.kind:
                    raise ValidationError(
                        f"Cannot migrate {organization.kind} members to a {target.kind} organization"
                    )
                if not target.is_active or target.approval_status == ApprovalStatus.REJECTED.value:
                    raise ValidationError("Target organization is deactivated or rejected")
                migrated = (
                    self.db.query(Account)
                    .filter(Account.organization_id == organization.id)
                    .update({Account.organization_id: target.id}, synchronize_session=False)
                )
            elif member_count:
                raise Conflict(
                    f"Organization has {member_count} member account(s); "
                    "migrate them to another organization first"
                )

            if hard:
                self.db.expire(organization, ["accounts"])
                self.db.delete(organization)
            else:
                organization.is_active = False
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Organization %s %s (%d members migrated)",
            organization_id, "deleted" if hard else "deactivated", migrated,
        )
        return {"id": organization_id, "hard_deleted": hard, "migrated_accounts": migrated}

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Organization name or domain already exists")
