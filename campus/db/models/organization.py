import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campus.db.base import Base
from campus.db.models.approval import ApprovalMixin


class OrganizationKind(str, Enum):
    UNIVERSITY = "university"
    COMPANY = "company"


class Organization(ApprovalMixin, Base):
    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), unique=True, nullable=False, index=True)
    domain = Column(String(255), unique=True, nullable=False, index=True)
    kind = Column(String(20), nullable=False, index=True)
    description = Column(Text, nullable=True)
    website = Column(String(512), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    logo_url = Column(String(512), nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    approved_by = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", use_alter=True, name="fk_organizations_approved_by_accounts"),
        nullable=True,
    )
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    accounts = relationship(
        "Account",
        back_populates="organization",
        foreign_keys="Account.organization_id",
    )

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.kind}, {self.approval_status})>"
