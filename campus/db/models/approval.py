"""Approval columns shared by organizations and accounts, and the decision history."""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID

from campus.core.approval.states import (
    ApprovalState,
    ApprovalStatus,
    state_from_columns,
)
from campus.db.base import Base


class ApprovalMixin:
    """Adds approval_status / approved_at / approval_notes.

    Each model declares its own ``approved_by`` foreign key.
    """

    approval_status = Column(
        String(20),
        nullable=False,
        default=ApprovalStatus.PENDING.value,
        index=True,
    )
    approved_at = Column(DateTime, nullable=True)
    approval_notes = Column(Text, nullable=True)

    @property
    def approval_state(self) -> ApprovalState:
        return state_from_columns(
            self.approval_status or ApprovalStatus.PENDING.value,
            self.approved_by,
            self.approved_at,
            self.approval_notes,
        )

    @approval_state.setter
    def approval_state(self, state: ApprovalState) -> None:
        for column, value in state.to_columns().items():
            setattr(self, column, value)


class ApprovalHistory(Base):
    """One row per approval decision, including cascaded ones."""
    __tablename__ = "approval_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(20), nullable=False)  # organization, account
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    from_state = Column(String(20), nullable=False)
    to_state = Column(String(20), nullable=False)
    action = Column(String(20), nullable=False)
    decided_by = Column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    cascaded_from = Column(UUID(as_uuid=True), nullable=True)  # organization id for cascaded account decisions
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ApprovalHistory {self.entity_type}:{self.entity_id} {self.from_state}->{self.to_state}>"
