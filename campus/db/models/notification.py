"""In-app notifications delivered to accounts."""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Boolean, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campus.db.base import Base


class NotificationKind(str, Enum):
    APPLICATION_UPDATE = "application_update"
    JOB_ALERT = "job_alert"
    EVENT_REMINDER = "event_reminder"
    SYSTEM_ALERT = "system_alert"
    GENERAL = "general"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    kind = Column(String(50), nullable=False, default=NotificationKind.GENERAL.value)
    priority = Column(String(20), nullable=False, default=NotificationPriority.MEDIUM.value)
    # "metadata" is reserved on declarative classes
    extra_data = Column("metadata", JSON, default=dict)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)
    email_sent_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    account = relationship("Account", back_populates="notifications")

    def __repr__(self) -> str:
        return f"<Notification {self.kind} to {self.account_id}>"
