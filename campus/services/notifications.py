"""Notification service for in-app notifications and email delivery.

Handles:
- Persisting in-app notifications for an account
- Listing, counting and marking notifications read
- Rendering and sending the matching email over SMTP
- Sweeping expired and old read notifications
"""

import logging
import smtplib
from datetime import datetime, timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from jinja2 import Template
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from campus.core.config import get_settings
from campus.core.errors import NotFound, ValidationError
from campus.core.rbac.checker import CallerContext, require_ownership
from campus.db.models import (
    Account,
    Notification,
    NotificationKind,
    NotificationPriority,
)

logger = logging.getLogger(__name__)
settings = get_settings()


EMAIL_SUBJECT = Template("[{{ app_name }}] {{ title }}")

EMAIL_BODY = Template("""
Hello {{ name }},

{{ message }}
{% if notes %}
Reviewer notes: {{ notes }}
{% endif %}
Sign in at: {{ frontend_url }}

---
{{ app_name }}
""")

RESET_BODY = Template("""
Hello {{ name }},

A password reset was requested for your account. Use the link below within
{{ hours }} hour(s) to choose a new password:

{{ reset_url }}

If you did not request this, you can ignore this email.

---
{{ app_name }}
""")


def parse_kind(value: Optional[str]) -> NotificationKind:
    if value is None:
        return NotificationKind.GENERAL
    try:
        return NotificationKind(value)
    except ValueError:
        raise ValidationError(f"Invalid notification kind {value!r}")


def parse_priority(value: Optional[str]) -> NotificationPriority:
    if value is None:
        return NotificationPriority.MEDIUM
    try:
        return NotificationPriority(value)
    except ValueError:
        raise ValidationError(f"Invalid notification priority {value!r}")


class NotificationService:
    """Database side of notifications, scoped by account."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        account_id: UUID,
        title: str,
        message: str,
        *,
        kind: Optional[str] = None,
        priority: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> Notification:
        notification = Notification(
            account_id=account_id,
            title=title,
            message=message,
            kind=parse_kind(kind).value,
            priority=parse_priority(priority).value,
            extra_data=metadata or {},
            expires_at=expires_at,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def _visible(self, account_id: UUID):
        now = datetime.utcnow()
        return self.db.query(Notification).filter(
            and_(
                Notification.account_id == account_id,
                or_(Notification.expires_at.is_(None), Notification.expires_at > now),
            )
        )

    def list_for_account(
        self,
        account_id: UUID,
        *,
        page: int = 1,
        per_page: int = 20,
        is_read: Optional[bool] = None,
    ) -> Tuple[List[Notification], int]:
        """Unexpired notifications, newest first."""
        query = self._visible(account_id)
        if is_read is not None:
            query = query.filter(Notification.is_read.is_(is_read))

        total = query.count()
        items = (
            query.order_by(Notification.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def unread_count(self, account_id: UUID) -> int:
        return self._visible(account_id).filter(Notification.is_read.is_(False)).count()

    def mark_read(self, notification_id: UUID, caller: CallerContext) -> Notification:
        notification = self.db.query(Notification).filter(Notification.id == notification_id).first()
        if notification is None:
            raise NotFound("Notification", notification_id)
        require_ownership(caller, notification.account_id)

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self, account_id: UUID) -> int:
        count = self.db.query(Notification).filter(
            and_(
                Notification.account_id == account_id,
                Notification.is_read.is_(False),
            )
        ).update(
            {Notification.is_read: True, Notification.read_at: datetime.utcnow()},
            synchronize_session=False,
        )
        self.db.commit()
        return count

    def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete expired notifications and read ones past the retention window."""
        if retention_days is None:
            retention_days = settings.notification_retention_days
        now = datetime.utcnow()
        cutoff = now - timedelta(days=retention_days)

        count = self.db.query(Notification).filter(
            or_(
                Notification.expires_at < now,
                and_(Notification.is_read.is_(True), Notification.created_at < cutoff),
            )
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info("Removed %d expired or stale notifications", count)
        return count

    def send_email(self, notification: Notification) -> bool:
        """Email a notification to its account. Returns False when SMTP is not configured."""
        if not settings.smtp_host:
            logger.debug("SMTP not configured, skipping email for notification %s", notification.id)
            return False

        account = self.db.query(Account).filter(Account.id == notification.account_id).first()
        if account is None:
            raise NotFound("Account", notification.account_id)

        extra = notification.extra_data or {}
        subject = EMAIL_SUBJECT.render(app_name=settings.app_name, title=notification.title)
        body = EMAIL_BODY.render(
            name=account.full_name,
            message=notification.message,
            notes=extra.get("notes"),
            frontend_url=settings.frontend_url,
            app_name=settings.app_name,
        )

        self._send(account.email, subject, body)

        notification.email_sent_at = datetime.utcnow()
        self.db.commit()
        return True

    def send_password_reset_email(self, account_id: UUID, token: str) -> bool:
        """Email a reset link. Returns False when SMTP is not configured."""
        if not settings.smtp_host:
            logger.warning("SMTP not configured, password reset email for %s not sent", account_id)
            return False

        account = self.db.query(Account).filter(Account.id == account_id).first()
        if account is None:
            raise NotFound("Account", account_id)

        body = RESET_BODY.render(
            name=account.full_name,
            hours=settings.password_reset_expire_hours,
            reset_url=f"{settings.frontend_url.rstrip('/')}/reset-password?token={token}",
            app_name=settings.app_name,
        )
        self._send(account.email, f"[{settings.app_name}] Password reset", body)
        return True

    def _send(self, to_address: str, subject: str, body: str) -> None:
        msg = MIMEMultipart()
        msg["Subject"] = subject
        msg["From"] = f"{settings.smtp_from_name} <{settings.smtp_from_email}>"
        msg["To"] = to_address
        msg.attach(MIMEText(body, "plain"))

        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_user and settings.smtp_password:
                server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(msg)
        logger.info("Email sent to %s: %s", to_address, subject)
