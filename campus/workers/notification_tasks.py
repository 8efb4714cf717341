"""Celery tasks for notification delivery.

Provides async task processing for:
- Delivering a notification (in-app row, then email)
- Email sending with bounded retries
- Periodic cleanup of expired notifications and reset tokens
"""

from typing import Any, Dict, Optional
from uuid import UUID
import logging
import smtplib

from celery import Celery, shared_task
from celery.schedules import crontab

from campus.core.config import get_settings
from campus.core.logger import setup_logging
from campus.core.password_reset import cleanup_expired_tokens
from campus.db.models import Notification
from campus.db.session import SessionLocal
from campus.services.notifications import NotificationService

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    'campus',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    task_routes={
        'campus.workers.notification_tasks.deliver_notification': {'queue': 'notifications'},
        'campus.workers.notification_tasks.send_notification_email': {'queue': 'notifications'},
        'campus.workers.notification_tasks.send_password_reset_email': {'queue': 'notifications'},
    },
    task_default_queue='default',
    beat_schedule={
        'cleanup-expired-notifications': {
            'task': 'campus.workers.notification_tasks.cleanup_expired_notifications',
            'schedule': crontab(hour=3, minute=0),
        },
    },
)


@celery_app.on_after_configure.connect
def _configure_logging(sender, **kwargs):
    setup_logging()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def deliver_notification(
    self,
    account_id: str,
    title: str,
    message: str,
    kind: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    priority: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Persist an in-app notification and queue its email.

    Args:
        account_id: Recipient account ID
        title: Short title
        message: Body text
        kind: NotificationKind value
        metadata: Extra JSON data (entity ids, reviewer notes)
        priority: NotificationPriority value

    Returns:
        Delivery summary
    """
    db = SessionLocal()
    try:
        notification = NotificationService(db).create(
            UUID(account_id),
            title,
            message,
            kind=kind,
            priority=priority,
            metadata=metadata,
        )
        notification_id = str(notification.id)
    except Exception as exc:
        db.rollback()
        logger.error("Failed to store notification for account %s: %s", account_id, exc)
        raise self.retry(exc=exc)
    finally:
        db.close()

    if settings.smtp_host:
        send_notification_email.delay(notification_id)

    return {"notification_id": notification_id, "email_queued": bool(settings.smtp_host)}


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_notification_email(self, notification_id: str) -> Dict[str, Any]:
    """Email a stored notification, retrying on SMTP or network errors."""
    db = SessionLocal()
    try:
        notification = db.query(Notification).filter(
            Notification.id == UUID(notification_id)
        ).first()
        if notification is None:
            logger.warning("Notification %s vanished before its email was sent", notification_id)
            return {"notification_id": notification_id, "emailed": False}

        try:
            emailed = NotificationService(db).send_email(notification)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Email for notification %s failed: %s", notification_id, exc)
            raise self.retry(exc=exc)

        return {"notification_id": notification_id, "emailed": emailed}
    finally:
        db.close()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_password_reset_email(self, account_id: str, token: str) -> Dict[str, Any]:
    """Email a password reset link. The raw token only lives in the task payload."""
    db = SessionLocal()
    try:
        try:
            emailed = NotificationService(db).send_password_reset_email(UUID(account_id), token)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Password reset email for account %s failed: %s", account_id, exc)
            raise self.retry(exc=exc)
        return {"account_id": account_id, "emailed": emailed}
    finally:
        db.close()


@shared_task
def cleanup_expired_notifications() -> Dict[str, int]:
    """Periodic sweep of expired notifications and password reset tokens."""
    db = SessionLocal()
    try:
        notifications = NotificationService(db).cleanup()
        reset_tokens = cleanup_expired_tokens(db)
        return {"notifications": notifications, "reset_tokens": reset_tokens}
    finally:
        db.close()
