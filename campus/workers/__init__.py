"""Celery workers for the campus placement portal."""

from campus.workers.notification_tasks import (
    celery_app,
    deliver_notification,
    send_notification_email,
    send_password_reset_email,
    cleanup_expired_notifications,
)

__all__ = [
    "celery_app",
    "deliver_notification",
    "send_notification_email",
    "send_password_reset_email",
    "cleanup_expired_notifications",
]
