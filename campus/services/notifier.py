"""Fire-and-forget notifier used by the approval workflow.

``notify`` hands the message to the Celery queue and returns immediately.
It never raises: a broker outage is logged and the caller carries on.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Interface for the asynchronous notification side channel."""

    @abstractmethod
    def notify(
        self,
        account_id: UUID,
        title: str,
        body: str,
        kind: str = "general",
        metadata: Optional[Dict[str, Any]] = None,
        priority: str = "medium",
    ) -> None:
        """Queue a message for an account."""

    @abstractmethod
    def send_password_reset(self, account_id: UUID, token: str) -> None:
        """Queue a password reset email for an account."""


class CeleryNotifier(Notifier):
    """Enqueues ``deliver_notification`` on the Celery broker."""

    def notify(
        self,
        account_id: UUID,
        title: str,
        body: str,
        kind: str = "general",
        metadata: Optional[Dict[str, Any]] = None,
        priority: str = "medium",
    ) -> None:
        from campus.workers.notification_tasks import deliver_notification

        try:
            deliver_notification.delay(
                str(account_id),
                title,
                body,
                kind=kind,
                metadata=metadata or {},
                priority=priority,
            )
        except Exception:
            logger.exception("Could not enqueue notification for account %s", account_id)

    def send_password_reset(self, account_id: UUID, token: str) -> None:
        from campus.workers.notification_tasks import send_password_reset_email

        try:
            send_password_reset_email.delay(str(account_id), token)
        except Exception:
            logger.exception("Could not enqueue password reset email for account %s", account_id)


def get_notifier() -> Notifier:
    """Default notifier; overridden in tests."""
    return CeleryNotifier()
