"""Tests for notification storage, email delivery and the Celery notifier."""

from datetime import datetime, timedelta

import pytest

from campus.core.errors import NotOwner, NotFound, ValidationError
from campus.db.models import Notification
from campus.services import notifications as notifications_module
from campus.services.notifications import NotificationService
from campus.services.notifier import CeleryNotifier, Notifier
from campus.workers import notification_tasks


class FakeSMTP:
    """Stands in for smtplib.SMTP and records sent messages."""

    outbox = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def send_message(self, msg):
        FakeSMTP.outbox.append(msg)


@pytest.fixture
def smtp(monkeypatch):
    FakeSMTP.outbox = []
    monkeypatch.setattr(notifications_module.settings, "smtp_host", "smtp.test")
    monkeypatch.setattr(notifications_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


@pytest.mark.db
class TestNotificationService:

    def test_create_defaults(self, db_session, tpo):
        notification = NotificationService(db_session).create(tpo.id, "Hello", "World")
        assert notification.kind == "general"
        assert notification.priority == "medium"
        assert notification.extra_data == {}
        assert notification.is_read is False

    def test_invalid_kind(self, db_session, tpo):
        with pytest.raises(ValidationError):
            NotificationService(db_session).create(tpo.id, "Hello", "World", kind="carrier_pigeon")

    def test_list_newest_first_and_hides_expired(self, db_session, tpo):
        service = NotificationService(db_session)
        first = service.create(tpo.id, "first", "m")
        second = service.create(tpo.id, "second", "m")
        second.created_at = first.created_at + timedelta(seconds=1)
        service.create(tpo.id, "gone", "m", expires_at=datetime.utcnow() - timedelta(hours=1))
        db_session.commit()

        items, total = service.list_for_account(tpo.id)
        assert total == 2
        assert [n.title for n in items] == ["second", "first"]

    def test_unread_count_and_mark_read(self, db_session, tpo, caller_for):
        service = NotificationService(db_session)
        notification = service.create(tpo.id, "Hello", "World")
        assert service.unread_count(tpo.id) == 1

        read = service.mark_read(notification.id, caller_for(tpo))
        assert read.is_read is True
        assert read.read_at is not None
        assert service.unread_count(tpo.id) == 0

        items, total = service.list_for_account(tpo.id, is_read=False)
        assert total == 0

    def test_mark_read_of_someone_else(self, db_session, tpo, account_factory, caller_for):
        student = account_factory(role="student", organization=tpo.organization)
        notification = NotificationService(db_session).create(tpo.id, "Private", "m")

        with pytest.raises(NotOwner):
            NotificationService(db_session).mark_read(notification.id, caller_for(student))

    def test_admin_may_mark_any(self, db_session, tpo, admin, caller_for):
        notification = NotificationService(db_session).create(tpo.id, "Hello", "m")
        assert NotificationService(db_session).mark_read(notification.id, caller_for(admin)).is_read

    def test_mark_read_unknown(self, db_session, admin, caller_for):
        import uuid
        with pytest.raises(NotFound):
            NotificationService(db_session).mark_read(uuid.uuid4(), caller_for(admin))

    def test_mark_all_read(self, db_session, tpo, admin):
        service = NotificationService(db_session)
        for i in range(3):
            service.create(tpo.id, f"n{i}", "m")
        service.create(admin.id, "other", "m")

        assert service.mark_all_read(tpo.id) == 3
        assert service.unread_count(tpo.id) == 0
        assert service.unread_count(admin.id) == 1

    def test_cleanup(self, db_session, tpo):
        service = NotificationService(db_session)
        service.create(tpo.id, "expired", "m", expires_at=datetime.utcnow() - timedelta(minutes=1))
        old = service.create(tpo.id, "old read", "m")
        old.is_read = True
        old.created_at = datetime.utcnow() - timedelta(days=60)
        service.create(tpo.id, "fresh", "m")
        db_session.commit()

        assert service.cleanup(retention_days=30) == 2
        assert [n.title for n in db_session.query(Notification).all()] == ["fresh"]

    def test_send_email_without_smtp(self, db_session, tpo):
        notification = NotificationService(db_session).create(tpo.id, "Hello", "World")
        assert NotificationService(db_session).send_email(notification) is False
        assert notification.email_sent_at is None

    def test_send_email(self, db_session, tpo, smtp):
        service = NotificationService(db_session)
        notification = service.create(
            tpo.id, "Account approved", "You can now sign in.", metadata={"notes": "Welcome aboard"}
        )

        assert service.send_email(notification) is True
        assert notification.email_sent_at is not None

        msg = smtp.outbox[0]
        assert msg["To"] == "tpo@state.edu"
        assert "Account approved" in msg["Subject"]
        body = msg.get_payload()[0].get_payload()
        assert "Welcome aboard" in body

    def test_password_reset_email(self, db_session, tpo, smtp):
        assert NotificationService(db_session).send_password_reset_email(tpo.id, "tok123") is True
        body = smtp.outbox[0].get_payload()[0].get_payload()
        assert "/reset-password?token=tok123" in body

    def test_password_reset_email_without_smtp(self, db_session, tpo):
        assert NotificationService(db_session).send_password_reset_email(tpo.id, "tok123") is False


class TestCeleryNotifier:

    def test_enqueues_delivery(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            notification_tasks.deliver_notification, "delay", lambda *a, **kw: calls.append((a, kw))
        )
        CeleryNotifier().notify("acc-1", "Title", "Body", kind="system_alert", priority="high")

        args, kwargs = calls[0]
        assert args == ("acc-1", "Title", "Body")
        assert kwargs == {"kind": "system_alert", "metadata": {}, "priority": "high"}

    def test_broker_failure_is_swallowed(self, monkeypatch):
        def broken(*args, **kwargs):
            raise ConnectionError("broker down")

        monkeypatch.setattr(notification_tasks.deliver_notification, "delay", broken)
        monkeypatch.setattr(notification_tasks.send_password_reset_email, "delay", broken)

        CeleryNotifier().notify("acc-1", "Title", "Body")
        CeleryNotifier().send_password_reset("acc-1", "token")

    def test_notifier_must_implement_every_method(self):
        class NotifyOnly(Notifier):
            def notify(self, account_id, title, body, kind="general", metadata=None, priority="medium"):
                pass

        with pytest.raises(TypeError):
            NotifyOnly()


@pytest.mark.db
class TestNotificationTasks:

    @pytest.fixture(autouse=True)
    def _use_test_database(self, monkeypatch, session_factory):
        monkeypatch.setattr(notification_tasks, "SessionLocal", session_factory)

    def test_deliver_notification_stores_row(self, db_session, tpo):
        result = notification_tasks.deliver_notification.apply(
            args=[str(tpo.id), "Organization approved", "Welcome"],
            kwargs={"kind": "system_alert", "metadata": {"entity_type": "organization"}},
        ).get()

        assert result["email_queued"] is False
        notification = db_session.query(Notification).one()
        assert str(notification.id) == result["notification_id"]
        assert notification.kind == "system_alert"
        assert notification.extra_data == {"entity_type": "organization"}

    def test_send_notification_email_for_missing_row(self):
        result = notification_tasks.send_notification_email.apply(
            args=["00000000-0000-0000-0000-000000000000"]
        ).get()
        assert result["emailed"] is False

    def test_cleanup_task(self, db_session, tpo):
        NotificationService(db_session).create(
            tpo.id, "expired", "m", expires_at=datetime.utcnow() - timedelta(minutes=1)
        )
        result = notification_tasks.cleanup_expired_notifications.apply().get()
        assert result == {"notifications": 1, "reset_tokens": 0}
