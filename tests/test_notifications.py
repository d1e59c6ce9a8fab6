"""Tests for notifications and audit records."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from nimmit.errors import ValidationError
from nimmit.notifications import NotificationEmitter
from nimmit.notifications.emitter import list_audit_log, list_notifications, mark_read
from nimmit.notifications.models import AuditRecord, Notification, render_template
from nimmit.users import Actor


class TestTemplates:
    def test_render_fills_placeholders(self):
        title, message = render_template("job_assigned", {"jobTitle": "Logo refresh"})
        assert title == "New Job Assigned"
        assert message == 'You have been assigned to "Logo refresh"'

    def test_missing_placeholders_render_empty(self):
        _, message = render_template("new_message", {"jobTitle": "Logo"})
        assert message == ' sent a message on "Logo"'

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError, match="Invalid notification type"):
            Notification.build("u1", "party_invite")

    def test_invalid_audit_severity(self):
        with pytest.raises(ValueError):
            AuditRecord(id="a1", action="job.created", severity="loud")


class TestNotificationEmitter:
    def test_notify_stores_and_forwards(self, storage):
        sink = MagicMock()
        emitter = NotificationEmitter(storage, sink=sink)

        notification = emitter.notify("u1", "system", {"message": "Maintenance tonight"})

        assert storage.list_notifications("u1")[0].id == notification.id
        event = sink.enqueue.call_args[0][0]
        assert event["kind"] == "notification"
        assert event["message"] == "Maintenance tonight"

    def test_storage_failure_is_swallowed(self):
        storage = MagicMock()
        storage.save_notification.side_effect = RuntimeError("db down")
        emitter = NotificationEmitter(storage)

        assert emitter.notify("u1", "system") is None

    def test_sink_failure_keeps_notification(self, storage):
        sink = MagicMock()
        sink.enqueue.side_effect = RuntimeError("queue full")
        emitter = NotificationEmitter(storage, sink=sink)

        assert emitter.notify("u1", "system") is not None
        assert len(storage.list_notifications("u1")) == 1

    def test_notify_admins(self, storage, notifier, admin):
        sent = notifier.notify_admins("worker_flagged", {"jobTitle": "Logo", "message": "Unclear"})

        assert [n.user_id for n in sent] == [admin.id]
        assert sent[0].message == 'A worker flagged "Logo": Unclear'

    def test_audit_failure_returns_none(self):
        storage = MagicMock()
        storage.save_audit_record.side_effect = RuntimeError("db down")
        emitter = NotificationEmitter(storage)

        assert emitter.audit("job.created") is None

    def test_payout_audits_are_warnings(self, storage, notifier):
        actor = Actor(id="admin-1", role="admin")

        notifier.audit_payment(actor, "payout_processed", "w1")
        notifier.audit_payment(actor, "credits_deducted", "j1")

        severities = {r.action: r.severity for r in storage.list_audit_records()}
        assert severities == {
            "payment.payout_processed": "warning",
            "payment.credits_deducted": "info",
        }

    def test_emit_notifies_and_audits(self, storage, notifier):
        notifier.emit(
            "job.reminder",
            {
                "user_ids": ["u1", "u2"],
                "notification_type": "system",
                "data": {"message": "Due soon"},
                "target_type": "job",
                "target_id": "j1",
            },
        )

        assert len(storage.list_notifications("u2")) == 1
        assert storage.list_audit_records(action="job.reminder")[0].target_id == "j1"


class TestReadState:
    def test_mark_selected_and_all(self, storage, notifier):
        first = notifier.notify("u1", "system", {"message": "one"})
        notifier.notify("u1", "system", {"message": "two"})
        notifier.notify("u2", "system", {"message": "other user"})

        assert mark_read(storage, "u1", [first.id]) == 1
        assert len(list_notifications(storage, "u1", unread_only=True)) == 1
        assert mark_read(storage, "u1") == 1
        assert list_notifications(storage, "u1", unread_only=True) == []
        assert len(list_notifications(storage, "u2", unread_only=True)) == 1

    def test_limit(self, storage, notifier):
        for i in range(5):
            notifier.notify("u1", "system", {"message": str(i)})

        assert len(list_notifications(storage, "u1", limit=3)) == 3


class TestAuditLog:
    @pytest.fixture
    def trail(self, storage):
        for day, (action, severity, actor) in enumerate(
            [
                ("job_created", "info", "c1"),
                ("payment_failed", "critical", "a1"),
                ("job_created", "info", "c2"),
            ],
            start=1,
        ):
            storage.save_audit_record(
                AuditRecord(
                    id=f"aud-{day}",
                    action=action,
                    severity=severity,
                    actor_id=actor,
                    created_at=datetime(2026, 3, day, tzinfo=timezone.utc),
                )
            )

    def test_page_and_total(self, storage, trail):
        records, total = list_audit_log(storage, limit=2, offset=0)

        assert [r.id for r in records] == ["aud-3", "aud-2"]
        assert total == 3

    def test_total_follows_filters(self, storage, trail):
        records, total = list_audit_log(storage, limit=1, action="job_created")

        assert [r.id for r in records] == ["aud-3"]
        assert total == 2

    def test_naive_bounds_are_utc(self, storage, trail):
        records, total = list_audit_log(
            storage, since=datetime(2026, 3, 2), until=datetime(2026, 3, 2)
        )

        assert [r.id for r in records] == ["aud-2"]
        assert total == 1

    def test_inverted_range(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            list_audit_log(storage, since=datetime(2026, 3, 5), until=datetime(2026, 3, 1))

        assert exc_info.value.field == "startDate"
