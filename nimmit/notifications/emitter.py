"""Notification and audit side channel.

Everything here is best effort: a failure to notify or to write an audit
record is logged and swallowed so the operation that triggered it still
succeeds.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol

from nimmit.errors import ValidationError
from nimmit.notifications.models import AuditRecord, AuditSeverity, Notification
from nimmit.users import Actor

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """External delivery channel (email, push, realtime)."""

    def enqueue(self, event: Dict[str, Any]) -> None:
        ...


class NotificationEmitter:
    """Stores notifications and audit records and forwards events to a sink."""

    def __init__(self, storage, sink: Optional[NotificationSink] = None):
        self.storage = storage
        self.sink = sink

    def notify(
        self, user_id: str, notification_type: str, data: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """Create a notification for one user. Returns None on failure."""
        try:
            notification = Notification.build(user_id, notification_type, data)
            self.storage.save_notification(notification)
        except Exception as e:
            logger.warning(
                f"Notification failed | user={user_id} | type={notification_type} | error={e}"
            )
            return None

        if self.sink is not None:
            try:
                self.sink.enqueue({"kind": "notification", **notification.to_dict()})
            except Exception as e:
                logger.warning(f"Notification sink failed | id={notification.id} | error={e}")
        return notification

    def notify_many(
        self,
        user_ids: Iterable[str],
        notification_type: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[Notification]:
        sent = []
        for user_id in user_ids:
            notification = self.notify(user_id, notification_type, data)
            if notification is not None:
                sent.append(notification)
        return sent

    def notify_admins(
        self, notification_type: str, data: Optional[Dict[str, Any]] = None
    ) -> List[Notification]:
        try:
            admins = self.storage.list_users(role="admin")
        except Exception as e:
            logger.warning(f"Admin lookup for notification failed | error={e}")
            return []
        return self.notify_many((a.id for a in admins), notification_type, data)

    def audit(
        self,
        action: str,
        actor: Optional[Actor] = None,
        severity: str = AuditSeverity.INFO.value,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditRecord]:
        """Append an audit record. Returns None on failure."""
        try:
            record = AuditRecord(
                id=str(uuid.uuid4()),
                action=action,
                severity=severity,
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                target_type=target_type,
                target_id=target_id,
                description=description,
                metadata=dict(metadata or {}),
                created_at=datetime.now(timezone.utc),
            )
            self.storage.save_audit_record(record)
        except Exception as e:
            logger.error(f"Audit write failed | action={action} | target={target_id} | error={e}")
            return None
        return record

    def audit_job(
        self,
        actor: Optional[Actor],
        action: str,
        job_id: str,
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditRecord]:
        return self.audit(
            f"job.{action}",
            actor=actor,
            target_type="job",
            target_id=job_id,
            description=description,
            metadata=metadata,
        )

    def audit_payment(
        self,
        actor: Optional[Actor],
        action: str,
        target_id: str,
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditRecord]:
        # Money leaving the platform is always worth a second look
        severity = (
            AuditSeverity.WARNING.value if "payout" in action else AuditSeverity.INFO.value
        )
        return self.audit(
            f"payment.{action}",
            actor=actor,
            severity=severity,
            target_type="payment",
            target_id=target_id,
            description=description,
            metadata=metadata,
        )

    def audit_admin(
        self,
        actor: Optional[Actor],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditRecord]:
        return self.audit(
            "admin.action",
            actor=actor,
            severity=AuditSeverity.WARNING.value,
            target_type=target_type,
            target_id=target_id,
            description=description,
            metadata={"action": action, **(metadata or {})},
        )

    def emit(
        self,
        kind: str,
        payload: Dict[str, Any],
        actor: Optional[Actor] = None,
    ) -> None:
        """Notify the listed recipients and record the event.

        ``payload`` may carry ``user_ids`` (recipients), ``notification_type``,
        ``data``, ``target_type`` and ``target_id``.
        """
        try:
            notification_type = payload.get("notification_type")
            data = payload.get("data") or {}
            if notification_type:
                self.notify_many(payload.get("user_ids") or [], notification_type, data)
            self.audit(
                kind,
                actor=actor,
                severity=payload.get("severity", AuditSeverity.INFO.value),
                target_type=payload.get("target_type"),
                target_id=payload.get("target_id"),
                description=payload.get("description", ""),
                metadata=data,
            )
        except Exception as e:
            logger.error(f"Event emit failed | kind={kind} | error={e}")


def list_notifications(storage, user_id: str, unread_only: bool = False, limit: int = 50):
    return storage.list_notifications(user_id, unread_only=unread_only, limit=limit)


def mark_read(storage, user_id: str, notification_ids: Optional[List[str]] = None) -> int:
    return storage.mark_notifications_read(user_id, notification_ids)


def list_audit_log(
    storage,
    limit: int = 50,
    offset: int = 0,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    **filters: Optional[str],
):
    """Return one page of audit records, newest first, and the filtered total.

    ``filters`` are exact matches on action, severity, actor_id, target_type
    and target_id. Naive bounds are taken as UTC.
    """
    if since is not None and since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    if until is not None and until.tzinfo is None:
        until = until.replace(tzinfo=timezone.utc)
    if since is not None and until is not None and since > until:
        raise ValidationError("startDate", "startDate must not be after endDate")
    records = storage.list_audit_records(
        since=since, until=until, limit=limit, offset=offset, **filters
    )
    total = storage.count_audit_records(since=since, until=until, **filters)
    return records, total
