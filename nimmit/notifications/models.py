"""Notification and audit record models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class NotificationType(str, Enum):
    JOB_ASSIGNED = "job_assigned"
    JOB_STARTED = "job_started"
    JOB_SUBMITTED = "job_submitted"
    JOB_COMPLETED = "job_completed"
    JOB_REVISION = "job_revision"
    NEW_MESSAGE = "new_message"
    PAYMENT_RECEIVED = "payment_received"
    WORKER_FLAGGED = "worker_flagged"
    WORKER_WELCOME = "worker_welcome"
    SYSTEM = "system"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


# (title, message) per type; placeholders are filled from the notification data
NOTIFICATION_TEMPLATES: Dict[str, tuple] = {
    "job_assigned": ("New Job Assigned", 'You have been assigned to "{jobTitle}"'),
    "job_started": ("Work Started", 'Work has started on "{jobTitle}"'),
    "job_submitted": ("Ready for Review", '"{jobTitle}" has been submitted for your review'),
    "job_completed": ("Job Completed", '"{jobTitle}" has been approved and completed'),
    "job_revision": ("Revision Requested", 'A revision was requested for "{jobTitle}"'),
    "new_message": ("New Message", '{senderName} sent a message on "{jobTitle}"'),
    "payment_received": ("Payment Sent", "A payout of ${amount} is on its way"),
    "worker_flagged": ("Job Flagged", 'A worker flagged "{jobTitle}": {message}'),
    "worker_welcome": ("Welcome to Nimmit", "Your application was approved. {message}"),
    "system": ("Notice", "{message}"),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _TemplateData(dict):
    """Leaves unknown placeholders empty instead of raising."""

    def __missing__(self, key):
        return ""


def render_template(notification_type: str, data: Optional[Dict[str, Any]] = None):
    """Render the (title, message) pair for a notification type."""
    title, message = NOTIFICATION_TEMPLATES.get(
        notification_type, NOTIFICATION_TEMPLATES["system"]
    )
    values = _TemplateData(data or {})
    return title.format_map(values), message.format_map(values)


@dataclass
class Notification:
    id: str
    user_id: str
    type: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    read: bool = False
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.type, NotificationType):
            self.type = self.type.value
        if self.type not in {t.value for t in NotificationType}:
            raise ValueError(f"Invalid notification type: {self.type}")

    @classmethod
    def build(
        cls, user_id: str, notification_type: str, data: Optional[Dict[str, Any]] = None
    ) -> "Notification":
        if isinstance(notification_type, NotificationType):
            notification_type = notification_type.value
        title, message = render_template(notification_type, data)
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=dict(data or {}),
            created_at=_utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "read": self.read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class AuditRecord:
    """Append-only record of a security or money relevant action."""

    id: str
    action: str
    severity: str = AuditSeverity.INFO.value
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.severity, AuditSeverity):
            self.severity = self.severity.value
        if self.severity not in {s.value for s in AuditSeverity}:
            raise ValueError(f"Invalid severity: {self.severity}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action,
            "severity": self.severity,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "description": self.description,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
