"""Notifications and audit trail."""

from nimmit.notifications.emitter import (
    NotificationEmitter,
    NotificationSink,
    list_audit_log,
    list_notifications,
    mark_read,
)
from nimmit.notifications.models import (
    NOTIFICATION_TEMPLATES,
    AuditRecord,
    AuditSeverity,
    Notification,
    NotificationType,
    render_template,
)

__all__ = [
    "AuditRecord",
    "AuditSeverity",
    "NOTIFICATION_TEMPLATES",
    "Notification",
    "NotificationEmitter",
    "NotificationSink",
    "NotificationType",
    "list_audit_log",
    "list_notifications",
    "mark_read",
    "render_template",
]
