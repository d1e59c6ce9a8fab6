"""Admin audit log route."""

from datetime import datetime

from fastapi import APIRouter, Query, Request

from nimmit.notifications import AuditSeverity, list_audit_log

from ..auth import AdminUser
from ..database import Storage
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..responses import success

logger = get_logger("nimmit.api.audit")
router = APIRouter(prefix="/admin/audit", tags=["admin", "audit"])


@router.get("")
@limiter.limit("30/minute")
async def get_audit_log(
    request: Request,
    admin: AdminUser,
    storage: Storage,
    action: str | None = Query(None),
    severity: AuditSeverity | None = Query(None),
    actor_id: str | None = Query(None, alias="actorId"),
    target_type: str | None = Query(None, alias="targetType"),
    target_id: str | None = Query(None, alias="targetId"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Filtered audit records, newest first."""
    logger.info(f"GET /admin/audit | admin={admin.id} | limit={limit} | offset={offset}")
    records, total = list_audit_log(
        storage,
        limit=limit,
        offset=offset,
        since=start_date,
        until=end_date,
        action=action,
        severity=severity.value if severity else None,
        actor_id=actor_id,
        target_type=target_type,
        target_id=target_id,
    )
    return success(
        {
            "logs": [r.to_dict() for r in records],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + len(records) < total,
            },
        }
    )
