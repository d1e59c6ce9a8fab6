"""Notification inbox routes."""

from fastapi import APIRouter, Query, Request

from nimmit.notifications import list_notifications, mark_read

from ..auth import CurrentUser
from ..database import Storage
from ..rate_limit import limiter
from ..responses import ApiModel, success

router = APIRouter(prefix="/notifications", tags=["notifications"])


class MarkReadRequest(ApiModel):
    notification_ids: list[str] | None = None  # None marks everything read


@router.get("")
@limiter.limit("60/minute")
async def get_notifications(
    request: Request,
    user: CurrentUser,
    storage: Storage,
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(50, ge=1, le=200),
):
    items = list_notifications(storage, user.id, unread_only=unread_only, limit=limit)
    return success(
        {
            "notifications": [n.to_dict() for n in items],
            "unread_count": sum(1 for n in items if not n.read),
        }
    )


@router.post("/read")
@limiter.limit("60/minute")
async def mark_notifications_read(
    request: Request,
    body: MarkReadRequest,
    user: CurrentUser,
    storage: Storage,
):
    updated = mark_read(storage, user.id, body.notification_ids)
    return success({"updated": updated})
