"""Admin review of worker applications."""

from typing import Literal

from fastapi import APIRouter, Query, Request
from pydantic import Field

from ..auth import AdminUser
from ..database import Applications
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..responses import ApiModel, success

logger = get_logger("nimmit.api.applications")
router = APIRouter(prefix="/admin/applications", tags=["admin", "applications"])

ApplicationStatusName = Literal["pending", "approved", "rejected"]


class ApplicationReview(ApiModel):
    application_id: str = Field(..., min_length=1)
    status: Literal["approved", "rejected"]


@router.get("")
@limiter.limit("30/minute")
async def list_applications(
    request: Request,
    admin: AdminUser,
    applications: Applications,
    status_filter: ApplicationStatusName | None = Query(None, alias="status"),
):
    """Applications, newest first, with counts per status."""
    listing = applications.list_applications(status_filter)
    return success(
        {
            "applications": [a.to_dict() for a in listing["applications"]],
            "stats": listing["stats"],
        }
    )


@router.patch("")
@limiter.limit("20/minute")
async def review_application(
    request: Request,
    body: ApplicationReview,
    admin: AdminUser,
    applications: Applications,
):
    """
    Approve or reject a pending application.

    Approval creates the worker account; its temporary password is returned
    once so the admin can hand it over.
    """
    logger.info(
        f"PATCH /admin/applications | admin={admin.id} | application={body.application_id} "
        f"| status={body.status}"
    )
    outcome = applications.review_application(body.application_id, body.status, admin)
    data = {"application": outcome.application.to_dict(), "created_user": None}
    if outcome.user is not None:
        data["created_user"] = {
            "id": outcome.user.id,
            "email": outcome.user.email,
            "name": outcome.user.full_name,
            "temporary_password": outcome.temporary_password,
        }
        return success(data, message="Application approved and worker account created")
    return success(data, message="Application rejected")
