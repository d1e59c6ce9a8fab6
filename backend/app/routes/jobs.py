"""Job routes.

Direct job creation, listing, and every lifecycle action on a single job.
"""

from typing import Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import Field

from nimmit.errors import ValidationError
from nimmit.jobs.models import JobFile

from ..auth import AdminUser, CurrentUser
from ..database import Jobs
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..responses import ApiModel, success

logger = get_logger("nimmit.api.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request Models
# =============================================================================

JobStatusName = Literal[
    "pending", "assigned", "in_progress", "review", "revision", "completed", "cancelled"
]


class JobCreate(ApiModel):
    """Request to create a job directly, without a briefing."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=10000)
    category: Literal["video", "design", "web", "social", "admin", "other"]
    priority: Literal["standard", "priority", "rush"] = "standard"
    estimated_hours: float | None = Field(None, gt=0)


class FileRef(ApiModel):
    """Uploaded file reference."""

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    size: int = Field(0, ge=0)
    mime_type: str = "application/octet-stream"

    def to_job_file(self) -> JobFile:
        return JobFile(id="", name=self.name, url=self.url, size=self.size, mime_type=self.mime_type)


class JobUpdate(ApiModel):
    """Action on a job.

    ``updateStatus`` carries ``status`` plus ``workerId`` (assignment),
    ``feedback`` (revision), ``deliverables`` (review) or ``reason``
    (cancellation). ``addMessage`` carries ``message``. ``complete`` carries
    ``rating`` and an optional ``feedback``.
    """

    action: Literal["updateStatus", "addMessage", "complete"]
    status: JobStatusName | None = None
    worker_id: str | None = None
    deliverables: list[FileRef] | None = None
    feedback: str | None = Field(None, max_length=2000)
    reason: str | None = Field(None, max_length=2000)
    message: str | None = None
    rating: int | None = None


class ProgressCreate(ApiModel):
    content: str = Field(..., min_length=1, max_length=5000)
    percentage: int | None = Field(None, ge=0, le=100)


class FlagCreate(ApiModel):
    reason: str = Field(..., min_length=1, max_length=2000)


# =============================================================================
# Routes
# =============================================================================


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_job(
    request: Request,
    body: JobCreate,
    user: CurrentUser,
    jobs: Jobs,
):
    """Create a pending job and charge the client's credits."""
    logger.info(f"POST /jobs | client={user.id} | title={body.title[:50]}")
    job, cost = jobs.create_job(
        user,
        title=body.title,
        description=body.description,
        category=body.category,
        priority=body.priority,
        estimated_hours=body.estimated_hours,
    )
    return success(
        {"job": job.to_dict(), "cost": cost.to_dict()},
        message=f"Job created, {cost.total} credits charged",
    )


@router.get("")
@limiter.limit("60/minute")
async def list_jobs(
    request: Request,
    user: CurrentUser,
    jobs: Jobs,
    status_filter: JobStatusName | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """
    List jobs visible to the caller.

    Clients see the jobs they posted, workers the jobs assigned to them and
    admins every job.
    """
    logger.info(f"GET /jobs | user={user.id} | status={status_filter} | page={page}")
    items, total = jobs.list_jobs(user, status=status_filter, page=page, limit=limit)
    return success(
        {
            "jobs": [j.to_dict() for j in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }
    )


@router.get("/{job_id}")
@limiter.limit("60/minute")
async def get_job(request: Request, job_id: str, user: CurrentUser, jobs: Jobs):
    """Get details of a specific job."""
    return success(jobs.get_job(job_id, user).to_dict())


@router.get("/{job_id}/transitions")
@limiter.limit("60/minute")
async def get_job_transitions(request: Request, job_id: str, user: CurrentUser, jobs: Jobs):
    """Status history of a job, oldest first."""
    return success([t.to_dict() for t in jobs.get_transitions(job_id, user)])


@router.patch("/{job_id}")
@limiter.limit("30/minute")
async def update_job(
    request: Request,
    job_id: str,
    body: JobUpdate,
    user: CurrentUser,
    jobs: Jobs,
):
    """Apply a lifecycle action to a job."""
    logger.info(
        f"PATCH /jobs/{job_id} | user={user.id} | action={body.action} | status={body.status}"
    )

    if body.action == "addMessage":
        job = jobs.add_message(job_id, user, body.message or "")
        return success(job.to_dict(), message="Message sent")

    if body.action == "complete":
        job = jobs.complete_job(job_id, user, body.rating, body.feedback)
        return success(job.to_dict(), message="Job completed")

    if body.status is None:
        raise ValidationError("status", "Status is required for updateStatus")
    deliverables = [d.to_job_file() for d in body.deliverables] if body.deliverables else None
    job = jobs.update_status(
        job_id,
        user,
        body.status,
        worker_id=body.worker_id,
        deliverables=deliverables,
        rating=body.rating,
        feedback=body.feedback,
        reason=body.reason,
    )
    return success(job.to_dict(), message=f"Job moved to {job.status}")


@router.get("/{job_id}/progress")
@limiter.limit("60/minute")
async def list_progress(request: Request, job_id: str, user: CurrentUser, jobs: Jobs):
    return success([p.to_dict() for p in jobs.get_progress_updates(job_id, user)])


@router.post("/{job_id}/progress", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def add_progress(
    request: Request,
    job_id: str,
    body: ProgressCreate,
    user: CurrentUser,
    jobs: Jobs,
):
    """Post a progress update on a job the caller is working on."""
    job = jobs.add_progress_update(job_id, user, body.content, body.percentage)
    return success(job.progress_updates[-1].to_dict(), message="Progress update added")


@router.post("/{job_id}/flag")
@limiter.limit("10/minute")
async def flag_job(
    request: Request,
    job_id: str,
    body: FlagCreate,
    user: CurrentUser,
    jobs: Jobs,
):
    """Raise a confidence flag so an admin takes a look."""
    logger.info(f"POST /jobs/{job_id}/flag | worker={user.id}")
    job = jobs.flag_job(job_id, user, body.reason)
    return success(job.to_dict(), message="Job flagged for admin review")


@router.delete("/{job_id}/flag")
@limiter.limit("30/minute")
async def resolve_flag(request: Request, job_id: str, admin: AdminUser, jobs: Jobs):
    job = jobs.resolve_flag(job_id, admin)
    return success(job.to_dict(), message="Flag resolved")
