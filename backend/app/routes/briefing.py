"""Briefing submission route.

Turns a completed briefing conversation into a paid job.
"""

from fastapi import APIRouter, Request, status
from pydantic import Field

from ..auth import CurrentUser
from ..database import Jobs
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..responses import ApiModel, success

logger = get_logger("nimmit.api.briefing")
router = APIRouter(prefix="/briefing", tags=["briefing"])


class BriefingSubmit(ApiModel):
    briefing_id: str = Field(..., min_length=1)


@router.post("/submit", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def submit_briefing(
    request: Request,
    body: BriefingSubmit,
    user: CurrentUser,
    jobs: Jobs,
):
    """
    Create a job from the briefing's extracted brief.

    The credit debit, the job insert and closing the briefing happen together.
    Answers 402 with the shortfall when the client cannot afford the job.
    """
    logger.info(f"POST /briefing/submit | client={user.id} | briefing={body.briefing_id}")
    job, cost = jobs.submit_briefing(user, body.briefing_id)
    return success(
        {
            "job_id": job.id,
            "title": job.title,
            "category": job.category,
            "priority": job.priority,
            "credits_charged": cost.total,
        },
        message="Job created from briefing",
    )
