"""Scheduled maintenance trigger.

Called periodically by an external scheduler with the ``X-Cron-Secret``
header, or manually by an admin.
"""

import asyncio
from typing import Literal

from fastapi import APIRouter, Request

from ..auth import SchedulerOrAdmin
from ..database import Maintenance
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..responses import ApiModel, success

logger = get_logger("nimmit.api.scheduled")
router = APIRouter(prefix="/admin/scheduled", tags=["admin", "maintenance"])

TaskName = Literal["ratings", "briefings", "staleJobs", "jobCounts", "earnings"]


class ScheduledRequest(ApiModel):
    task: TaskName | None = None  # None runs every task


@router.post("")
@limiter.limit("10/minute")
async def run_scheduled(
    request: Request,
    body: ScheduledRequest,
    caller: SchedulerOrAdmin,
    maintenance: Maintenance,
):
    """Run one maintenance task, or all of them."""
    who = caller.id if caller is not None else "scheduler"
    logger.info(f"POST /admin/scheduled | caller={who} | task={body.task or 'all'}")
    if body.task is None:
        results = await asyncio.to_thread(maintenance.run_all)
    else:
        results = {body.task: await asyncio.to_thread(maintenance.run, body.task)}
    return success({"results": results}, message="Scheduled tasks completed")
