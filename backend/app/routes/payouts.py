"""Admin payout routes.

Listing of workers ready to be paid, the unpaid earnings report (JSON or
CSV), the batch payout itself and manual settlement/repair actions.
"""

import asyncio
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response
from pydantic import Field

from ..auth import AdminUser
from ..database import Payouts, Storage
from ..logging_config import get_logger
from ..rate_limit import limiter
from ..responses import ApiModel, success

logger = get_logger("nimmit.api.payouts")
router = APIRouter(prefix="/admin/payouts", tags=["admin", "payouts"])


# =============================================================================
# Request Models
# =============================================================================


class ProcessPayoutsRequest(ApiModel):
    worker_ids: list[str] | None = None


class MarkPaidRequest(ApiModel):
    job_ids: list[str] | None = None
    worker_id: str | None = None


class ReconcileRequest(ApiModel):
    worker_ids: list[str] | None = None
    dry_run: bool = Field(True, description="Report drift without correcting it")


# =============================================================================
# Routes
# =============================================================================


@router.get("")
@limiter.limit("30/minute")
async def earnings_report(
    request: Request,
    admin: AdminUser,
    payouts: Payouts,
    format: Literal["json", "csv"] = Query("json"),
):
    """Unpaid completed jobs grouped by worker."""
    logger.info(f"GET /admin/payouts | admin={admin.id} | format={format}")
    if format == "csv":
        filename = f"payouts-{datetime.now(timezone.utc).date().isoformat()}.csv"
        return Response(
            content=payouts.earnings_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return success(payouts.earnings_report().to_dict())


@router.post("")
@limiter.limit("10/minute")
async def mark_jobs_paid(
    request: Request,
    body: MarkPaidRequest,
    admin: AdminUser,
    payouts: Payouts,
):
    """Mark jobs as paid after a transfer made outside the batch."""
    logger.info(f"POST /admin/payouts | admin={admin.id} | worker={body.worker_id}")
    marked = payouts.mark_jobs_paid(job_ids=body.job_ids, worker_id=body.worker_id, actor=admin)
    return success({"marked": marked}, message=f"Marked {marked} jobs as paid")


@router.get("/process")
@limiter.limit("30/minute")
async def list_pending_payouts(request: Request, admin: AdminUser, payouts: Payouts):
    """Workers ready for payout, with the platform balance."""
    listing = await asyncio.to_thread(payouts.list_pending_payouts)
    return success(listing.to_dict())


@router.post("/process")
@limiter.limit("5/minute")
async def process_payouts(
    request: Request,
    body: ProcessPayoutsRequest,
    admin: AdminUser,
    payouts: Payouts,
):
    """
    Pay out pending earnings.

    Runs in a worker thread so the batch finishes even if the client gives up
    on the request. Per-worker failures are reported in ``results``.
    """
    logger.info(
        f"POST /admin/payouts/process | admin={admin.id} "
        f"| workers={len(body.worker_ids) if body.worker_ids else 'all'}"
    )
    result = await asyncio.to_thread(payouts.process_payouts, body.worker_ids, admin)
    summary = result.summary
    return success(
        result.to_dict(),
        message=f"Processed {summary.success_count} payouts, {summary.fail_count} failed",
    )


@router.post("/reconcile")
@limiter.limit("5/minute")
async def reconcile_earnings(
    request: Request,
    body: ReconcileRequest,
    admin: AdminUser,
    payouts: Payouts,
):
    """Compare stored pending earnings against unpaid jobs and optionally fix them."""
    drifts = payouts.reconcile_pending_earnings(worker_ids=body.worker_ids, dry_run=body.dry_run)
    return success(
        {"dry_run": body.dry_run, "drifts": [d.to_dict() for d in drifts]},
        message=f"{len(drifts)} workers with drifted earnings",
    )


@router.get("/records")
@limiter.limit("30/minute")
async def list_payout_records(
    request: Request,
    admin: AdminUser,
    storage: Storage,
    worker_id: str | None = Query(None, alias="workerId"),
    record_status: Literal["transferred", "settled"] | None = Query(None, alias="status"),
):
    """Payout ledger rows, oldest first."""
    records = storage.list_payout_records(worker_id=worker_id, status=record_status)
    return success([r.to_dict() for r in records])
