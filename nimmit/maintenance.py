"""Scheduled maintenance tasks.

These are meant to be triggered periodically (cron or the admin scheduled
endpoint). Each task is idempotent and returns counters describing what it
did.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from nimmit.briefings import BriefingStatus
from nimmit.config import NimmitConfig
from nimmit.jobs.models import ACTIVE_STATUSES, ConfidenceFlag, Job, JobStatus
from nimmit.users import UserRole

logger = logging.getLogger(__name__)

_PAGE_SIZE = 200


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MaintenanceService:
    """Periodic housekeeping over jobs, workers and briefings."""

    def __init__(self, storage, config: Optional[NimmitConfig] = None, payouts=None):
        self.storage = storage
        self.config = config or NimmitConfig()
        self.payouts = payouts

    def _all_jobs(self, **filters) -> List[Job]:
        jobs: List[Job] = []
        offset = 0
        while True:
            page, total = self.storage.list_jobs(limit=_PAGE_SIZE, offset=offset, **filters)
            jobs.extend(page)
            offset += len(page)
            if not page or offset >= total:
                return jobs

    def aggregate_worker_ratings(self) -> Dict[str, int]:
        """Recompute each active worker's average rating from completed jobs."""
        processed = updated = 0
        for worker in self.storage.list_users(role=UserRole.WORKER.value):
            if not worker.is_active:
                continue
            processed += 1
            rated = [
                job.rating
                for job in self._all_jobs(worker_id=worker.id, status=JobStatus.COMPLETED.value)
                if job.rating
            ]
            if not rated:
                continue
            avg = round(sum(rated) / len(rated), 1)
            if abs(avg - worker.worker.avg_rating) > 0.01:
                self.storage.update_worker_profile(
                    worker.id, {"avg_rating": avg, "completed_jobs": len(rated)}
                )
                updated += 1
        logger.info(f"Rating aggregation complete | processed={processed} | updated={updated}")
        return {"processed": processed, "updated": updated}

    def cleanup_abandoned_briefings(self) -> Dict[str, int]:
        """Mark briefings idle for too long as abandoned."""
        cutoff = _utc_now() - timedelta(hours=self.config.abandoned_briefing_hours)
        cleaned = 0
        for briefing in self.storage.list_briefings(
            status=BriefingStatus.ACTIVE.value, updated_before=cutoff
        ):
            if self.storage.update_briefing(
                briefing.id, {"status": BriefingStatus.ABANDONED.value}
            ):
                cleaned += 1
        logger.info(f"Briefing cleanup complete | cleaned={cleaned}")
        return {"cleaned": cleaned}

    def flag_stale_jobs(self) -> Dict[str, int]:
        """Flag in-progress jobs that started too long ago."""
        cutoff = _utc_now() - timedelta(days=self.config.stale_job_days)
        reason = f"Job has been in progress for more than {self.config.stale_job_days} days"
        flagged = 0
        for job in self._all_jobs(status=JobStatus.IN_PROGRESS.value):
            if job.started_at is None or job.started_at >= cutoff:
                continue
            if job.confidence_flag is not None and job.confidence_flag.flagged:
                continue
            flag = ConfidenceFlag(flagged=True, reason=reason, flagged_at=_utc_now())
            updated, _ = self.storage.update_job(
                job.id, job.status, job.version, {"confidence_flag": flag}
            )
            if updated is not None:
                flagged += 1
        if flagged:
            logger.info(f"Flagged stale jobs | flagged={flagged}")
        return {"flagged": flagged}

    def sync_worker_job_counts(self) -> Dict[str, int]:
        """Reset each worker's current job count to their actual active jobs."""
        active: Dict[str, int] = {}
        for status in ACTIVE_STATUSES:
            for job in self._all_jobs(status=status):
                if job.worker_id:
                    active[job.worker_id] = active.get(job.worker_id, 0) + 1

        synced = 0
        for worker in self.storage.list_users(role=UserRole.WORKER.value):
            actual = active.get(worker.id, 0)
            if worker.worker.current_job_count != actual:
                self.storage.update_worker_profile(worker.id, {"current_job_count": actual})
                synced += 1
                logger.info(
                    f"Synced job count | worker={worker.id} "
                    f"| {worker.worker.current_job_count} -> {actual}"
                )
        return {"synced": synced}

    def reconcile_earnings(self, dry_run: bool = False) -> Dict[str, Any]:
        if self.payouts is None:
            raise RuntimeError("Earnings reconciliation needs a payout processor")
        drifts = self.payouts.reconcile_pending_earnings(dry_run=dry_run)
        return {
            "drifted": len(drifts),
            "corrected": sum(1 for d in drifts if d.corrected),
            "total_difference": float(sum((d.difference for d in drifts), Decimal("0"))),
        }

    def tasks(self) -> Dict[str, Callable[[], Dict[str, Any]]]:
        tasks: Dict[str, Callable[[], Dict[str, Any]]] = {
            "ratings": self.aggregate_worker_ratings,
            "briefings": self.cleanup_abandoned_briefings,
            "staleJobs": self.flag_stale_jobs,
            "jobCounts": self.sync_worker_job_counts,
        }
        if self.payouts is not None:
            tasks["earnings"] = self.reconcile_earnings
        return tasks

    def run(self, task: str) -> Dict[str, Any]:
        tasks = self.tasks()
        if task not in tasks:
            raise KeyError(task)
        return tasks[task]()

    def run_all(self) -> Dict[str, Any]:
        """Run every task. A failing task is reported and the rest still run."""
        results: Dict[str, Any] = {}
        for name, task in self.tasks().items():
            try:
                results[name] = task()
            except Exception as e:
                logger.error(f"Scheduled task failed | task={name} | error={e}")
                results[name] = {"error": str(e)}
        return results
