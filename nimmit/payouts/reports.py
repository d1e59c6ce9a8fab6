"""Unpaid earnings reports."""

import csv
import io
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

from nimmit.pricing import CENT

CSV_HEADER = ["Worker ID", "Email", "Name", "Pending Earnings (USD)", "Job Count"]


@dataclass
class UnpaidJob:
    job_id: str
    title: str
    earnings: Decimal
    completed_at: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "title": self.title,
            "earnings": float(self.earnings),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class WorkerEarnings:
    worker_id: str
    email: str
    name: str
    pending_earnings: Decimal = Decimal("0")
    jobs: List[UnpaidJob] = field(default_factory=list)

    @property
    def job_count(self) -> int:
        return len(self.jobs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "email": self.email,
            "name": self.name,
            "pending_earnings": float(self.pending_earnings),
            "job_count": self.job_count,
            "jobs": [j.to_dict() for j in self.jobs],
        }


@dataclass
class EarningsReport:
    workers: List[WorkerEarnings]

    @property
    def total_pending(self) -> Decimal:
        return sum((w.pending_earnings for w in self.workers), Decimal("0"))

    @property
    def total_jobs(self) -> int:
        return sum(w.job_count for w in self.workers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workers": [w.to_dict() for w in self.workers],
            "summary": {
                "total_workers": len(self.workers),
                "total_pending_earnings": float(self.total_pending),
                "total_jobs": self.total_jobs,
            },
        }


def build_earnings_report(unpaid_jobs, users_by_id: Dict[str, Any]) -> EarningsReport:
    """Group unpaid completed jobs by worker, largest balance first."""
    grouped: "OrderedDict[str, WorkerEarnings]" = OrderedDict()
    for job in unpaid_jobs:
        if not job.worker_id:
            continue
        entry = grouped.get(job.worker_id)
        if entry is None:
            user = users_by_id.get(job.worker_id)
            entry = WorkerEarnings(
                worker_id=job.worker_id,
                email=user.email if user else "",
                name=user.full_name if user else "",
            )
            grouped[job.worker_id] = entry
        entry.pending_earnings += job.worker_earnings
        entry.jobs.append(
            UnpaidJob(
                job_id=job.id,
                title=job.title,
                earnings=job.worker_earnings,
                completed_at=job.completed_at,
            )
        )
    workers = sorted(grouped.values(), key=lambda w: w.pending_earnings, reverse=True)
    return EarningsReport(workers=workers)


def render_csv(report: EarningsReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for worker in report.workers:
        writer.writerow(
            [
                worker.worker_id,
                worker.email,
                worker.name,
                str(worker.pending_earnings.quantize(CENT)),
                worker.job_count,
            ]
        )
    writer.writerow(["", "", "TOTAL", str(report.total_pending.quantize(CENT)), report.total_jobs])
    return buffer.getvalue()
