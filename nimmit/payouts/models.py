"""Payout data models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class PayoutRecordStatus(str, Enum):
    # Written before the transfer call, its id is the idempotency key
    INITIATED = "initiated"
    # Money has left the platform but jobs are not marked yet
    TRANSFERRED = "transferred"
    SETTLED = "settled"
    FAILED = "failed"


OPEN_PAYOUT_STATUSES = frozenset(
    {PayoutRecordStatus.INITIATED.value, PayoutRecordStatus.TRANSFERRED.value}
)


@dataclass
class PayoutRecord:
    """One payout attempt for one worker.

    The row is written as ``initiated`` before the processor is called and
    its id goes into the idempotency key, so a retry of the same attempt
    can never become a second transfer while a new attempt always does.
    ``job_ids`` is the snapshot of unpaid jobs the payout covers, so that
    an interrupted settlement can be completed later.
    """

    id: str
    worker_id: str
    amount: Decimal
    idempotency_key: str
    job_ids: List[str] = field(default_factory=list)
    status: str = PayoutRecordStatus.INITIATED.value
    transfer_id: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, PayoutRecordStatus):
            self.status = self.status.value
        self.amount = Decimal(str(self.amount))
        if self.amount <= 0:
            raise ValueError("Payout amount must be positive")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_PAYOUT_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "worker_id": self.worker_id,
            "amount": str(self.amount),
            "idempotency_key": self.idempotency_key,
            "job_ids": list(self.job_ids),
            "status": self.status,
            "transfer_id": self.transfer_id,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
        }


@dataclass
class PayoutResult:
    """Outcome of one worker's payout attempt."""

    worker_id: str
    worker_email: str
    amount: Decimal
    success: bool
    transfer_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "worker_id": self.worker_id,
            "worker_email": self.worker_email,
            "amount": float(self.amount),
            "success": self.success,
        }
        if self.transfer_id:
            result["transfer_id"] = self.transfer_id
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class BatchSummary:
    total_paid: Decimal
    success_count: int
    fail_count: int
    processed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_paid": float(self.total_paid),
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "processed_at": self.processed_at.isoformat(),
        }


@dataclass
class BatchResult:
    results: List[PayoutResult]
    summary: BatchSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
        }


@dataclass
class PendingPayout:
    """A worker who is ready to be paid."""

    worker_id: str
    worker_name: str
    worker_email: str
    payout_account_id: Optional[str]
    pending_earnings: Decimal
    job_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "worker_email": self.worker_email,
            "payout_account_id": self.payout_account_id,
            "pending_earnings": float(self.pending_earnings),
            "job_count": self.job_count,
        }


@dataclass
class PlatformBalance:
    """Balance on the platform account, in major units."""

    available: Decimal = Decimal("0")
    pending: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {"available": float(self.available), "pending": float(self.pending)}


@dataclass
class PayoutListing:
    platform_balance: PlatformBalance
    pending_payouts: List[PendingPayout]
    total_pending_amount: Decimal
    workers_needing_setup: List[PendingPayout]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform_balance": self.platform_balance.to_dict(),
            "pending_payouts": [p.to_dict() for p in self.pending_payouts],
            "total_pending_amount": float(self.total_pending_amount),
            "workers_needing_setup": [w.to_dict() for w in self.workers_needing_setup],
        }


@dataclass
class EarningsDrift:
    """Mismatch between stored pending earnings and unpaid job totals."""

    worker_id: str
    stored: Decimal
    expected: Decimal
    corrected: bool = False

    @property
    def difference(self) -> Decimal:
        return self.expected - self.stored

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "stored": float(self.stored),
            "expected": float(self.expected),
            "difference": float(self.difference),
            "corrected": self.corrected,
        }
