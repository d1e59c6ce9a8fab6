"""Worker payouts.

Models:
- PayoutRecord: One payout attempt and the jobs it covers
- BatchResult / PayoutResult: Outcome of a payout batch

Service:
- PayoutProcessor: Batch payouts, listings, manual settlement and repair
"""

from nimmit.payouts.gateway import AccountStatus, Balance, PayoutGateway, Transfer
from nimmit.payouts.models import (
    BatchResult,
    BatchSummary,
    OPEN_PAYOUT_STATUSES,
    EarningsDrift,
    PayoutListing,
    PayoutRecord,
    PayoutRecordStatus,
    PayoutResult,
    PendingPayout,
    PlatformBalance,
)
from nimmit.payouts.service import (
    ACCOUNT_NOT_READY,
    PAYOUT_IN_PROGRESS,
    PayoutProcessor,
    idempotency_key,
)

__all__ = [
    "ACCOUNT_NOT_READY",
    "OPEN_PAYOUT_STATUSES",
    "PAYOUT_IN_PROGRESS",
    "AccountStatus",
    "Balance",
    "BatchResult",
    "BatchSummary",
    "EarningsDrift",
    "PayoutGateway",
    "PayoutListing",
    "PayoutProcessor",
    "PayoutRecord",
    "PayoutRecordStatus",
    "PayoutResult",
    "PendingPayout",
    "PlatformBalance",
    "Transfer",
    "idempotency_key",
]
