"""Domain configuration for Nimmit.

Pricing, payout share and housekeeping thresholds live here so that the
services can be exercised with alternative values in tests.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict

DEFAULT_CATEGORY_CREDITS: Dict[str, int] = {
    "video": 3,
    "design": 2,
    "web": 2,
    "social": 1,
    "admin": 1,
    "other": 2,
}

DEFAULT_PRIORITY_MULTIPLIERS: Dict[str, Decimal] = {
    "standard": Decimal("1.0"),
    "priority": Decimal("1.5"),
    "rush": Decimal("2.0"),
}

# Turnaround per priority, in hours
DEFAULT_PRIORITY_SLA_HOURS: Dict[str, int] = {
    "standard": 48,
    "priority": 24,
    "rush": 12,
}


@dataclass
class NimmitConfig:
    """Tunable business parameters."""

    category_credits: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_CREDITS)
    )
    priority_multipliers: Dict[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_PRIORITY_MULTIPLIERS)
    )
    priority_sla_hours: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_PRIORITY_SLA_HOURS)
    )

    # Worker compensation
    credit_to_usd: Decimal = Decimal("10")
    worker_payout_percentage: Decimal = Decimal("0.70")
    payout_currency: str = "usd"
    payout_description_format: str = "Batch payout - {date}"
    payout_reference: str = "batch_payout"

    # Housekeeping
    stale_job_days: int = 7
    abandoned_briefing_hours: int = 24
    default_max_concurrent_jobs: int = 3

    def __post_init__(self):
        if not (Decimal("0") < self.worker_payout_percentage <= Decimal("1")):
            raise ValueError("worker_payout_percentage must be in (0, 1]")
        if self.credit_to_usd <= 0:
            raise ValueError("credit_to_usd must be positive")
        if "other" not in self.category_credits:
            raise ValueError("category_credits must define an 'other' fallback")
        if "standard" not in self.priority_multipliers:
            raise ValueError("priority_multipliers must define a 'standard' fallback")
