"""Credit pricing and worker earnings."""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from nimmit.config import NimmitConfig

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CreditCost:
    """Credit price of one job."""

    base: int
    multiplier: Decimal
    total: int
    breakdown: str

    def to_dict(self) -> dict:
        return {
            "base": self.base,
            "multiplier": float(self.multiplier),
            "total": self.total,
            "breakdown": self.breakdown,
        }


def calculate_job_cost(
    category: str, priority: str, config: Optional[NimmitConfig] = None
) -> CreditCost:
    """Price a job from its category and priority.

    Unknown categories fall back to ``other``, unknown priorities to
    ``standard``.
    """
    config = config or NimmitConfig()
    base = config.category_credits.get(category, config.category_credits["other"])
    multiplier = config.priority_multipliers.get(
        priority, config.priority_multipliers["standard"]
    )
    total = math.ceil(base * multiplier)
    return CreditCost(
        base=base,
        multiplier=multiplier,
        total=total,
        breakdown=(
            f"{base} credits ({category}) × {multiplier} ({priority}) = {total} credits"
        ),
    )


def calculate_worker_earnings(
    credits_charged: int, config: Optional[NimmitConfig] = None
) -> Decimal:
    """USD earned by the worker for a job that cost ``credits_charged``."""
    config = config or NimmitConfig()
    gross = Decimal(credits_charged) * config.credit_to_usd
    return (gross * config.worker_payout_percentage).quantize(CENT, rounding=ROUND_HALF_UP)


def due_date_for(
    priority: str, created_at: datetime, config: Optional[NimmitConfig] = None
) -> datetime:
    config = config or NimmitConfig()
    hours = config.priority_sla_hours.get(priority, config.priority_sla_hours["standard"])
    return created_at + timedelta(hours=hours)


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents, rounding half up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
