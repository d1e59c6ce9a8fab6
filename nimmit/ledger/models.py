"""Credit ledger data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CreditCharge:
    """Split of a job cost across a client's two balances.

    Rollover credits are always consumed first.
    """

    credits_to_deduct: int
    rollover_to_deduct: int

    def __post_init__(self):
        if self.credits_to_deduct < 0 or self.rollover_to_deduct < 0:
            raise ValueError("Deductions cannot be negative")

    @property
    def total(self) -> int:
        return self.credits_to_deduct + self.rollover_to_deduct

    def to_dict(self) -> dict:
        return {
            "credits_to_deduct": self.credits_to_deduct,
            "rollover_to_deduct": self.rollover_to_deduct,
        }
