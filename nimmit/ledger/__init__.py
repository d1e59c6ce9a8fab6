"""Client credit ledger."""

from nimmit.ledger.models import CreditCharge
from nimmit.ledger.service import MAX_DEBIT_ATTEMPTS, CreditLedger, plan_charge

__all__ = [
    "CreditCharge",
    "CreditLedger",
    "MAX_DEBIT_ATTEMPTS",
    "plan_charge",
]
