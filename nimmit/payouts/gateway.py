"""Payment processor contract.

The processor moves money to connected worker accounts. Amounts cross this
boundary in minor units (cents).
"""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Transfer:
    transfer_id: str
    amount_minor_units: int
    destination: str


@dataclass(frozen=True)
class AccountStatus:
    payouts_enabled: bool
    details_submitted: bool = False


@dataclass(frozen=True)
class Balance:
    """Platform balance in minor units."""

    available: int = 0
    pending: int = 0


class PayoutGateway(Protocol):
    """Transfer capability of the payment processor."""

    def transfer(
        self,
        destination: str,
        amount_minor_units: int,
        reference: str,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> Transfer:
        """Send funds to a connected account.

        Raises:
            ExternalServiceError: If the processor rejects the transfer
        """
        ...

    def account_status(self, destination: str) -> AccountStatus:
        ...

    def platform_balance(self) -> Balance:
        ...
