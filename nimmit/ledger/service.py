"""Credit ledger.

Charges clients for jobs. A charge always drains rollover credits before
regular credits, and the debit is a single conditional write on the store:
if a concurrent charge got there first the balance is re-read and the split
re-planned.
"""

import logging
from typing import Optional

from nimmit.config import NimmitConfig
from nimmit.errors import (
    ConflictError,
    InsufficientCreditsError,
    NotFoundError,
    ValidationError,
)
from nimmit.ledger.models import CreditCharge
from nimmit.pricing import CreditCost, calculate_job_cost
from nimmit.users import User

logger = logging.getLogger(__name__)

# Re-plans after losing a race on the balance before giving up
MAX_DEBIT_ATTEMPTS = 3


def plan_charge(client: User, cost: CreditCost) -> CreditCharge:
    """Split ``cost`` across the client's balances without touching them.

    Raises:
        InsufficientCreditsError: If credits plus rollover do not cover it
    """
    if client.client is None:
        raise ValidationError("clientId", "User is not a client")
    profile = client.client
    available = profile.credits + profile.rollover_credits
    if available < cost.total:
        raise InsufficientCreditsError(
            required=cost.total, available=available, breakdown=cost.breakdown
        )
    rollover_to_deduct = min(profile.rollover_credits, cost.total)
    return CreditCharge(
        credits_to_deduct=cost.total - rollover_to_deduct,
        rollover_to_deduct=rollover_to_deduct,
    )


class CreditLedger:
    """Quotes and debits client credits."""

    def __init__(self, storage, config: Optional[NimmitConfig] = None):
        self.storage = storage
        self.config = config or NimmitConfig()

    def quote(self, category: str, priority: str) -> CreditCost:
        return calculate_job_cost(category, priority, self.config)

    def _load_client(self, client_id: str) -> User:
        client = self.storage.get_user(client_id)
        if client is None:
            raise NotFoundError("Client", client_id)
        return client

    def charge_for_job(self, client_id: str, cost: CreditCost) -> CreditCharge:
        """Debit ``cost`` from a client on its own.

        Job submission uses :meth:`charge_and_create` instead so that the
        debit and the job insert land together.
        """
        for _ in range(MAX_DEBIT_ATTEMPTS):
            charge = plan_charge(self._load_client(client_id), cost)
            if self.storage.debit_credits(client_id, charge) is not None:
                logger.info(
                    f"Credits debited | client={client_id} | credits={charge.credits_to_deduct} "
                    f"| rollover={charge.rollover_to_deduct}"
                )
                return charge
            logger.warning(f"Credit debit lost a race, retrying | client={client_id}")

        # Balance kept moving under us; report what is there now
        return self._raise_exhausted(client_id, cost)

    def charge_and_create(self, job, cost: CreditCost, briefing_id: Optional[str] = None):
        """Debit the job's client and persist the job in one storage operation.

        Returns:
            Tuple of (created job, charge)
        """
        for _ in range(MAX_DEBIT_ATTEMPTS):
            charge = plan_charge(self._load_client(job.client_id), cost)
            created = self.storage.create_job_with_charge(job, charge, briefing_id=briefing_id)
            if created is not None:
                logger.info(
                    f"Credits debited | client={job.client_id} | job={job.id} "
                    f"| credits={charge.credits_to_deduct} | rollover={charge.rollover_to_deduct}"
                )
                return created, charge
            logger.warning(f"Job charge lost a race, retrying | client={job.client_id}")

        return self._raise_exhausted(job.client_id, cost)

    def _raise_exhausted(self, client_id: str, cost: CreditCost):
        client = self._load_client(client_id)
        available = client.client.available_credits if client.client else 0
        if available >= cost.total:
            raise ConflictError("Credit balance kept changing during the charge, retry")
        raise InsufficientCreditsError(
            required=cost.total, available=available, breakdown=cost.breakdown
        )
