"""Shared fixtures for the core nimmit tests."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from nimmit.config import NimmitConfig
from nimmit.errors import ExternalServiceError
from nimmit.jobs.service import JobService
from nimmit.notifications import NotificationEmitter
from nimmit.payouts import AccountStatus, Balance, PayoutProcessor, Transfer
from nimmit.storage import InMemoryStorage
from nimmit.users import ClientProfile, User, WorkerProfile


class FakeGateway:
    """Payment processor double recording every call.

    Like Stripe, a repeated idempotency key returns the original transfer
    instead of moving money again, so ``transfers`` only holds real ones.
    Destinations in ``timing_out`` have the transfer carried out but the
    answer lost.
    """

    def __init__(self):
        self.transfers: List[Dict] = []
        self.accounts: Dict[str, AccountStatus] = {}
        self.failing: set = set()
        self.timing_out: set = set()
        self.calls = 0
        self.balance = Balance(available=50000, pending=1000)
        self.balance_error: Optional[Exception] = None
        self._by_key: Dict[str, Transfer] = {}

    def enable(self, account_id: str, payouts_enabled: bool = True) -> None:
        self.accounts[account_id] = AccountStatus(
            payouts_enabled=payouts_enabled, details_submitted=True
        )

    def transfer(self, destination, amount_minor_units, reference, description, idempotency_key=None):
        self.calls += 1
        if destination in self.failing:
            raise ExternalServiceError("stripe", "Insufficient funds in platform account")
        transfer = self._by_key.get(idempotency_key) if idempotency_key else None
        if transfer is None:
            transfer = Transfer(
                transfer_id=f"tr_{len(self.transfers) + 1}",
                amount_minor_units=amount_minor_units,
                destination=destination,
            )
            self.transfers.append(
                {
                    "destination": destination,
                    "amount": amount_minor_units,
                    "reference": reference,
                    "description": description,
                    "idempotency_key": idempotency_key,
                }
            )
            if idempotency_key:
                self._by_key[idempotency_key] = transfer
        if destination in self.timing_out:
            raise ExternalServiceError("stripe", "Read timed out", outcome_unknown=True)
        return transfer

    def account_status(self, destination):
        return self.accounts.get(destination, AccountStatus(payouts_enabled=False))

    def platform_balance(self):
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance


@pytest.fixture
def storage():
    """Create in-memory storage for testing."""
    return InMemoryStorage()


@pytest.fixture
def config():
    """Pricing where a standard video job costs 40 credits."""
    return NimmitConfig(
        category_credits={"video": 40, "design": 2, "web": 2, "social": 1, "admin": 1, "other": 2}
    )


@pytest.fixture
def notifier(storage):
    return NotificationEmitter(storage)


@pytest.fixture
def service(storage, config, notifier):
    """Create job service for testing."""
    return JobService(storage, config, notifier=notifier)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def payouts(storage, gateway, config, notifier):
    return PayoutProcessor(storage, gateway, config, notifier=notifier)


@pytest.fixture
def make_client(storage):
    """Factory saving a client with the given balances."""

    def _make(credits: int = 100, rollover: int = 0, user_id: Optional[str] = None) -> User:
        user_id = user_id or f"client-{uuid.uuid4().hex[:8]}"
        user = User(
            id=user_id,
            email=f"{user_id}@example.com",
            role="client",
            first_name="Cara",
            last_name="Client",
            client=ClientProfile(credits=credits, rollover_credits=rollover),
            created_at=datetime.now(timezone.utc),
        )
        storage.save_user(user)
        return user

    return _make


@pytest.fixture
def make_worker(storage):
    """Factory saving a worker with the given earnings and payout account."""

    def _make(
        pending: str = "0",
        account: Optional[str] = None,
        current_job_count: int = 0,
        user_id: Optional[str] = None,
    ) -> User:
        user_id = user_id or f"worker-{uuid.uuid4().hex[:8]}"
        user = User(
            id=user_id,
            email=f"{user_id}@example.com",
            role="worker",
            first_name="Wes",
            last_name="Worker",
            worker=WorkerProfile(
                availability="available",
                pending_earnings=Decimal(pending),
                current_job_count=current_job_count,
                payout_account_id=account,
            ),
            created_at=datetime.now(timezone.utc),
        )
        storage.save_user(user)
        return user

    return _make


@pytest.fixture
def admin(storage):
    user = User(id="admin-1", email="admin@example.com", role="admin")
    storage.save_user(user)
    return user.as_actor()


@pytest.fixture
def client_user(make_client):
    return make_client(credits=200)


@pytest.fixture
def worker_user(make_worker):
    return make_worker(account="acct_worker")


@pytest.fixture
def job_in(service, client_user, worker_user, admin):
    """Factory creating a job and driving it to the requested status."""
    client = client_user.as_actor()
    worker = worker_user.as_actor()
    path = {
        "pending": [],
        "assigned": ["assigned"],
        "in_progress": ["assigned", "in_progress"],
        "review": ["assigned", "in_progress", "review"],
        "revision": ["assigned", "in_progress", "review", "revision"],
        "completed": ["assigned", "in_progress", "review", "completed"],
        "cancelled": ["cancelled"],
    }

    def _drive(status: str, category: str = "design", title: str = "Logo refresh"):
        job, _ = service.create_job(client, title, "Refresh the logo", category)
        for step in path[status]:
            if step == "assigned":
                job = service.assign_worker(job.id, admin, worker.id)
            elif step == "in_progress":
                job = service.start_work(job.id, worker)
            elif step == "review":
                job = service.submit_for_review(job.id, worker)
            elif step == "revision":
                job = service.request_revision(job.id, client, "Use the brand colors")
            elif step == "completed":
                job = service.complete_job(job.id, client, rating=5)
            elif step == "cancelled":
                job = service.cancel_job(job.id, client)
        return job

    return _drive
