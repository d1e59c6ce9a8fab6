"""Pytest configuration and fixtures."""

import os
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("CRON_SECRET", f"cron-{secrets.token_urlsafe(16)}")
# Unit tests never touch a real database or Stripe
os.environ["STORAGE_BACKEND"] = "memory"
os.environ.pop("STRIPE_SECRET_KEY", None)

from app.auth import create_access_token  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.database import get_payout_gateway, get_storage  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from nimmit.jobs.models import Job  # noqa: E402
from nimmit.ledger import CreditCharge  # noqa: E402
from nimmit.payouts import AccountStatus, Balance, Transfer  # noqa: E402
from nimmit.storage import InMemoryStorage  # noqa: E402
from nimmit.users import ClientProfile, User, WorkerProfile  # noqa: E402

limiter.enabled = False


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def storage():
    """Fresh in-memory storage per test."""
    return InMemoryStorage()


@pytest.fixture
def gateway():
    """Stripe double: every account is ready and every transfer succeeds."""
    gateway = MagicMock()
    gateway.account_status.return_value = AccountStatus(payouts_enabled=True, details_submitted=True)
    gateway.platform_balance.return_value = Balance(available=123456, pending=500)

    def _transfer(destination, amount_minor_units, reference, description, idempotency_key=None):
        return Transfer(
            transfer_id=f"tr_{uuid.uuid4().hex[:10]}",
            amount_minor_units=amount_minor_units,
            destination=destination,
        )

    gateway.transfer.side_effect = _transfer
    return gateway


@pytest.fixture(autouse=True)
def override_dependencies(storage, gateway):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_payout_gateway] = lambda: gateway
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


def _save(storage, user: User) -> User:
    storage.save_user(user)
    return user


@pytest.fixture
def admin_user(storage):
    return _save(storage, User(id="usr_TEST_ADMIN", email="admin@test.example", role="admin"))


@pytest.fixture
def client_user(storage):
    return _save(
        storage,
        User(
            id="usr_TEST_CLIENT",
            email="client@test.example",
            role="client",
            first_name="Cleo",
            last_name="Client",
            client=ClientProfile(credits=100, rollover_credits=0),
        ),
    )


@pytest.fixture
def worker_user(storage):
    return _save(
        storage,
        User(
            id="usr_TEST_WORKER",
            email="worker@test.example",
            role="worker",
            first_name="Wren",
            last_name="Worker",
            worker=WorkerProfile(availability="available", payout_account_id="acct_test_worker"),
        ),
    )


@pytest.fixture
def headers_for(settings):
    """Build auth headers for a stored user."""

    def _headers(user: User) -> dict:
        token = create_access_token(user.id, user.role, settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_headers(admin_user, headers_for):
    return headers_for(admin_user)


@pytest.fixture
def client_headers(client_user, headers_for):
    return headers_for(client_user)


@pytest.fixture
def worker_headers(worker_user, headers_for):
    return headers_for(worker_user)


@pytest.fixture
def completed_job(storage, client_user):
    """Factory storing an unpaid completed job for a worker."""

    def _make(worker_id: str, earnings: str = "14.00", title: str = "Finished work") -> Job:
        completed_at = datetime.now(timezone.utc) - timedelta(hours=2)
        job = Job(
            id=str(uuid.uuid4()),
            client_id=client_user.id,
            worker_id=worker_id,
            title=title,
            description="Delivered and approved",
            category="design",
            status="completed",
            credits_charged=2,
            worker_earnings=Decimal(earnings),
            rating=5,
            created_at=completed_at - timedelta(days=1),
            completed_at=completed_at,
        )
        return storage.create_job_with_charge(job, CreditCharge(0, 0))

    return _make
