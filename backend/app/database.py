"""Storage and service wiring for the API.

Routes never build services themselves; they declare the aliases defined
here (``Storage``, ``Jobs``, ``Payouts`` ...) and FastAPI resolves them per
request. Tests swap the storage through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from nimmit.applications import ApplicationService
from nimmit.errors import ExternalServiceError
from nimmit.jobs.service import JobService
from nimmit.maintenance import MaintenanceService
from nimmit.notifications import NotificationEmitter
from nimmit.payouts import PayoutGateway, PayoutProcessor
from nimmit.storage import InMemoryStorage, NimmitStorage
from nimmit.storage.supabase_store import SupabaseStorage
from supabase import Client, create_client

from .config import Settings, get_settings
from .payments import StripeConnectGateway

_supabase_client: Client | None = None
_memory_storage: InMemoryStorage | None = None
_payout_gateway: StripeConnectGateway | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        if not settings.supabase_url or not settings.supabase_secret_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, settings.supabase_secret_key)
    return _supabase_client


def get_storage(settings: Annotated[Settings, Depends(get_settings)]) -> NimmitStorage:
    """FastAPI dependency for the configured storage backend."""
    global _memory_storage
    if settings.storage_backend == "memory":
        if _memory_storage is None:
            _memory_storage = InMemoryStorage()
        return _memory_storage
    return SupabaseStorage(get_supabase_client(settings))


# Type alias for dependency injection
Storage = Annotated[NimmitStorage, Depends(get_storage)]


def get_payout_gateway(
    settings: Annotated[Settings, Depends(get_settings)],
) -> PayoutGateway | None:
    """Stripe gateway, or None when no secret key is configured."""
    global _payout_gateway
    if not settings.stripe_secret_key:
        return None
    if _payout_gateway is None:
        _payout_gateway = StripeConnectGateway(
            settings.stripe_secret_key,
            api_base=settings.stripe_api_base,
            currency=settings.payout_currency,
            timeout=settings.stripe_timeout_seconds,
        )
    return _payout_gateway


Gateway = Annotated[PayoutGateway | None, Depends(get_payout_gateway)]


# =============================================================================
# Services
# =============================================================================


def get_notifier(storage: Storage) -> NotificationEmitter:
    return NotificationEmitter(storage)


Notifier = Annotated[NotificationEmitter, Depends(get_notifier)]


def get_job_service(
    storage: Storage,
    notifier: Notifier,
    settings: Annotated[Settings, Depends(get_settings)],
) -> JobService:
    return JobService(storage, settings.nimmit_config(), notifier=notifier)


Jobs = Annotated[JobService, Depends(get_job_service)]


def get_payout_processor(
    storage: Storage,
    notifier: Notifier,
    gateway: Gateway,
    settings: Annotated[Settings, Depends(get_settings)],
) -> PayoutProcessor:
    if gateway is None:
        raise ExternalServiceError("stripe", "Payouts are not configured")
    return PayoutProcessor(storage, gateway, settings.nimmit_config(), notifier=notifier)


Payouts = Annotated[PayoutProcessor, Depends(get_payout_processor)]


def get_application_service(
    storage: Storage,
    notifier: Notifier,
    settings: Annotated[Settings, Depends(get_settings)],
) -> ApplicationService:
    return ApplicationService(
        storage,
        notifier=notifier,
        max_concurrent_jobs=settings.nimmit_config().default_max_concurrent_jobs,
    )


Applications = Annotated[ApplicationService, Depends(get_application_service)]


def get_maintenance_service(
    storage: Storage,
    notifier: Notifier,
    gateway: Gateway,
    settings: Annotated[Settings, Depends(get_settings)],
) -> MaintenanceService:
    config = settings.nimmit_config()
    # Earnings reconciliation only reads storage, so it runs without Stripe too
    payouts = PayoutProcessor(storage, gateway, config, notifier=notifier)
    return MaintenanceService(storage, config, payouts=payouts)


Maintenance = Annotated[MaintenanceService, Depends(get_maintenance_service)]
