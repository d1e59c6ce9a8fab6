"""Nimmit - task marketplace backend.

Clients buy work with credits, admins assign it to workers, workers deliver,
and earnings are paid out in batches through a payment processor.
"""

__version__ = "0.1.0"

from nimmit.config import NimmitConfig
from nimmit.errors import (
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    InsufficientCreditsError,
    InvalidTransitionError,
    MessagingClosedError,
    NimmitError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from nimmit.pricing import CreditCost, calculate_job_cost, calculate_worker_earnings
from nimmit.users import Actor, User, UserRole

__all__ = [
    "__version__",
    "Actor",
    "ConflictError",
    "CreditCost",
    "ExternalServiceError",
    "ForbiddenError",
    "InsufficientCreditsError",
    "InvalidTransitionError",
    "MessagingClosedError",
    "NimmitConfig",
    "NimmitError",
    "NotFoundError",
    "PersistenceError",
    "User",
    "UserRole",
    "ValidationError",
    "calculate_job_cost",
    "calculate_worker_earnings",
]
