"""User accounts and the acting principal.

A user has exactly one role. Clients carry a credit balance, workers carry
availability, load and a pending-earnings balance.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class UserRole(str, Enum):
    CLIENT = "client"
    WORKER = "worker"
    ADMIN = "admin"


class Availability(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


@dataclass
class ClientProfile:
    """Credit balance of a client."""

    credits: int = 0
    rollover_credits: int = 0
    total_jobs: int = 0
    total_spent: int = 0

    def __post_init__(self):
        if self.credits < 0:
            raise ValueError("credits cannot be negative")
        if self.rollover_credits < 0:
            raise ValueError("rollover_credits cannot be negative")

    @property
    def available_credits(self) -> int:
        return self.credits + self.rollover_credits


@dataclass
class WorkerProfile:
    """Availability, load and earnings of a worker."""

    availability: str = Availability.OFFLINE.value
    skills: List[str] = field(default_factory=list)
    current_job_count: int = 0
    max_concurrent_jobs: int = 3
    pending_earnings: Decimal = Decimal("0")
    total_earnings: Decimal = Decimal("0")
    completed_jobs: int = 0
    avg_rating: float = 0.0
    payout_account_id: Optional[str] = None
    bio: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.availability, Availability):
            self.availability = self.availability.value
        if self.availability not in {a.value for a in Availability}:
            raise ValueError(f"Invalid availability: {self.availability}")
        if not 1 <= self.max_concurrent_jobs <= 10:
            raise ValueError("max_concurrent_jobs must be between 1 and 10")
        self.pending_earnings = Decimal(str(self.pending_earnings))
        self.total_earnings = Decimal(str(self.total_earnings))
        if self.pending_earnings < 0:
            raise ValueError("pending_earnings cannot be negative")

    @property
    def at_capacity(self) -> bool:
        return self.current_job_count >= self.max_concurrent_jobs


@dataclass
class User:
    """A platform account."""

    id: str
    email: str
    role: str
    first_name: str = ""
    last_name: str = ""
    password_hash: Optional[str] = None
    is_active: bool = True
    client: Optional[ClientProfile] = None
    worker: Optional[WorkerProfile] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.role, UserRole):
            self.role = self.role.value
        if self.role not in {r.value for r in UserRole}:
            raise ValueError(f"Invalid role: {self.role}")
        self.email = self.email.strip().lower()
        if self.role == UserRole.CLIENT.value and self.client is None:
            self.client = ClientProfile()
        if self.role == UserRole.WORKER.value and self.worker is None:
            self.worker = WorkerProfile()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def as_actor(self) -> "Actor":
        return Actor(id=self.id, role=self.role, email=self.email)


@dataclass(frozen=True)
class Actor:
    """Authenticated principal performing an operation."""

    id: str
    role: str
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT.value

    @property
    def is_worker(self) -> bool:
        return self.role == UserRole.WORKER.value


SYSTEM_ACTOR = Actor(id="system", role=UserRole.ADMIN.value, email=None)
