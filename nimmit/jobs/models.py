"""Job data models.

A job moves through a fixed lifecycle:

    pending -> assigned -> in_progress -> review -> completed
                                            |  ^
                                            v  |
                                          revision

``pending`` and ``assigned`` jobs may also be cancelled. ``completed`` and
``cancelled`` are terminal.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class JobStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    REVISION = "revision"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JobCategory(str, Enum):
    VIDEO = "video"
    DESIGN = "design"
    WEB = "web"
    SOCIAL = "social"
    ADMIN = "admin"
    OTHER = "other"


class JobPriority(str, Enum):
    STANDARD = "standard"
    PRIORITY = "priority"
    RUSH = "rush"


VALID_JOB_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"assigned", "cancelled"}),
    "assigned": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"review"}),
    "review": frozenset({"completed", "revision"}),
    "revision": frozenset({"review"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED.value, JobStatus.CANCELLED.value})

# Statuses where someone is assigned and the conversation is open
MESSAGING_STATUSES = frozenset(
    {
        JobStatus.ASSIGNED.value,
        JobStatus.IN_PROGRESS.value,
        JobStatus.REVIEW.value,
        JobStatus.REVISION.value,
    }
)

# Statuses that count toward a worker's current load
ACTIVE_STATUSES = MESSAGING_STATUSES

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 10000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass
class JobFile:
    """A reference file or a deliverable attached to a job."""

    id: str
    name: str
    url: str
    size: int = 0
    mime_type: str = "application/octet-stream"
    version: int = 1
    uploaded_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "size": self.size,
            "mime_type": self.mime_type,
            "version": self.version,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


@dataclass
class JobMessage:
    id: str
    sender_id: str
    sender_role: str
    message: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "sender_role": self.sender_role,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ProgressUpdate:
    id: str
    content: str
    created_at: datetime
    percentage: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "percentage": self.percentage,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ConfidenceFlag:
    """Worker-raised uncertainty marker, cleared by an admin."""

    flagged: bool
    reason: Optional[str] = None
    flagged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flagged": self.flagged,
            "reason": self.reason,
            "flagged_at": self.flagged_at.isoformat() if self.flagged_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
        }


@dataclass
class Job:
    """A unit of requested work."""

    id: str
    client_id: str
    title: str
    description: str
    category: str
    priority: str = JobPriority.STANDARD.value
    status: str = JobStatus.PENDING.value
    worker_id: Optional[str] = None
    assigned_by: Optional[str] = None
    briefing_id: Optional[str] = None

    credits_charged: int = 0
    worker_earnings: Decimal = Decimal("0")
    rating: Optional[int] = None
    feedback: Optional[str] = None
    estimated_hours: Optional[float] = None

    files: List[JobFile] = field(default_factory=list)
    deliverables: List[JobFile] = field(default_factory=list)
    messages: List[JobMessage] = field(default_factory=list)
    progress_updates: List[ProgressUpdate] = field(default_factory=list)
    confidence_flag: Optional[ConfidenceFlag] = None

    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    worker_paid_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = _enum_value(self.status)
        self.category = _enum_value(self.category)
        self.priority = _enum_value(self.priority)

        if self.status not in VALID_JOB_TRANSITIONS:
            raise ValueError(f"Invalid status: {self.status}")
        if self.category not in {c.value for c in JobCategory}:
            raise ValueError(f"Invalid category: {self.category}")
        if self.priority not in {p.value for p in JobPriority}:
            raise ValueError(f"Invalid priority: {self.priority}")
        if not self.title or not self.title.strip():
            raise ValueError("Title is required")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} characters)")
        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(
                f"Description too long (max {MAX_DESCRIPTION_LENGTH} characters)"
            )
        if self.credits_charged < 0:
            raise ValueError("credits_charged cannot be negative")
        self.worker_earnings = Decimal(str(self.worker_earnings))
        if self.worker_earnings < 0:
            raise ValueError("worker_earnings cannot be negative")
        if self.rating is not None and not 1 <= self.rating <= 5:
            raise ValueError("Rating must be between 1 and 5")
        if (self.completed_at is not None) != (self.status == JobStatus.COMPLETED.value):
            raise ValueError("completed_at must be set exactly when the job is completed")
        if self.worker_paid_at is not None and not self.is_payable_status:
            raise ValueError("worker_paid_at requires a completed job with earnings")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_payable_status(self) -> bool:
        return self.status == JobStatus.COMPLETED.value and self.worker_earnings > 0

    @property
    def is_unpaid(self) -> bool:
        """Completed with earnings that have not been settled yet."""
        return self.is_payable_status and self.worker_paid_at is None

    def can_transition_to(self, new_status: str) -> bool:
        return _enum_value(new_status) in VALID_JOB_TRANSITIONS.get(self.status, frozenset())

    def accepts_messages(self) -> bool:
        return self.status in MESSAGING_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "client_id": self.client_id,
            "worker_id": self.worker_id,
            "assigned_by": self.assigned_by,
            "briefing_id": self.briefing_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "credits_charged": self.credits_charged,
            "worker_earnings": float(self.worker_earnings),
            "rating": self.rating,
            "feedback": self.feedback,
            "estimated_hours": self.estimated_hours,
            "files": [f.to_dict() for f in self.files],
            "deliverables": [d.to_dict() for d in self.deliverables],
            "messages": [m.to_dict() for m in self.messages],
            "progress_updates": [p.to_dict() for p in self.progress_updates],
            "confidence_flag": self.confidence_flag.to_dict() if self.confidence_flag else None,
            "version": self.version,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "due_date": iso(self.due_date),
            "assigned_at": iso(self.assigned_at),
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
            "cancelled_at": iso(self.cancelled_at),
            "worker_paid_at": iso(self.worker_paid_at),
        }


@dataclass
class JobStateTransition:
    """Audit record for a status change."""

    id: str
    job_id: str
    from_status: Optional[str]
    to_status: str
    actor_id: str
    actor_role: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def record(
        cls,
        job_id: str,
        from_status: Optional[str],
        to_status: str,
        actor_id: str,
        actor_role: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "JobStateTransition":
        return cls(
            id=str(uuid.uuid4()),
            job_id=job_id,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            actor_role=actor_role,
            metadata=metadata or {},
            created_at=_utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
