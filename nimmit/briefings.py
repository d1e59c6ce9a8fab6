"""Client briefings.

A briefing is the conversation a client has with the intake assistant before
a job exists. Once a brief has been extracted the client can submit it, which
charges credits and creates the job in one step.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class BriefingStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass
class ExtractedBrief:
    """Structured job request pulled out of a briefing conversation."""

    title: str
    description: str
    category: str = "other"
    priority: str = "standard"
    estimated_hours: Optional[float] = None
    key_requirements: List[str] = field(default_factory=list)
    deliverables: List[str] = field(default_factory=list)
    confidence: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be between 0 and 1")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "estimated_hours": self.estimated_hours,
            "key_requirements": list(self.key_requirements),
            "deliverables": list(self.deliverables),
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedBrief":
        return cls(
            title=data.get("title") or "",
            description=data.get("description") or "",
            category=data.get("category") or "other",
            priority=data.get("priority") or "standard",
            estimated_hours=data.get("estimated_hours"),
            key_requirements=list(data.get("key_requirements") or []),
            deliverables=list(data.get("deliverables") or []),
            confidence=float(data.get("confidence") or 0.0),
        )


@dataclass
class Briefing:
    id: str
    client_id: str
    status: str = BriefingStatus.ACTIVE.value
    extracted_brief: Optional[ExtractedBrief] = None
    job_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, BriefingStatus):
            self.status = self.status.value
        if self.status not in {s.value for s in BriefingStatus}:
            raise ValueError(f"Invalid briefing status: {self.status}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "status": self.status,
            "extracted_brief": (
                self.extracted_brief.to_dict() if self.extracted_brief else None
            ),
            "job_id": self.job_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
