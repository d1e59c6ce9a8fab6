"""API routes."""

from .applications import router as applications_router
from .audit import router as audit_router
from .briefing import router as briefing_router
from .jobs import router as jobs_router
from .notifications import router as notifications_router
from .payouts import router as payouts_router
from .scheduled import router as scheduled_router

__all__ = [
    "applications_router",
    "audit_router",
    "briefing_router",
    "jobs_router",
    "notifications_router",
    "payouts_router",
    "scheduled_router",
]
