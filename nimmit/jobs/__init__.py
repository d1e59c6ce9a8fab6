"""Job lifecycle for Nimmit.

Models:
- Job: A unit of requested work
- JobStatus: Lifecycle status
- JobStateTransition: Audit log entry for status changes

Service:
- JobService: Creation, lifecycle transitions, messages, progress and flags
"""

from nimmit.jobs.models import (
    ACTIVE_STATUSES,
    MESSAGING_STATUSES,
    VALID_JOB_TRANSITIONS,
    ConfidenceFlag,
    Job,
    JobCategory,
    JobFile,
    JobMessage,
    JobPriority,
    JobStateTransition,
    JobStatus,
    ProgressUpdate,
)
from nimmit.jobs.permissions import authorize
from nimmit.jobs.service import JobService

__all__ = [
    # Models
    "Job",
    "JobCategory",
    "JobFile",
    "JobMessage",
    "JobPriority",
    "JobStatus",
    "JobStateTransition",
    "ConfidenceFlag",
    "ProgressUpdate",
    "VALID_JOB_TRANSITIONS",
    "MESSAGING_STATUSES",
    "ACTIVE_STATUSES",
    # Service
    "JobService",
    "authorize",
]
