"""Job lifecycle service.

Creates jobs (charging the client), moves them through the lifecycle and
handles the conversation and progress side of a job. Each status change is
one compare-and-swap write on (status, version); losing the race raises
ConflictError and leaves the job as the winner wrote it.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from nimmit.briefings import BriefingStatus
from nimmit.config import NimmitConfig
from nimmit.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    MessagingClosedError,
    NotFoundError,
    ValidationError,
)
from nimmit.jobs.models import (
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
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
from nimmit.jobs.permissions import authorize, can, capability_for
from nimmit.ledger.service import CreditLedger
from nimmit.pricing import CreditCost, calculate_worker_earnings, due_date_for
from nimmit.storage.base import NOT_FOUND
from nimmit.users import Actor, UserRole

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000
MAX_FEEDBACK_LENGTH = 2000
PROGRESS_STATUSES = frozenset({JobStatus.ASSIGNED.value, JobStatus.IN_PROGRESS.value})

# Who hears about each status change
_STATUS_NOTIFICATIONS = {
    JobStatus.ASSIGNED.value: ("job_assigned", "worker"),
    JobStatus.IN_PROGRESS.value: ("job_started", "client"),
    JobStatus.REVIEW.value: ("job_submitted", "client"),
    JobStatus.COMPLETED.value: ("job_completed", "worker"),
    JobStatus.REVISION.value: ("job_revision", "worker"),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, JobStatus) else status


class JobService:
    """Job creation and lifecycle operations."""

    def __init__(
        self,
        storage,
        config: Optional[NimmitConfig] = None,
        notifier=None,
        ledger: Optional[CreditLedger] = None,
    ):
        self.storage = storage
        self.config = config or NimmitConfig()
        self.notifier = notifier
        self.ledger = ledger or CreditLedger(storage, self.config)

    # === Creation ===

    def create_job(
        self,
        client: Actor,
        title: str,
        description: str,
        category: str,
        priority: str = JobPriority.STANDARD.value,
        estimated_hours: Optional[float] = None,
        files: Optional[List[JobFile]] = None,
        briefing_id: Optional[str] = None,
    ) -> Tuple[Job, CreditCost]:
        """Charge the client and create a pending job.

        Returns:
            Tuple of (job, cost)

        Raises:
            ValidationError: If an input field is malformed
            InsufficientCreditsError: If the client cannot afford the job
        """
        if not client.is_client:
            raise ForbiddenError("Only clients can create jobs")

        category = category.value if isinstance(category, JobCategory) else category
        priority = priority.value if isinstance(priority, JobPriority) else priority
        title = (title or "").strip()
        description = (description or "").strip()

        if not title:
            raise ValidationError("title", "Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError("title", f"Title too long (max {MAX_TITLE_LENGTH} characters)")
        if not description:
            raise ValidationError("description", "Description is required")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                "description", f"Description too long (max {MAX_DESCRIPTION_LENGTH} characters)"
            )
        if category not in {c.value for c in JobCategory}:
            raise ValidationError("category", f"Invalid category: {category}")
        if priority not in {p.value for p in JobPriority}:
            raise ValidationError("priority", f"Invalid priority: {priority}")
        if estimated_hours is not None and estimated_hours <= 0:
            raise ValidationError("estimatedHours", "Estimated hours must be positive")

        cost = self.ledger.quote(category, priority)
        now = _utc_now()
        job = Job(
            id=str(uuid.uuid4()),
            client_id=client.id,
            title=title,
            description=description,
            category=category,
            priority=priority,
            status=JobStatus.PENDING.value,
            briefing_id=briefing_id,
            credits_charged=cost.total,
            estimated_hours=estimated_hours,
            files=list(files or []),
            created_at=now,
            updated_at=now,
            due_date=due_date_for(priority, now, self.config),
        )

        created, charge = self.ledger.charge_and_create(job, cost, briefing_id=briefing_id)
        self._record_transition(created, None, JobStatus.PENDING.value, client)

        logger.info(
            f"Job created | id={created.id} | client={client.id} | credits={cost.total}"
        )
        if self.notifier is not None:
            self.notifier.audit_job(
                client,
                "created",
                created.id,
                description=f"Job created: {created.title}",
                metadata={"credits": cost.total, "breakdown": cost.breakdown},
            )
            self.notifier.audit_payment(
                client,
                "credits_deducted",
                created.id,
                description=f"{cost.total} credits charged for job",
                metadata=charge.to_dict(),
            )
        return created, cost

    def submit_briefing(self, client: Actor, briefing_id: str) -> Tuple[Job, CreditCost]:
        """Turn an extracted brief into a job.

        The debit, the job insert and closing the briefing happen together.
        """
        briefing = self.storage.get_briefing(briefing_id)
        if briefing is None or briefing.client_id != client.id:
            raise NotFoundError("Briefing", briefing_id)
        if briefing.status != BriefingStatus.ACTIVE.value:
            raise ValidationError("briefingId", f"Briefing is already {briefing.status}")
        brief = briefing.extracted_brief
        if brief is None or not brief.title or not brief.description:
            raise ValidationError("briefingId", "Briefing has no extracted brief yet")

        category = brief.category
        if category not in {c.value for c in JobCategory}:
            category = JobCategory.OTHER.value
        priority = brief.priority
        if priority not in {p.value for p in JobPriority}:
            priority = JobPriority.STANDARD.value

        description = brief.description
        if brief.key_requirements:
            description += "\n\nKey requirements:\n" + "\n".join(
                f"- {r}" for r in brief.key_requirements
            )
        if brief.deliverables:
            description += "\n\nDeliverables:\n" + "\n".join(f"- {d}" for d in brief.deliverables)

        return self.create_job(
            client,
            title=brief.title[:MAX_TITLE_LENGTH],
            description=description[:MAX_DESCRIPTION_LENGTH],
            category=category,
            priority=priority,
            estimated_hours=brief.estimated_hours,
            briefing_id=briefing_id,
        )

    # === Reads ===

    def _load(self, job_id: str) -> Job:
        job = self.storage.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def get_job(self, job_id: str, actor: Optional[Actor] = None) -> Job:
        job = self._load(job_id)
        if actor is not None:
            authorize(actor, job, "view")
        return job

    def list_jobs(
        self,
        actor: Actor,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Job], int]:
        """Clients see their own jobs, workers their assigned ones, admins all."""
        status = _status_value(status)
        if status is not None and status not in {s.value for s in JobStatus}:
            raise ValidationError("status", f"Invalid status: {status}")
        if page < 1:
            raise ValidationError("page", "Page must be at least 1")
        if not 1 <= limit <= 100:
            raise ValidationError("limit", "Limit must be between 1 and 100")

        filters: Dict[str, Any] = {"status": status}
        if actor.is_client:
            filters["client_id"] = actor.id
        elif actor.is_worker:
            filters["worker_id"] = actor.id
        return self.storage.list_jobs(limit=limit, offset=(page - 1) * limit, **filters)

    def get_transitions(self, job_id: str, actor: Optional[Actor] = None) -> List[JobStateTransition]:
        self.get_job(job_id, actor)
        return self.storage.get_transitions(job_id)

    # === Lifecycle ===

    def _check_transition(self, job: Job, new_status: str, actor: Actor) -> None:
        if not job.can_transition_to(new_status):
            raise InvalidTransitionError(job.status, new_status)
        authorize(actor, job, capability_for(job.status, new_status))

    def _write(
        self,
        job: Job,
        fields: Dict[str, Any],
        worker_delta: Optional[Dict[str, Any]] = None,
    ) -> Job:
        updated, error = self.storage.update_job(
            job.id, job.status, job.version, fields, worker_delta=worker_delta
        )
        if error == NOT_FOUND:
            raise NotFoundError("Job", job.id)
        if updated is None:
            logger.warning(
                f"Concurrent job update | id={job.id} | expected_status={job.status} "
                f"| expected_version={job.version}"
            )
            raise ConflictError("Job was modified by another request, reload and retry")
        return updated

    def _transition(
        self,
        job: Job,
        new_status: str,
        actor: Actor,
        fields: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        worker_delta: Optional[Dict[str, Any]] = None,
    ) -> Job:
        from_status = job.status
        updated = self._write(
            job, {"status": new_status, **(fields or {})}, worker_delta=worker_delta
        )
        self._record_transition(updated, from_status, new_status, actor, metadata)
        logger.info(
            f"Job transition | id={job.id} | {from_status} -> {new_status} | actor={actor.id}"
        )
        self._notify_status(updated, from_status, actor)
        return updated

    def _record_transition(
        self,
        job: Job,
        from_status: Optional[str],
        to_status: str,
        actor: Actor,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            self.storage.save_transition(
                JobStateTransition.record(
                    job_id=job.id,
                    from_status=from_status,
                    to_status=to_status,
                    actor_id=actor.id,
                    actor_role=actor.role,
                    metadata=metadata,
                )
            )
        except Exception as e:
            logger.error(f"Transition log failed | job={job.id} | to={to_status} | error={e}")

    def _notify_status(self, job: Job, from_status: str, actor: Actor) -> None:
        if self.notifier is None:
            return
        self.notifier.audit_job(
            actor,
            "status_changed",
            job.id,
            description=f"Status changed from {from_status} to {job.status}",
            metadata={"from": from_status, "to": job.status},
        )
        target = _STATUS_NOTIFICATIONS.get(job.status)
        if target is None:
            return
        notification_type, audience = target
        recipient = job.worker_id if audience == "worker" else job.client_id
        if recipient:
            self.notifier.notify(
                recipient, notification_type, {"jobId": job.id, "jobTitle": job.title}
            )

    def assign_worker(self, job_id: str, admin: Actor, worker_id: str) -> Job:
        job = self._load(job_id)
        self._check_transition(job, JobStatus.ASSIGNED.value, admin)
        if not worker_id:
            raise ValidationError("workerId", "workerId is required to assign a job")

        worker = self.storage.get_user(worker_id)
        if worker is None or worker.role != UserRole.WORKER.value:
            raise NotFoundError("Worker", worker_id)
        if not worker.is_active:
            raise ValidationError("workerId", "Worker account is inactive")
        if worker.worker.at_capacity:
            # Soft cap, admins may overrule it
            logger.warning(
                f"Assigning worker at capacity | worker={worker_id} "
                f"| load={worker.worker.current_job_count}/{worker.worker.max_concurrent_jobs}"
            )

        updated = self._transition(
            job,
            JobStatus.ASSIGNED.value,
            admin,
            fields={"worker_id": worker_id, "assigned_by": admin.id, "assigned_at": _utc_now()},
            metadata={"worker_id": worker_id},
            worker_delta={"current_job_count": 1},
        )
        return updated

    def start_work(self, job_id: str, actor: Actor) -> Job:
        job = self._load(job_id)
        self._check_transition(job, JobStatus.IN_PROGRESS.value, actor)
        return self._transition(
            job, JobStatus.IN_PROGRESS.value, actor, fields={"started_at": _utc_now()}
        )

    def _deliverable_fields(self, job: Job, deliverables: Optional[List[JobFile]]) -> Dict[str, Any]:
        if not deliverables:
            return {}
        version = max((d.version for d in job.deliverables), default=0) + 1
        now = _utc_now()
        added = [
            JobFile(
                id=d.id or str(uuid.uuid4()),
                name=d.name,
                url=d.url,
                size=d.size,
                mime_type=d.mime_type,
                version=version,
                uploaded_at=d.uploaded_at or now,
            )
            for d in deliverables
        ]
        return {"deliverables": job.deliverables + added}

    def submit_for_review(
        self, job_id: str, actor: Actor, deliverables: Optional[List[JobFile]] = None
    ) -> Job:
        job = self._load(job_id)
        self._check_transition(job, JobStatus.REVIEW.value, actor)
        return self._transition(
            job,
            JobStatus.REVIEW.value,
            actor,
            fields=self._deliverable_fields(job, deliverables),
            metadata={"deliverables": len(deliverables or [])},
        )

    def resubmit(
        self, job_id: str, actor: Actor, deliverables: Optional[List[JobFile]] = None
    ) -> Job:
        job = self._load(job_id)
        if job.status != JobStatus.REVISION.value:
            raise InvalidTransitionError(job.status, JobStatus.REVIEW.value)
        return self.submit_for_review(job_id, actor, deliverables)

    def complete_job(
        self, job_id: str, client: Actor, rating: Optional[int], feedback: Optional[str] = None
    ) -> Job:
        """Approve delivered work and credit the worker's pending earnings."""
        job = self._load(job_id)
        self._check_transition(job, JobStatus.COMPLETED.value, client)
        if rating is None or isinstance(rating, bool) or not isinstance(rating, int):
            raise ValidationError("rating", "Rating is required")
        if not 1 <= rating <= 5:
            raise ValidationError("rating", "Rating must be between 1 and 5")
        if feedback is not None and len(feedback) > MAX_FEEDBACK_LENGTH:
            raise ValidationError("feedback", f"Feedback too long (max {MAX_FEEDBACK_LENGTH})")

        earnings = calculate_worker_earnings(job.credits_charged, self.config)
        updated = self._transition(
            job,
            JobStatus.COMPLETED.value,
            client,
            fields={
                "rating": rating,
                "feedback": feedback,
                "completed_at": _utc_now(),
                "worker_earnings": earnings,
            },
            metadata={"rating": rating, "worker_earnings": str(earnings)},
            # Credited in the same write as the status change
            worker_delta={
                "current_job_count": -1,
                "pending_earnings": earnings,
                "completed_jobs": 1,
            },
        )

        if updated.worker_id:
            logger.info(
                f"Worker earnings credited | job={job_id} | worker={updated.worker_id} "
                f"| amount={earnings}"
            )
        return updated

    def request_revision(self, job_id: str, client: Actor, feedback: Optional[str]) -> Job:
        job = self._load(job_id)
        self._check_transition(job, JobStatus.REVISION.value, client)
        feedback = (feedback or "").strip()
        if not feedback:
            raise ValidationError("feedback", "Feedback is required when requesting a revision")
        if len(feedback) > MAX_FEEDBACK_LENGTH:
            raise ValidationError("feedback", f"Feedback too long (max {MAX_FEEDBACK_LENGTH})")

        revision_note = JobMessage(
            id=str(uuid.uuid4()),
            sender_id=client.id,
            sender_role=client.role,
            message=f"Revision requested: {feedback}",
            timestamp=_utc_now(),
        )
        return self._transition(
            job,
            JobStatus.REVISION.value,
            client,
            fields={"feedback": feedback, "messages": job.messages + [revision_note]},
            metadata={"feedback": feedback},
        )

    def cancel_job(self, job_id: str, actor: Actor, reason: Optional[str] = None) -> Job:
        """Cancel a pending or assigned job. Credits are not refunded."""
        job = self._load(job_id)
        self._check_transition(job, JobStatus.CANCELLED.value, actor)
        updated = self._transition(
            job,
            JobStatus.CANCELLED.value,
            actor,
            fields={"cancelled_at": _utc_now()},
            metadata={"reason": reason} if reason else None,
            worker_delta={"current_job_count": -1} if job.worker_id else None,
        )
        return updated

    def update_status(self, job_id: str, actor: Actor, status: str, **kwargs) -> Job:
        """Dispatch a requested status to the matching lifecycle operation."""
        status = _status_value(status)
        job = self._load(job_id)

        if status == JobStatus.ASSIGNED.value:
            return self.assign_worker(job_id, actor, kwargs.get("worker_id"))
        if status == JobStatus.IN_PROGRESS.value:
            return self.start_work(job_id, actor)
        if status == JobStatus.REVIEW.value:
            if job.status == JobStatus.REVISION.value:
                return self.resubmit(job_id, actor, kwargs.get("deliverables"))
            return self.submit_for_review(job_id, actor, kwargs.get("deliverables"))
        if status == JobStatus.COMPLETED.value:
            return self.complete_job(job_id, actor, kwargs.get("rating"), kwargs.get("feedback"))
        if status == JobStatus.REVISION.value:
            return self.request_revision(job_id, actor, kwargs.get("feedback"))
        if status == JobStatus.CANCELLED.value:
            return self.cancel_job(job_id, actor, kwargs.get("reason"))
        raise InvalidTransitionError(job.status, str(status))

    # === Conversation and progress ===

    def add_message(self, job_id: str, actor: Actor, message: str) -> Job:
        job = self._load(job_id)
        authorize(actor, job, "message")
        if not job.accepts_messages():
            raise MessagingClosedError(job.status)
        text = (message or "").strip()
        if not text:
            raise ValidationError("message", "Message is required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError("message", f"Message too long (max {MAX_MESSAGE_LENGTH})")

        entry = JobMessage(
            id=str(uuid.uuid4()),
            sender_id=actor.id,
            sender_role=actor.role,
            message=text,
            timestamp=_utc_now(),
        )
        updated = self._write(job, {"messages": job.messages + [entry]})
        logger.info(f"Job message | id={job_id} | sender={actor.id}")

        if self.notifier is not None:
            recipients = [
                uid for uid in (updated.client_id, updated.worker_id) if uid and uid != actor.id
            ]
            self.notifier.notify_many(
                recipients,
                "new_message",
                {
                    "jobId": job_id,
                    "jobTitle": updated.title,
                    "senderName": actor.email or actor.role,
                },
            )
        return updated

    def add_progress_update(
        self, job_id: str, worker: Actor, content: str, percentage: Optional[int] = None
    ) -> Job:
        job = self._load(job_id)
        authorize(worker, job, "progress")
        if job.status not in PROGRESS_STATUSES:
            raise InvalidTransitionError(
                job.status,
                "progress",
                message=f"Cannot post progress on a job in status: {job.status}",
            )
        content = (content or "").strip()
        if not content:
            raise ValidationError("content", "Progress content is required")
        if percentage is not None and not 0 <= percentage <= 100:
            raise ValidationError("percentage", "Percentage must be between 0 and 100")

        update = ProgressUpdate(
            id=str(uuid.uuid4()), content=content, percentage=percentage, created_at=_utc_now()
        )
        updated = self._write(job, {"progress_updates": job.progress_updates + [update]})
        logger.info(f"Progress update | job={job_id} | worker={worker.id} | pct={percentage}")
        return updated

    def get_progress_updates(self, job_id: str, actor: Actor) -> List[ProgressUpdate]:
        return self.get_job(job_id, actor).progress_updates

    def flag_job(self, job_id: str, worker: Actor, reason: str) -> Job:
        """Worker raises an uncertainty flag for admin attention."""
        job = self._load(job_id)
        if not can(worker, job, "flag"):
            # Do not reveal jobs the worker is not on
            raise NotFoundError("Job", job_id)
        if job.status not in PROGRESS_STATUSES:
            raise InvalidTransitionError(
                job.status, "flag", message=f"Cannot flag a job in status: {job.status}"
            )
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "Reason is required")

        flag = ConfidenceFlag(flagged=True, reason=reason, flagged_at=_utc_now())
        updated = self._write(job, {"confidence_flag": flag})
        logger.info(f"Job flagged | id={job_id} | worker={worker.id}")

        if self.notifier is not None:
            self.notifier.notify_admins(
                "worker_flagged", {"jobId": job_id, "jobTitle": job.title, "message": reason}
            )
        return updated

    def resolve_flag(self, job_id: str, admin: Actor) -> Job:
        job = self._load(job_id)
        authorize(admin, job, "resolve_flag")
        if job.confidence_flag is None or not job.confidence_flag.flagged:
            raise ValidationError("confidenceFlag", "Job is not flagged")

        flag = ConfidenceFlag(
            flagged=False,
            reason=job.confidence_flag.reason,
            flagged_at=job.confidence_flag.flagged_at,
            resolved_at=_utc_now(),
            resolved_by=admin.id,
        )
        updated = self._write(job, {"confidence_flag": flag})
        logger.info(f"Job flag resolved | id={job_id} | admin={admin.id}")
        return updated
