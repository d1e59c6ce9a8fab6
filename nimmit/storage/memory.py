"""In-memory storage for testing and local development.

Records are deep-copied on the way in and out so callers never share state
with the store, and a single re-entrant lock makes every method atomic.
"""

import copy
import threading
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from nimmit.applications import WorkerApplication
from nimmit.briefings import Briefing, BriefingStatus
from nimmit.jobs.models import Job, JobStateTransition
from nimmit.ledger.models import CreditCharge
from nimmit.notifications.models import AuditRecord, Notification
from nimmit.payouts.models import PayoutRecord, PayoutRecordStatus
from nimmit.storage.base import CONFLICT, NOT_FOUND
from nimmit.users import User

_ZERO = Decimal("0")


class InMemoryStorage:
    """Thread-safe in-memory implementation of ``NimmitStorage``."""

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._jobs: Dict[str, Job] = {}
        self._transitions: Dict[str, List[JobStateTransition]] = {}  # job_id -> list
        self._payout_records: Dict[str, PayoutRecord] = {}
        self._briefings: Dict[str, Briefing] = {}
        self._applications: Dict[str, WorkerApplication] = {}
        self._audit: List[AuditRecord] = []
        self._notifications: List[Notification] = []

    def _utc_now(self) -> datetime:
        return datetime.now(timezone.utc)

    # === Users ===

    def save_user(self, user: User) -> str:
        with self._lock:
            self._users[user.id] = copy.deepcopy(user)
            return user.id

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return copy.deepcopy(self._users.get(user_id))

    def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return copy.deepcopy(user)
            return None

    def list_users(self, role: Optional[str] = None) -> List[User]:
        with self._lock:
            users = [u for u in self._users.values() if role is None or u.role == role]
            return copy.deepcopy(users)

    def _debit_locked(self, client_id: str, charge: CreditCharge) -> Optional[User]:
        user = self._users.get(client_id)
        if user is None or user.client is None:
            return None
        profile = user.client
        if (
            profile.credits < charge.credits_to_deduct
            or profile.rollover_credits < charge.rollover_to_deduct
        ):
            return None
        profile.credits -= charge.credits_to_deduct
        profile.rollover_credits -= charge.rollover_to_deduct
        return user

    def debit_credits(self, client_id: str, charge: CreditCharge) -> Optional[User]:
        with self._lock:
            return copy.deepcopy(self._debit_locked(client_id, charge))

    def _adjust_worker_locked(
        self,
        worker_id: str,
        current_job_count: int = 0,
        pending_earnings: Decimal = _ZERO,
        total_earnings: Decimal = _ZERO,
        completed_jobs: int = 0,
    ) -> Optional[User]:
        user = self._users.get(worker_id)
        if user is None or user.worker is None:
            return None
        profile = user.worker
        profile.current_job_count = max(0, profile.current_job_count + current_job_count)
        profile.pending_earnings = max(_ZERO, profile.pending_earnings + pending_earnings)
        profile.total_earnings = profile.total_earnings + total_earnings
        profile.completed_jobs = max(0, profile.completed_jobs + completed_jobs)
        return user

    def adjust_worker(
        self,
        worker_id: str,
        current_job_count: int = 0,
        pending_earnings: Decimal = _ZERO,
        total_earnings: Decimal = _ZERO,
        completed_jobs: int = 0,
    ) -> Optional[User]:
        with self._lock:
            user = self._adjust_worker_locked(
                worker_id,
                current_job_count=current_job_count,
                pending_earnings=Decimal(str(pending_earnings)),
                total_earnings=Decimal(str(total_earnings)),
                completed_jobs=completed_jobs,
            )
            return copy.deepcopy(user)

    def update_worker_profile(self, worker_id: str, fields: Dict[str, Any]) -> Optional[User]:
        with self._lock:
            user = self._users.get(worker_id)
            if user is None or user.worker is None:
                return None
            user.worker = replace(user.worker, **fields)
            return copy.deepcopy(user)

    # === Jobs ===

    def create_job_with_charge(
        self, job: Job, charge: CreditCharge, briefing_id: Optional[str] = None
    ) -> Optional[Job]:
        with self._lock:
            if self._debit_locked(job.client_id, charge) is None:
                return None
            client = self._users[job.client_id].client
            client.total_jobs += 1
            client.total_spent += charge.total

            self._jobs[job.id] = copy.deepcopy(job)
            self._transitions.setdefault(job.id, [])

            if briefing_id is not None and briefing_id in self._briefings:
                briefing = self._briefings[briefing_id]
                briefing.status = BriefingStatus.COMPLETED.value
                briefing.job_id = job.id
                briefing.updated_at = self._utc_now()
            return copy.deepcopy(job)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return copy.deepcopy(self._jobs.get(job_id))

    def list_jobs(
        self,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Job], int]:
        with self._lock:
            jobs = list(self._jobs.values())
            if status is not None:
                jobs = [j for j in jobs if j.status == status]
            if client_id is not None:
                jobs = [j for j in jobs if j.client_id == client_id]
            if worker_id is not None:
                jobs = [j for j in jobs if j.worker_id == worker_id]
            jobs.sort(key=lambda j: j.created_at or self._utc_now(), reverse=True)
            return copy.deepcopy(jobs[offset : offset + limit]), len(jobs)

    def update_job(
        self,
        job_id: str,
        expected_status: str,
        expected_version: int,
        fields: Dict[str, Any],
        worker_delta: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[Job], Optional[str]]:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return None, NOT_FOUND
            if current.status != expected_status or current.version != expected_version:
                return None, CONFLICT
            # replace() re-runs model validation
            updated = replace(
                current,
                **copy.deepcopy(fields),
                version=current.version + 1,
                updated_at=self._utc_now(),
            )
            self._jobs[job_id] = updated
            if worker_delta and updated.worker_id:
                self._adjust_worker_locked(updated.worker_id, **worker_delta)
            return copy.deepcopy(updated), None

    def list_unpaid_jobs(self, worker_id: Optional[str] = None) -> List[Job]:
        with self._lock:
            return copy.deepcopy(self._unpaid_locked(worker_id))

    def _unpaid_locked(self, worker_id: Optional[str] = None) -> List[Job]:
        jobs = [
            j
            for j in self._jobs.values()
            if j.is_unpaid and (worker_id is None or j.worker_id == worker_id)
        ]
        jobs.sort(key=lambda j: j.completed_at or self._utc_now())
        return jobs

    def _mark_paid_locked(self, job_ids: List[str], paid_at: datetime) -> List[Job]:
        marked = []
        for job_id in job_ids:
            job = self._jobs.get(job_id)
            if job is None or not job.is_unpaid:
                continue
            job.worker_paid_at = paid_at
            job.version += 1
            job.updated_at = paid_at
            marked.append(job)
        return marked

    def mark_jobs_paid(self, job_ids: List[str], paid_at: datetime) -> List[Job]:
        with self._lock:
            # Jobs held by an open payout are settled by that payout
            held = {
                job_id
                for r in self._payout_records.values()
                if r.is_open
                for job_id in r.job_ids
            }
            marked = self._mark_paid_locked([j for j in job_ids if j not in held], paid_at)
            settled: Dict[str, Decimal] = {}
            for job in marked:
                settled[job.worker_id] = settled.get(job.worker_id, _ZERO) + job.worker_earnings
            for worker_id, amount in settled.items():
                self._adjust_worker_locked(
                    worker_id, pending_earnings=-amount, total_earnings=amount
                )
            return copy.deepcopy(marked)

    def correct_pending_earnings(self, worker_id: str, stored: Decimal) -> Optional[Decimal]:
        with self._lock:
            user = self._users.get(worker_id)
            if user is None or user.worker is None:
                return None
            if user.worker.pending_earnings != stored:
                return None
            if any(r.worker_id == worker_id and r.is_open for r in self._payout_records.values()):
                return None
            expected = sum((j.worker_earnings for j in self._unpaid_locked(worker_id)), _ZERO)
            user.worker.pending_earnings = expected
            return expected

    # === Transitions ===

    def save_transition(self, transition: JobStateTransition) -> str:
        with self._lock:
            self._transitions.setdefault(transition.job_id, []).append(
                copy.deepcopy(transition)
            )
            return transition.id

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        with self._lock:
            transitions = self._transitions.get(job_id, [])
            return copy.deepcopy(
                sorted(transitions, key=lambda t: t.created_at or self._utc_now())
            )

    # === Payouts ===

    def begin_payout(self, record: PayoutRecord) -> Optional[PayoutRecord]:
        with self._lock:
            user = self._users.get(record.worker_id)
            if user is None or user.worker is None:
                return None
            if user.worker.pending_earnings < record.amount:
                return None
            if any(
                r.worker_id == record.worker_id and r.is_open
                for r in self._payout_records.values()
            ):
                return None
            if any(
                job_id not in self._jobs or not self._jobs[job_id].is_unpaid
                for job_id in record.job_ids
            ):
                return None
            stored = replace(copy.deepcopy(record), status=PayoutRecordStatus.INITIATED.value)
            self._payout_records[record.id] = stored
            return copy.deepcopy(stored)

    def update_payout_record(
        self, record_id: str, expected_status: str, fields: Dict[str, Any]
    ) -> Optional[PayoutRecord]:
        with self._lock:
            record = self._payout_records.get(record_id)
            if record is None or record.status != expected_status:
                return None
            updated = replace(record, **copy.deepcopy(fields))
            self._payout_records[record_id] = updated
            return copy.deepcopy(updated)

    def list_payout_records(
        self, worker_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[PayoutRecord]:
        with self._lock:
            records = [
                r
                for r in self._payout_records.values()
                if (worker_id is None or r.worker_id == worker_id)
                and (status is None or r.status == status)
            ]
            records.sort(key=lambda r: r.created_at or self._utc_now())
            return copy.deepcopy(records)

    def settle_payout(self, record_id: str, settled_at: datetime) -> Optional[PayoutRecord]:
        with self._lock:
            record = self._payout_records.get(record_id)
            if record is None or record.status != PayoutRecordStatus.TRANSFERRED.value:
                return None
            self._adjust_worker_locked(
                record.worker_id,
                pending_earnings=-record.amount,
                total_earnings=record.amount,
            )
            self._mark_paid_locked(record.job_ids, settled_at)
            record.status = PayoutRecordStatus.SETTLED.value
            record.settled_at = settled_at
            return copy.deepcopy(record)

    # === Briefings ===

    def save_briefing(self, briefing: Briefing) -> str:
        with self._lock:
            self._briefings[briefing.id] = copy.deepcopy(briefing)
            return briefing.id

    def get_briefing(self, briefing_id: str) -> Optional[Briefing]:
        with self._lock:
            return copy.deepcopy(self._briefings.get(briefing_id))

    def list_briefings(
        self, status: Optional[str] = None, updated_before: Optional[datetime] = None
    ) -> List[Briefing]:
        with self._lock:
            briefings = list(self._briefings.values())
            if status is not None:
                briefings = [b for b in briefings if b.status == status]
            if updated_before is not None:
                briefings = [
                    b
                    for b in briefings
                    if (b.updated_at or b.created_at) is not None
                    and (b.updated_at or b.created_at) < updated_before
                ]
            return copy.deepcopy(briefings)

    def update_briefing(self, briefing_id: str, fields: Dict[str, Any]) -> Optional[Briefing]:
        with self._lock:
            briefing = self._briefings.get(briefing_id)
            if briefing is None:
                return None
            updated = replace(briefing, **fields, updated_at=self._utc_now())
            self._briefings[briefing_id] = updated
            return copy.deepcopy(updated)

    # === Worker applications ===

    def save_application(self, application: WorkerApplication) -> str:
        with self._lock:
            self._applications[application.id] = copy.deepcopy(application)
            return application.id

    def get_application(self, application_id: str) -> Optional[WorkerApplication]:
        with self._lock:
            return copy.deepcopy(self._applications.get(application_id))

    def list_applications(self, status: Optional[str] = None) -> List[WorkerApplication]:
        with self._lock:
            apps = [
                a for a in self._applications.values() if status is None or a.status == status
            ]
            apps.sort(key=lambda a: a.created_at or self._utc_now(), reverse=True)
            return copy.deepcopy(apps)

    def update_application(
        self, application_id: str, expected_status: str, fields: Dict[str, Any]
    ) -> Optional[WorkerApplication]:
        with self._lock:
            app = self._applications.get(application_id)
            if app is None or app.status != expected_status:
                return None
            updated = replace(app, **fields)
            self._applications[application_id] = updated
            return copy.deepcopy(updated)

    # === Audit and notifications ===

    def save_audit_record(self, record: AuditRecord) -> str:
        with self._lock:
            self._audit.append(copy.deepcopy(record))
            return record.id

    def _audit_matches(
        self,
        record: AuditRecord,
        action: Optional[str] = None,
        severity: Optional[str] = None,
        actor_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> bool:
        if action is not None and record.action != action:
            return False
        if severity is not None and record.severity != severity:
            return False
        if actor_id is not None and record.actor_id != actor_id:
            return False
        if target_type is not None and record.target_type != target_type:
            return False
        if target_id is not None and record.target_id != target_id:
            return False
        if since is not None and (record.created_at is None or record.created_at < since):
            return False
        if until is not None and (record.created_at is None or record.created_at > until):
            return False
        return True

    def list_audit_records(
        self,
        action: Optional[str] = None,
        severity: Optional[str] = None,
        actor_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AuditRecord]:
        with self._lock:
            # Appended in write order, so reversing gives newest first
            records = [
                r
                for r in reversed(self._audit)
                if self._audit_matches(
                    r, action, severity, actor_id, target_type, target_id, since, until
                )
            ]
            end = None if limit is None else offset + limit
            return copy.deepcopy(records[offset:end])

    def count_audit_records(
        self,
        action: Optional[str] = None,
        severity: Optional[str] = None,
        actor_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        with self._lock:
            return sum(
                1
                for r in self._audit
                if self._audit_matches(
                    r, action, severity, actor_id, target_type, target_id, since, until
                )
            )

    def save_notification(self, notification: Notification) -> str:
        with self._lock:
            self._notifications.append(copy.deepcopy(notification))
            return notification.id

    def list_notifications(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        with self._lock:
            items = [
                n
                for n in self._notifications
                if n.user_id == user_id and not (unread_only and n.read)
            ]
            items.sort(key=lambda n: n.created_at or self._utc_now(), reverse=True)
            return copy.deepcopy(items[:limit])

    def mark_notifications_read(
        self, user_id: str, notification_ids: Optional[List[str]] = None
    ) -> int:
        with self._lock:
            count = 0
            for notification in self._notifications:
                if notification.user_id != user_id or notification.read:
                    continue
                if notification_ids is not None and notification.id not in notification_ids:
                    continue
                notification.read = True
                count += 1
            return count
