"""Storage protocol for Nimmit.

Every method that touches a balance or a job status is a single atomic
operation on the backend. Conditional writes return ``None`` (or a
``"conflict"`` marker) when their precondition no longer holds instead of
raising, so that callers can decide between retrying and failing.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Tuple

from nimmit.applications import WorkerApplication
from nimmit.briefings import Briefing
from nimmit.jobs.models import Job, JobStateTransition
from nimmit.ledger.models import CreditCharge
from nimmit.notifications.models import AuditRecord, Notification
from nimmit.payouts.models import PayoutRecord
from nimmit.users import User

# update_job outcomes
NOT_FOUND = "not_found"
CONFLICT = "conflict"


class NimmitStorage(Protocol):
    """Protocol for Nimmit persistence backends."""

    # Users
    def save_user(self, user: User) -> str:
        """Insert or replace a user. Returns the user ID."""
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    def list_users(self, role: Optional[str] = None) -> List[User]:
        ...

    def debit_credits(self, client_id: str, charge: CreditCharge) -> Optional[User]:
        """Deduct both balances if they still cover the charge.

        Returns the updated user, or None when the balance no longer suffices.
        """
        ...

    def adjust_worker(
        self,
        worker_id: str,
        current_job_count: int = 0,
        pending_earnings: Decimal = Decimal("0"),
        total_earnings: Decimal = Decimal("0"),
        completed_jobs: int = 0,
    ) -> Optional[User]:
        """Apply atomic increments to a worker's counters.

        Counters never go below zero.
        """
        ...

    def update_worker_profile(self, worker_id: str, fields: Dict[str, Any]) -> Optional[User]:
        """Overwrite worker ratings or job counts. Earnings move only through job and payout writes."""
        ...

    # Jobs
    def create_job_with_charge(
        self, job: Job, charge: CreditCharge, briefing_id: Optional[str] = None
    ) -> Optional[Job]:
        """Debit the client, insert the job and close the briefing as one unit.

        Returns None, with nothing written, if the balance no longer covers
        the charge.
        """
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        ...

    def list_jobs(
        self,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Job], int]:
        """List jobs newest first. Returns (page, total)."""
        ...

    def update_job(
        self,
        job_id: str,
        expected_status: str,
        expected_version: int,
        fields: Dict[str, Any],
        worker_delta: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[Job], Optional[str]]:
        """Compare-and-swap update on status and version.

        ``worker_delta`` holds ``adjust_worker`` increments for the job's
        worker (after the update) and is applied in the same unit as the job
        write. Returns (job, None) on success, (None, "not_found") or
        (None, "conflict").
        """
        ...

    def list_unpaid_jobs(self, worker_id: Optional[str] = None) -> List[Job]:
        """Completed jobs with earnings and no ``worker_paid_at``."""
        ...

    def mark_jobs_paid(self, job_ids: List[str], paid_at: datetime) -> List[Job]:
        """Set ``worker_paid_at`` on the listed jobs that are still unpaid.

        The earnings of the marked jobs move from each worker's pending to
        total earnings in the same unit. Jobs held by an open payout record
        are skipped. Returns the jobs that were marked.
        """
        ...

    def correct_pending_earnings(self, worker_id: str, stored: Decimal) -> Optional[Decimal]:
        """Reset pending earnings to the sum of the worker's unpaid jobs.

        Only writes while the balance still equals ``stored`` and the worker
        has no open payout record. Returns the value written, or None when
        the correction was skipped.
        """
        ...

    # Transitions
    def save_transition(self, transition: JobStateTransition) -> str:
        ...

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        ...

    # Payouts
    def begin_payout(self, record: PayoutRecord) -> Optional[PayoutRecord]:
        """Insert an ``initiated`` payout record.

        Refused (None) if the worker already has an open record, if their
        pending earnings no longer cover the amount or if any of the
        record's jobs is already paid.
        """
        ...

    def update_payout_record(
        self, record_id: str, expected_status: str, fields: Dict[str, Any]
    ) -> Optional[PayoutRecord]:
        """Conditional update on the current status."""
        ...

    def list_payout_records(
        self, worker_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[PayoutRecord]:
        ...

    def settle_payout(self, record_id: str, settled_at: datetime) -> Optional[PayoutRecord]:
        """Settle a transferred payout as one unit.

        Decrements the worker's pending earnings by the record amount, adds
        it to total earnings, marks the record's jobs paid and flips the
        record to settled. Returns None unless the record is ``transferred``.
        """
        ...

    # Briefings
    def save_briefing(self, briefing: Briefing) -> str:
        ...

    def get_briefing(self, briefing_id: str) -> Optional[Briefing]:
        ...

    def list_briefings(
        self, status: Optional[str] = None, updated_before: Optional[datetime] = None
    ) -> List[Briefing]:
        ...

    def update_briefing(self, briefing_id: str, fields: Dict[str, Any]) -> Optional[Briefing]:
        ...

    # Worker applications
    def save_application(self, application: WorkerApplication) -> str:
        ...

    def get_application(self, application_id: str) -> Optional[WorkerApplication]:
        ...

    def list_applications(self, status: Optional[str] = None) -> List[WorkerApplication]:
        ...

    def update_application(
        self, application_id: str, expected_status: str, fields: Dict[str, Any]
    ) -> Optional[WorkerApplication]:
        """Conditional update on the current status."""
        ...

    # Audit and notifications
    def save_audit_record(self, record: AuditRecord) -> str:
        ...

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
        """Audit records newest first. ``since`` and ``until`` are inclusive."""
        ...

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
        ...

    def save_notification(self, notification: Notification) -> str:
        ...

    def list_notifications(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        ...

    def mark_notifications_read(
        self, user_id: str, notification_ids: Optional[List[str]] = None
    ) -> int:
        """Mark some (or all) of a user's notifications read. Returns the count."""
        ...
