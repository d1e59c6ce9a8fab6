"""Supabase storage backend.

Single-row conditional writes use ``UPDATE ... WHERE`` through the table
API. Operations that span rows (charging a client while inserting a job,
settling a payout) call Postgres functions defined in
``backend/supabase/migrations/001_nimmit_schema.sql`` so they commit or
fail as one transaction.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from dateutil.parser import parse as parse_datetime
from supabase import Client

from nimmit.applications import WorkerApplication
from nimmit.briefings import Briefing, ExtractedBrief
from nimmit.errors import PersistenceError
from nimmit.jobs.models import (
    ConfidenceFlag,
    Job,
    JobFile,
    JobMessage,
    JobStateTransition,
    JobStatus,
    ProgressUpdate,
)
from nimmit.ledger.models import CreditCharge
from nimmit.notifications.models import AuditRecord, Notification
from nimmit.payouts.models import PayoutRecord
from nimmit.storage.base import CONFLICT, NOT_FOUND
from nimmit.users import ClientProfile, User, WorkerProfile

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
JOBS_TABLE = "jobs"
JOB_TRANSITIONS_TABLE = "job_state_transitions"
PAYOUT_RECORDS_TABLE = "payout_records"
BRIEFINGS_TABLE = "briefings"
APPLICATIONS_TABLE = "worker_applications"
AUDIT_TABLE = "audit_logs"
NOTIFICATIONS_TABLE = "notifications"

_WORKER_COLUMNS = {
    "availability": "availability",
    "skills": "skills",
    "current_job_count": "current_job_count",
    "max_concurrent_jobs": "max_concurrent_jobs",
    "pending_earnings": "pending_earnings",
    "total_earnings": "total_earnings",
    "completed_jobs": "completed_jobs",
    "avg_rating": "avg_rating",
    "payout_account_id": "payout_account_id",
    "bio": "bio",
}


def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_datetime(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dec(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _serialize(value: Any) -> Any:
    """Turn model values into JSON-compatible column values."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


# === Row mapping ===


def user_to_row(user: User) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "password_hash": user.password_hash,
        "is_active": user.is_active,
        "created_at": _iso(user.created_at),
    }
    if user.client is not None:
        row.update(
            credits=user.client.credits,
            rollover_credits=user.client.rollover_credits,
            total_jobs=user.client.total_jobs,
            total_spent=user.client.total_spent,
        )
    if user.worker is not None:
        for attr, column in _WORKER_COLUMNS.items():
            row[column] = _serialize(getattr(user.worker, attr))
    return row


def row_to_user(row: Dict[str, Any]) -> User:
    client = None
    worker = None
    if row["role"] == "client":
        client = ClientProfile(
            credits=row.get("credits") or 0,
            rollover_credits=row.get("rollover_credits") or 0,
            total_jobs=row.get("total_jobs") or 0,
            total_spent=row.get("total_spent") or 0,
        )
    elif row["role"] == "worker":
        worker = WorkerProfile(
            availability=row.get("availability") or "offline",
            skills=row.get("skills") or [],
            current_job_count=row.get("current_job_count") or 0,
            max_concurrent_jobs=row.get("max_concurrent_jobs") or 3,
            pending_earnings=_dec(row.get("pending_earnings")),
            total_earnings=_dec(row.get("total_earnings")),
            completed_jobs=row.get("completed_jobs") or 0,
            avg_rating=float(row.get("avg_rating") or 0),
            payout_account_id=row.get("payout_account_id"),
            bio=row.get("bio"),
        )
    return User(
        id=row["id"],
        email=row["email"],
        role=row["role"],
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        password_hash=row.get("password_hash"),
        is_active=row.get("is_active", True),
        client=client,
        worker=worker,
        created_at=_dt(row.get("created_at")),
    )


def _file(data: Dict[str, Any]) -> JobFile:
    return JobFile(
        id=data["id"],
        name=data["name"],
        url=data["url"],
        size=data.get("size", 0),
        mime_type=data.get("mime_type", "application/octet-stream"),
        version=data.get("version", 1),
        uploaded_at=_dt(data.get("uploaded_at")),
    )


def job_to_row(job: Job) -> Dict[str, Any]:
    row = job.to_dict()
    row["worker_earnings"] = str(job.worker_earnings)
    return row


def row_to_job(row: Dict[str, Any]) -> Job:
    flag = row.get("confidence_flag")
    return Job(
        id=row["id"],
        client_id=row["client_id"],
        worker_id=row.get("worker_id"),
        assigned_by=row.get("assigned_by"),
        briefing_id=row.get("briefing_id"),
        title=row["title"],
        description=row.get("description") or "",
        category=row["category"],
        priority=row.get("priority") or "standard",
        status=row["status"],
        credits_charged=row.get("credits_charged") or 0,
        worker_earnings=_dec(row.get("worker_earnings")),
        rating=row.get("rating"),
        feedback=row.get("feedback"),
        estimated_hours=row.get("estimated_hours"),
        files=[_file(f) for f in row.get("files") or []],
        deliverables=[_file(f) for f in row.get("deliverables") or []],
        messages=[
            JobMessage(
                id=m["id"],
                sender_id=m["sender_id"],
                sender_role=m["sender_role"],
                message=m["message"],
                timestamp=_dt(m["timestamp"]),
            )
            for m in row.get("messages") or []
        ],
        progress_updates=[
            ProgressUpdate(
                id=p["id"],
                content=p["content"],
                percentage=p.get("percentage"),
                created_at=_dt(p["created_at"]),
            )
            for p in row.get("progress_updates") or []
        ],
        confidence_flag=(
            ConfidenceFlag(
                flagged=flag.get("flagged", False),
                reason=flag.get("reason"),
                flagged_at=_dt(flag.get("flagged_at")),
                resolved_at=_dt(flag.get("resolved_at")),
                resolved_by=flag.get("resolved_by"),
            )
            if flag
            else None
        ),
        version=row.get("version") or 1,
        created_at=_dt(row.get("created_at")),
        updated_at=_dt(row.get("updated_at")),
        due_date=_dt(row.get("due_date")),
        assigned_at=_dt(row.get("assigned_at")),
        started_at=_dt(row.get("started_at")),
        completed_at=_dt(row.get("completed_at")),
        cancelled_at=_dt(row.get("cancelled_at")),
        worker_paid_at=_dt(row.get("worker_paid_at")),
    )


def row_to_transition(row: Dict[str, Any]) -> JobStateTransition:
    return JobStateTransition(
        id=row["id"],
        job_id=row["job_id"],
        from_status=row.get("from_status"),
        to_status=row["to_status"],
        actor_id=row["actor_id"],
        actor_role=row.get("actor_role"),
        metadata=row.get("metadata") or {},
        created_at=_dt(row.get("created_at")),
    )


def row_to_payout_record(row: Dict[str, Any]) -> PayoutRecord:
    return PayoutRecord(
        id=row["id"],
        worker_id=row["worker_id"],
        amount=_dec(row["amount"]),
        idempotency_key=row["idempotency_key"],
        job_ids=row.get("job_ids") or [],
        status=row["status"],
        transfer_id=row.get("transfer_id"),
        error=row.get("error"),
        created_at=_dt(row.get("created_at")),
        settled_at=_dt(row.get("settled_at")),
    )


def row_to_briefing(row: Dict[str, Any]) -> Briefing:
    brief = row.get("extracted_brief")
    return Briefing(
        id=row["id"],
        client_id=row["client_id"],
        status=row["status"],
        extracted_brief=ExtractedBrief.from_dict(brief) if brief else None,
        job_id=row.get("job_id"),
        created_at=_dt(row.get("created_at")),
        updated_at=_dt(row.get("updated_at")),
    )


def row_to_application(row: Dict[str, Any]) -> WorkerApplication:
    return WorkerApplication(
        id=row["id"],
        email=row["email"],
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        skills=row.get("skills") or [],
        experience=row.get("experience"),
        portfolio_url=row.get("portfolio_url"),
        status=row["status"],
        reviewed_by=row.get("reviewed_by"),
        reviewed_at=_dt(row.get("reviewed_at")),
        user_id=row.get("user_id"),
        created_at=_dt(row.get("created_at")),
    )


def row_to_audit_record(row: Dict[str, Any]) -> AuditRecord:
    return AuditRecord(
        id=row["id"],
        action=row["action"],
        severity=row.get("severity") or "info",
        actor_id=row.get("actor_id"),
        actor_role=row.get("actor_role"),
        target_type=row.get("target_type"),
        target_id=row.get("target_id"),
        description=row.get("description") or "",
        metadata=row.get("metadata") or {},
        created_at=_dt(row.get("created_at")),
    )


def row_to_notification(row: Dict[str, Any]) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        message=row["message"],
        data=row.get("data") or {},
        read=row.get("read", False),
        created_at=_dt(row.get("created_at")),
    )


class SupabaseStorage:
    """``NimmitStorage`` on top of a supabase-py client."""

    def __init__(self, client: Client):
        self.db = client

    def _execute(self, query, operation: str):
        try:
            return query.execute()
        except Exception as e:
            logger.error(f"Supabase {operation} failed: {e}")
            raise PersistenceError(f"Database error during {operation}") from e

    def _first(self, result):
        return result.data[0] if result.data else None

    # === Users ===

    def save_user(self, user: User) -> str:
        self._execute(self.db.table(USERS_TABLE).upsert(user_to_row(user)), "save_user")
        return user.id

    def get_user(self, user_id: str) -> Optional[User]:
        result = self._execute(
            self.db.table(USERS_TABLE).select("*").eq("id", user_id), "get_user"
        )
        row = self._first(result)
        return row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        result = self._execute(
            self.db.table(USERS_TABLE).select("*").eq("email", email.strip().lower()),
            "get_user_by_email",
        )
        row = self._first(result)
        return row_to_user(row) if row else None

    def list_users(self, role: Optional[str] = None) -> List[User]:
        query = self.db.table(USERS_TABLE).select("*")
        if role is not None:
            query = query.eq("role", role)
        result = self._execute(query, "list_users")
        return [row_to_user(r) for r in result.data or []]

    def debit_credits(self, client_id: str, charge: CreditCharge) -> Optional[User]:
        result = self._execute(
            self.db.rpc(
                "debit_client_credits",
                {
                    "p_client_id": client_id,
                    "p_credits": charge.credits_to_deduct,
                    "p_rollover": charge.rollover_to_deduct,
                },
            ),
            "debit_credits",
        )
        row = self._first(result)
        return row_to_user(row) if row else None

    def adjust_worker(
        self,
        worker_id: str,
        current_job_count: int = 0,
        pending_earnings: Decimal = Decimal("0"),
        total_earnings: Decimal = Decimal("0"),
        completed_jobs: int = 0,
    ) -> Optional[User]:
        result = self._execute(
            self.db.rpc(
                "adjust_worker_counters",
                {
                    "p_worker_id": worker_id,
                    "p_job_count_delta": current_job_count,
                    "p_pending_delta": str(pending_earnings),
                    "p_total_delta": str(total_earnings),
                    "p_completed_delta": completed_jobs,
                },
            ),
            "adjust_worker",
        )
        row = self._first(result)
        return row_to_user(row) if row else None

    def update_worker_profile(self, worker_id: str, fields: Dict[str, Any]) -> Optional[User]:
        data = {_WORKER_COLUMNS[k]: _serialize(v) for k, v in fields.items()}
        result = self._execute(
            self.db.table(USERS_TABLE).update(data).eq("id", worker_id).eq("role", "worker"),
            "update_worker_profile",
        )
        row = self._first(result)
        return row_to_user(row) if row else None

    # === Jobs ===

    def create_job_with_charge(
        self, job: Job, charge: CreditCharge, briefing_id: Optional[str] = None
    ) -> Optional[Job]:
        result = self._execute(
            self.db.rpc(
                "create_job_with_charge",
                {
                    "p_job": job_to_row(job),
                    "p_credits": charge.credits_to_deduct,
                    "p_rollover": charge.rollover_to_deduct,
                    "p_briefing_id": briefing_id,
                },
            ),
            "create_job_with_charge",
        )
        row = self._first(result)
        return row_to_job(row) if row else None

    def get_job(self, job_id: str) -> Optional[Job]:
        result = self._execute(self.db.table(JOBS_TABLE).select("*").eq("id", job_id), "get_job")
        row = self._first(result)
        return row_to_job(row) if row else None

    def list_jobs(
        self,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Job], int]:
        query = self.db.table(JOBS_TABLE).select("*", count="exact")
        if status:
            query = query.eq("status", status)
        if client_id:
            query = query.eq("client_id", client_id)
        if worker_id:
            query = query.eq("worker_id", worker_id)
        query = query.order("created_at", desc=True).range(offset, offset + limit - 1)
        result = self._execute(query, "list_jobs")
        return [row_to_job(r) for r in result.data or []], result.count or 0

    def update_job(
        self,
        job_id: str,
        expected_status: str,
        expected_version: int,
        fields: Dict[str, Any],
        worker_delta: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[Job], Optional[str]]:
        update_data = {k: _serialize(v) for k, v in fields.items()}

        if worker_delta:
            query = self.db.rpc(
                "update_job_with_worker_delta",
                {
                    "p_job_id": job_id,
                    "p_expected_status": expected_status,
                    "p_expected_version": expected_version,
                    "p_fields": update_data,
                    "p_job_count_delta": worker_delta.get("current_job_count", 0),
                    "p_pending_delta": str(worker_delta.get("pending_earnings", 0)),
                    "p_total_delta": str(worker_delta.get("total_earnings", 0)),
                    "p_completed_delta": worker_delta.get("completed_jobs", 0),
                },
            )
        else:
            update_data["version"] = expected_version + 1
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
            # Only succeeds if nobody changed the job since it was read
            query = (
                self.db.table(JOBS_TABLE)
                .update(update_data)
                .eq("id", job_id)
                .eq("status", expected_status)
                .eq("version", expected_version)
            )
        row = self._first(self._execute(query, "update_job"))
        if row:
            return row_to_job(row), None

        current = self.get_job(job_id)
        if current is None:
            return None, NOT_FOUND
        logger.warning(
            f"Race condition detected on job {job_id}: expected status '{expected_status}' "
            f"v{expected_version}, found '{current.status}' v{current.version}"
        )
        return None, CONFLICT

    def list_unpaid_jobs(self, worker_id: Optional[str] = None) -> List[Job]:
        query = (
            self.db.table(JOBS_TABLE)
            .select("*")
            .eq("status", JobStatus.COMPLETED.value)
            .gt("worker_earnings", 0)
            .is_("worker_paid_at", "null")
        )
        if worker_id:
            query = query.eq("worker_id", worker_id)
        result = self._execute(query.order("completed_at"), "list_unpaid_jobs")
        return [row_to_job(r) for r in result.data or []]

    def mark_jobs_paid(self, job_ids: List[str], paid_at: datetime) -> List[Job]:
        if not job_ids:
            return []
        result = self._execute(
            self.db.rpc(
                "settle_jobs_paid", {"p_job_ids": job_ids, "p_paid_at": paid_at.isoformat()}
            ),
            "mark_jobs_paid",
        )
        return [row_to_job(r) for r in result.data or []]

    def correct_pending_earnings(self, worker_id: str, stored: Decimal) -> Optional[Decimal]:
        result = self._execute(
            self.db.rpc(
                "correct_pending_earnings",
                {"p_worker_id": worker_id, "p_stored": str(stored)},
            ),
            "correct_pending_earnings",
        )
        value = result.data
        if isinstance(value, list):
            value = value[0] if value else None
        return _dec(value) if value is not None else None

    # === Transitions ===

    def save_transition(self, transition: JobStateTransition) -> str:
        self._execute(
            self.db.table(JOB_TRANSITIONS_TABLE).insert(transition.to_dict()), "save_transition"
        )
        return transition.id

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        result = self._execute(
            self.db.table(JOB_TRANSITIONS_TABLE)
            .select("*")
            .eq("job_id", job_id)
            .order("created_at"),
            "get_transitions",
        )
        return [row_to_transition(r) for r in result.data or []]

    # === Payouts ===

    def begin_payout(self, record: PayoutRecord) -> Optional[PayoutRecord]:
        result = self._execute(
            self.db.rpc("begin_worker_payout", {"p_record": record.to_dict()}), "begin_payout"
        )
        row = self._first(result)
        return row_to_payout_record(row) if row else None

    def update_payout_record(
        self, record_id: str, expected_status: str, fields: Dict[str, Any]
    ) -> Optional[PayoutRecord]:
        result = self._execute(
            self.db.table(PAYOUT_RECORDS_TABLE)
            .update({k: _serialize(v) for k, v in fields.items()})
            .eq("id", record_id)
            .eq("status", expected_status),
            "update_payout_record",
        )
        row = self._first(result)
        return row_to_payout_record(row) if row else None

    def list_payout_records(
        self, worker_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[PayoutRecord]:
        query = self.db.table(PAYOUT_RECORDS_TABLE).select("*")
        if worker_id:
            query = query.eq("worker_id", worker_id)
        if status:
            query = query.eq("status", status)
        result = self._execute(query.order("created_at"), "list_payout_records")
        return [row_to_payout_record(r) for r in result.data or []]

    def settle_payout(self, record_id: str, settled_at: datetime) -> Optional[PayoutRecord]:
        result = self._execute(
            self.db.rpc(
                "settle_worker_payout",
                {"p_record_id": record_id, "p_settled_at": settled_at.isoformat()},
            ),
            "settle_payout",
        )
        row = self._first(result)
        return row_to_payout_record(row) if row else None

    # === Briefings ===

    def save_briefing(self, briefing: Briefing) -> str:
        self._execute(self.db.table(BRIEFINGS_TABLE).upsert(briefing.to_dict()), "save_briefing")
        return briefing.id

    def get_briefing(self, briefing_id: str) -> Optional[Briefing]:
        result = self._execute(
            self.db.table(BRIEFINGS_TABLE).select("*").eq("id", briefing_id), "get_briefing"
        )
        row = self._first(result)
        return row_to_briefing(row) if row else None

    def list_briefings(
        self, status: Optional[str] = None, updated_before: Optional[datetime] = None
    ) -> List[Briefing]:
        query = self.db.table(BRIEFINGS_TABLE).select("*")
        if status:
            query = query.eq("status", status)
        if updated_before is not None:
            query = query.lt("updated_at", updated_before.isoformat())
        result = self._execute(query, "list_briefings")
        return [row_to_briefing(r) for r in result.data or []]

    def update_briefing(self, briefing_id: str, fields: Dict[str, Any]) -> Optional[Briefing]:
        data = {k: _serialize(v) for k, v in fields.items()}
        data["updated_at"] = datetime.now(timezone.utc).isoformat()
        result = self._execute(
            self.db.table(BRIEFINGS_TABLE).update(data).eq("id", briefing_id), "update_briefing"
        )
        row = self._first(result)
        return row_to_briefing(row) if row else None

    # === Worker applications ===

    def save_application(self, application: WorkerApplication) -> str:
        self._execute(
            self.db.table(APPLICATIONS_TABLE).insert(application.to_dict()), "save_application"
        )
        return application.id

    def get_application(self, application_id: str) -> Optional[WorkerApplication]:
        result = self._execute(
            self.db.table(APPLICATIONS_TABLE).select("*").eq("id", application_id),
            "get_application",
        )
        row = self._first(result)
        return row_to_application(row) if row else None

    def list_applications(self, status: Optional[str] = None) -> List[WorkerApplication]:
        query = self.db.table(APPLICATIONS_TABLE).select("*")
        if status:
            query = query.eq("status", status)
        result = self._execute(query.order("created_at", desc=True), "list_applications")
        return [row_to_application(r) for r in result.data or []]

    def update_application(
        self, application_id: str, expected_status: str, fields: Dict[str, Any]
    ) -> Optional[WorkerApplication]:
        data = {k: _serialize(v) for k, v in fields.items()}
        result = self._execute(
            self.db.table(APPLICATIONS_TABLE)
            .update(data)
            .eq("id", application_id)
            .eq("status", expected_status),
            "update_application",
        )
        row = self._first(result)
        return row_to_application(row) if row else None

    # === Audit and notifications ===

    def save_audit_record(self, record: AuditRecord) -> str:
        self._execute(self.db.table(AUDIT_TABLE).insert(record.to_dict()), "save_audit_record")
        return record.id

    def _audit_query(
        self,
        query,
        action: Optional[str] = None,
        severity: Optional[str] = None,
        actor_id: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ):
        for column, value in (
            ("action", action),
            ("severity", severity),
            ("actor_id", actor_id),
            ("target_type", target_type),
            ("target_id", target_id),
        ):
            if value:
                query = query.eq(column, value)
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        if until is not None:
            query = query.lte("created_at", until.isoformat())
        return query

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
        query = self._audit_query(
            self.db.table(AUDIT_TABLE).select("*"),
            action, severity, actor_id, target_type, target_id, since, until
        ).order("created_at", desc=True)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        result = self._execute(query, "list_audit_records")
        return [row_to_audit_record(r) for r in result.data or []]

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
        query = self._audit_query(
            self.db.table(AUDIT_TABLE).select("id", count="exact").limit(1),
            action, severity, actor_id, target_type, target_id, since, until
        )
        result = self._execute(query, "count_audit_records")
        return result.count or 0

    def save_notification(self, notification: Notification) -> str:
        self._execute(
            self.db.table(NOTIFICATIONS_TABLE).insert(notification.to_dict()), "save_notification"
        )
        return notification.id

    def list_notifications(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> List[Notification]:
        query = self.db.table(NOTIFICATIONS_TABLE).select("*").eq("user_id", user_id)
        if unread_only:
            query = query.eq("read", False)
        result = self._execute(
            query.order("created_at", desc=True).limit(limit), "list_notifications"
        )
        return [row_to_notification(r) for r in result.data or []]

    def mark_notifications_read(
        self, user_id: str, notification_ids: Optional[List[str]] = None
    ) -> int:
        query = (
            self.db.table(NOTIFICATIONS_TABLE)
            .update({"read": True})
            .eq("user_id", user_id)
            .eq("read", False)
        )
        if notification_ids is not None:
            query = query.in_("id", notification_ids)
        result = self._execute(query, "mark_notifications_read")
        return len(result.data or [])
