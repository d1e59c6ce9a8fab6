"""Worker applications.

Applicants apply to become workers. An admin reviews each pending
application once: approval creates the worker account with a temporary
password, rejection is final.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import bcrypt

from nimmit.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from nimmit.users import Actor, User, UserRole, WorkerProfile

logger = logging.getLogger(__name__)


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class WorkerApplication:
    id: str
    email: str
    first_name: str
    last_name: str
    skills: List[str] = field(default_factory=list)
    experience: Optional[str] = None
    portfolio_url: Optional[str] = None
    status: str = ApplicationStatus.PENDING.value
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, ApplicationStatus):
            self.status = self.status.value
        if self.status not in {s.value for s in ApplicationStatus}:
            raise ValueError(f"Invalid application status: {self.status}")
        self.email = self.email.strip().lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "skills": list(self.skills),
            "experience": self.experience,
            "portfolio_url": self.portfolio_url,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ReviewOutcome:
    application: WorkerApplication
    user: Optional[User] = None
    temporary_password: Optional[str] = None


def generate_temporary_password() -> str:
    return secrets.token_urlsafe(12)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


class ApplicationService:
    """Review queue for worker applications."""

    def __init__(self, storage, notifier=None, max_concurrent_jobs: int = 3):
        self.storage = storage
        self.notifier = notifier
        self.max_concurrent_jobs = max_concurrent_jobs

    def list_applications(self, status: Optional[str] = None) -> Dict[str, Any]:
        """List applications, newest first, with counts per status."""
        if isinstance(status, ApplicationStatus):
            status = status.value
        if status is not None and status not in {s.value for s in ApplicationStatus}:
            raise ValidationError("status", f"Invalid status: {status}")

        everything = self.storage.list_applications()
        stats = {s.value: 0 for s in ApplicationStatus}
        for app in everything:
            stats[app.status] += 1
        stats["total"] = len(everything)

        selected = [a for a in everything if status is None or a.status == status]
        return {"applications": selected, "stats": stats}

    def review_application(
        self, application_id: str, decision: str, admin: Actor
    ) -> ReviewOutcome:
        """Approve or reject a pending application."""
        if isinstance(decision, ApplicationStatus):
            decision = decision.value
        if decision not in (ApplicationStatus.APPROVED.value, ApplicationStatus.REJECTED.value):
            raise ValidationError("status", "Status must be approved or rejected")

        application = self.storage.get_application(application_id)
        if application is None:
            raise NotFoundError("Application", application_id)
        if application.status != ApplicationStatus.PENDING.value:
            raise InvalidTransitionError(
                application.status,
                decision,
                message=f"Application has already been {application.status}",
            )

        user = None
        temporary_password = None
        if decision == ApplicationStatus.APPROVED.value:
            if self.storage.get_user_by_email(application.email) is not None:
                raise ConflictError(f"A user with email {application.email} already exists")
            temporary_password = generate_temporary_password()
            user = User(
                id=str(uuid.uuid4()),
                email=application.email,
                role=UserRole.WORKER.value,
                first_name=application.first_name,
                last_name=application.last_name,
                password_hash=hash_password(temporary_password),
                worker=WorkerProfile(
                    skills=list(application.skills),
                    max_concurrent_jobs=self.max_concurrent_jobs,
                ),
                created_at=datetime.now(timezone.utc),
            )

        updated = self.storage.update_application(
            application_id,
            expected_status=ApplicationStatus.PENDING.value,
            fields={
                "status": decision,
                "reviewed_by": admin.id,
                "reviewed_at": datetime.now(timezone.utc),
                "user_id": user.id if user else None,
            },
        )
        if updated is None:
            raise ConflictError("Application was reviewed concurrently")

        if user is not None:
            try:
                self.storage.save_user(user)
            except Exception as e:
                logger.error(
                    f"Worker creation failed, application reopened | application={application_id} "
                    f"| error={e}"
                )
                self.storage.update_application(
                    application_id,
                    expected_status=ApplicationStatus.APPROVED.value,
                    fields={
                        "status": ApplicationStatus.PENDING.value,
                        "reviewed_by": None,
                        "reviewed_at": None,
                        "user_id": None,
                    },
                )
                raise
            logger.info(
                f"Worker created from application | application={application_id} | user={user.id}"
            )
            if self.notifier is not None:
                self.notifier.notify(
                    user.id,
                    "worker_welcome",
                    {"message": "Sign in with the temporary password sent to your email."},
                )
        else:
            logger.info(f"Application rejected | application={application_id} | admin={admin.id}")

        if self.notifier is not None:
            self.notifier.audit_admin(
                admin,
                f"application.{decision}",
                target_type="application",
                target_id=application_id,
                description=f"Application {decision} for {application.email}",
            )

        return ReviewOutcome(
            application=updated, user=user, temporary_password=temporary_password
        )
