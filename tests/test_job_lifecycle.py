"""Tests for the job lifecycle service."""

import copy
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from nimmit.briefings import Briefing, BriefingStatus, ExtractedBrief
from nimmit.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    MessagingClosedError,
    NotFoundError,
    ValidationError,
)
from nimmit.jobs.models import Job, JobFile, JobStatus
from nimmit.storage import InMemoryStorage


def stale_reads(monkeypatch, storage, job):
    """Make the service read an outdated snapshot of ``job``."""
    snapshot = copy.deepcopy(job)
    monkeypatch.setattr(storage, "get_job", lambda job_id: copy.deepcopy(snapshot))


def current(storage, job_id):
    return InMemoryStorage.get_job(storage, job_id)


class TestCreateJob:
    """Tests for job submission."""

    def test_creates_pending_job_with_due_date(self, service, client_user):
        job, cost = service.create_job(
            client_user.as_actor(), "Launch teaser", "Cut a teaser", "design", "rush"
        )

        assert job.status == JobStatus.PENDING.value
        assert job.version == 1
        assert job.credits_charged == cost.total == 4
        assert job.due_date - job.created_at == timedelta(hours=12)

    def test_records_creation_transition(self, service, storage, client_user):
        job, _ = service.create_job(client_user.as_actor(), "Logo", "New logo", "design")

        transitions = storage.get_transitions(job.id)
        assert len(transitions) == 1
        assert transitions[0].from_status is None
        assert transitions[0].to_status == "pending"

    def test_audits_charge(self, service, storage, client_user):
        job, _ = service.create_job(client_user.as_actor(), "Logo", "New logo", "design")

        actions = {r.action for r in storage.list_audit_records(target_id=job.id)}
        assert {"job.created", "payment.credits_deducted"} <= actions

    @pytest.mark.parametrize(
        "field,kwargs",
        [
            ("title", {"title": "   "}),
            ("title", {"title": "x" * 201}),
            ("description", {"description": ""}),
            ("category", {"category": "music"}),
            ("priority", {"priority": "asap"}),
        ],
    )
    def test_validation_happens_before_charging(self, service, storage, client_user, field, kwargs):
        args = {"title": "Logo", "description": "New logo", "category": "design"}
        args.update(kwargs)

        with pytest.raises(ValidationError) as exc_info:
            service.create_job(client_user.as_actor(), **args)

        assert exc_info.value.field == field
        assert storage.get_user(client_user.id).client.credits == 200

    def test_only_clients_create_jobs(self, service, worker_user):
        with pytest.raises(ForbiddenError):
            service.create_job(worker_user.as_actor(), "Logo", "New logo", "design")


class TestLifecycle:
    """Status changes along the happy path."""

    def test_scenario_c_completion_credits_worker(self, service, storage, job_in, client_user, worker_user):
        job = job_in("review")
        assert storage.get_user(worker_user.id).worker.current_job_count == 1

        completed = service.complete_job(job.id, client_user.as_actor(), rating=4)

        assert completed.status == "completed"
        assert completed.completed_at is not None
        assert completed.worker_earnings == Decimal("14.00")
        worker = storage.get_user(worker_user.id).worker
        assert worker.pending_earnings == Decimal("14.00")
        assert worker.current_job_count == 0
        assert worker.completed_jobs == 1

    def test_every_step_bumps_version(self, job_in):
        job = job_in("review")
        # created, assigned, started, submitted
        assert job.version == 4

    def test_transition_log_follows_the_path(self, service, job_in, client_user):
        job = job_in("completed")

        transitions = service.get_transitions(job.id, client_user.as_actor())

        path = [(t.from_status, t.to_status) for t in transitions]
        assert path == [
            (None, "pending"),
            ("pending", "assigned"),
            ("assigned", "in_progress"),
            ("in_progress", "review"),
            ("review", "completed"),
        ]

    def test_revision_round_trip_versions_deliverables(self, service, job_in, client_user, worker_user):
        worker = worker_user.as_actor()
        job = job_in("in_progress")
        draft = JobFile(id="", name="v1.png", url="https://files.example.com/v1.png")
        job = service.submit_for_review(job.id, worker, [draft])
        job = service.request_revision(job.id, client_user.as_actor(), "Bigger")

        final = JobFile(id="", name="v2.png", url="https://files.example.com/v2.png")
        job = service.update_status(job.id, worker, "review", deliverables=[final])

        assert job.status == "review"
        assert [d.version for d in job.deliverables] == [1, 2]
        assert all(d.id for d in job.deliverables)

    def test_revision_requires_feedback(self, service, job_in, client_user):
        job = job_in("review")
        with pytest.raises(ValidationError, match="Feedback is required"):
            service.request_revision(job.id, client_user.as_actor(), "  ")

    def test_assignment_notifies_worker(self, storage, job_in, worker_user):
        job_in("assigned", title="Banner")

        notifications = storage.list_notifications(worker_user.id)
        assert [n.type for n in notifications] == ["job_assigned"]
        assert "Banner" in notifications[0].message


class TestInvalidTransitions:
    """Rejected transitions leave the job untouched."""

    def test_pending_cannot_complete(self, service, storage, job_in, client_user):
        job = job_in("pending")

        with pytest.raises(InvalidTransitionError) as exc_info:
            service.complete_job(job.id, client_user.as_actor(), rating=5)

        assert exc_info.value.details == {"current": "pending", "requested": "completed"}
        after = storage.get_job(job.id)
        assert after.status == "pending"
        assert after.version == job.version
        assert len(storage.get_transitions(job.id)) == 1

    @pytest.mark.parametrize("status", ["completed", "cancelled"])
    def test_terminal_statuses_are_final(self, service, job_in, admin, status):
        job = job_in(status)
        with pytest.raises(InvalidTransitionError):
            service.cancel_job(job.id, admin)

    def test_in_progress_cannot_be_cancelled(self, service, job_in, client_user):
        job = job_in("in_progress")
        with pytest.raises(InvalidTransitionError):
            service.cancel_job(job.id, client_user.as_actor())

    def test_validity_checked_before_authorization(self, service, job_in, make_client):
        job = job_in("pending")
        stranger = make_client().as_actor()

        with pytest.raises(InvalidTransitionError):
            service.complete_job(job.id, stranger, rating=5)

    def test_resubmit_only_from_revision(self, service, job_in, worker_user):
        job = job_in("in_progress")
        with pytest.raises(InvalidTransitionError):
            service.resubmit(job.id, worker_user.as_actor())

    def test_unknown_status_requested(self, service, job_in, admin):
        job = job_in("pending")
        with pytest.raises(InvalidTransitionError):
            service.update_status(job.id, admin, "archived")

    def test_invalid_rating_rejected(self, service, storage, job_in, client_user):
        job = job_in("review")

        with pytest.raises(ValidationError, match="between 1 and 5"):
            service.complete_job(job.id, client_user.as_actor(), rating=6)
        with pytest.raises(ValidationError, match="Rating is required"):
            service.complete_job(job.id, client_user.as_actor(), rating=None)

        assert storage.get_job(job.id).status == "review"


class TestConcurrentUpdates:
    """Status changes are compare-and-swap on (status, version)."""

    def test_stale_write_conflicts(self, service, storage, job_in, worker_user, monkeypatch):
        job = job_in("in_progress")
        service.add_message(job.id, worker_user.as_actor(), "Halfway there")
        stale_reads(monkeypatch, storage, job)

        with pytest.raises(ConflictError):
            service.submit_for_review(job.id, worker_user.as_actor())

        after = current(storage, job.id)
        assert after.status == "in_progress"
        assert after.version == job.version + 1

    def test_double_completion_credits_once(self, service, storage, job_in, client_user, worker_user, monkeypatch):
        job = job_in("review")
        service.complete_job(job.id, client_user.as_actor(), rating=5)
        stale_reads(monkeypatch, storage, job)

        with pytest.raises(ConflictError):
            service.complete_job(job.id, client_user.as_actor(), rating=3)

        worker = storage.get_user(worker_user.id).worker
        assert worker.pending_earnings == Decimal("14.00")
        assert worker.completed_jobs == 1
        assert current(storage, job.id).rating == 5


class TestAuthorization:
    def test_other_client_cannot_cancel(self, service, job_in, make_client):
        job = job_in("pending")
        with pytest.raises(ForbiddenError):
            service.cancel_job(job.id, make_client().as_actor())

    def test_worker_cannot_approve(self, service, job_in, worker_user):
        job = job_in("review")
        with pytest.raises(ForbiddenError):
            service.complete_job(job.id, worker_user.as_actor(), rating=5)

    def test_only_admin_assigns(self, service, job_in, client_user, worker_user):
        job = job_in("pending")
        with pytest.raises(ForbiddenError):
            service.assign_worker(job.id, client_user.as_actor(), worker_user.id)

    def test_unassigned_worker_cannot_view(self, service, job_in, make_worker):
        job = job_in("assigned")
        with pytest.raises(ForbiddenError):
            service.get_job(job.id, make_worker().as_actor())

    def test_missing_job(self, service, admin):
        with pytest.raises(NotFoundError):
            service.get_job("nope", admin)


class TestAssignment:
    def test_unknown_worker(self, service, job_in, admin):
        job = job_in("pending")
        with pytest.raises(NotFoundError):
            service.assign_worker(job.id, admin, "ghost")

    def test_inactive_worker(self, service, storage, job_in, admin, make_worker):
        job = job_in("pending")
        worker = make_worker()
        worker.is_active = False
        storage.save_user(worker)

        with pytest.raises(ValidationError, match="inactive"):
            service.assign_worker(job.id, admin, worker.id)

    def test_capacity_is_a_soft_limit(self, service, storage, job_in, admin, make_worker):
        job = job_in("pending")
        busy = make_worker(current_job_count=3)

        assigned = service.assign_worker(job.id, admin, busy.id)

        assert assigned.worker_id == busy.id
        assert storage.get_user(busy.id).worker.current_job_count == 4


class TestCancellation:
    def test_cancel_assigned_releases_worker(self, service, storage, job_in, admin, client_user, worker_user):
        job = job_in("assigned")

        cancelled = service.cancel_job(job.id, admin, reason="Client changed plans")

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert storage.get_user(worker_user.id).worker.current_job_count == 0
        # No refund on cancellation
        assert storage.get_user(client_user.id).client.credits == 198

    def test_cancel_reason_recorded(self, service, storage, job_in, client_user):
        job = job_in("pending")
        service.cancel_job(job.id, client_user.as_actor(), reason="Duplicate")

        last = storage.get_transitions(job.id)[-1]
        assert last.metadata == {"reason": "Duplicate"}


class TestMessaging:
    def test_message_notifies_other_party(self, service, storage, job_in, client_user, worker_user):
        job = job_in("in_progress")

        updated = service.add_message(job.id, client_user.as_actor(), "  Any update?  ")

        assert updated.messages[-1].message == "Any update?"
        assert updated.messages[-1].sender_role == "client"
        types = [n.type for n in storage.list_notifications(worker_user.id)]
        assert "new_message" in types
        assert "new_message" not in [n.type for n in storage.list_notifications(client_user.id)]

    @pytest.mark.parametrize("status", ["pending", "completed", "cancelled"])
    def test_closed_statuses(self, service, job_in, client_user, status):
        job = job_in(status)
        with pytest.raises(MessagingClosedError):
            service.add_message(job.id, client_user.as_actor(), "Hello")

    def test_empty_message(self, service, job_in, worker_user):
        job = job_in("assigned")
        with pytest.raises(ValidationError):
            service.add_message(job.id, worker_user.as_actor(), "   ")


class TestProgressAndFlags:
    def test_progress_update(self, service, job_in, worker_user, client_user):
        job = job_in("in_progress")

        service.add_progress_update(job.id, worker_user.as_actor(), "Storyboard done", 40)

        updates = service.get_progress_updates(job.id, client_user.as_actor())
        assert [(u.content, u.percentage) for u in updates] == [("Storyboard done", 40)]

    def test_progress_percentage_bounds(self, service, job_in, worker_user):
        job = job_in("assigned")
        with pytest.raises(ValidationError):
            service.add_progress_update(job.id, worker_user.as_actor(), "Done", 150)

    def test_progress_closed_after_submission(self, service, job_in, worker_user):
        job = job_in("review")
        with pytest.raises(InvalidTransitionError):
            service.add_progress_update(job.id, worker_user.as_actor(), "More")

    def test_client_cannot_post_progress(self, service, job_in, client_user):
        job = job_in("in_progress")
        with pytest.raises(ForbiddenError):
            service.add_progress_update(job.id, client_user.as_actor(), "Done")

    def test_flag_notifies_admins_and_resolves(self, service, storage, job_in, worker_user, admin):
        job = job_in("in_progress")

        flagged = service.flag_job(job.id, worker_user.as_actor(), "Brief is unclear")
        assert flagged.confidence_flag.flagged is True
        assert [n.type for n in storage.list_notifications(admin.id)] == ["worker_flagged"]

        resolved = service.resolve_flag(job.id, admin)
        assert resolved.confidence_flag.flagged is False
        assert resolved.confidence_flag.resolved_by == admin.id
        assert resolved.confidence_flag.reason == "Brief is unclear"

        with pytest.raises(ValidationError, match="not flagged"):
            service.resolve_flag(job.id, admin)

    def test_flag_hides_jobs_of_other_workers(self, service, job_in, make_worker):
        job = job_in("in_progress")
        with pytest.raises(NotFoundError):
            service.flag_job(job.id, make_worker().as_actor(), "Unclear")


class TestListJobs:
    def test_visibility_by_role(self, service, job_in, make_client, client_user, worker_user, admin):
        job_in("pending", title="Mine, unassigned")
        assigned = job_in("assigned", title="Mine, assigned")
        other = make_client()
        service.create_job(other.as_actor(), "Theirs", "Other client", "web")

        mine, mine_total = service.list_jobs(client_user.as_actor())
        assert mine_total == 2
        assert {j.client_id for j in mine} == {client_user.id}

        theirs, _ = service.list_jobs(worker_user.as_actor())
        assert [j.id for j in theirs] == [assigned.id]

        _, all_total = service.list_jobs(admin)
        assert all_total == 3

    def test_status_filter_and_pagination(self, service, job_in, client_user):
        for i in range(3):
            job_in("pending", title=f"Job {i}")
        job_in("cancelled", title="Dropped")

        page, total = service.list_jobs(client_user.as_actor(), status="pending", page=2, limit=2)

        assert total == 3
        assert len(page) == 1

    @pytest.mark.parametrize("kwargs", [{"status": "done"}, {"page": 0}, {"limit": 101}])
    def test_rejects_bad_filters(self, service, admin, kwargs):
        with pytest.raises(ValidationError):
            service.list_jobs(admin, **kwargs)


class TestSubmitBriefing:
    @pytest.fixture
    def briefing(self, storage, client_user):
        briefing = Briefing(
            id="brief-1",
            client_id=client_user.id,
            extracted_brief=ExtractedBrief(
                title="Podcast clips",
                description="Three vertical clips",
                category="podcast",
                priority="priority",
                key_requirements=["Captions"],
                deliverables=["3 mp4 files"],
                confidence=0.9,
            ),
        )
        storage.save_briefing(briefing)
        return briefing

    def test_submit_creates_job_and_closes_briefing(self, service, storage, briefing, client_user):
        job, cost = service.submit_briefing(client_user.as_actor(), briefing.id)

        assert job.title == "Podcast clips"
        assert job.category == "other"
        assert job.priority == "priority"
        assert "- Captions" in job.description
        assert "- 3 mp4 files" in job.description
        assert job.briefing_id == briefing.id
        stored = storage.get_briefing(briefing.id)
        assert stored.status == BriefingStatus.COMPLETED.value
        assert stored.job_id == job.id
        assert storage.get_user(client_user.id).client.credits == 200 - cost.total

    def test_submit_twice_rejected(self, service, briefing, client_user):
        service.submit_briefing(client_user.as_actor(), briefing.id)
        with pytest.raises(ValidationError, match="already completed"):
            service.submit_briefing(client_user.as_actor(), briefing.id)

    def test_other_clients_briefing_not_found(self, service, briefing, make_client):
        with pytest.raises(NotFoundError):
            service.submit_briefing(make_client().as_actor(), briefing.id)

    def test_requires_extracted_brief(self, service, storage, client_user):
        storage.save_briefing(Briefing(id="brief-2", client_id=client_user.id))
        with pytest.raises(ValidationError, match="no extracted brief"):
            service.submit_briefing(client_user.as_actor(), "brief-2")


def unpaid_total(storage, worker_id):
    return sum((j.worker_earnings for j in storage.list_unpaid_jobs(worker_id)), Decimal("0"))


class TestInvariants:
    @pytest.mark.parametrize("status", [s.value for s in JobStatus])
    def test_completed_at_set_only_when_completed(self, storage, job_in, status):
        job = job_in(status)

        stored = storage.get_job(job.id)
        assert stored.status == status
        assert (stored.completed_at is not None) == (status == "completed")

    @pytest.mark.parametrize(
        "status,completed_at",
        [("completed", None), ("review", "now"), ("cancelled", "now")],
    )
    def test_model_rejects_mismatched_completed_at(self, status, completed_at):
        when = datetime.now(timezone.utc) if completed_at else None
        with pytest.raises(ValueError, match="completed_at"):
            Job(
                id="j1",
                client_id="c1",
                title="Logo",
                description="Refresh",
                category="design",
                status=status,
                completed_at=when,
            )

    def test_pending_earnings_track_unpaid_jobs(
        self, service, storage, payouts, gateway, job_in, client_user, worker_user
    ):
        gateway.enable("acct_worker")

        def check():
            worker = storage.get_user(worker_user.id).worker
            assert worker.pending_earnings == unpaid_total(storage, worker_user.id)

        job_in("completed")
        check()
        dropped = job_in("assigned", title="Dropped")
        service.cancel_job(dropped.id, client_user.as_actor(), reason="No longer needed")
        check()
        payouts.process_payouts()
        check()
        assert storage.get_user(worker_user.id).worker.pending_earnings == Decimal("0")
        job_in("completed", title="Second")
        check()

        worker = storage.get_user(worker_user.id).worker
        assert worker.pending_earnings == Decimal("14.00")
        assert worker.total_earnings == Decimal("14.00")
        assert worker.current_job_count == 0
        assert worker.completed_jobs == 2
