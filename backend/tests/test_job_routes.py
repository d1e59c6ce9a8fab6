"""Tests for job and briefing API routes."""

import pytest

from nimmit.briefings import Briefing, ExtractedBrief
from nimmit.storage import CONFLICT

JOBS = "/api/v1/jobs"


@pytest.fixture
def create_job(client, client_headers):
    def _create(**overrides):
        body = {"title": "Logo refresh", "description": "Modernize the logo", "category": "design"}
        body.update(overrides)
        return client.post(JOBS, json=body, headers=client_headers)

    return _create


@pytest.fixture
def pending_job_id(create_job):
    return create_job().json()["data"]["job"]["id"]


def patch_job(client, job_id, headers, **body):
    return client.patch(f"{JOBS}/{job_id}", json=body, headers=headers)


class TestCreateJob:
    """Tests for POST /jobs."""

    def test_create_charges_credits(self, create_job, storage, client_user):
        response = create_job(priority="rush", estimatedHours=3)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Job created, 4 credits charged"
        job = body["data"]["job"]
        assert job["status"] == "pending"
        assert job["creditsCharged"] == 4
        assert job["estimatedHours"] == 3
        assert body["data"]["cost"]["breakdown"] == "2 credits (design) × 2.0 (rush) = 4 credits"
        assert storage.get_user(client_user.id).client.credits == 96

    def test_insufficient_credits(self, create_job, storage, client_user):
        profile = storage.get_user(client_user.id)
        profile.client.credits = 1
        storage.save_user(profile)

        response = create_job(category="video")

        assert response.status_code == 402
        error = response.json()["error"]
        assert error["code"] == "INSUFFICIENT_CREDITS"
        assert error["details"]["required"] == 3
        assert error["details"]["shortfall"] == 2

    def test_invalid_category(self, create_job):
        response = create_job(category="music")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"]["errors"][0]["field"] == "category"

    def test_requires_authentication(self, client):
        response = client.post(JOBS, json={"title": "x", "description": "y", "category": "web"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_workers_cannot_create(self, client, worker_headers):
        response = client.post(
            JOBS, json={"title": "x", "description": "y", "category": "web"}, headers=worker_headers
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"


class TestReadJobs:
    def test_list_paginates(self, client, create_job, client_headers):
        for i in range(3):
            create_job(title=f"Job {i}")

        response = client.get(f"{JOBS}?page=2&limit=2", headers=client_headers)

        data = response.json()["data"]
        assert len(data["jobs"]) == 1
        assert data["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}

    def test_status_filter(self, client, create_job, admin_headers):
        create_job()

        response = client.get(f"{JOBS}?status=completed", headers=admin_headers)

        assert response.json()["data"]["pagination"]["total"] == 0

    def test_other_workers_cannot_view(self, client, pending_job_id, worker_headers):
        response = client.get(f"{JOBS}/{pending_job_id}", headers=worker_headers)
        assert response.status_code == 403

    def test_missing_job(self, client, admin_headers):
        response = client.get(f"{JOBS}/does-not-exist", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"] == {
            "code": "NOT_FOUND",
            "message": "Job not found",
            "details": {"id": "does-not-exist"},
        }


class TestLifecycleRoutes:
    """Drive a job through PATCH /jobs/{id}."""

    def test_full_lifecycle(
        self, client, pending_job_id, worker_user, admin_headers, worker_headers, client_headers, storage
    ):
        job_id = pending_job_id

        assigned = patch_job(
            client, job_id, admin_headers, action="updateStatus", status="assigned", workerId=worker_user.id
        )
        assert assigned.status_code == 200
        assert assigned.json()["data"]["workerId"] == worker_user.id

        patch_job(client, job_id, worker_headers, action="updateStatus", status="in_progress")
        review = patch_job(
            client,
            job_id,
            worker_headers,
            action="updateStatus",
            status="review",
            deliverables=[{"name": "logo.svg", "url": "https://files.test/logo.svg", "mimeType": "image/svg+xml"}],
        )
        assert review.json()["data"]["deliverables"][0]["mimeType"] == "image/svg+xml"

        done = patch_job(client, job_id, client_headers, action="complete", rating=5, feedback="Great")

        assert done.status_code == 200
        data = done.json()["data"]
        assert data["status"] == "completed"
        assert data["workerEarnings"] == 14.0
        assert done.json()["message"] == "Job completed"
        assert str(storage.get_user(worker_user.id).worker.pending_earnings) == "14.00"

        history = client.get(f"{JOBS}/{job_id}/transitions", headers=client_headers).json()["data"]
        assert [t["toStatus"] for t in history] == ["pending", "assigned", "in_progress", "review", "completed"]

    def test_invalid_transition(self, client, pending_job_id, client_headers):
        response = patch_job(client, pending_job_id, client_headers, action="complete", rating=5)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["details"] == {"current": "pending", "requested": "completed"}

    def test_update_status_requires_status(self, client, pending_job_id, admin_headers):
        response = patch_job(client, pending_job_id, admin_headers, action="updateStatus")

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"field": "status"}

    def test_cancel_with_reason(self, client, pending_job_id, client_headers):
        response = patch_job(
            client, pending_job_id, client_headers, action="updateStatus", status="cancelled", reason="Duplicate"
        )

        assert response.json()["data"]["status"] == "cancelled"
        assert response.json()["message"] == "Job moved to cancelled"

    def test_messaging_closed_on_pending(self, client, pending_job_id, client_headers):
        response = patch_job(client, pending_job_id, client_headers, action="addMessage", message="Hi")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MESSAGING_CLOSED"

    def test_concurrent_update_conflicts(self, client, pending_job_id, admin_headers, worker_user, storage, monkeypatch):
        monkeypatch.setattr(storage, "update_job", lambda *args, **kwargs: (None, CONFLICT))

        response = patch_job(
            client, pending_job_id, admin_headers, action="updateStatus", status="assigned", workerId=worker_user.id
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"


class TestProgressAndFlags:
    @pytest.fixture
    def started_job_id(self, client, pending_job_id, worker_user, admin_headers, worker_headers):
        patch_job(
            client, pending_job_id, admin_headers, action="updateStatus", status="assigned", workerId=worker_user.id
        )
        patch_job(client, pending_job_id, worker_headers, action="updateStatus", status="in_progress")
        return pending_job_id

    def test_post_and_list_progress(self, client, started_job_id, worker_headers, client_headers):
        posted = client.post(
            f"{JOBS}/{started_job_id}/progress",
            json={"content": "First draft ready", "percentage": 50},
            headers=worker_headers,
        )
        assert posted.status_code == 201
        assert posted.json()["data"]["percentage"] == 50

        listed = client.get(f"{JOBS}/{started_job_id}/progress", headers=client_headers)
        assert [p["content"] for p in listed.json()["data"]] == ["First draft ready"]

    def test_progress_percentage_validated(self, client, started_job_id, worker_headers):
        response = client.post(
            f"{JOBS}/{started_job_id}/progress",
            json={"content": "Over", "percentage": 120},
            headers=worker_headers,
        )
        assert response.status_code == 400

    def test_flag_and_resolve(self, client, started_job_id, worker_headers, admin_headers):
        flagged = client.post(
            f"{JOBS}/{started_job_id}/flag", json={"reason": "Brief unclear"}, headers=worker_headers
        )
        assert flagged.json()["data"]["confidenceFlag"]["flagged"] is True

        denied = client.delete(f"{JOBS}/{started_job_id}/flag", headers=worker_headers)
        assert denied.status_code == 403
        assert denied.json()["error"]["message"] == "Admin access required"

        resolved = client.delete(f"{JOBS}/{started_job_id}/flag", headers=admin_headers)
        assert resolved.json()["data"]["confidenceFlag"]["flagged"] is False


class TestBriefingSubmit:
    def test_submit_creates_job(self, client, storage, client_user, client_headers):
        storage.save_briefing(
            Briefing(
                id="brief-1",
                client_id=client_user.id,
                extracted_brief=ExtractedBrief(
                    title="Product video", description="60 second demo", category="video"
                ),
            )
        )

        response = client.post(
            "/api/v1/briefing/submit", json={"briefingId": "brief-1"}, headers=client_headers
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["title"] == "Product video"
        assert data["creditsCharged"] == 3
        assert storage.get_briefing("brief-1").job_id == data["jobId"]

    def test_unknown_briefing(self, client, client_headers):
        response = client.post(
            "/api/v1/briefing/submit", json={"briefingId": "nope"}, headers=client_headers
        )
        assert response.status_code == 404
