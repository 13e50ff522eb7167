"""
Tests for the v1 submission and admin endpoints
"""

import jwt
import pytest
from fastapi.testclient import TestClient

from homologation import wiring
from homologation.api.deps import get_services
from homologation.api.main import app
from homologation.config import config
from homologation.workflow.models import SYSTEM_ACTOR_ID, SubmissionStatus
from homologation.workflow.notifier import DeliveryStatus, NotificationOutcome, Notifier
from homologation.workflow.store import InMemorySubmissionStore

client = TestClient(app)

OWNER_BODY = {
    "ownerFullName": "Ana García",
    "ownerNationalId": "12345678A",
    "ownerPhone": "+34600000000",
    "ownerEmail": "ana@example.com",
    "vehicleType": "Trailer",
}

PHOTO = {"fileName": "front.jpg", "mimeType": "image/jpeg", "sizeBytes": 2048}


class NullNotifier(Notifier):
    def send_status_notification(self, context):
        return NotificationOutcome(status=DeliveryStatus.SKIPPED, recipient=context.owner_email)


class ExplodingStore(InMemorySubmissionStore):
    def update_status(self, submission_id, new_status, actor_id, expected_version=None):
        raise RuntimeError("connection string postgres://root:pw@db")


def _headers(role: str, sub: str = "user-1") -> dict:
    token = jwt.encode({"sub": sub, "role": role}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


H_ADMIN = _headers("admin", "admin-1")
H_APPLICANT = _headers("applicant", "owner-1")


@pytest.fixture(autouse=True)
def strict_auth(monkeypatch):
    monkeypatch.setattr(config.auth, "jwt_secret", "test-secret")
    monkeypatch.setattr(config.auth, "jwt_issuer", None)
    monkeypatch.setattr(config.auth, "jwt_audience", None)
    monkeypatch.setattr(config.auth, "env", "prod")
    monkeypatch.setattr(config.auth, "allow_insecure_headers", False)


@pytest.fixture
def services():
    svc = wiring.build_services(backend="memory", notifier=NullNotifier())
    app.dependency_overrides[get_services] = lambda: svc
    yield svc
    app.dependency_overrides.clear()


def _create_ready(headers=None) -> str:
    response = client.post("/v1/submissions", json=OWNER_BODY, headers=headers or {})
    assert response.status_code == 201
    sid = response.json()["submissionId"]
    assert client.post(f"/v1/submissions/{sid}/attachments", json=PHOTO).status_code == 201
    return sid


def test_health():
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/").json()["service"] == "Homologation API"


class TestPublicIntake:

    def test_anonymous_create_uses_system_actor(self, services):
        response = client.post("/v1/submissions", json=OWNER_BODY)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "Draft"
        assert body["vehicleType"] == "Trailer"
        assert body["createdBy"] == SYSTEM_ACTOR_ID
        assert body["version"] == 1

    def test_authenticated_create_records_subject(self, services):
        response = client.post("/v1/submissions", json=OWNER_BODY, headers=H_APPLICANT)

        assert response.json()["createdBy"] == "owner-1"

    def test_invalid_body_is_422(self, services):
        response = client.post("/v1/submissions", json={"vehicleType": "Spaceship"})
        assert response.status_code == 422

        response = client.post("/v1/submissions", json={"status": "Approved"})
        assert response.status_code == 422

    def test_bad_token_is_401_even_on_public_routes(self, services):
        response = client.post("/v1/submissions", json=OWNER_BODY, headers={"Authorization": "Bearer x"})
        assert response.status_code == 401

    def test_lookup_creates_then_resumes(self, services):
        body = {"nationalId": "99999999Z", "phone": "+34699999999"}

        first = client.post("/v1/submissions/lookup", json=body).json()
        second = client.post("/v1/submissions/lookup", json=body).json()

        assert first["created"] is True
        assert second["created"] is False
        assert second["submission"]["submissionId"] == first["submission"]["submissionId"]

    def test_get_missing_is_404(self, services):
        response = client.get("/v1/submissions/sub-404")

        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "NOT_FOUND"

    def test_patch_and_version_conflict(self, services):
        sid = client.post("/v1/submissions", json=OWNER_BODY).json()["submissionId"]

        ok = client.patch(f"/v1/submissions/{sid}", json={"licensePlate": "1234ABC", "expectedVersion": 1})
        stale = client.patch(f"/v1/submissions/{sid}", json={"licensePlate": "9999ZZZ", "expectedVersion": 1})

        assert ok.status_code == 200
        assert ok.json()["licensePlate"] == "1234ABC"
        assert ok.json()["version"] == 2
        assert stale.status_code == 409
        assert stale.json()["detail"]["error_code"] == "CONFLICT"
        assert stale.json()["detail"]["actual_version"] == 2

    def test_patch_locked_is_409(self, services):
        sid = _create_ready()
        client.post(f"/v1/submissions/{sid}/submit")

        response = client.patch(f"/v1/submissions/{sid}", json={"licensePlate": "1234ABC"})

        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == "SUBMISSION_LOCKED"

    def test_rejected_attachment_is_422(self, services):
        sid = client.post("/v1/submissions", json=OWNER_BODY).json()["submissionId"]

        response = client.post(
            f"/v1/submissions/{sid}/attachments",
            json={"fileName": "a.exe", "mimeType": "application/x-msdownload", "sizeBytes": 10},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "ATTACHMENT_REJECTED"

    def test_remove_attachment_while_draft(self, services):
        sid = client.post("/v1/submissions", json=OWNER_BODY).json()["submissionId"]
        aid = client.post(f"/v1/submissions/{sid}/attachments", json=PHOTO).json()["attachmentId"]

        response = client.delete(f"/v1/submissions/{sid}/attachments/{aid}")
        again = client.delete(f"/v1/submissions/{sid}/attachments/{aid}")

        assert response.status_code == 204
        assert again.status_code == 404
        assert services.intake.attachments(sid) == []

    def test_remove_attachment_after_submit_is_409(self, services):
        sid = _create_ready()
        aid = services.intake.attachments(sid)[0].attachment_id
        client.post(f"/v1/submissions/{sid}/submit")

        response = client.delete(f"/v1/submissions/{sid}/attachments/{aid}")

        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == "SUBMISSION_LOCKED"
        assert len(services.intake.attachments(sid)) == 1

    def test_transitions(self, services):
        sid = client.post("/v1/submissions", json=OWNER_BODY).json()["submissionId"]

        body = client.get(f"/v1/submissions/{sid}/transitions").json()

        assert body == {"currentStatus": "Draft", "allowedTransitions": ["Pending Review"]}

    def test_submit_ready(self, services):
        sid = _create_ready()

        response = client.post(f"/v1/submissions/{sid}/submit")

        assert response.status_code == 200
        body = response.json()
        assert body["submission"]["status"] == "Pending Review"
        assert body["notification"]["status"] == "skipped"

    def test_submit_missing_prerequisites_is_422(self, services):
        sid = client.post("/v1/submissions", json={"ownerFullName": "Ana"}).json()["submissionId"]

        response = client.post(f"/v1/submissions/{sid}/submit")

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error_code"] == "MISSING_PREREQUISITES"
        assert "ownerEmail" in detail["missing_fields"]
        assert detail["missing_attachments"] is True


class TestAdmin:

    def test_admin_routes_require_auth(self, services):
        assert client.get("/v1/admin/submissions").status_code == 401

    def test_admin_routes_require_admin_role(self, services):
        response = client.get("/v1/admin/submissions", headers=H_APPLICANT)

        assert response.status_code == 403
        assert response.json()["detail"]["error_code"] == "FORBIDDEN"

    def test_list_filters_by_status(self, services):
        sid = _create_ready()
        client.post("/v1/submissions", json=OWNER_BODY)
        client.post(f"/v1/submissions/{sid}/submit")

        everything = client.get("/v1/admin/submissions", headers=H_ADMIN).json()
        pending = client.get("/v1/admin/submissions?status=Pending Review", headers=H_ADMIN).json()
        invalid = client.get("/v1/admin/submissions?status=Archived", headers=H_ADMIN)

        assert everything["count"] == 2
        assert [i["submissionId"] for i in pending["items"]] == [sid]
        assert invalid.status_code == 422

    def test_review_flow(self, services):
        sid = _create_ready()
        client.post(f"/v1/submissions/{sid}/submit")

        approved = client.post(f"/v1/admin/submissions/{sid}/approve", json={"reason": "OK"}, headers=H_ADMIN)
        completed = client.post(f"/v1/admin/submissions/{sid}/complete", headers=H_ADMIN)
        again = client.post(f"/v1/admin/submissions/{sid}/approve", headers=H_ADMIN)

        assert approved.status_code == 200
        assert approved.json()["submission"]["status"] == "Approved"
        assert completed.json()["submission"]["status"] == "Completed"
        assert again.status_code == 409
        assert again.json()["detail"]["error_code"] == "INVALID_TRANSITION"
        assert again.json()["detail"]["allowed_transitions"] == []

    def test_incomplete_and_reject(self, services):
        sid = _create_ready()
        client.post(f"/v1/submissions/{sid}/submit")

        incomplete = client.post(
            f"/v1/admin/submissions/{sid}/incomplete", json={"reason": "Falta foto"}, headers=H_ADMIN
        )
        rejected = client.post(f"/v1/admin/submissions/{sid}/reject", headers=H_ADMIN)

        assert incomplete.json()["submission"]["status"] == "Incomplete"
        assert rejected.json()["submission"]["status"] == "Rejected"

    def test_generic_status_follows_role(self, services):
        """Non-admins may use the status route but not for admin-only targets."""
        sid = _create_ready()
        client.post(f"/v1/submissions/{sid}/submit")

        refused = client.post(
            f"/v1/admin/submissions/{sid}/status", json={"targetStatus": "Approved"}, headers=H_APPLICANT
        )
        paid = client.post(
            f"/v1/admin/submissions/{sid}/status", json={"targetStatus": "Paid"}, headers=H_APPLICANT
        )
        anonymous = client.post(f"/v1/admin/submissions/{sid}/status", json={"targetStatus": "Approved"})

        assert refused.status_code == 403
        assert refused.json()["detail"]["error_code"] == "REQUIRES_ELEVATED_PRIVILEGE"
        assert paid.status_code == 200
        assert paid.json()["submission"]["status"] == "Paid"
        assert anonymous.status_code == 401

    def test_unknown_submission_is_404(self, services):
        response = client.post("/v1/admin/submissions/sub-404/approve", headers=H_ADMIN)

        assert response.status_code == 404

    def test_audit_history(self, services):
        sid = _create_ready()
        client.post(f"/v1/submissions/{sid}/submit")

        body = client.get(f"/v1/admin/submissions/{sid}/audit", headers=H_ADMIN).json()

        actions = [e["action"] for e in body["entries"]]
        assert actions == ["STATUS_CHANGE_PENDING_REVIEW", "ATTACHMENT_ADDED", "CREATE"]
        assert body["entries"][0]["newValues"] == {"status": "Pending Review", "reason": None}

    def test_delete(self, services):
        sid = client.post("/v1/submissions", json=OWNER_BODY).json()["submissionId"]

        deleted = client.delete(f"/v1/admin/submissions/{sid}", headers=H_ADMIN)
        missing = client.delete(f"/v1/admin/submissions/{sid}", headers=H_ADMIN)

        assert deleted.status_code == 204
        assert missing.status_code == 404
        assert client.get(f"/v1/submissions/{sid}").status_code == 404

    def test_unexpected_failure_does_not_leak(self):
        svc = wiring.build_services(backend="memory", store=ExplodingStore(), notifier=NullNotifier())
        app.dependency_overrides[get_services] = lambda: svc
        try:
            sid = _create_ready()
            response = client.post(f"/v1/submissions/{sid}/submit")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["error_code"] == "UNEXPECTED"
        assert "postgres" not in response.text
        assert svc.intake.get(sid).status == SubmissionStatus.DRAFT
