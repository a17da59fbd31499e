"""Tests for the UtilSign REST API."""

import pytest
from fastapi.testclient import TestClient

from utilsign.api import create_app
from utilsign.config import ServiceConfig

OWNER = {"X-User-Id": "user-1", "X-User-Email": "owner@example.com"}
STRANGER = {"X-User-Id": "user-2", "X-User-Email": "stranger@example.com"}


@pytest.fixture
def client(tmp_path):
    app = create_app(ServiceConfig(data_dir=tmp_path, app_url="https://sign.test"))
    return TestClient(app)


def _upload(client, pdf, doc_type="request_sign", headers=OWNER):
    return client.post(
        "/api/documents/upload",
        files={"file": ("contract.pdf", pdf, "application/pdf")},
        data={"type": doc_type},
        headers=headers,
    )


def _placeholder(email, **overrides):
    body = {
        "pageNumber": 1,
        "xPercent": 10,
        "yPercent": 10,
        "widthPercent": 20,
        "heightPercent": 10,
        "assignedSignerEmail": email,
    }
    body.update(overrides)
    return body


class TestHealth:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["service"] == "utilsign"


class TestUpload:

    def test_upload_creates_draft(self, client, sample_pdf):
        resp = _upload(client, sample_pdf)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "draft"
        assert body["file_name"] == "contract.pdf"

    def test_upload_requires_identity(self, client, sample_pdf):
        resp = _upload(client, sample_pdf, headers={})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_upload_rejects_non_pdf(self, client):
        resp = client.post(
            "/api/documents/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=OWNER,
        )
        assert resp.status_code == 400
        assert "PDF" in resp.json()["error"]

    def test_list_is_per_user(self, client, sample_pdf):
        _upload(client, sample_pdf)
        _upload(client, sample_pdf, headers=STRANGER)
        resp = client.get("/api/documents", headers=OWNER)
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    def test_list_rejects_unknown_status(self, client):
        resp = client.get("/api/documents", params={"status": "lost"}, headers=OWNER)
        assert resp.status_code == 400


class TestSelfSignRoute:
    """Upload, place, sign and download over HTTP."""

    def test_full_flow(self, client, sample_pdf, png_payload, placements):
        doc = _upload(client, sample_pdf, doc_type="self_sign").json()

        resp = client.post(
            f"/api/documents/{doc['id']}/placeholders",
            json={"placeholders": [_placeholder("owner@example.com")]},
            headers=OWNER,
        )
        assert resp.status_code == 200
        [placeholder] = resp.json()["placeholders"]

        resp = client.post(
            f"/api/documents/{doc['id']}/self-sign",
            json={"signatures": [{"placeholderId": placeholder["id"], "imageBase64": png_payload}]},
            headers=OWNER,
        )
        assert resp.status_code == 200
        assert resp.json()["burned"] == 1

        status = client.get(f"/api/documents/{doc['id']}/status", headers=OWNER).json()
        assert status["document"]["status"] == "completed"

        resp = client.get(f"/api/documents/{doc['id']}/download", headers=OWNER)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert 'filename="signed_contract.pdf"' in resp.headers["content-disposition"]
        assert len(placements(resp.content)) == 1

        logs = client.get(f"/api/documents/{doc['id']}/logs", headers=OWNER).json()
        assert logs[0]["event_type"] == "document_downloaded"

    def test_partial_submission_is_400(self, client, sample_pdf):
        doc = _upload(client, sample_pdf, doc_type="self_sign").json()
        client.post(
            f"/api/documents/{doc['id']}/placeholders",
            json={"placeholders": [_placeholder("owner@example.com")]},
            headers=OWNER,
        )
        resp = client.post(
            f"/api/documents/{doc['id']}/self-sign", json={"signatures": []}, headers=OWNER
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "signatures array is required"}

    def test_other_users_document_is_404(self, client, sample_pdf):
        doc = _upload(client, sample_pdf, doc_type="self_sign").json()
        resp = client.get(f"/api/documents/{doc['id']}/status", headers=STRANGER)
        assert resp.status_code == 404


class TestSignerRoutes:

    def test_send_and_sign(self, client, sample_pdf, png_payload):
        doc = _upload(client, sample_pdf).json()
        client.post(
            f"/api/documents/{doc['id']}/placeholders",
            json={"placeholders": [_placeholder("alice@example.com")]},
            headers=OWNER,
        )
        resp = client.post(
            f"/api/documents/{doc['id']}/send",
            json={"signers": [{"email": "alice@example.com", "priority": 1}]},
            headers=OWNER,
        )
        assert resp.status_code == 200
        signer_id = resp.json()["signers"][0]["id"]

        info = client.get(f"/api/sign/{signer_id}/info").json()
        [field] = info["placeholders"]

        resp = client.post(
            f"/api/sign/{signer_id}/submit",
            json={
                "action": "sign",
                "signatures": [{"placeholderId": field["id"], "imageBase64": png_payload}],
            },
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "action": "sign", "final": True}

        resp = client.post(f"/api/sign/{signer_id}/submit", json={"action": "decline"})
        assert resp.status_code == 403

    def test_send_twice_is_409(self, client, sample_pdf):
        doc = _upload(client, sample_pdf).json()
        client.post(
            f"/api/documents/{doc['id']}/placeholders",
            json={"placeholders": [_placeholder("alice@example.com")]},
            headers=OWNER,
        )
        body = {"signers": [{"email": "alice@example.com", "priority": 1}]}
        client.post(f"/api/documents/{doc['id']}/send", json=body, headers=OWNER)
        resp = client.post(f"/api/documents/{doc['id']}/send", json=body, headers=OWNER)
        assert resp.status_code == 409
