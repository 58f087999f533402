import base64
import hashlib
import hmac
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.audit_trail.router import follow_log
from app.core.config import settings
from app.core.dependencies import get_adobe_client, get_settings, get_token_manager
from app.esign.exceptions import (
    AuthenticationRequiredException,
    DuplicateSubmissionException,
    ProviderRejectedException,
)
from app.esign.services import SubmissionResult
from app.esign.utils import issue_request_proof
from app.main import signature_app as fast_api_app
from tests.config import TEST_CLIENT_ID, TEST_LOG_PASS, TEST_LOG_USER, TEST_SIGNATURE_SECRET

START_BODY = {
    "nodeId": "123",
    "destinationFolderId": "456",
    "fileName": "contract.pdf",
    "recipientEmails": ["a@x.com", "b@x.com"],
}


def basic_auth(user=TEST_LOG_USER, password=TEST_LOG_PASS):
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def proof_headers(now_ms=None, secret=TEST_SIGNATURE_SECRET):
    proof = issue_request_proof(secret, now_ms=now_ms)
    return {"X-Timestamp": proof.timestamp, "X-Signature": proof.signature}


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestStart:

    def test_valid_request_creates_agreement(self, client, mock_submission_service):
        mock_submission_service.submit.return_value = SubmissionResult(agreement_id="AGR-1")

        response = client.post("/start", json=START_BODY, headers=proof_headers())

        assert response.status_code == 200
        assert response.json() == {"agreement_id": "AGR-1", "message": "Signature requested. ID: AGR-1"}
        request = mock_submission_service.submit.call_args.args[0]
        assert request.node_id == "123"
        assert request.recipient_emails == ["a@x.com", "b@x.com"]

    def test_proof_in_form_body_is_accepted(self, client, mock_submission_service):
        mock_submission_service.submit.return_value = SubmissionResult(agreement_id="AGR-1")
        proof = issue_request_proof(TEST_SIGNATURE_SECRET)
        form = {
            "nodeId": "123",
            "attachId": "456",
            "docName": "contract.pdf",
            "userEmail1": "a@x.com",
            "timestamp": proof.timestamp,
            "signature": proof.signature,
        }

        response = client.post("/start", data=form)

        assert response.status_code == 200
        request = mock_submission_service.submit.call_args.args[0]
        assert request.destination_folder_id == "456"
        assert request.raw_emails == ["a@x.com"]

    def test_stale_proof_is_rejected_before_any_work(self, client, mock_submission_service):
        stale = int(time.time() * 1000) - 5 * 60 * 1000

        response = client.post("/start", json=START_BODY, headers=proof_headers(now_ms=stale))

        assert response.status_code == 403
        mock_submission_service.submit.assert_not_called()

    def test_wrong_secret_is_rejected(self, client, mock_submission_service):
        response = client.post("/start", json=START_BODY, headers=proof_headers(secret="guess"))

        assert response.status_code == 403
        mock_submission_service.submit.assert_not_called()

    def test_missing_proof_is_unauthorized(self, client, mock_submission_service):
        response = client.post("/start", json=START_BODY)

        assert response.status_code == 401
        mock_submission_service.submit.assert_not_called()

    def test_malformed_proof_is_bad_request(self, client, mock_submission_service):
        headers = {"X-Timestamp": "yesterday", "X-Signature": "0" * 64}

        response = client.post("/start", json=START_BODY, headers=headers)

        assert response.status_code == 400
        mock_submission_service.submit.assert_not_called()

    def test_invalid_json_is_bad_request(self, client, mock_submission_service):
        response = client.post(
            "/start",
            content=b"{not json",
            headers={**proof_headers(), "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        mock_submission_service.submit.assert_not_called()

    @pytest.mark.parametrize("error, status_code", [
        (DuplicateSubmissionException("123", ["a@x.com", "b@x.com"], "AGR-1"), 409),
        (AuthenticationRequiredException(), 401),
        (ProviderRejectedException("Adobe Sign rejected the agreement", status_code=400), 502),
    ])
    def test_service_errors_map_to_status(self, client, mock_submission_service, error, status_code):
        mock_submission_service.submit.side_effect = error

        response = client.post("/start", json=START_BODY, headers=proof_headers())

        assert response.status_code == status_code
        assert response.json()["detail"]["message"] == error.message

    def test_unexpected_error_is_internal(self, client, mock_submission_service):
        mock_submission_service.submit.side_effect = RuntimeError("boom")

        response = client.post("/start", json=START_BODY, headers=proof_headers())

        assert response.status_code == 500
        assert "boom" not in response.text


class TestWebhook:

    def test_event_is_acknowledged(self, client, mock_reconciler):
        payload = {"event": "AGREEMENT_COMPLETED", "agreement": {"id": "AGR-1"}}

        response = client.post("/webhook", json=payload)

        assert response.status_code == 200
        assert response.text == "OK"
        assert response.headers["X-AdobeSign-ClientId"] == TEST_CLIENT_ID
        mock_reconciler.handle_payload.assert_awaited_once_with(payload)

    def test_unknown_agreement_is_acknowledged(self, client, mock_reconciler):
        response = client.post("/webhook", json={"event": "AGREEMENT_COMPLETED", "agreementId": "AGR-404"})

        assert response.status_code == 200
        assert response.text == "OK"

    def test_reconcile_failure_is_still_acknowledged(self, client, mock_reconciler):
        mock_reconciler.handle_payload.side_effect = RuntimeError("ledger locked")

        response = client.post("/webhook", json={"agreementId": "AGR-1"})

        assert response.status_code == 200

    def test_invalid_json_is_rejected(self, client, mock_reconciler):
        response = client.post(
            "/webhook", content=b"not-json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.text == "Invalid webhook payload"
        mock_reconciler.handle_payload.assert_not_called()

    def test_client_id_is_echoed(self, client):
        response = client.post("/webhook", json={}, headers={"X-AdobeSign-ClientId": "caller-id"})

        assert response.headers["X-AdobeSign-ClientId"] == "caller-id"

    def test_challenge_is_echoed(self, client):
        response = client.get("/webhook", params={"challenge": "abc123"})

        assert response.status_code == 200
        assert response.text == "abc123"
        assert response.headers["X-AdobeSign-ClientId"] == TEST_CLIENT_ID

    def test_ping(self, client):
        response = client.get("/webhook")

        assert response.json() == {"status": "pong"}

    def test_head(self, client):
        response = client.head("/webhook")

        assert response.status_code == 200
        assert response.headers["X-AdobeSign-ClientId"] == TEST_CLIENT_ID


class TestOperatorEndpoints:

    def test_auth_issues_verifiable_proof(self, client, mock_submission_service):
        mock_submission_service.submit.return_value = SubmissionResult(agreement_id="AGR-1")

        proof = client.get("/auth", headers=basic_auth()).json()
        response = client.post(
            "/start",
            json=START_BODY,
            headers={"X-Timestamp": proof["timestamp"], "X-Signature": proof["signature"]},
        )

        assert response.status_code == 200

    def test_unset_signing_secret_disables_proofs(self, client, mock_submission_service):
        fast_api_app.dependency_overrides[get_settings] = lambda: settings.model_copy(
            update={"signature_secret": ""}
        )
        timestamp = str(int(time.time() * 1000))
        forged = hmac.new(b"", timestamp.encode(), hashlib.sha256).hexdigest()

        issued = client.get("/auth", headers=basic_auth())
        response = client.post(
            "/start", json=START_BODY, headers={"X-Timestamp": timestamp, "X-Signature": forged}
        )

        assert issued.status_code == 503
        assert response.status_code == 403
        mock_submission_service.submit.assert_not_called()

    def test_auth_requires_credentials(self, client):
        assert client.get("/auth").status_code == 401
        response = client.get("/auth", headers=basic_auth(password="wrong"))
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"].startswith("Basic")

    def test_logs_download(self, client, tmp_path):
        log_file = tmp_path / "audit.log"
        log_file.write_text('{"event": "server_started"}\n', encoding="utf-8")
        fast_api_app.dependency_overrides[get_settings] = lambda: settings.model_copy(
            update={"log_file": str(log_file)}
        )

        response = client.get("/logs", headers=basic_auth())

        assert response.status_code == 200
        assert "server_started" in response.text
        assert "server.log" in response.headers["content-disposition"]

    def test_logs_missing_file(self, client, tmp_path):
        fast_api_app.dependency_overrides[get_settings] = lambda: settings.model_copy(
            update={"log_file": str(tmp_path / "missing.log")}
        )

        assert client.get("/logs", headers=basic_auth()).status_code == 404

    def test_logs_require_credentials(self, client):
        assert client.get("/logs").status_code == 401
        assert client.get("/logs/stream").status_code == 401

    def test_admin_login_redirects_to_consent(self, client):
        adobe_client = MagicMock()
        adobe_client.authorization_url.return_value = "https://secure.eu1.adobesign.com/public/oauth/v2?x=1"
        fast_api_app.dependency_overrides[get_adobe_client] = lambda: adobe_client

        response = client.get("/admin/login", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith("https://secure.eu1.adobesign.com/public/oauth/v2")

    def test_admin_callback_saves_tokens(self, client):
        adobe_client = MagicMock()
        adobe_client.exchange_code = AsyncMock(return_value={
            "access_token": "access", "refresh_token": "refresh", "expires_in": 3600,
        })
        token_manager = MagicMock()
        fast_api_app.dependency_overrides[get_adobe_client] = lambda: adobe_client
        fast_api_app.dependency_overrides[get_token_manager] = lambda: token_manager

        response = client.get("/admin/callback", params={"code": "auth-code"})

        assert response.status_code == 200
        adobe_client.exchange_code.assert_awaited_once_with("auth-code")
        token_manager.set_token.assert_called_once_with("access", 3600, "refresh")

    def test_admin_callback_escapes_error(self, client):
        fast_api_app.dependency_overrides[get_adobe_client] = lambda: MagicMock()
        fast_api_app.dependency_overrides[get_token_manager] = lambda: MagicMock()

        response = client.get("/admin/callback", params={"error": "<script>"})

        assert response.status_code == 400
        assert "<script>" not in response.text


@pytest.mark.asyncio
async def test_follow_log_emits_existing_lines_as_events(tmp_path):
    log_file = tmp_path / "audit.log"
    log_file.write_text("first\n\nsecond\npartial", encoding="utf-8")
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=True)

    events = [event async for event in follow_log(request, log_file, poll_interval=0)]

    assert events == ["data: first\n\n", "data: second\n\n"]
