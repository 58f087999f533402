import os
import tempfile

TEST_DATA_DIR = os.getenv("TEST_DATA_DIR", tempfile.mkdtemp(prefix="signature-orchestrator-"))
TEST_SIGNATURE_SECRET = "test-signature-secret"
TEST_LOG_USER = "auditor"
TEST_LOG_PASS = "s3cret"
TEST_CLIENT_ID = "adobe-client-id"

TEST_ENV = {
    "ENVIRONMENT": "test",
    "DATA_DIR": TEST_DATA_DIR,
    "SIGNATURE_SECRET": TEST_SIGNATURE_SECRET,
    "LOG_USER": TEST_LOG_USER,
    "LOG_PASS": TEST_LOG_PASS,
    "ADOBE_CLIENT_ID": TEST_CLIENT_ID,
    "OTCS_BASE_URL": "https://otcs.example.com/otcs/cs.exe",
}

# Sample Adobe Sign webhook bodies, one per payload shape seen in the wild
AGREEMENT_COMPLETED_V6 = {
    "event": "AGREEMENT_WORKFLOW_COMPLETED",
    "agreement": {"id": "AGR-1", "status": "SIGNED"},
    "participantUserEmail": "a@x.com",
    "eventDate": "2026-10-17T10:00:00Z",
}

AGREEMENT_REJECTED_NESTED = {
    "event": {
        "eventType": "AGREEMENT_REJECTED",
        "agreementId": "AGR-1",
        "participantUserEmail": "b@x.com",
        "eventDate": "2026-10-17T10:05:00Z",
    }
}

AGREEMENT_CREATED_FLAT = {
    "type": "AGREEMENT_CREATED",
    "agreementId": "AGR-1",
}
