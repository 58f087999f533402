import logging
import os
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from tests.config import TEST_ENV

# Settings are read when app.core.config is first imported
for key, value in TEST_ENV.items():
    os.environ.setdefault(key, value)

from fastapi.testclient import TestClient  # noqa: E402

from app.core.dependencies import get_submission_service, get_webhook_reconciler  # noqa: E402
from app.esign.reconciler import WebhookReconciler  # noqa: E402
from app.esign.retry import ArtifactRetriever, RetryPolicy  # noqa: E402
from app.esign.services import SubmissionService  # noqa: E402
from app.esign.storage import AgreementLedger  # noqa: E402
from app.esign.tasks import BackgroundTaskRunner  # noqa: E402
from app.main import signature_app as fast_api_app  # noqa: E402

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

SIGNED_PDF = b"%PDF-1.7 signed"


@pytest.fixture
def ledger(tmp_path):
    return AgreementLedger(tmp_path / "agreements.json")


@pytest.fixture
def runner():
    return BackgroundTaskRunner()


@pytest.fixture
def token_provider():
    provider = AsyncMock()
    provider.get_valid_token.return_value = "access-token"
    return provider


@pytest.fixture
def document_store():
    store = AsyncMock()
    store.download.return_value = b"%PDF-1.7 original"
    store.upload.return_value = "9001"
    return store


@pytest.fixture
def signature_provider():
    provider = AsyncMock()
    provider.upload_transient_document.return_value = "TRANSIENT-1"
    provider.create_agreement.return_value = "AGR-1"

    async def write_combined(token, agreement_id, output_path: Path):
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(SIGNED_PDF)
        return output_path

    provider.download_combined_document.side_effect = write_combined
    return provider


@pytest.fixture
def workflow_advancer():
    return AsyncMock()


@pytest.fixture
def sleeps():
    """Records requested delays instead of sleeping"""
    return []


@pytest.fixture
def retriever(ledger, token_provider, signature_provider, document_store, tmp_path, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return ArtifactRetriever(
        ledger=ledger,
        token_provider=token_provider,
        signature_provider=signature_provider,
        document_store=document_store,
        inprocess_dir=tmp_path / "inprocess",
        policy=RetryPolicy(max_attempts=50, delay_seconds=3.0),
        sleep=fake_sleep,
    )


@pytest.fixture
def submission_service(ledger, token_provider, document_store, signature_provider, workflow_advancer, runner, tmp_path):
    return SubmissionService(
        ledger=ledger,
        token_provider=token_provider,
        document_store=document_store,
        signature_provider=signature_provider,
        workflow_advancer=workflow_advancer,
        runner=runner,
        inprocess_dir=tmp_path / "inprocess",
    )


@pytest.fixture
def reconciler(ledger, retriever, workflow_advancer, runner):
    return WebhookReconciler(
        ledger=ledger,
        retriever=retriever,
        workflow_advancer=workflow_advancer,
        runner=runner,
    )


@pytest.fixture
def mock_submission_service():
    return AsyncMock(spec=SubmissionService)


@pytest.fixture
def mock_reconciler():
    return AsyncMock(spec=WebhookReconciler)


@pytest.fixture
def client(mock_submission_service, mock_reconciler):
    """Fixture for setting up TestClient with overridden dependencies."""
    fast_api_app.dependency_overrides[get_submission_service] = lambda: mock_submission_service
    fast_api_app.dependency_overrides[get_webhook_reconciler] = lambda: mock_reconciler

    yield TestClient(fast_api_app)

    fast_api_app.dependency_overrides.clear()
