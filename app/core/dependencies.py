# app/core/dependencies.py

"""
Construction of the long-lived service objects and FastAPI dependencies
that hand them to the routers. Everything is built once at startup and
stored on app.state.
"""

from dataclasses import dataclass
from datetime import timedelta

from fastapi import Request

from app.auth.token_manager import TokenManager
from app.core.config import Settings, settings
from app.esign.reconciler import WebhookReconciler
from app.esign.retry import ArtifactRetriever, RetryPolicy
from app.esign.services import SubmissionService
from app.esign.storage import AgreementLedger
from app.esign.tasks import BackgroundTaskRunner
from app.utils.adobe_sign_utils import AdobeSignClient
from app.utils.content_server_utils import ContentServerClient


@dataclass
class ServiceContainer:
    ledger: AgreementLedger
    adobe_client: AdobeSignClient
    content_server: ContentServerClient
    token_manager: TokenManager
    runner: BackgroundTaskRunner
    submission_service: SubmissionService
    reconciler: WebhookReconciler


def build_container(config: Settings) -> ServiceContainer:
    """Wire the ledger, clients and services from configuration"""
    config.inprocess_path.mkdir(parents=True, exist_ok=True)

    ledger = AgreementLedger(config.ledger_path)
    adobe_client = AdobeSignClient(
        api_base=config.adobe_api_base,
        auth_base=config.adobe_auth_base,
        client_id=config.adobe_client_id,
        client_secret=config.adobe_client_secret,
        redirect_uri=config.adobe_redirect_uri,
        max_document_bytes=config.adobe_max_document_bytes,
    )
    content_server = ContentServerClient(
        base_url=config.otcs_base_url,
        username=config.otcs_username,
        password=config.otcs_password,
    )
    token_manager = TokenManager(config.token_path, adobe_client)
    runner = BackgroundTaskRunner()

    submission_service = SubmissionService(
        ledger=ledger,
        token_provider=token_manager,
        document_store=content_server,
        signature_provider=adobe_client,
        workflow_advancer=content_server,
        runner=runner,
        inprocess_dir=config.inprocess_path,
        duplicate_window=timedelta(minutes=config.duplicate_window_minutes),
        start_task_id=config.start_task_id,
    )
    retriever = ArtifactRetriever(
        ledger=ledger,
        token_provider=token_manager,
        signature_provider=adobe_client,
        document_store=content_server,
        inprocess_dir=config.inprocess_path,
        policy=RetryPolicy(
            max_attempts=config.artifact_retry_attempts,
            delay_seconds=config.artifact_retry_delay_seconds,
        ),
    )
    reconciler = WebhookReconciler(
        ledger=ledger,
        retriever=retriever,
        workflow_advancer=content_server,
        runner=runner,
        completion_task_id=config.completion_task_id,
        signed_disposition=config.signed_disposition,
        rejected_disposition=config.rejected_disposition,
    )

    return ServiceContainer(
        ledger=ledger,
        adobe_client=adobe_client,
        content_server=content_server,
        token_manager=token_manager,
        runner=runner,
        submission_service=submission_service,
        reconciler=reconciler,
    )


def get_settings() -> Settings:
    """
    Method for obtaining the application settings
    """
    return settings


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_submission_service(request: Request) -> SubmissionService:
    return get_container(request).submission_service


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    return get_container(request).reconciler


def get_token_manager(request: Request) -> TokenManager:
    return get_container(request).token_manager


def get_adobe_client(request: Request) -> AdobeSignClient:
    return get_container(request).adobe_client
