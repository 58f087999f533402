# app/esign/services.py

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from app.esign.duplicates import DEFAULT_WINDOW, find_duplicate
from app.esign.exceptions import (
    AuthenticationRequiredException,
    DuplicateSubmissionException,
    InvalidRequestException,
    ProviderRejectedException,
    SignatureBaseException,
    UpstreamFetchFailedException,
)
from app.esign.models import TrackingRecord, utc_now
from app.esign.schemas import StartRequest
from app.esign.storage import LedgerStore
from app.esign.tasks import BackgroundTaskRunner
from app.esign.utils import normalize_emails, safe_file_name
from app.utils.logger import get_logger

logger = get_logger(__name__)

MAX_RECIPIENTS = 2
START_COMMENT = "Document sent for signature (automated step)"


@dataclass
class SubmissionResult:
    agreement_id: str


class SubmissionService:
    """
    Drives POST /start: Content Server document -> Adobe Sign agreement,
    recorded in the ledger, with an optional non-blocking workflow SendOn.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        token_provider,
        document_store,
        signature_provider,
        workflow_advancer,
        runner: BackgroundTaskRunner,
        inprocess_dir: Path,
        duplicate_window: timedelta = DEFAULT_WINDOW,
        start_task_id: str = "2",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ledger = ledger
        self.token_provider = token_provider
        self.document_store = document_store
        self.signature_provider = signature_provider
        self.workflow_advancer = workflow_advancer
        self.runner = runner
        self.inprocess_dir = Path(inprocess_dir)
        self.duplicate_window = duplicate_window
        self.start_task_id = start_task_id
        self.clock = clock

    def _validate(self, request: StartRequest) -> list:
        emails = normalize_emails(request.raw_emails)
        if not emails:
            raise InvalidRequestException("At least one recipient email is required", "recipientEmails")
        if len(emails) > MAX_RECIPIENTS:
            raise InvalidRequestException(
                f"At most {MAX_RECIPIENTS} recipients are supported", "recipientEmails"
            )
        if not request.node_id:
            raise InvalidRequestException("Node ID is mandatory", "nodeId")
        if not request.destination_folder_id or not request.destination_folder_id.isdigit():
            raise InvalidRequestException(
                "destinationFolderId is mandatory and must be numeric", "destinationFolderId"
            )
        if not request.file_name:
            raise InvalidRequestException("fileName is mandatory", "fileName")
        return emails

    async def submit(self, request: StartRequest) -> SubmissionResult:
        """
        Send the requested document for signature.

        Raises:
            InvalidRequestException, DuplicateSubmissionException,
            AuthenticationRequiredException, UpstreamFetchFailedException,
            ProviderRejectedException
        """
        emails = self._validate(request)
        node_id = request.node_id

        duplicate_of = find_duplicate(
            self.ledger.list(), node_id, emails, self.clock(), self.duplicate_window
        )
        if duplicate_of:
            logger.warning(
                "duplicate_submission",
                node_id=node_id,
                recipients=emails,
                agreement_id=duplicate_of,
            )
            raise DuplicateSubmissionException(node_id, emails, duplicate_of)

        token = await self.token_provider.get_valid_token()

        try:
            content = await self.document_store.download(node_id)
        except SignatureBaseException as e:
            raise UpstreamFetchFailedException(node_id, e.message) from e
        except Exception as e:
            logger.error("node_download_failed", node_id=node_id, error=str(e), exc_info=True)
            raise UpstreamFetchFailedException(node_id, str(e)) from e

        file_name = safe_file_name(request.file_name, node_id)
        await self._write_inprocess(file_name, content)

        try:
            transient_id = await self.signature_provider.upload_transient_document(token, file_name, content)
            agreement_id = await self.signature_provider.create_agreement(
                token, f"Document {file_name}", transient_id, emails
            )
        except (ProviderRejectedException, AuthenticationRequiredException):
            raise
        except Exception as e:
            logger.error("agreement_creation_failed", node_id=node_id, error=str(e), exc_info=True)
            raise ProviderRejectedException("Adobe Sign request failed", upstream_detail=str(e)) from e

        self.ledger.add(agreement_id, TrackingRecord(
            node_id=node_id,
            destination_folder_id=request.destination_folder_id,
            file_name=file_name,
            workflow_id=request.workflow_id,
            subworkflow_id=request.subworkflow_id or request.workflow_id,
            recipient_emails=emails,
            created_at=self.clock(),
        ))
        logger.info(
            "signature_requested",
            agreement_id=agreement_id,
            node_id=node_id,
            folder_id=request.destination_folder_id,
            file_name=file_name,
            recipients=emails,
        )

        if request.workflow_id:
            self.runner.spawn(
                self._send_on_after_start(
                    request.workflow_id,
                    request.subworkflow_id or request.workflow_id,
                    request.task_id or self.start_task_id,
                ),
                name=f"sendon-start-{agreement_id}",
                agreement_id=agreement_id,
                workflow_id=request.workflow_id,
            )

        return SubmissionResult(agreement_id=agreement_id)

    async def _write_inprocess(self, file_name: str, content: bytes) -> None:
        path = self.inprocess_dir / file_name

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        await asyncio.to_thread(_write)

    async def _send_on_after_start(self, workflow_id: str, subworkflow_id: str, task_id: str) -> None:
        try:
            await self.workflow_advancer.advance(
                workflow_id, subworkflow_id, task_id, disposition=None, comment=START_COMMENT
            )
            logger.info("workflow_sendon_done", workflow_id=workflow_id, task_id=task_id)
        except SignatureBaseException as e:
            logger.error(
                "workflow_sendon_failed",
                workflow_id=workflow_id,
                task_id=task_id,
                error=e.message,
                details=e.details,
            )
        except Exception as e:
            logger.error(
                "workflow_sendon_failed",
                workflow_id=workflow_id,
                task_id=task_id,
                error=str(e),
                exc_info=True,
            )
