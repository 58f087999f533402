# app/esign/retry.py

"""
Fetch-and-store of the signed artifact with a bounded retry loop.

Right after a terminal event Adobe Sign often answers the combined-document
request with 403 for a few seconds. Only that case is retried, with a fixed
delay; any other failure stops immediately.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from app.esign.exceptions import ArtifactRaceConditionException, SignatureBaseException
from app.esign.storage import LedgerStore
from app.esign.utils import safe_file_name
from app.utils.logger import get_logger

logger = get_logger(__name__)


class FetchOutcome(str, Enum):
    STORED = "stored"
    NOT_READY = "not_ready"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 50
    delay_seconds: float = 3.0


class ArtifactRetriever:
    """Downloads the signed PDF for an agreement and writes it back to Content Server"""

    def __init__(
        self,
        ledger: LedgerStore,
        token_provider,
        signature_provider,
        document_store,
        inprocess_dir: Path,
        policy: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.token_provider = token_provider
        self.signature_provider = signature_provider
        self.document_store = document_store
        self.inprocess_dir = Path(inprocess_dir)
        self.policy = policy
        self._sleep = sleep

    async def attempt(self, agreement_id: str, attempt: int = 1) -> FetchOutcome:
        """Run a single fetch-and-store attempt"""
        record = self.ledger.get(agreement_id)
        if record is None:
            logger.warning("artifact_fetch_untracked", agreement_id=agreement_id)
            return FetchOutcome.FAILED

        name = safe_file_name(record.file_name, record.node_id)
        try:
            token = await self.token_provider.get_valid_token()
            path = await self.signature_provider.download_combined_document(
                token, agreement_id, self.inprocess_dir / name
            )
            content = await asyncio.to_thread(path.read_bytes)
            await self.document_store.upload(record.destination_folder_id, content, name)
        except ArtifactRaceConditionException:
            logger.info(
                "artifact_not_ready",
                agreement_id=agreement_id,
                attempt=attempt,
                max_attempts=self.policy.max_attempts,
            )
            return FetchOutcome.NOT_READY
        except SignatureBaseException as e:
            logger.error(
                "artifact_store_failed",
                agreement_id=agreement_id,
                node_id=record.node_id,
                attempt=attempt,
                error=e.message,
                details=e.details,
            )
            return FetchOutcome.FAILED
        except Exception as e:
            logger.error(
                "artifact_store_failed",
                agreement_id=agreement_id,
                node_id=record.node_id,
                attempt=attempt,
                error=str(e),
                exc_info=True,
            )
            return FetchOutcome.FAILED

        logger.info(
            "artifact_stored",
            agreement_id=agreement_id,
            folder_id=record.destination_folder_id,
            file_name=name,
            attempt=attempt,
        )
        return FetchOutcome.STORED

    async def fetch_and_store(self, agreement_id: str, first_attempt: int = 1) -> bool:
        """
        Keep attempting until the artifact is stored, a non-retryable error
        occurs or `max_attempts` attempts in total have been made.
        Every attempt numbered above 1 waits `delay_seconds` first, so a
        continuation after an inline attempt is spaced like the rest.
        """
        attempt = first_attempt
        while attempt <= self.policy.max_attempts:
            if attempt > 1:
                await self._sleep(self.policy.delay_seconds)
            outcome = await self.attempt(agreement_id, attempt)
            if outcome is FetchOutcome.STORED:
                return True
            if outcome is FetchOutcome.FAILED:
                return False
            attempt += 1

        logger.error(
            "artifact_retries_exhausted",
            agreement_id=agreement_id,
            attempts=self.policy.max_attempts,
        )
        return False
