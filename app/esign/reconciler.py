# app/esign/reconciler.py

from enum import Enum
from typing import Optional, Set

from app.esign.exceptions import SignatureBaseException
from app.esign.retry import ArtifactRetriever, FetchOutcome
from app.esign.schemas import AgreementEvent, UnrecognizedEvent, WebhookEvent
from app.esign.storage import AgreementLedger
from app.esign.tasks import BackgroundTaskRunner
from app.esign.utils import parse_webhook_payload
from app.utils.logger import get_logger

logger = get_logger(__name__)

# Events after which the combined document is worth fetching again
ARTIFACT_EVENTS = {
    "DOCUMENT_SIGNED",
    "PARTICIPANT_COMPLETED",
    "PARTICIPANT_SIGNED",
    "AGREEMENT_COMPLETED",
    "AGREEMENT_SIGNED",
    "AGREEMENT_ACTION_COMPLETED",
    "AGREEMENT_WORKFLOW_COMPLETED",
    "AGREEMENT_REJECTED",
}

SIGNED_EVENTS = {
    "AGREEMENT_COMPLETED",
    "AGREEMENT_SIGNED",
    "AGREEMENT_WORKFLOW_COMPLETED",
}

REJECTED_EVENTS = {"AGREEMENT_REJECTED"}


class Outcome(str, Enum):
    SIGNED = "signed"
    REJECTED = "rejected"


def classify_outcome(event_type: str) -> Optional[Outcome]:
    """Final outcome carried by an event, None for intermediate events"""
    if event_type in REJECTED_EVENTS:
        return Outcome.REJECTED
    if event_type in SIGNED_EVENTS:
        return Outcome.SIGNED
    return None


class WebhookReconciler:
    """
    Applies Adobe Sign notifications to tracked agreements: stores the signed
    document in Content Server and sends the workflow on with the final
    disposition, at most once per agreement.
    """

    def __init__(
        self,
        ledger: AgreementLedger,
        retriever: ArtifactRetriever,
        workflow_advancer,
        runner: BackgroundTaskRunner,
        completion_task_id: str = "3",
        signed_disposition: str = "Signed",
        rejected_disposition: str = "Rejected",
    ):
        self.ledger = ledger
        self.retriever = retriever
        self.workflow_advancer = workflow_advancer
        self.runner = runner
        self.completion_task_id = completion_task_id
        self.dispositions = {
            Outcome.SIGNED: signed_disposition,
            Outcome.REJECTED: rejected_disposition,
        }
        # Agreements whose advancement call is in flight
        self._advancing: Set[str] = set()

    async def handle_payload(self, payload) -> WebhookEvent:
        """Parse and handle a decoded webhook body"""
        event = parse_webhook_payload(payload)
        await self.handle_event(event)
        return event

    async def handle_event(self, event: WebhookEvent) -> None:
        """Never raises for side-effect failures; they are logged."""
        if isinstance(event, UnrecognizedEvent):
            logger.warning("webhook_unrecognized", reason=event.reason, event_type=event.event_type)
            return

        logger.info(
            "webhook_received",
            event_type=event.event_type,
            agreement_id=event.agreement_id,
            participant=event.participant,
            event_date=event.event_date.isoformat(),
        )

        record = self.ledger.get(event.agreement_id)
        if record is None:
            logger.warning(
                "webhook_untracked_agreement",
                agreement_id=event.agreement_id,
                event_type=event.event_type,
            )
            return

        if event.event_type not in ARTIFACT_EVENTS:
            return

        try:
            await self._reconcile(event)
        except Exception as e:
            logger.error(
                "webhook_reconcile_failed",
                agreement_id=event.agreement_id,
                event_type=event.event_type,
                node_id=record.node_id,
                error=str(e),
                exc_info=True,
            )

    async def _reconcile(self, event: AgreementEvent) -> None:
        outcome = await self.retriever.attempt(event.agreement_id, attempt=1)
        if outcome is FetchOutcome.STORED:
            await self.finalize(event.agreement_id, event.event_type)
        elif outcome is FetchOutcome.NOT_READY:
            self.runner.spawn(
                self._retry_then_finalize(event.agreement_id, event.event_type),
                name=f"artifact-retry-{event.agreement_id}",
                agreement_id=event.agreement_id,
                event_type=event.event_type,
            )

    async def _retry_then_finalize(self, agreement_id: str, event_type: str) -> None:
        if await self.retriever.fetch_and_store(agreement_id, first_attempt=2):
            await self.finalize(agreement_id, event_type)

    async def finalize(self, agreement_id: str, event_type: str) -> None:
        """Send the workflow on with the event's disposition unless already done"""
        outcome = classify_outcome(event_type)
        if outcome is None:
            return

        record = self.ledger.get(agreement_id)
        if record is None or record.workflow_advanced or agreement_id in self._advancing:
            return
        if not record.workflow_id:
            logger.warning("workflow_missing_disposition_skipped", agreement_id=agreement_id)
            return

        disposition = self.dispositions[outcome]
        self._advancing.add(agreement_id)
        try:
            await self.workflow_advancer.advance(
                record.workflow_id,
                record.target_subworkflow_id,
                self.completion_task_id,
                disposition=disposition,
                comment=f"Document {outcome.value} via webhook",
            )
        except SignatureBaseException as e:
            logger.error(
                "workflow_disposition_failed",
                agreement_id=agreement_id,
                workflow_id=record.workflow_id,
                disposition=disposition,
                error=e.message,
                details=e.details,
            )
            return
        except Exception as e:
            logger.error(
                "workflow_disposition_failed",
                agreement_id=agreement_id,
                workflow_id=record.workflow_id,
                disposition=disposition,
                error=str(e),
                exc_info=True,
            )
            return
        finally:
            self._advancing.discard(agreement_id)

        self.ledger.mark_workflow_advanced(agreement_id)
        logger.info(
            "workflow_disposition_sent",
            agreement_id=agreement_id,
            workflow_id=record.workflow_id,
            task_id=self.completion_task_id,
            disposition=disposition,
        )
