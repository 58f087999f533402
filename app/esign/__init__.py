# local imports
from .storage import AgreementLedger
from .services import SubmissionService
from .reconciler import WebhookReconciler

__all__ = ["AgreementLedger", "SubmissionService", "WebhookReconciler"]
