# app/esign/exceptions.py

"""
Custom exceptions for the e-signature module.
"""

from typing import Optional

from fastapi import HTTPException, status


class SignatureBaseException(Exception):
    """Base exception for all e-signature errors."""
    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidRequestException(SignatureBaseException):
    """Raised when a submission is missing or has malformed fields."""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else {})


class DuplicateSubmissionException(SignatureBaseException):
    """Raised when the same document went to the same signers moments ago."""
    def __init__(self, node_id: str, recipient_emails: list, agreement_id: Optional[str] = None):
        super().__init__(
            "The document was recently sent to these recipients",
            {"node_id": node_id, "recipient_emails": recipient_emails, "agreement_id": agreement_id},
        )


class AuthenticationRequiredException(SignatureBaseException):
    """Raised when no valid or refreshable Adobe Sign session exists."""
    def __init__(self, reason: str = "No Adobe Sign session"):
        super().__init__("LOGIN_REQUIRED", {"reason": reason})


class UpstreamFetchFailedException(SignatureBaseException):
    """Raised when the source document cannot be read from Content Server."""
    def __init__(self, node_id: str, upstream_detail: Optional[str] = None):
        super().__init__(
            f"Could not download node {node_id} from Content Server",
            {"node_id": node_id, "upstream": upstream_detail},
        )


class ProviderRejectedException(SignatureBaseException):
    """Raised when Adobe Sign refuses a transient document or agreement."""
    def __init__(self, message: str, status_code: Optional[int] = None, upstream_detail=None):
        super().__init__(message, {"status_code": status_code, "upstream": upstream_detail})


class ArtifactRaceConditionException(SignatureBaseException):
    """
    Raised when the combined document is not downloadable yet.
    Adobe Sign answers 403 for a while after the terminal event fires.
    """
    def __init__(self, agreement_id: str):
        super().__init__(
            f"Signed document for {agreement_id} is not available yet",
            {"agreement_id": agreement_id},
        )


class ArtifactStoreFailedException(SignatureBaseException):
    """Raised when the signed document cannot be fetched or written back."""
    def __init__(self, agreement_id: str, reason: str):
        super().__init__(
            f"Storing signed document for {agreement_id} failed: {reason}",
            {"agreement_id": agreement_id, "reason": reason},
        )


class ContentServerException(SignatureBaseException):
    """Raised when a Content Server REST call fails."""
    def __init__(self, message: str, status_code: Optional[int] = None, upstream_detail=None):
        super().__init__(message, {"status_code": status_code, "upstream": upstream_detail})


class WorkflowAdvanceFailedException(SignatureBaseException):
    """Raised when Content Server refuses to send a workflow task on."""
    def __init__(self, workflow_id: str, task_id: str, upstream_detail=None):
        super().__init__(
            f"SendOn failed for workflow {workflow_id} task {task_id}",
            {"workflow_id": workflow_id, "task_id": task_id, "upstream": upstream_detail},
        )


def convert_to_http_exception(exc: SignatureBaseException) -> HTTPException:
    """
    Convert a SignatureBaseException to an HTTPException with appropriate status code.

    Args:
        exc: The e-signature exception to convert

    Returns:
        HTTPException with appropriate status code and detail
    """
    detail = {"message": exc.message, "details": exc.details}
    if isinstance(exc, InvalidRequestException):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    elif isinstance(exc, DuplicateSubmissionException):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    elif isinstance(exc, AuthenticationRequiredException):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
    elif isinstance(exc, (UpstreamFetchFailedException, ProviderRejectedException)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)
    else:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(exc), "details": {}}
        )
