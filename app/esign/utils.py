import hashlib
import hmac
import re
import time
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Iterable, List, Optional

from fastapi import HTTPException, status

from app.esign.schemas import AgreementEvent, RequestProof, UnrecognizedEvent, WebhookEvent

SIGNATURE_PATTERN = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)
EMAIL_SEPARATORS = re.compile(r"[;,]+")


def sign_timestamp(secret: str, timestamp: str) -> str:
    return hmac.new(secret.encode(), timestamp.encode(), hashlib.sha256).hexdigest()


def issue_request_proof(secret: str, now_ms: Optional[int] = None) -> RequestProof:
    """Create a fresh timestamp + HMAC pair for the trigger page"""
    if not secret:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail="Request signing is not configured.")
    timestamp = str(now_ms if now_ms is not None else int(time.time() * 1000))
    return RequestProof(timestamp=timestamp, signature=sign_timestamp(secret, timestamp))


def verify_request_proof(
    secret: str,
    timestamp: Optional[str],
    signature: Optional[str],
    max_age_seconds: int,
    now_ms: Optional[int] = None,
) -> None:
    """
    Reject the request unless `signature` is the HMAC of a recent `timestamp`.
    Raises HTTPException (401 missing, 400 malformed, 403 stale or wrong).
    An empty `secret` never verifies.
    """
    if not secret:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Request signing is not configured.")
    if not signature or not timestamp:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Missing signature or timestamp.")
    if not SIGNATURE_PATTERN.match(signature):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed signature.")
    try:
        issued_ms = int(timestamp)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed timestamp.")

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(now_ms - issued_ms) > max_age_seconds * 1000:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Timestamp expired.")

    expected = hmac.new(secret.encode(), timestamp.encode(), hashlib.sha256).digest()
    received = bytes.fromhex(signature)
    if not hmac.compare_digest(expected, received):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature.")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_emails(raw: Iterable[str]) -> List[str]:
    """
    Split on ';' or ',', trim, lower-case and drop anything without '@'.
    Order is kept and repeats are removed.
    """
    emails: List[str] = []
    for entry in raw:
        for part in EMAIL_SEPARATORS.split(entry or ""):
            email = normalize_email(part)
            if "@" in email and email not in emails:
                emails.append(email)
    return emails


def safe_file_name(file_name: Optional[str], node_id: str) -> str:
    """Strip directories from a display name so it can be used as a local file"""
    name = PurePath((file_name or "").replace("\\", "/")).name.strip()
    if not name or name in (".", ".."):
        return f"node_{node_id}.pdf"
    return name


def parse_webhook_payload(payload) -> WebhookEvent:
    """
    Pull agreement id, event type, participant and date out of the several
    payload shapes Adobe Sign has used across API versions.
    """
    if not isinstance(payload, dict):
        return UnrecognizedEvent(reason="payload is not an object")

    event = payload.get("event")
    event_obj = event if isinstance(event, dict) else {}
    agreement = payload.get("agreement") if isinstance(payload.get("agreement"), dict) else {}

    agreement_id = _first(event_obj.get("agreementId"), agreement.get("id"), payload.get("agreementId"))
    event_type = _first(
        event_obj.get("eventType"),
        event if isinstance(event, str) else None,
        payload.get("type"),
    ) or "UNKNOWN_EVENT"

    if not agreement_id:
        return UnrecognizedEvent(reason="no agreement id in payload", event_type=str(event_type))

    participant = _first(
        event_obj.get("participantUserEmail"), payload.get("participantUserEmail")
    ) or "unknown"
    event_date = _parse_date(_first(event_obj.get("eventDate"), payload.get("eventDate")))

    return AgreementEvent(
        agreement_id=str(agreement_id),
        event_type=str(event_type).upper(),
        participant=str(participant),
        event_date=event_date,
    )


def _first(*values):
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _parse_date(value) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)
