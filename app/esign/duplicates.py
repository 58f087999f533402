# app/esign/duplicates.py

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence, Tuple

from app.esign.models import TrackingRecord
from app.esign.utils import normalize_email

DEFAULT_WINDOW = timedelta(minutes=15)


def find_duplicate(
    records: Iterable[Tuple[str, TrackingRecord]],
    node_id: str,
    recipient_emails: Sequence[str],
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> Optional[str]:
    """
    Return the agreement id of a record that sent `node_id` to exactly the
    same set of recipients less than `window` before `now`, else None.
    """
    candidate = {normalize_email(e) for e in recipient_emails if e and e.strip()}
    if not candidate:
        return None

    for agreement_id, record in records:
        if str(record.node_id) != str(node_id):
            continue
        if len(record.recipient_emails) != len(candidate):
            continue
        if {normalize_email(e) for e in record.recipient_emails} != candidate:
            continue
        if record.created_at is None:
            continue
        if now - record.created_at < window:
            return agreement_id
    return None


def is_duplicate(
    records: Iterable[Tuple[str, TrackingRecord]],
    node_id: str,
    recipient_emails: Sequence[str],
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> bool:
    """True when the submission collides with a recent one"""
    return find_duplicate(records, node_id, recipient_emails, now, window) is not None
