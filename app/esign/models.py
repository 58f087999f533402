# app/esign/models.py

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


class TrackingRecord(BaseModel):
    """
    Ties an Adobe Sign agreement back to the Content Server document,
    destination folder and workflow it was sent from.
    """

    node_id: str
    destination_folder_id: str
    file_name: str

    # Workflow to advance on completion; None means there is nothing to advance
    workflow_id: Optional[str] = None
    subworkflow_id: Optional[str] = None

    # Only ever flips from False to True
    workflow_advanced: bool = False

    # Normalized (trimmed, lower-cased) signer addresses in request order
    recipient_emails: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def target_subworkflow_id(self) -> Optional[str]:
        """Subworkflow to address, falling back to the main workflow"""
        return self.subworkflow_id or self.workflow_id
