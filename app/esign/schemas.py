# app/esign/schemas.py

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class StartRequest(BaseModel):
    """
    Body of POST /start as sent by the Content Server trigger page.
    Every field is optional here; the submission service reports what is missing.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    node_id: Optional[str] = Field(None, validation_alias=AliasChoices("nodeId", "node_id"))
    destination_folder_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("destinationFolderId", "destination_folder_id", "attachId"),
    )
    file_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("fileName", "file_name", "docName")
    )
    recipient_emails: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("recipientEmails", "recipient_emails"),
    )
    # Form fields posted by the Content Server trigger page
    user_email_1: Optional[str] = Field(None, validation_alias=AliasChoices("userEmail1", "user_email_1"))
    user_email_2: Optional[str] = Field(None, validation_alias=AliasChoices("userEmail2", "user_email_2"))

    workflow_id: Optional[str] = Field(None, validation_alias=AliasChoices("workflowId", "workflow_id"))
    subworkflow_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("subworkflowId", "subworkflow_id")
    )
    task_id: Optional[str] = Field(None, validation_alias=AliasChoices("taskId", "task_id"))

    @field_validator(
        "node_id", "destination_folder_id", "file_name", "user_email_1", "user_email_2",
        "workflow_id", "subworkflow_id", "task_id",
        mode="before",
    )
    @classmethod
    def coerce_to_str(cls, value):
        """Numbers arrive both quoted and unquoted; blank means absent"""
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("recipient_emails", mode="before")
    @classmethod
    def coerce_to_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value if v is not None]

    @property
    def raw_emails(self) -> List[str]:
        """All supplied address fields in request order"""
        return [e for e in [*self.recipient_emails, self.user_email_1, self.user_email_2] if e]


class StartResponse(BaseModel):
    """Response after an agreement is created."""

    agreement_id: str
    message: str


class RequestProof(BaseModel):
    """Timestamp and HMAC issued to the trigger page by GET /auth."""

    timestamp: str
    signature: str


class AgreementEvent(BaseModel):
    """A webhook notification that names an agreement."""

    kind: Literal["agreement"] = "agreement"
    agreement_id: str
    event_type: str
    participant: str
    event_date: datetime


class UnrecognizedEvent(BaseModel):
    """A webhook notification from which no agreement could be extracted."""

    kind: Literal["unrecognized"] = "unrecognized"
    reason: str
    event_type: str = "UNKNOWN_EVENT"


WebhookEvent = Annotated[Union[AgreementEvent, UnrecognizedEvent], Field(discriminator="kind")]
