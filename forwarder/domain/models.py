"""Core domain models for candidates, documents and deliveries.

This module defines the data structures used throughout the application:
- Candidate, Project, RoleCatalog: pipeline reference data
- DocumentDescriptor: a deliverable file (individual or merged)
- CandidateSelection / BulkForwardPayload / SingleForwardPayload: queue payloads
- DeliveryHistoryRecord: durable receipt for a single forward
- ForwardRequest / ForwardHistoryPage: forward intake and history listing
- PipelineStatus / StatusHistoryEntry: candidate-project status data

Queue payloads use camelCase keys on the wire; the models accept both the
wire aliases and the Python field names.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from forwarder.utils import timestamps


class DeliveryMethod(str, Enum):
    """How a batch reaches the client."""

    EMAIL_INDIVIDUAL = "email_individual"
    EMAIL_COMBINED = "email_combined"
    GOOGLE_DRIVE = "google_drive"


class SendType(str, Enum):
    """Which documents a selection delivers."""

    MERGED = "merged"
    INDIVIDUAL = "individual"


class DeliveryStatus(str, Enum):
    """State of a DeliveryHistoryRecord."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


VERIFIED = "verified"


class DocumentDescriptor(BaseModel):
    """A file that can be fetched and delivered."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    file_name: str = Field(..., alias="fileName")
    file_url: str = Field(..., alias="fileUrl")
    mime_type: str = Field("application/octet-stream", alias="mimeType")
    status: str = VERIFIED

    @property
    def is_verified(self) -> bool:
        return self.status == VERIFIED


class CandidateSelection(BaseModel):
    """One candidate in a bulk forward and the documents to send for them."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    candidate_id: str = Field(..., alias="candidateId", min_length=1)
    role_catalog_id: Optional[str] = Field(None, alias="roleCatalogId")
    send_type: SendType = Field(SendType.MERGED, alias="sendType")
    document_ids: List[str] = Field(default_factory=list, alias="documentIds")

    @field_validator("document_ids", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return [] if v is None else v


class SingleForwardPayload(BaseModel):
    """Payload of a ``send-documents`` job."""

    model_config = ConfigDict(populate_by_name=True)

    history_id: str = Field(..., alias="historyId", min_length=1)


class BulkForwardPayload(BaseModel):
    """Payload of a ``bulk-send-documents`` job."""

    model_config = ConfigDict(populate_by_name=True)

    recipient_email: EmailStr = Field(..., alias="recipientEmail")
    cc: List[EmailStr] = Field(default_factory=list)
    bcc: List[EmailStr] = Field(default_factory=list)
    project_id: str = Field(..., alias="projectId", min_length=1)
    notes: Optional[str] = None
    selections: List[CandidateSelection] = Field(default_factory=list)
    delivery_method: DeliveryMethod = Field(
        DeliveryMethod.EMAIL_COMBINED, alias="deliveryMethod"
    )
    csv_url: Optional[str] = Field(None, alias="csvUrl")
    csv_name: Optional[str] = Field(None, alias="csvName")
    sender_id: Optional[str] = Field(None, alias="senderId")

    @field_validator("cc", "bcc", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return [] if v is None else v

    @field_validator("notes", "csv_url", "csv_name")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None


class DeliveryHistoryRecord(BaseModel):
    """Durable receipt of a single forward: pending until the worker finishes it."""

    id: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    recipient_email: str
    cc_emails: List[str] = Field(default_factory=list)
    bcc_emails: List[str] = Field(default_factory=list)
    candidate_id: str
    project_id: str
    role_catalog_id: Optional[str] = None
    notes: Optional[str] = None
    send_type: SendType = SendType.INDIVIDUAL
    document_details: List[DocumentDescriptor] = Field(default_factory=list)
    sender_id: Optional[str] = None
    is_bulk: bool = False
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("sent_at", "created_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return timestamps.ensure_utc(v)


class ForwardRequest(BaseModel):
    """A request to forward one candidate's documents, before it has a history record."""

    model_config = ConfigDict(populate_by_name=True)

    candidate_id: str = Field(..., alias="candidateId", min_length=1)
    project_id: str = Field(..., alias="projectId", min_length=1)
    recipient_email: EmailStr = Field(..., alias="recipientEmail")
    cc: List[EmailStr] = Field(default_factory=list)
    bcc: List[EmailStr] = Field(default_factory=list)
    send_type: SendType = Field(SendType.MERGED, alias="sendType")
    document_ids: List[str] = Field(default_factory=list, alias="documentIds")
    role_catalog_id: Optional[str] = Field(None, alias="roleCatalogId")
    notes: Optional[str] = None
    sender_id: Optional[str] = Field(None, alias="senderId")

    @field_validator("cc", "bcc", "document_ids", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return [] if v is None else v

    @field_validator("role_catalog_id", "notes")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    def to_selection(self) -> CandidateSelection:
        return CandidateSelection(
            candidate_id=self.candidate_id,
            role_catalog_id=self.role_catalog_id,
            send_type=self.send_type,
            document_ids=self.document_ids,
        )


class ForwardHistoryPage(BaseModel):
    """One page of delivery history, newest first."""

    items: List[DeliveryHistoryRecord] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class Candidate(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Project(BaseModel):
    id: str
    title: str


class RoleCatalog(BaseModel):
    id: str
    name: str
    label: Optional[str] = None

    @property
    def display_label(self) -> str:
        return self.label or self.name


class MergedDocument(BaseModel):
    """A pre-combined PDF of a candidate's documents for one project."""

    id: str
    candidate_id: str
    project_id: str
    role_catalog_id: Optional[str] = None
    file_name: str
    file_url: str
    mime_type: str = "application/pdf"
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return timestamps.ensure_utc(v)

    def to_descriptor(self) -> DocumentDescriptor:
        """Merged artifacts are always deliverable."""
        return DocumentDescriptor(
            id=self.id,
            file_name=self.file_name,
            file_url=self.file_url,
            mime_type=self.mime_type,
            status=VERIFIED,
        )


class PipelineStatus(BaseModel):
    """Main/sub status pair of a candidate-project mapping."""

    main_status: Optional[str] = None
    sub_status: Optional[str] = None


class StatusHistoryEntry(BaseModel):
    """Raw status fields of one candidate status history row.

    Any of the name fields may be missing; status canonicalization reads them
    in priority order.
    """

    sub_status_name: Optional[str] = None
    sub_status_snapshot: Optional[str] = None
    main_status_name: Optional[str] = None
    main_status_snapshot: Optional[str] = None
    project_status_name: Optional[str] = None
    status_changed_at: datetime

    @field_validator("status_changed_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return timestamps.ensure_utc(v)


class QueuedJob(BaseModel):
    """A job claimed from the durable queue."""

    id: int
    kind: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: str = "queued"
    attempts: int = 0
    max_attempts: int = 3
    last_error: Optional[str] = None
    available_at: Optional[datetime] = None
    lease_expires_at: Optional[datetime] = None

    @field_validator("available_at", "lease_expires_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return timestamps.ensure_utc(v)
