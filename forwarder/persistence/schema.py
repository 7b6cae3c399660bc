"""Database schema definition and ORM models.

SQLAlchemy ORM models for the pipeline tables the forwarder reads and writes,
plus conversion helpers between ORM rows and domain models. Timestamps are
stored as ISO 8601 strings with an explicit ``Z`` suffix.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from forwarder.domain.models import (
    Candidate,
    DeliveryHistoryRecord,
    DocumentDescriptor,
    MergedDocument,
    Project,
    RoleCatalog,
    StatusHistoryEntry,
)
from forwarder.utils.timestamps import ensure_utc, parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

Base = declarative_base()


class CandidateModel(Base):
    __tablename__ = "candidates"

    id = Column(String(64), primary_key=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False, default="")
    email = Column(String(320), nullable=True)

    def to_domain(self) -> Candidate:
        return Candidate(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name or "",
            email=self.email,
        )


class ProjectModel(Base):
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)

    def to_domain(self) -> Project:
        return Project(id=self.id, title=self.title)


class RoleCatalogModel(Base):
    __tablename__ = "role_catalog"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    label = Column(String(255), nullable=True)

    def to_domain(self) -> RoleCatalog:
        return RoleCatalog(id=self.id, name=self.name, label=self.label)


class ProjectRoleModel(Base):
    """A role a project needs to fill, linked to the role catalog."""

    __tablename__ = "project_roles"

    id = Column(String(64), primary_key=True)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False)
    role_catalog_id = Column(String(64), ForeignKey("role_catalog.id"), nullable=True)
    designation = Column(String(255), nullable=True)


class DocumentModel(Base):
    """An individually uploaded candidate document."""

    __tablename__ = "documents"

    id = Column(String(64), primary_key=True)
    candidate_id = Column(String(64), ForeignKey("candidates.id"), nullable=False)
    file_name = Column(String(500), nullable=False)
    file_url = Column(Text, nullable=False)
    mime_type = Column(String(255), nullable=False, default="application/octet-stream")
    status = Column(String(50), nullable=False, default="pending")

    __table_args__ = (Index("idx_documents_candidate", "candidate_id"),)

    def to_domain(self) -> DocumentDescriptor:
        return DocumentDescriptor(
            id=self.id,
            file_name=self.file_name,
            file_url=self.file_url,
            mime_type=self.mime_type,
            status=self.status,
        )


class MergedDocumentModel(Base):
    """A pre-merged PDF of a candidate's documents for one project."""

    __tablename__ = "merged_documents"

    id = Column(String(64), primary_key=True)
    candidate_id = Column(String(64), ForeignKey("candidates.id"), nullable=False)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False)
    role_catalog_id = Column(String(64), ForeignKey("role_catalog.id"), nullable=True)
    file_name = Column(String(500), nullable=False)
    file_url = Column(Text, nullable=False)
    mime_type = Column(String(255), nullable=False, default="application/pdf")
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_merged_candidate_project", "candidate_id", "project_id"),
    )

    def to_domain(self) -> MergedDocument:
        return MergedDocument(
            id=self.id,
            candidate_id=self.candidate_id,
            project_id=self.project_id,
            role_catalog_id=self.role_catalog_id,
            file_name=self.file_name,
            file_url=self.file_url,
            mime_type=self.mime_type,
            updated_at=_parse_datetime(self.updated_at),
        )


class PipelineMainStatusModel(Base):
    __tablename__ = "pipeline_main_statuses"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    label = Column(String(255), nullable=True)


class PipelineSubStatusModel(Base):
    __tablename__ = "pipeline_sub_statuses"

    id = Column(String(64), primary_key=True)
    main_status_id = Column(String(64), ForeignKey("pipeline_main_statuses.id"), nullable=False)
    name = Column(String(100), nullable=False, unique=True)
    label = Column(String(255), nullable=True)


class CandidateProjectModel(Base):
    """A candidate's participation in a project, with its pipeline status."""

    __tablename__ = "candidate_projects"

    id = Column(String(64), primary_key=True)
    candidate_id = Column(String(64), ForeignKey("candidates.id"), nullable=False)
    project_id = Column(String(64), ForeignKey("projects.id"), nullable=False)
    role_needed_id = Column(String(64), ForeignKey("project_roles.id"), nullable=True)
    main_status_id = Column(String(64), ForeignKey("pipeline_main_statuses.id"), nullable=True)
    sub_status_id = Column(String(64), ForeignKey("pipeline_sub_statuses.id"), nullable=True)
    updated_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_candidate_projects_pair", "candidate_id", "project_id"),
    )


class CandidateStatusHistoryModel(Base):
    """Append-only log of pipeline status changes."""

    __tablename__ = "candidate_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    candidate_project_id = Column(
        String(64), ForeignKey("candidate_projects.id"), nullable=False
    )
    main_status_id = Column(String(64), nullable=True)
    sub_status_id = Column(String(64), nullable=True)
    main_status_snapshot = Column(String(255), nullable=True)
    sub_status_snapshot = Column(String(255), nullable=True)
    project_status_name = Column(String(255), nullable=True)
    changed_by_id = Column(String(64), nullable=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status_changed_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_status_history_mapping", "candidate_project_id", "status_changed_at"),
    )


class DeliveryHistoryModel(Base):
    """Receipt for a document forward; mutated once by the worker."""

    __tablename__ = "delivery_history"

    id = Column(String(64), primary_key=True)
    status = Column(String(20), nullable=False, default="pending")
    recipient_email = Column(String(320), nullable=False)
    cc_emails = Column(JSON, nullable=False, default=list)
    bcc_emails = Column(JSON, nullable=False, default=list)
    candidate_id = Column(String(64), nullable=False)
    project_id = Column(String(64), nullable=False)
    role_catalog_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    send_type = Column(String(20), nullable=False, default="individual")
    document_details = Column(JSON, nullable=False, default=list)
    sender_id = Column(String(64), nullable=True)
    is_bulk = Column(Boolean, nullable=False, default=False)
    sent_at = Column(String(50), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_delivery_history_status", "status"),
        Index("idx_delivery_history_lookup", "project_id", "candidate_id", "created_at"),
    )

    def to_domain(self) -> DeliveryHistoryRecord:
        return DeliveryHistoryRecord(
            id=self.id,
            status=self.status,
            recipient_email=self.recipient_email,
            cc_emails=list(self.cc_emails or []),
            bcc_emails=list(self.bcc_emails or []),
            candidate_id=self.candidate_id,
            project_id=self.project_id,
            role_catalog_id=self.role_catalog_id,
            notes=self.notes,
            send_type=self.send_type,
            document_details=[
                DocumentDescriptor.model_validate(doc) for doc in (self.document_details or [])
            ],
            sender_id=self.sender_id,
            is_bulk=bool(self.is_bulk),
            sent_at=_parse_datetime(self.sent_at),
            error=self.error,
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, record: DeliveryHistoryRecord) -> "DeliveryHistoryModel":
        return cls(
            id=record.id,
            status=record.status.value,
            recipient_email=record.recipient_email,
            cc_emails=list(record.cc_emails),
            bcc_emails=list(record.bcc_emails),
            candidate_id=record.candidate_id,
            project_id=record.project_id,
            role_catalog_id=record.role_catalog_id,
            notes=record.notes,
            send_type=record.send_type.value,
            document_details=[doc.model_dump(by_alias=True) for doc in record.document_details],
            sender_id=record.sender_id,
            is_bulk=record.is_bulk,
            sent_at=_format_datetime(record.sent_at),
            error=record.error,
            created_at=_format_datetime(record.created_at or utc_now()),
        )


class DeliveryJobModel(Base):
    """Durable queue entry.

    Status moves queued -> running -> completed | queued (retry) | failed.
    A running job whose lease has expired can be claimed again.
    """

    __tablename__ = "delivery_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="queued")
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    available_at = Column(String(50), nullable=False)
    last_error = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)
    completed_at = Column(String(50), nullable=True)
    lease_expires_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_delivery_jobs_due", "status", "available_at"),
        Index("idx_delivery_jobs_lease", "status", "lease_expires_at"),
    )


def status_history_entry(
    row: CandidateStatusHistoryModel,
    main_name: Optional[str] = None,
    sub_name: Optional[str] = None,
) -> StatusHistoryEntry:
    """Build the canonicalization input from a history row and its joined status names."""
    return StatusHistoryEntry(
        sub_status_name=sub_name,
        sub_status_snapshot=row.sub_status_snapshot,
        main_status_name=main_name,
        main_status_snapshot=row.main_status_snapshot,
        project_status_name=row.project_status_name,
        status_changed_at=_parse_datetime(row.status_changed_at),
    )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO 8601 UTC string for storage."""
    if dt is None:
        return None

    # Fixed width so string ordering matches time ordering
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back to an aware UTC datetime."""
    return parse_iso_datetime(dt_str)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
