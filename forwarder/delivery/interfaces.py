"""Collaborator protocols consumed by the delivery core.

Concrete implementations live in forwarder.storage, forwarder.notifications
and forwarder.persistence; tests substitute mocks.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from forwarder.domain.models import (
    Candidate,
    DeliveryHistoryRecord,
    DocumentDescriptor,
    MergedDocument,
    PipelineStatus,
    Project,
    RoleCatalog,
    StatusHistoryEntry,
)
from forwarder.notifications.models import OutboundEmail


class BlobStorage(Protocol):
    def fetch(self, url: str) -> bytes: ...


class CloudFolderService(Protocol):
    def is_configured(self) -> bool: ...

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> str: ...

    def upload_file(self, folder_id: str, file_name: str, mime_type: str, content: bytes) -> str: ...

    def share_folder(self, folder_id: str, recipient_email: Optional[str] = None) -> str: ...


class MailTransport(Protocol):
    def send(self, email: OutboundEmail) -> str: ...


class PipelineStore(Protocol):
    def get_history_record(self, history_id: str) -> Optional[DeliveryHistoryRecord]: ...

    def create_history_record(self, record: DeliveryHistoryRecord) -> DeliveryHistoryRecord: ...

    def mark_history_sent(self, history_id: str, sent_at: datetime) -> None: ...

    def mark_history_failed(self, history_id: str, error: str) -> None: ...

    def get_project(self, project_id: str) -> Optional[Project]: ...

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]: ...

    def get_role_catalog(self, role_catalog_id: str) -> Optional[RoleCatalog]: ...

    def get_documents(
        self,
        candidate_id: str,
        document_ids: Sequence[str],
        status: Optional[str] = None,
    ) -> List[DocumentDescriptor]: ...

    def get_latest_merged_document(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str] = None,
    ) -> Optional[MergedDocument]: ...

    def update_pipeline_status(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str],
        main_status: str,
        sub_status: str,
        changed_at: datetime,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        changed_by_id: Optional[str] = None,
    ) -> Optional[PipelineStatus]: ...

    def list_status_history(self, candidate_id: str, project_id: str) -> List[StatusHistoryEntry]: ...
