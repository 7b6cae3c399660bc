"""Session-per-call facade over the repositories.

The delivery orchestrator and status synchronizer talk to this object instead
of holding a session, so each operation (and each worker thread) runs in its
own short transaction.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from forwarder.domain.models import (
    Candidate,
    DeliveryHistoryRecord,
    DocumentDescriptor,
    ForwardHistoryPage,
    MergedDocument,
    PipelineStatus,
    Project,
    RoleCatalog,
    StatusHistoryEntry,
)

from .database import get_session
from .repositories import (
    DeliveryHistoryRepository,
    DocumentRepository,
    PipelineStatusRepository,
    ReferenceRepository,
)


class SqlPipelineStore:
    """Pipeline store backed by the configured SQLAlchemy database."""

    def get_history_record(self, history_id: str) -> Optional[DeliveryHistoryRecord]:
        with get_session() as session:
            return DeliveryHistoryRepository(session).get(history_id)

    def mark_history_sent(self, history_id: str, sent_at: datetime) -> None:
        with get_session() as session:
            DeliveryHistoryRepository(session).mark_sent(history_id, sent_at)

    def mark_history_failed(self, history_id: str, error: str) -> None:
        with get_session() as session:
            DeliveryHistoryRepository(session).mark_failed(history_id, error)

    def create_history_record(self, record: DeliveryHistoryRecord) -> DeliveryHistoryRecord:
        with get_session() as session:
            return DeliveryHistoryRepository(session).create(record)

    def latest_history_record(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str] = None,
    ) -> Optional[DeliveryHistoryRecord]:
        with get_session() as session:
            return DeliveryHistoryRepository(session).latest(candidate_id, project_id, role_catalog_id)

    def search_history_records(
        self,
        project_id: str,
        candidate_id: Optional[str] = None,
        role_catalog_id: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> ForwardHistoryPage:
        with get_session() as session:
            return DeliveryHistoryRepository(session).search(
                project_id,
                candidate_id=candidate_id,
                role_catalog_id=role_catalog_id,
                search=search,
                page=page,
                limit=limit,
            )

    def get_project(self, project_id: str) -> Optional[Project]:
        with get_session() as session:
            return ReferenceRepository(session).get_project(project_id)

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        with get_session() as session:
            return ReferenceRepository(session).get_candidate(candidate_id)

    def get_role_catalog(self, role_catalog_id: str) -> Optional[RoleCatalog]:
        with get_session() as session:
            return ReferenceRepository(session).get_role_catalog(role_catalog_id)

    def get_documents(
        self,
        candidate_id: str,
        document_ids: Sequence[str],
        status: Optional[str] = None,
    ) -> List[DocumentDescriptor]:
        with get_session() as session:
            return DocumentRepository(session).get_documents(candidate_id, document_ids, status)

    def get_latest_merged_document(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str] = None,
    ) -> Optional[MergedDocument]:
        with get_session() as session:
            return DocumentRepository(session).get_latest_merged_document(
                candidate_id, project_id, role_catalog_id
            )

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
    ) -> Optional[PipelineStatus]:
        """Apply a status to the candidate-project mapping.

        Returns:
            The new status, or None when the candidate has no mapping for the project
        """
        with get_session() as session:
            repo = PipelineStatusRepository(session)
            mapping = repo.find_mapping(candidate_id, project_id, role_catalog_id)
            if mapping is None:
                return None
            return repo.apply_status(
                mapping,
                main_status,
                sub_status,
                changed_at,
                reason=reason,
                notes=notes,
                changed_by_id=changed_by_id,
            )

    def list_status_history(self, candidate_id: str, project_id: str) -> List[StatusHistoryEntry]:
        with get_session() as session:
            return PipelineStatusRepository(session).list_history(candidate_id, project_id)
