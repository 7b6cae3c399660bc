"""Data access layer (repositories) for persistence operations.

Repositories wrap one SQLAlchemy session, return domain models rather than ORM
rows, and translate SQLAlchemy failures into PersistenceError subclasses.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from forwarder.domain.models import (
    Candidate,
    DeliveryHistoryRecord,
    DeliveryStatus,
    DocumentDescriptor,
    ForwardHistoryPage,
    MergedDocument,
    PipelineStatus,
    Project,
    QueuedJob,
    RoleCatalog,
    StatusHistoryEntry,
)

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    CandidateModel,
    CandidateProjectModel,
    CandidateStatusHistoryModel,
    DeliveryHistoryModel,
    DeliveryJobModel,
    DocumentModel,
    MergedDocumentModel,
    PipelineMainStatusModel,
    PipelineSubStatusModel,
    ProjectModel,
    ProjectRoleModel,
    RoleCatalogModel,
    _format_datetime,
    _parse_datetime,
    status_history_entry,
)

logger = logging.getLogger(__name__)


class ReferenceRepository:
    """Read-only lookups for candidates, projects and the role catalog."""

    def __init__(self, session: Session):
        self.session = session

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        try:
            row = self.session.get(CandidateModel, candidate_id)
            return row.to_domain() if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving candidate {candidate_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve candidate: {e}") from e

    def get_project(self, project_id: str) -> Optional[Project]:
        try:
            row = self.session.get(ProjectModel, project_id)
            return row.to_domain() if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving project {project_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve project: {e}") from e

    def get_role_catalog(self, role_catalog_id: str) -> Optional[RoleCatalog]:
        try:
            row = self.session.get(RoleCatalogModel, role_catalog_id)
            return row.to_domain() if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving role {role_catalog_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve role catalog entry: {e}") from e


class DocumentRepository:
    """Lookups for individual and merged candidate documents."""

    def __init__(self, session: Session):
        self.session = session

    def get_documents(
        self,
        candidate_id: str,
        document_ids: Sequence[str],
        status: Optional[str] = None,
    ) -> List[DocumentDescriptor]:
        """Fetch the candidate's documents among ``document_ids``.

        Results follow the order of ``document_ids``; unknown ids are skipped.

        Args:
            candidate_id: Owner of the documents
            document_ids: Requested document ids
            status: Optional status filter (e.g. "verified")
        """
        if not document_ids:
            return []

        try:
            stmt = select(DocumentModel).where(
                DocumentModel.id.in_(list(document_ids)),
                DocumentModel.candidate_id == candidate_id,
            )
            if status is not None:
                stmt = stmt.where(DocumentModel.status == status)

            rows = {row.id: row for row in self.session.execute(stmt).scalars()}
            return [
                rows[doc_id].to_domain()
                for doc_id in dict.fromkeys(document_ids)
                if doc_id in rows
            ]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving documents for {candidate_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve documents: {e}") from e

    def get_latest_merged_document(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str] = None,
    ) -> Optional[MergedDocument]:
        """Most recently updated merged document for (candidate, project).

        Tries the exact role first, then a role-less artifact, then any artifact.
        """
        base = select(MergedDocumentModel).where(
            MergedDocumentModel.candidate_id == candidate_id,
            MergedDocumentModel.project_id == project_id,
        )

        attempts = []
        if role_catalog_id:
            attempts.append(base.where(MergedDocumentModel.role_catalog_id == role_catalog_id))
        attempts.append(base.where(MergedDocumentModel.role_catalog_id.is_(None)))
        attempts.append(base)

        try:
            for stmt in attempts:
                row = self.session.execute(
                    stmt.order_by(MergedDocumentModel.updated_at.desc()).limit(1)
                ).scalar_one_or_none()
                if row is not None:
                    return row.to_domain()
            return None

        except SQLAlchemyError as e:
            logger.error(
                f"Error retrieving merged document for {candidate_id}/{project_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to retrieve merged document: {e}") from e


class DeliveryHistoryRepository:
    """CRUD for delivery_history receipts."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, history_id: str) -> Optional[DeliveryHistoryRecord]:
        try:
            row = self.session.get(DeliveryHistoryModel, history_id)
            return row.to_domain() if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving delivery history {history_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve delivery history: {e}") from e

    def create(self, record: DeliveryHistoryRecord) -> DeliveryHistoryRecord:
        try:
            row = DeliveryHistoryModel.from_domain(record)
            self.session.add(row)
            self.session.flush()
            return row.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error creating delivery history {record.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create delivery history: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating delivery history {record.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create delivery history: {e}") from e

    def latest(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str] = None,
    ) -> Optional[DeliveryHistoryRecord]:
        """Most recent forward for (candidate, project), narrowed to a role when given."""
        stmt = select(DeliveryHistoryModel).where(
            DeliveryHistoryModel.candidate_id == candidate_id,
            DeliveryHistoryModel.project_id == project_id,
        )
        if role_catalog_id:
            stmt = stmt.where(DeliveryHistoryModel.role_catalog_id == role_catalog_id)

        try:
            row = self.session.execute(
                stmt.order_by(DeliveryHistoryModel.created_at.desc(), DeliveryHistoryModel.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            return row.to_domain() if row else None
        except SQLAlchemyError as e:
            logger.error(
                f"Error retrieving latest forward for {candidate_id}/{project_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to retrieve latest forward: {e}") from e

    def search(
        self,
        project_id: str,
        candidate_id: Optional[str] = None,
        role_catalog_id: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> ForwardHistoryPage:
        """Page through a project's forwards, newest first.

        ``search`` matches recipient and notes case-insensitively. Across a
        whole project (no ``candidate_id``) it also matches the candidate's
        first and last name.
        """
        page = max(page, 1)
        limit = max(limit, 1)

        stmt = select(DeliveryHistoryModel).where(DeliveryHistoryModel.project_id == project_id)
        if candidate_id:
            stmt = stmt.where(DeliveryHistoryModel.candidate_id == candidate_id)
        if role_catalog_id:
            stmt = stmt.where(DeliveryHistoryModel.role_catalog_id == role_catalog_id)

        if search:
            pattern = f"%{search}%"
            terms = [
                DeliveryHistoryModel.recipient_email.ilike(pattern),
                DeliveryHistoryModel.notes.ilike(pattern),
            ]
            if not candidate_id:
                stmt = stmt.outerjoin(
                    CandidateModel, CandidateModel.id == DeliveryHistoryModel.candidate_id
                )
                terms += [
                    CandidateModel.first_name.ilike(pattern),
                    CandidateModel.last_name.ilike(pattern),
                ]
            stmt = stmt.where(or_(*terms))

        try:
            total = self.session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar_one()
            rows = self.session.execute(
                stmt.order_by(DeliveryHistoryModel.created_at.desc(), DeliveryHistoryModel.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error searching forward history for {project_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to search forward history: {e}") from e

        return ForwardHistoryPage(
            items=[row.to_domain() for row in rows], total=total, page=page, limit=limit
        )

    def mark_sent(self, history_id: str, sent_at: datetime) -> None:
        self._set_status(
            history_id,
            status=DeliveryStatus.SENT.value,
            sent_at=_format_datetime(sent_at),
            error=None,
        )

    def mark_failed(self, history_id: str, error: str) -> None:
        self._set_status(history_id, status=DeliveryStatus.FAILED.value, error=error)

    def _set_status(self, history_id: str, **values: Any) -> None:
        try:
            result = self.session.execute(
                update(DeliveryHistoryModel)
                .where(DeliveryHistoryModel.id == history_id)
                .values(**values)
            )
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Delivery history {history_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating delivery history {history_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update delivery history: {e}") from e


class PipelineStatusRepository:
    """Candidate-project mappings, their status and status history."""

    def __init__(self, session: Session):
        self.session = session

    def find_mapping(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str] = None,
    ) -> Optional[CandidateProjectModel]:
        """Locate the candidate-project mapping.

        With a role, a mapping whose needed role points at that catalog entry
        wins; otherwise (or when none matches) any mapping for the pair.
        """
        base = select(CandidateProjectModel).where(
            CandidateProjectModel.candidate_id == candidate_id,
            CandidateProjectModel.project_id == project_id,
        )

        try:
            if role_catalog_id:
                role_specific = (
                    base.join(
                        ProjectRoleModel,
                        ProjectRoleModel.id == CandidateProjectModel.role_needed_id,
                    )
                    .where(ProjectRoleModel.role_catalog_id == role_catalog_id)
                    .limit(1)
                )
                row = self.session.execute(role_specific).scalar_one_or_none()
                if row is not None:
                    return row

            return self.session.execute(base.limit(1)).scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(
                f"Error finding mapping for {candidate_id}/{project_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to find candidate-project mapping: {e}") from e

    def get_status(self, mapping_id: str) -> Optional[PipelineStatus]:
        main = aliased(PipelineMainStatusModel)
        sub = aliased(PipelineSubStatusModel)
        stmt = (
            select(main.name, sub.name)
            .select_from(CandidateProjectModel)
            .outerjoin(main, main.id == CandidateProjectModel.main_status_id)
            .outerjoin(sub, sub.id == CandidateProjectModel.sub_status_id)
            .where(CandidateProjectModel.id == mapping_id)
        )
        try:
            row = self.session.execute(stmt).one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error reading status of mapping {mapping_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read pipeline status: {e}") from e

        if row is None:
            return None
        return PipelineStatus(main_status=row[0], sub_status=row[1])

    def apply_status(
        self,
        mapping: CandidateProjectModel,
        main_status_name: str,
        sub_status_name: str,
        changed_at: datetime,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        changed_by_id: Optional[str] = None,
    ) -> PipelineStatus:
        """Move a mapping to (main, sub) and append a status history row.

        Raises:
            RecordNotFoundError: If either status name is not configured
            PersistenceError: If database error occurs
        """
        try:
            main = self.session.execute(
                select(PipelineMainStatusModel).where(
                    PipelineMainStatusModel.name == main_status_name
                )
            ).scalar_one_or_none()
            sub = self.session.execute(
                select(PipelineSubStatusModel).where(
                    PipelineSubStatusModel.name == sub_status_name
                )
            ).scalar_one_or_none()

            if main is None or sub is None:
                raise RecordNotFoundError(
                    f"Pipeline status {main_status_name}/{sub_status_name} is not configured"
                )

            stamp = _format_datetime(changed_at)
            mapping.main_status_id = main.id
            mapping.sub_status_id = sub.id
            mapping.updated_at = stamp

            self.session.add(
                CandidateStatusHistoryModel(
                    candidate_project_id=mapping.id,
                    main_status_id=main.id,
                    sub_status_id=sub.id,
                    main_status_snapshot=main.label or main.name,
                    sub_status_snapshot=sub.label or sub.name,
                    changed_by_id=changed_by_id,
                    reason=reason,
                    notes=notes,
                    status_changed_at=stamp,
                )
            )
            self.session.flush()
            return PipelineStatus(main_status=main.name, sub_status=sub.name)

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error applying status to mapping {mapping.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update pipeline status: {e}") from e

    def list_history(self, candidate_id: str, project_id: str) -> List[StatusHistoryEntry]:
        """Status history rows for every mapping of (candidate, project), oldest first."""
        main = aliased(PipelineMainStatusModel)
        sub = aliased(PipelineSubStatusModel)
        stmt = (
            select(CandidateStatusHistoryModel, main.name, sub.name)
            .join(
                CandidateProjectModel,
                CandidateProjectModel.id == CandidateStatusHistoryModel.candidate_project_id,
            )
            .outerjoin(main, main.id == CandidateStatusHistoryModel.main_status_id)
            .outerjoin(sub, sub.id == CandidateStatusHistoryModel.sub_status_id)
            .where(
                CandidateProjectModel.candidate_id == candidate_id,
                CandidateProjectModel.project_id == project_id,
            )
            .order_by(CandidateStatusHistoryModel.status_changed_at, CandidateStatusHistoryModel.id)
        )
        try:
            return [
                status_history_entry(row, main_name=main_name, sub_name=sub_name)
                for row, main_name, sub_name in self.session.execute(stmt)
            ]
        except SQLAlchemyError as e:
            logger.error(
                f"Error listing status history for {candidate_id}/{project_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to list status history: {e}") from e


class JobQueueRepository:
    """The delivery_jobs table used as a durable at-least-once queue."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    def __init__(self, session: Session):
        self.session = session

    def enqueue(
        self,
        kind: str,
        payload: Dict[str, Any],
        now: datetime,
        max_attempts: int = 3,
    ) -> QueuedJob:
        try:
            stamp = _format_datetime(now)
            row = DeliveryJobModel(
                kind=kind,
                payload=payload,
                status=self.QUEUED,
                attempts=0,
                max_attempts=max_attempts,
                available_at=stamp,
                created_at=stamp,
            )
            self.session.add(row)
            self.session.flush()
            return self._to_domain(row)
        except SQLAlchemyError as e:
            logger.error(f"Error enqueueing {kind} job: {e}", exc_info=True)
            raise PersistenceError(f"Failed to enqueue job: {e}") from e

    def get(self, job_id: int) -> Optional[QueuedJob]:
        try:
            row = self.session.get(DeliveryJobModel, job_id)
            return self._to_domain(row) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def claim_due(self, now: datetime, limit: int, lease_seconds: float = 900.0) -> List[QueuedJob]:
        """Mark up to ``limit`` due jobs as running and return them.

        A job is due when it is queued with ``available_at <= now``, or when
        it is running under a lease that expired (its worker died or could not
        record the outcome). Each claim increments the attempt counter and
        takes a new lease of ``lease_seconds``. An expired job that already
        used its last attempt is marked failed instead of being claimed.
        """
        stamp = _format_datetime(now)
        lease_until = _format_datetime(now + timedelta(seconds=lease_seconds))

        try:
            rows = self.session.execute(
                select(DeliveryJobModel)
                .where(
                    or_(
                        and_(
                            DeliveryJobModel.status == self.QUEUED,
                            DeliveryJobModel.available_at <= stamp,
                        ),
                        and_(
                            DeliveryJobModel.status == self.RUNNING,
                            DeliveryJobModel.lease_expires_at <= stamp,
                        ),
                    )
                )
                .order_by(DeliveryJobModel.available_at, DeliveryJobModel.id)
                .limit(limit)
            ).scalars().all()

            claimed = []
            for row in rows:
                # Guarded update so two workers never claim the same row
                guard = [DeliveryJobModel.id == row.id, DeliveryJobModel.status == row.status]
                expired = row.status == self.RUNNING
                if expired:
                    guard.append(DeliveryJobModel.lease_expires_at == row.lease_expires_at)

                if expired and row.attempts >= row.max_attempts:
                    self.session.execute(
                        update(DeliveryJobModel)
                        .where(*guard)
                        .values(
                            status=self.FAILED,
                            last_error="lease expired on final attempt",
                            completed_at=stamp,
                            lease_expires_at=None,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    logger.warning(f"Job {row.id} lease expired on its final attempt; marked failed")
                    continue

                result = self.session.execute(
                    update(DeliveryJobModel)
                    .where(*guard)
                    .values(
                        status=self.RUNNING,
                        attempts=DeliveryJobModel.attempts + 1,
                        lease_expires_at=lease_until,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    if expired:
                        logger.warning(f"Reclaiming job {row.id} after its lease expired")
                    self.session.refresh(row)
                    claimed.append(self._to_domain(row))

            self.session.flush()
            return claimed

        except SQLAlchemyError as e:
            logger.error(f"Error claiming due jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim jobs: {e}") from e

    def mark_completed(self, job_id: int, now: datetime) -> None:
        self._update(
            job_id,
            status=self.COMPLETED,
            completed_at=_format_datetime(now),
            lease_expires_at=None,
        )

    def schedule_retry(self, job_id: int, error: str, delay_seconds: float, now: datetime) -> None:
        self._update(
            job_id,
            status=self.QUEUED,
            last_error=error,
            available_at=_format_datetime(now + timedelta(seconds=delay_seconds)),
            lease_expires_at=None,
        )

    def mark_failed(self, job_id: int, error: str, now: datetime) -> None:
        self._update(
            job_id,
            status=self.FAILED,
            last_error=error,
            completed_at=_format_datetime(now),
            lease_expires_at=None,
        )

    def count_by_status(self) -> Dict[str, int]:
        try:
            rows = self.session.execute(select(DeliveryJobModel.status)).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error counting jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count jobs: {e}") from e

        counts: Dict[str, int] = {}
        for status in rows:
            counts[status] = counts.get(status, 0) + 1
        return counts

    def _update(self, job_id: int, **values: Any) -> None:
        try:
            result = self.session.execute(
                update(DeliveryJobModel).where(DeliveryJobModel.id == job_id).values(**values)
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Job {job_id} not found")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update job: {e}") from e

    @staticmethod
    def _to_domain(row: DeliveryJobModel) -> QueuedJob:
        return QueuedJob(
            id=row.id,
            kind=row.kind,
            payload=dict(row.payload or {}),
            status=row.status,
            attempts=row.attempts,
            max_attempts=row.max_attempts,
            last_error=row.last_error,
            available_at=_parse_datetime(row.available_at),
            lease_expires_at=_parse_datetime(row.lease_expires_at),
        )
