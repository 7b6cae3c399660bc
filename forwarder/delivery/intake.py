"""Turns forward requests into pending delivery history records."""

import uuid
from typing import Callable, Optional

from forwarder.domain.models import DeliveryHistoryRecord, DeliveryStatus, ForwardRequest, SendType
from forwarder.logging import get_logger
from forwarder.logging.context import log_context
from forwarder.persistence.exceptions import PersistenceError
from forwarder.status.synchronizer import StatusSynchronizer
from forwarder.utils.timestamps import utc_now

from .exceptions import CandidateNotFoundError, NoDeliverableDocumentsError, ProjectNotFoundError
from .interfaces import PipelineStore
from .resolver import DocumentResolver

logger = get_logger(__name__, component="intake")


def new_history_id() -> str:
    return uuid.uuid4().hex


class ForwardIntake:
    """Validates a forward request and records it as a pending delivery.

    The record keeps a snapshot of the resolved documents, so the worker
    sends what was resolved here even if the candidate's documents change
    before the job runs. The candidate's pipeline status is advanced at
    request time, best effort.
    """

    def __init__(
        self,
        store: PipelineStore,
        synchronizer: Optional[StatusSynchronizer] = None,
        clock: Callable = utc_now,
        id_factory: Callable[[], str] = new_history_id,
    ):
        self.store = store
        self.resolver = DocumentResolver(store)
        self.synchronizer = synchronizer or StatusSynchronizer(store, clock=clock)
        self.clock = clock
        self.id_factory = id_factory

    def create_record(self, request: ForwardRequest) -> DeliveryHistoryRecord:
        """Resolve the request's documents and store a pending history record.

        Raises:
            CandidateNotFoundError: If the candidate does not exist
            ProjectNotFoundError: If the project does not exist
            NoDeliverableDocumentsError: If nothing resolves to a sendable document
            PersistenceError: If the record cannot be stored
        """
        with log_context(candidate_id=request.candidate_id, project_id=request.project_id):
            if self.store.get_candidate(request.candidate_id) is None:
                raise CandidateNotFoundError(request.candidate_id)
            if self.store.get_project(request.project_id) is None:
                raise ProjectNotFoundError(request.project_id)

            if request.send_type == SendType.INDIVIDUAL and not request.document_ids:
                raise NoDeliverableDocumentsError(
                    f"No document ids given for an individual forward of candidate {request.candidate_id}"
                )

            documents = self.resolver.resolve(request.to_selection(), request.project_id)
            if not documents:
                if request.send_type == SendType.MERGED:
                    message = f"No merged document found for candidate {request.candidate_id}"
                else:
                    message = f"No verified documents found for candidate {request.candidate_id}"
                raise NoDeliverableDocumentsError(message)

            record = self.store.create_history_record(
                DeliveryHistoryRecord(
                    id=self.id_factory(),
                    status=DeliveryStatus.PENDING,
                    recipient_email=str(request.recipient_email),
                    cc_emails=[str(email) for email in request.cc],
                    bcc_emails=[str(email) for email in request.bcc],
                    candidate_id=request.candidate_id,
                    project_id=request.project_id,
                    role_catalog_id=request.role_catalog_id,
                    notes=request.notes,
                    send_type=request.send_type,
                    document_details=documents,
                    sender_id=request.sender_id,
                    created_at=self.clock(),
                )
            )

            logger.info(
                "Forward request recorded",
                extra={
                    "event": "delivery.intake.recorded",
                    "history_id": record.id,
                    "send_type": request.send_type.value,
                    "document_count": len(documents),
                },
            )

            try:
                self.synchronizer.advance_after_delivery(
                    candidate_id=request.candidate_id,
                    project_id=request.project_id,
                    role_catalog_id=request.role_catalog_id,
                    recipient_email=record.recipient_email,
                    notes=request.notes,
                    sender_id=request.sender_id,
                )
            except PersistenceError as e:
                logger.warning(
                    f"Pipeline status update failed: {e}",
                    extra={"event": "delivery.intake.status_failed", "history_id": record.id},
                )

            return record
