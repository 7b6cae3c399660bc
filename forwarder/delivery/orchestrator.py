"""Delivery orchestrator: executes forwarding jobs pulled off the queue.

A single forward sends one candidate's documents and settles its history
record. A bulk forward walks the batch's candidate selections, collects or
mirrors their documents, advances each candidate's pipeline status, and sends
one summary email. Per-candidate and per-document failures are logged and
counted; only setup failures and the final send escape to the queue.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

from forwarder.config.models import AppConfig, DeliveryConfig
from forwarder.domain.models import (
    BulkForwardPayload,
    CandidateSelection,
    DeliveryHistoryRecord,
    DeliveryMethod,
    DeliveryStatus,
    DocumentDescriptor,
    Project,
)
from forwarder.jobs.models import BulkForwardJob, DeliveryJob, SingleForwardJob, UnrecognizedJob
from forwarder.logging import get_logger
from forwarder.logging.context import get_log_context, log_context
from forwarder.notifications.models import Attachment, NotificationError
from forwarder.persistence.exceptions import PersistenceError
from forwarder.status.synchronizer import StatusSynchronizer
from forwarder.storage.exceptions import StorageError
from forwarder.utils.timestamps import utc_now

from .composer import DeliveryComposer
from .exceptions import CloudStorageUnavailableError, ProjectNotFoundError, TerminalSendFailure
from .folders import CloudFolderBuilder
from .interfaces import BlobStorage, PipelineStore
from .models import (
    COMPLETED,
    DROPPED,
    SENT,
    SKIPPED,
    BulkForwardResult,
    CandidateResult,
    DeliveryOutcome,
    ProcessedCandidate,
)
from .resolver import DocumentResolver

logger = get_logger(__name__, component="orchestrator")

CSV_MIME_TYPE = "text/csv"


@dataclass(frozen=True)
class _BatchScope:
    payload: BulkForwardPayload
    project: Project
    batch_folder_id: Optional[str] = None


class DeliveryOrchestrator:
    """Routes parsed jobs to their handlers.

    Args:
        store: PipelineStore for history records, reference data and documents
        blob_storage: Fetches document bytes by URL
        folders: CloudFolderBuilder wrapping the Drive client
        composer: DeliveryComposer wrapping the mail transport
        synchronizer: StatusSynchronizer; built from ``store`` when omitted
        delivery_config: Role label default, CSV name, candidate concurrency
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: PipelineStore,
        blob_storage: BlobStorage,
        folders: CloudFolderBuilder,
        composer: DeliveryComposer,
        synchronizer: Optional[StatusSynchronizer] = None,
        delivery_config: Optional[DeliveryConfig] = None,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.blob_storage = blob_storage
        self.folders = folders
        self.composer = composer
        self.synchronizer = synchronizer or StatusSynchronizer(store, clock=clock)
        self.delivery_config = delivery_config or DeliveryConfig()
        self.clock = clock
        self.resolver = DocumentResolver(store)

    @classmethod
    def from_config(cls, app_config: AppConfig, env_config, store=None) -> "DeliveryOrchestrator":
        """Wire the production collaborators from loaded configuration."""
        from forwarder.notifications.transport import SmtpMailTransport
        from forwarder.persistence.store import SqlPipelineStore
        from forwarder.storage.blob import HttpBlobStorage
        from forwarder.storage.drive import GoogleDriveClient

        store = store or SqlPipelineStore()
        drive = GoogleDriveClient.from_config(env_config, app_config.drive, app_config.http)
        transport = SmtpMailTransport(env_config, app_config.email)

        return cls(
            store=store,
            blob_storage=HttpBlobStorage.from_config(app_config.http),
            folders=CloudFolderBuilder(drive, app_config.drive),
            composer=DeliveryComposer(transport, email_config=app_config.email),
            delivery_config=app_config.delivery,
        )

    def dispatch(self, job: DeliveryJob) -> DeliveryOutcome:
        """Execute one job.

        Raises:
            DeliveryError: For fatal setup or final-send failures
            StorageError: When a single forward cannot fetch its documents
        """
        with log_context(job_id=job.job_id, job_kind=job.kind):
            match job:
                case SingleForwardJob():
                    return self.handle_single_forward(job)
                case BulkForwardJob():
                    return self.handle_bulk_forward(job)
                case UnrecognizedJob():
                    return self._dead_letter(job)
        raise TypeError(f"Unsupported job type: {type(job).__name__}")

    def handle_single_forward(self, job: SingleForwardJob) -> DeliveryOutcome:
        history_id = job.payload.history_id

        with log_context(history_id=history_id):
            record = self.store.get_history_record(history_id)
            if record is None:
                logger.warning(
                    "Delivery history record not found; nothing to send",
                    extra={"event": "delivery.single.record_missing"},
                )
                return DeliveryOutcome(
                    SKIPPED, job.kind, history_id=history_id, reason="history record not found"
                )

            if record.status == DeliveryStatus.SENT:
                logger.info(
                    "Delivery already sent; skipping redelivered job",
                    extra={"event": "delivery.single.already_sent"},
                )
                return DeliveryOutcome(SKIPPED, job.kind, history_id=history_id, reason="already sent")

            try:
                attachments = [self._fetch_attachment(doc) for doc in record.document_details]
            except StorageError as e:
                logger.error(
                    f"Document fetch failed: {e}",
                    extra={"event": "delivery.single.fetch_failed"},
                )
                self.store.mark_history_failed(history_id, str(e))
                raise

            try:
                candidate_name, project_title, role_label = self._describe_record(record)
            except PersistenceError as e:
                logger.error(
                    f"Record lookup failed: {e}",
                    extra={"event": "delivery.single.lookup_failed"},
                )
                self.store.mark_history_failed(history_id, str(e))
                raise

            try:
                message_id = self.composer.send_single(
                    to=record.recipient_email,
                    cc=record.cc_emails,
                    bcc=record.bcc_emails,
                    candidate_name=candidate_name,
                    role_label=role_label,
                    project_title=project_title,
                    notes=record.notes,
                    attachments=attachments,
                )
            except NotificationError as e:
                logger.error(
                    f"Forwarding email failed: {e}",
                    extra={"event": "delivery.single.send_failed"},
                )
                self.store.mark_history_failed(history_id, str(e))
                raise TerminalSendFailure(str(e), history_id=history_id) from e

            self.store.mark_history_sent(history_id, self.clock())
            logger.info(
                "Candidate documents forwarded",
                extra={
                    "event": "delivery.single.sent",
                    "candidate_id": record.candidate_id,
                    "attachment_count": len(attachments),
                    "message_id": message_id,
                },
            )
            return DeliveryOutcome(SENT, job.kind, history_id=history_id, message_id=message_id)

    def handle_bulk_forward(self, job: BulkForwardJob) -> DeliveryOutcome:
        payload = job.payload
        method = payload.delivery_method

        with log_context(project_id=payload.project_id):
            project = self.store.get_project(payload.project_id)
            if project is None:
                raise ProjectNotFoundError(payload.project_id)

            logger.info(
                f"Starting bulk forward of {len(payload.selections)} candidates",
                extra={
                    "event": "delivery.bulk.started",
                    "delivery_method": method.value,
                    "selection_count": len(payload.selections),
                },
            )

            csv_attachment = self._fetch_csv(payload)

            use_cloud = method == DeliveryMethod.GOOGLE_DRIVE
            if use_cloud and not self.folders.is_configured():
                raise CloudStorageUnavailableError(
                    "Google Drive delivery requested but Drive credentials are not configured"
                )

            batch_folder_id = None
            if use_cloud:
                batch_folder_id = self.folders.create_batch_folder(project.title, self.clock())
                if csv_attachment is not None:
                    self._upload_csv(batch_folder_id, csv_attachment)

            scope = _BatchScope(payload=payload, project=project, batch_folder_id=batch_folder_id)
            result = BulkForwardResult()
            attachments: List[Attachment] = []
            for candidate_result in self._process_selections(scope):
                result.add(candidate_result)
                attachments.extend(candidate_result.attachments)

            if use_cloud:
                result.folder_link = self._share_batch_folder(batch_folder_id, payload.recipient_email)

            if csv_attachment is not None:
                attachments.append(csv_attachment)
            result.attachment_count = len(attachments)

            try:
                result.message_id = self.composer.send_bulk(
                    to=payload.recipient_email,
                    cc=payload.cc,
                    bcc=payload.bcc,
                    project_title=project.title,
                    candidates=result.processed_candidates,
                    notes=payload.notes,
                    folder_link=result.folder_link,
                    documents_sent_separately=method == DeliveryMethod.EMAIL_INDIVIDUAL,
                    attachments=attachments,
                )
            except NotificationError as e:
                logger.error(
                    f"Bulk summary email failed: {e}",
                    extra={"event": "delivery.bulk.send_failed"},
                )
                raise TerminalSendFailure(str(e)) from e

            logger.info(
                "Bulk forward completed",
                extra={
                    "event": "delivery.bulk.completed",
                    "processed": len(result.processed_candidates),
                    "skipped": len(result.skipped_candidate_ids),
                    "document_failures": result.document_failures,
                    "status_update_failures": result.status_update_failures,
                    "attachment_count": result.attachment_count,
                    "message_id": result.message_id,
                },
            )
            return DeliveryOutcome(COMPLETED, job.kind, message_id=result.message_id, bulk=result)

    def _process_selections(self, scope: _BatchScope) -> List[CandidateResult]:
        selections = scope.payload.selections
        workers = min(self.delivery_config.candidate_concurrency, len(selections))
        if workers <= 1:
            return [self._process_selection(scope, selection) for selection in selections]

        # Threads do not inherit contextvars
        fields = get_log_context()

        def run(selection: CandidateSelection) -> CandidateResult:
            with log_context(**fields):
                return self._process_selection(scope, selection)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk-forward") as executor:
            return list(executor.map(run, selections))

    def _process_selection(self, scope: _BatchScope, selection: CandidateSelection) -> CandidateResult:
        result = CandidateResult(candidate_id=selection.candidate_id)

        with log_context(candidate_id=selection.candidate_id):
            try:
                candidate = self.store.get_candidate(selection.candidate_id)
                if candidate is None:
                    logger.warning(
                        "Candidate not found; skipping selection",
                        extra={"event": "delivery.bulk.candidate.skipped", "reason": "not_found"},
                    )
                    return result

                role_label = self._role_label(selection.role_catalog_id)
                documents = self.resolver.resolve(selection, scope.payload.project_id)
            except PersistenceError as e:
                logger.error(
                    f"Candidate lookup failed: {e}",
                    extra={"event": "delivery.bulk.candidate.skipped", "reason": "lookup_failed"},
                )
                return result

            result.processed = ProcessedCandidate(
                candidate_id=candidate.id,
                name=candidate.full_name,
                role=role_label,
                document_count=len(documents),
            )

            method = scope.payload.delivery_method
            if method == DeliveryMethod.GOOGLE_DRIVE:
                self._mirror_documents(scope, candidate, role_label, documents, result)
            elif method == DeliveryMethod.EMAIL_INDIVIDUAL:
                self._send_individual(scope, candidate.full_name, role_label, documents, result)
            else:
                result.attachments = self._collect_attachments(documents, result)

            try:
                self.synchronizer.advance_after_delivery(
                    candidate_id=candidate.id,
                    project_id=scope.payload.project_id,
                    role_catalog_id=selection.role_catalog_id,
                    recipient_email=scope.payload.recipient_email,
                    notes=scope.payload.notes,
                    sender_id=scope.payload.sender_id,
                )
            except PersistenceError as e:
                result.status_update_failed = True
                logger.error(
                    f"Pipeline status update failed: {e}",
                    extra={"event": "delivery.bulk.candidate.status_failed"},
                )

            logger.info(
                "Candidate processed",
                extra={
                    "event": "delivery.bulk.candidate.processed",
                    "document_count": len(documents),
                    "document_failures": result.document_failures,
                },
            )
            return result

    def _mirror_documents(self, scope, candidate, role_label, documents, result: CandidateResult) -> None:
        try:
            folder_id = self.folders.create_candidate_folder(scope.batch_folder_id, candidate, role_label)
        except StorageError as e:
            result.document_failures += len(documents)
            logger.error(
                f"Candidate folder creation failed: {e}",
                extra={"event": "delivery.bulk.folder_failed"},
            )
            return

        for document in documents:
            try:
                content = self.blob_storage.fetch(document.file_url)
                self.folders.upload_document(folder_id, document, content)
            except StorageError as e:
                result.document_failures += 1
                logger.error(
                    f"Document upload failed: {e}",
                    extra={"event": "delivery.bulk.document_failed", "document_id": document.id},
                )

    def _collect_attachments(self, documents, result: CandidateResult) -> List[Attachment]:
        attachments = []
        for document in documents:
            try:
                attachments.append(self._fetch_attachment(document))
            except StorageError as e:
                result.document_failures += 1
                logger.error(
                    f"Document fetch failed: {e}",
                    extra={"event": "delivery.bulk.document_failed", "document_id": document.id},
                )
        return attachments

    def _send_individual(self, scope, candidate_name, role_label, documents, result: CandidateResult) -> None:
        attachments = self._collect_attachments(documents, result)
        if not attachments:
            logger.warning(
                "No documents to send for candidate",
                extra={"event": "delivery.bulk.candidate.no_documents"},
            )
            return

        payload = scope.payload
        try:
            self.composer.send_single(
                to=payload.recipient_email,
                cc=payload.cc,
                bcc=payload.bcc,
                candidate_name=candidate_name,
                role_label=role_label,
                project_title=scope.project.title,
                notes=payload.notes,
                attachments=attachments,
            )
        except NotificationError as e:
            result.individual_send_failed = True
            logger.error(
                f"Candidate email failed: {e}",
                extra={"event": "delivery.bulk.candidate.send_failed"},
            )

    def _fetch_csv(self, payload: BulkForwardPayload) -> Optional[Attachment]:
        if not payload.csv_url:
            return None

        try:
            content = self.blob_storage.fetch(payload.csv_url)
        except StorageError as e:
            logger.warning(
                f"CSV fetch failed; continuing without it: {e}",
                extra={"event": "delivery.bulk.csv_failed"},
            )
            return None

        name = payload.csv_name or self.delivery_config.csv_default_name
        return Attachment(file_name=name, content=content, mime_type=CSV_MIME_TYPE)

    def _upload_csv(self, folder_id: str, csv_attachment: Attachment) -> None:
        try:
            self.folders.upload_attachment(
                folder_id, csv_attachment.file_name, csv_attachment.mime_type, csv_attachment.content
            )
        except StorageError as e:
            logger.warning(
                f"CSV upload failed: {e}",
                extra={"event": "delivery.bulk.csv_upload_failed"},
            )

    def _share_batch_folder(self, folder_id: str, recipient_email: str) -> Optional[str]:
        try:
            link = self.folders.share_batch_folder(folder_id, recipient_email)
        except StorageError as e:
            logger.error(
                f"Sharing batch folder failed; sending without link: {e}",
                extra={"event": "delivery.bulk.share_failed", "folder_id": folder_id},
            )
            return None
        return link or None

    def _fetch_attachment(self, document: DocumentDescriptor) -> Attachment:
        content = self.blob_storage.fetch(document.file_url)
        return Attachment(file_name=document.file_name, content=content, mime_type=document.mime_type)

    def _role_label(self, role_catalog_id: Optional[str]) -> str:
        if role_catalog_id:
            role = self.store.get_role_catalog(role_catalog_id)
            if role is not None:
                return role.display_label
        return self.delivery_config.default_role_label

    def _describe_record(self, record: DeliveryHistoryRecord):
        """Candidate name, project title and role label for the email."""
        candidate = self.store.get_candidate(record.candidate_id)
        project = self.store.get_project(record.project_id)
        candidate_name = candidate.full_name if candidate else record.candidate_id
        project_title = project.title if project else record.project_id
        return candidate_name, project_title, self._role_label(record.role_catalog_id)

    def _dead_letter(self, job: UnrecognizedJob) -> DeliveryOutcome:
        logger.error(
            f"Dead-lettering unrecognized job: {job.reason}",
            extra={
                "event": "delivery.job.dead_lettered",
                "reason": job.reason,
                "payload_keys": sorted(job.raw_payload),
            },
        )
        return DeliveryOutcome(DROPPED, job.kind, reason=job.reason)
