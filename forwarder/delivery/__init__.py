"""Document delivery: resolving, composing, mirroring and orchestrating forwards."""

from .composer import DeliveryComposer
from .exceptions import (
    CandidateNotFoundError,
    CloudStorageUnavailableError,
    DeliveryError,
    HistoryRecordNotFoundError,
    NoDeliverableDocumentsError,
    ProjectNotFoundError,
    TerminalSendFailure,
)
from .folders import CloudFolderBuilder, batch_folder_name, candidate_folder_name, share_target
from .intake import ForwardIntake
from .interfaces import BlobStorage, CloudFolderService, MailTransport, PipelineStore
from .models import BulkForwardResult, CandidateResult, DeliveryOutcome, ProcessedCandidate
from .orchestrator import DeliveryOrchestrator
from .resolver import DocumentResolver

__all__ = [
    "BlobStorage",
    "BulkForwardResult",
    "CandidateNotFoundError",
    "CandidateResult",
    "CloudFolderBuilder",
    "CloudFolderService",
    "CloudStorageUnavailableError",
    "DeliveryComposer",
    "DeliveryError",
    "DeliveryOrchestrator",
    "DeliveryOutcome",
    "DocumentResolver",
    "ForwardIntake",
    "HistoryRecordNotFoundError",
    "MailTransport",
    "NoDeliverableDocumentsError",
    "PipelineStore",
    "ProcessedCandidate",
    "ProjectNotFoundError",
    "TerminalSendFailure",
    "batch_folder_name",
    "candidate_folder_name",
    "share_target",
]
