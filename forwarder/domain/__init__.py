"""Domain models for the document forwarder."""

from .models import (
    VERIFIED,
    BulkForwardPayload,
    Candidate,
    CandidateSelection,
    DeliveryHistoryRecord,
    DeliveryMethod,
    DeliveryStatus,
    DocumentDescriptor,
    ForwardHistoryPage,
    ForwardRequest,
    MergedDocument,
    PipelineStatus,
    Project,
    QueuedJob,
    RoleCatalog,
    SendType,
    SingleForwardPayload,
    StatusHistoryEntry,
)

__all__ = [
    "VERIFIED",
    "BulkForwardPayload",
    "Candidate",
    "CandidateSelection",
    "DeliveryHistoryRecord",
    "DeliveryMethod",
    "DeliveryStatus",
    "DocumentDescriptor",
    "ForwardHistoryPage",
    "ForwardRequest",
    "MergedDocument",
    "PipelineStatus",
    "Project",
    "QueuedJob",
    "RoleCatalog",
    "SendType",
    "SingleForwardPayload",
    "StatusHistoryEntry",
]
