"""Queue jobs: payload parsing and the polling worker."""

from .models import (
    BULK_SEND_DOCUMENTS,
    SEND_DOCUMENTS,
    BulkForwardJob,
    DeliveryJob,
    SingleForwardJob,
    UnrecognizedJob,
    parse_job,
)
from .worker import QueueWorker, WorkerRunResult, retry_delay

__all__ = [
    "BULK_SEND_DOCUMENTS",
    "SEND_DOCUMENTS",
    "BulkForwardJob",
    "DeliveryJob",
    "QueueWorker",
    "SingleForwardJob",
    "UnrecognizedJob",
    "WorkerRunResult",
    "parse_job",
    "retry_delay",
]
