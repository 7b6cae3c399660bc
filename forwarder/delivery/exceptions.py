"""Delivery error taxonomy.

Setup failures (missing project, unconfigured cloud storage) and final send
failures propagate to the queue. Per-document and per-candidate I/O errors
are storage or persistence errors and are isolated by the orchestrator.
"""

from typing import Optional


class DeliveryError(Exception):
    """Base exception for delivery orchestration errors."""


class HistoryRecordNotFoundError(DeliveryError):
    """The history record named by a single forward does not exist."""

    def __init__(self, history_id: str) -> None:
        super().__init__(f"Delivery history record {history_id} not found")
        self.history_id = history_id


class ProjectNotFoundError(DeliveryError):
    """The project named by a bulk forward does not exist."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


class CloudStorageUnavailableError(DeliveryError):
    """Google Drive delivery was requested but Drive is not configured."""


class TerminalSendFailure(DeliveryError):
    """The final email of a delivery could not be sent."""

    def __init__(self, message: str, history_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.history_id = history_id


class CandidateNotFoundError(DeliveryError):
    """The candidate named by a forward request does not exist."""

    def __init__(self, candidate_id: str) -> None:
        super().__init__(f"Candidate {candidate_id} not found")
        self.candidate_id = candidate_id


class NoDeliverableDocumentsError(DeliveryError):
    """A forward request resolved to no documents that can be sent."""
