"""Result objects returned by the delivery orchestrator."""

from dataclasses import dataclass, field
from typing import List, Optional

from forwarder.notifications.models import Attachment

SENT = "sent"
COMPLETED = "completed"
SKIPPED = "skipped"
DROPPED = "dropped"


@dataclass
class ProcessedCandidate:
    """A candidate listed in the bulk summary email."""

    candidate_id: str
    name: str
    role: str
    document_count: int = 0


@dataclass
class CandidateResult:
    """Outcome of one selection within a bulk forward.

    Attributes:
        candidate_id: Candidate the selection referenced
        processed: Set once the candidate was found and documents resolved
        attachments: Fetched documents destined for the combined email
        document_failures: Documents that could not be fetched or uploaded
        status_update_failed: Whether the pipeline status write raised
        individual_send_failed: Per-candidate email failed (email_individual only)
    """

    candidate_id: str
    processed: Optional[ProcessedCandidate] = None
    attachments: List[Attachment] = field(default_factory=list)
    document_failures: int = 0
    status_update_failed: bool = False
    individual_send_failed: bool = False

    @property
    def skipped(self) -> bool:
        return self.processed is None


@dataclass
class BulkForwardResult:
    """Summary of one bulk forward.

    Attributes:
        processed_candidates: Candidates listed in the summary email, in selection order
        skipped_candidate_ids: Selections that could not be processed
        document_failures: Total per-document fetch or upload failures
        status_update_failures: Candidates whose pipeline status was not written
        individual_send_failures: Per-candidate emails that failed
        folder_link: Shared batch folder link, if one was created and shared
        attachment_count: Attachments on the summary email (CSV included)
        message_id: Message-ID of the summary email
    """

    processed_candidates: List[ProcessedCandidate] = field(default_factory=list)
    skipped_candidate_ids: List[str] = field(default_factory=list)
    document_failures: int = 0
    status_update_failures: int = 0
    individual_send_failures: int = 0
    folder_link: Optional[str] = None
    attachment_count: int = 0
    message_id: Optional[str] = None

    def add(self, result: CandidateResult) -> None:
        """Fold one candidate's outcome into the batch totals."""
        self.document_failures += result.document_failures
        if result.individual_send_failed:
            self.individual_send_failures += 1

        if result.processed is None:
            self.skipped_candidate_ids.append(result.candidate_id)
            return

        self.processed_candidates.append(result.processed)
        if result.status_update_failed:
            self.status_update_failures += 1


@dataclass
class DeliveryOutcome:
    """What dispatch did with a job.

    ``status`` is one of sent (single forward delivered), completed (bulk
    forward delivered), skipped (nothing to do) or dropped (dead-lettered).
    """

    status: str
    job_kind: str
    history_id: Optional[str] = None
    message_id: Optional[str] = None
    reason: Optional[str] = None
    bulk: Optional[BulkForwardResult] = None
