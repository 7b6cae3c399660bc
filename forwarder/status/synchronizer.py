"""Advances a candidate's pipeline status after documents are delivered."""

from typing import Callable, Optional

from forwarder.logging import get_logger
from forwarder.utils.timestamps import utc_now

from .progress import ProgressResult, calculate_progress

logger = get_logger(__name__, component="status_sync")

MAIN_STATUS_DOCUMENTS = "documents"
SUB_STATUS_SUBMITTED = "submitted_to_client"
SUBMISSION_REASON = "Documents submitted to client"


def submission_notes(recipient_email: str, notes: Optional[str] = None) -> str:
    text = f"Forwarded to {recipient_email}"
    if notes:
        text += f" — {notes}"
    return text


class StatusSynchronizer:
    """Writes the post-delivery status and reads back candidate progress.

    Status changes are never validated against the current status; any
    transition is accepted.
    """

    def __init__(self, store, clock: Callable = utc_now):
        self.store = store
        self.clock = clock

    def advance_after_delivery(
        self,
        candidate_id: str,
        project_id: str,
        role_catalog_id: Optional[str],
        recipient_email: str,
        notes: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> bool:
        """Move the candidate-project mapping to documents / submitted_to_client.

        Returns:
            True if a mapping was updated, False if the candidate has none

        Raises:
            PersistenceError: On database failure (callers decide whether it is fatal)
        """
        new_status = self.store.update_pipeline_status(
            candidate_id=candidate_id,
            project_id=project_id,
            role_catalog_id=role_catalog_id,
            main_status=MAIN_STATUS_DOCUMENTS,
            sub_status=SUB_STATUS_SUBMITTED,
            changed_at=self.clock(),
            reason=SUBMISSION_REASON,
            notes=submission_notes(recipient_email, notes),
            changed_by_id=sender_id,
        )

        if new_status is None:
            logger.warning(
                "No candidate-project mapping to advance",
                extra={
                    "event": "status.advance.no_mapping",
                    "candidate_id": candidate_id,
                    "project_id": project_id,
                    "role_catalog_id": role_catalog_id,
                },
            )
            return False

        logger.info(
            "Pipeline status advanced",
            extra={
                "event": "status.advance.applied",
                "candidate_id": candidate_id,
                "project_id": project_id,
                "main_status": new_status.main_status,
                "sub_status": new_status.sub_status,
            },
        )
        return True

    def progress_for(self, candidate_id: str, project_id: str) -> ProgressResult:
        """Progress of the candidate in the project from stored status history."""
        return calculate_progress(self.store.list_status_history(candidate_id, project_id))
