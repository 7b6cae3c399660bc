"""Pipeline status canonicalization, progress and post-delivery updates."""

from .progress import (
    PROGRESS_ORDER,
    STATUS_ORDER,
    ProgressResult,
    calculate_progress,
    get_most_recent_entry,
    map_to_progress_key,
    next_progress_key,
    normalize_status_name,
    progress_percentage,
)
from .synchronizer import (
    MAIN_STATUS_DOCUMENTS,
    SUB_STATUS_SUBMITTED,
    SUBMISSION_REASON,
    StatusSynchronizer,
    submission_notes,
)

__all__ = [
    "STATUS_ORDER",
    "PROGRESS_ORDER",
    "ProgressResult",
    "normalize_status_name",
    "map_to_progress_key",
    "get_most_recent_entry",
    "calculate_progress",
    "progress_percentage",
    "next_progress_key",
    "StatusSynchronizer",
    "submission_notes",
    "MAIN_STATUS_DOCUMENTS",
    "SUB_STATUS_SUBMITTED",
    "SUBMISSION_REASON",
]
