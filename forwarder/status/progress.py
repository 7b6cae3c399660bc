"""Pipeline status canonicalization and progress percentage.

Raw status strings come from several places (sub-status name, snapshots taken
when the status was recorded, main-status name, project status name) and do
not share one vocabulary. ``normalize_status_name`` maps them onto
STATUS_ORDER; ``map_to_progress_key`` collapses that onto the 11 steps of
PROGRESS_ORDER used for the progress bar.

Matching is deliberately loose (substring containment in list order). The
order of both lists is part of the behavior.
"""

import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from forwarder.domain.models import StatusHistoryEntry

STATUS_ORDER = (
    "nominated",
    "pending_documents",
    "documents_submitted",
    "verification_in_progress",
    "documents_verified",
    "approved",
    # Interview family, including mock interview and training variants
    "interview_assigned",
    "interview_scheduled",
    "interview_rescheduled",
    "interview_completed",
    "interview_passed",
    "interview_selected",
    "mock_interview_assigned",
    "mock_interview_scheduled",
    "mock_interview_completed",
    "mock_interview_passed",
    "mock_interview_failed",
    "training_assigned",
    "training_in_progress",
    "training_completed",
    "ready_for_reassessment",
    "interview_failed",
    # Final stages
    "selected",
    "processing",
    "processing_started",
    "hired",
)

PROGRESS_ORDER = (
    "nominated",
    "pending_documents",
    "documents_submitted",
    "verification_in_progress",
    "documents_verified",
    "interview_scheduled",
    "interview_completed",
    "interview_passed",
    "selected",
    "processing",
    "hired",
)

_DOCUMENT_FLOW = (
    "pending_documents",
    "documents_submitted",
    "verification_in_progress",
    "documents_verified",
)

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ProgressResult:
    progress: int
    current: Optional[str]


def _candidate_strings(entry: StatusHistoryEntry) -> List[str]:
    raw = (
        entry.sub_status_name,
        entry.sub_status_snapshot,
        entry.main_status_name,
        entry.main_status_snapshot,
        entry.project_status_name,
    )
    return [str(value).lower() for value in raw if value]


def normalize_status_name(entry: Optional[StatusHistoryEntry]) -> Optional[str]:
    """Map a history entry's raw status fields to a STATUS_ORDER key.

    Candidate strings are tried in priority order. For each one, STATUS_ORDER
    is walked once and the first key that equals the string, or is contained
    in it or in its underscored form, wins. An earlier contained key
    therefore beats a later exact one (``mock_interview_assigned`` gives
    ``interview_assigned``). Without any hit, the first candidate is returned
    with whitespace runs replaced by underscores.

    Example:
        A sub-status named ``verification_in_progress_document`` normalizes
        to ``verification_in_progress``.
    """
    if entry is None:
        return None

    candidates = _candidate_strings(entry)

    for candidate in candidates:
        underscored = _WHITESPACE.sub("_", candidate)
        for key in STATUS_ORDER:
            if candidate == key or key in candidate or key in underscored:
                return key

    if candidates:
        return _WHITESPACE.sub("_", candidates[0])
    return None


def map_to_progress_key(raw: Optional[str]) -> Optional[str]:
    """Collapse a canonical (or raw) status onto a PROGRESS_ORDER key.

    ``approved`` maps to itself even though it is not a progress step, so it
    yields 0%. Interview failures map to ``interview_completed``.
    """
    if not raw:
        return None
    s = str(raw).lower()

    if s in PROGRESS_ORDER:
        return s

    for key in _DOCUMENT_FLOW:
        if key in s:
            return key

    if s == "approved":
        return "approved"

    if "interview" in s or s.startswith("mock_interview") or s.startswith("training"):
        if "assigned" in s or "scheduled" in s or "resched" in s:
            return "interview_scheduled"
        if "completed" in s:
            return "interview_completed"
        if "pass" in s or "selected" in s:
            return "interview_passed"
        if "fail" in s:
            return "interview_completed"
        return "interview_scheduled"

    for keyword in ("selected", "processing", "hired"):
        if keyword in s:
            return keyword

    for key in PROGRESS_ORDER:
        if key in s:
            return key

    return None


def get_most_recent_entry(history: Iterable[StatusHistoryEntry]) -> Optional[StatusHistoryEntry]:
    """Entry with the latest ``status_changed_at``; the earliest listed wins ties."""
    latest = None
    for entry in history:
        if latest is None or entry.status_changed_at > latest.status_changed_at:
            latest = entry
    return latest


def progress_percentage(progress_key: Optional[str]) -> int:
    """Percentage for a progress key, 0 when it is not a progress step."""
    if progress_key not in PROGRESS_ORDER:
        return 0
    index = PROGRESS_ORDER.index(progress_key)
    # Half-up rounding, not Python's round-half-even
    return int(math.floor((index + 1) / len(PROGRESS_ORDER) * 100 + 0.5))


def calculate_progress(history: Optional[Sequence[StatusHistoryEntry]]) -> ProgressResult:
    """Progress of a candidate from their status history.

    Example:
        An empty history gives ``ProgressResult(progress=0, current=None)``;
        a latest status of ``interview_assigned`` gives 55% at
        ``interview_scheduled``.
    """
    if not history:
        return ProgressResult(progress=0, current=None)

    latest = get_most_recent_entry(history)
    progress_key = map_to_progress_key(normalize_status_name(latest))
    return ProgressResult(progress=progress_percentage(progress_key), current=progress_key)


def next_progress_key(raw_or_canonical: Optional[str]) -> Optional[str]:
    """The PROGRESS_ORDER step after the given status, or None at the end."""
    if not raw_or_canonical:
        return None

    canonical = (
        raw_or_canonical
        if raw_or_canonical in PROGRESS_ORDER
        else map_to_progress_key(raw_or_canonical)
    )
    if canonical not in PROGRESS_ORDER:
        return None

    index = PROGRESS_ORDER.index(canonical)
    if index < len(PROGRESS_ORDER) - 1:
        return PROGRESS_ORDER[index + 1]
    return None
