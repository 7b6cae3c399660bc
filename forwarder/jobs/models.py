"""Queue job variants and payload parsing.

A job pulled off the queue becomes exactly one of SingleForwardJob,
BulkForwardJob or UnrecognizedJob. Anything that cannot be understood ends
up as UnrecognizedJob so dispatch never has to guess.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from forwarder.domain.models import BulkForwardPayload, SingleForwardPayload

SEND_DOCUMENTS = "send-documents"
BULK_SEND_DOCUMENTS = "bulk-send-documents"


@dataclass(frozen=True)
class SingleForwardJob:
    payload: SingleForwardPayload
    job_id: Optional[int] = None
    kind: str = SEND_DOCUMENTS


@dataclass(frozen=True)
class BulkForwardJob:
    payload: BulkForwardPayload
    job_id: Optional[int] = None
    kind: str = BULK_SEND_DOCUMENTS


@dataclass(frozen=True)
class UnrecognizedJob:
    """A job that will be dead-lettered instead of dispatched."""

    kind: str
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    job_id: Optional[int] = None
    reason: str = "unknown job kind"


DeliveryJob = Union[SingleForwardJob, BulkForwardJob, UnrecognizedJob]


def parse_job(
    kind: Optional[str],
    payload: Any,
    job_id: Optional[int] = None,
    accept_legacy: bool = True,
) -> DeliveryJob:
    """Turn a raw (kind, payload) pair into a job variant.

    Args:
        kind: Job kind from the queue; may be empty for legacy jobs
        payload: Decoded JSON payload
        job_id: Queue id, carried through for logging
        accept_legacy: Treat unknown kinds whose payload has ``historyId``
            as single forwards

    Returns:
        The parsed variant; validation failures become UnrecognizedJob
    """
    kind = kind or ""
    if not isinstance(payload, dict):
        return UnrecognizedJob(
            kind=kind,
            raw_payload={"value": payload},
            job_id=job_id,
            reason="payload is not an object",
        )

    try:
        if kind == SEND_DOCUMENTS:
            return SingleForwardJob(SingleForwardPayload.model_validate(payload), job_id)

        if kind == BULK_SEND_DOCUMENTS:
            return BulkForwardJob(BulkForwardPayload.model_validate(payload), job_id)

        if accept_legacy and payload.get("historyId"):
            return SingleForwardJob(
                SingleForwardPayload.model_validate(payload), job_id, kind=kind or SEND_DOCUMENTS
            )

    except ValidationError as e:
        return UnrecognizedJob(
            kind=kind,
            raw_payload=payload,
            job_id=job_id,
            reason=f"invalid payload: {e.error_count()} validation error(s)",
        )

    return UnrecognizedJob(kind=kind, raw_payload=payload, job_id=job_id)
