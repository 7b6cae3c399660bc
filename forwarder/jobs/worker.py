"""Queue worker: claims due jobs, dispatches them and settles their state."""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from forwarder.config.models import WorkerConfig
from forwarder.domain.models import BulkForwardPayload, QueuedJob, SingleForwardPayload
from forwarder.logging import get_logger
from forwarder.logging.context import log_context
from forwarder.persistence.database import get_session
from forwarder.persistence.exceptions import PersistenceError
from forwarder.persistence.repositories import JobQueueRepository
from forwarder.utils.timestamps import utc_now

from .models import BULK_SEND_DOCUMENTS, SEND_DOCUMENTS, parse_job

logger = get_logger(__name__, component="worker")

DROPPED = "dropped"


@dataclass
class WorkerRunResult:
    """Counts from one ``run_pending`` call.

    Attributes:
        claimed: Jobs claimed from the queue
        completed: Jobs that finished (sent, completed or skipped)
        retried: Jobs re-queued with backoff
        failed: Jobs that used up their attempts
        dropped: Unrecognized jobs dead-lettered without dispatch
    """

    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    dropped: int = 0


def retry_delay(attempt: int, backoff_seconds: float) -> float:
    """Exponential backoff: base, 2x base, 4x base, ... for attempts 1, 2, 3, ..."""
    return backoff_seconds * 2 ** max(attempt - 1, 0)


class QueueWorker:
    """Drives the durable job queue.

    Claimed jobs are dispatched one at a time. A job that raises is re-queued
    while it has attempts left and marked failed after that. A completed job is
    never claimed again.
    """

    def __init__(
        self,
        orchestrator,
        worker_config: Optional[WorkerConfig] = None,
        clock: Callable = utc_now,
    ):
        self.orchestrator = orchestrator
        self.config = worker_config or WorkerConfig()
        self.clock = clock
        self._lock = threading.Lock()

    def run_pending(self, limit: Optional[int] = None) -> WorkerRunResult:
        """Claim and process up to ``limit`` due jobs (default ``batch_size``)."""
        result = WorkerRunResult()

        if not self._lock.acquire(blocking=False):
            logger.warning(
                "Previous queue poll still running; skipping",
                extra={"event": "worker.run.skipped"},
            )
            return result

        try:
            with get_session() as session:
                jobs = JobQueueRepository(session).claim_due(
                    self.clock(),
                    limit or self.config.batch_size,
                    lease_seconds=self.config.lease_seconds,
                )

            result.claimed = len(jobs)
            if jobs:
                logger.info(
                    f"Claimed {len(jobs)} due job(s)",
                    extra={"event": "worker.run.claimed", "claimed": len(jobs)},
                )

            for queued in jobs:
                self._run_job(queued, result)

            if jobs:
                logger.info(
                    "Queue poll finished",
                    extra={
                        "event": "worker.run.completed",
                        "completed": result.completed,
                        "retried": result.retried,
                        "failed": result.failed,
                        "dropped": result.dropped,
                    },
                )
            return result
        finally:
            self._lock.release()

    def drain(self, max_rounds: int = 100) -> WorkerRunResult:
        """Process due jobs until none are left (or ``max_rounds`` is hit)."""
        total = WorkerRunResult()
        for _ in range(max_rounds):
            step = self.run_pending()
            if step.claimed == 0:
                break
            total.claimed += step.claimed
            total.completed += step.completed
            total.retried += step.retried
            total.failed += step.failed
            total.dropped += step.dropped
        return total

    def _run_job(self, queued: QueuedJob, result: WorkerRunResult) -> None:
        job = parse_job(
            queued.kind,
            queued.payload,
            job_id=queued.id,
            accept_legacy=self.config.accept_legacy_jobs,
        )

        with log_context(job_id=queued.id, job_kind=queued.kind, attempt=queued.attempts):
            try:
                outcome = self.orchestrator.dispatch(job)
            except Exception as e:
                self._handle_failure(queued, e, result)
                return

            try:
                with get_session() as session:
                    repo = JobQueueRepository(session)
                    if outcome.status == DROPPED:
                        repo.mark_failed(queued.id, f"dead-lettered: {outcome.reason}", self.clock())
                        result.dropped += 1
                    else:
                        repo.mark_completed(queued.id, self.clock())
                        result.completed += 1
            except PersistenceError as e:
                logger.error(
                    f"Could not record job completion: {e}",
                    exc_info=True,
                    extra={"event": "worker.job.settle_failed"},
                )

    def _handle_failure(self, queued: QueuedJob, error: Exception, result: WorkerRunResult) -> None:
        message = f"{type(error).__name__}: {error}"

        try:
            with get_session() as session:
                repo = JobQueueRepository(session)
                if queued.attempts < queued.max_attempts:
                    delay = retry_delay(queued.attempts, self.config.backoff_seconds)
                    repo.schedule_retry(queued.id, message, delay, self.clock())
                    result.retried += 1
                    logger.warning(
                        f"Job failed; retrying in {delay:g}s: {error}",
                        extra={
                            "event": "worker.job.retry_scheduled",
                            "delay_seconds": delay,
                            "max_attempts": queued.max_attempts,
                        },
                    )
                else:
                    repo.mark_failed(queued.id, message, self.clock())
                    result.failed += 1
                    logger.error(
                        f"Job failed permanently after {queued.attempts} attempt(s): {error}",
                        exc_info=error,
                        extra={"event": "worker.job.failed"},
                    )
        except PersistenceError as e:
            logger.error(
                f"Could not record job failure: {e}",
                exc_info=True,
                extra={"event": "worker.job.settle_failed"},
            )

    def enqueue(self, kind: str, payload: Dict[str, Any]) -> QueuedJob:
        with get_session() as session:
            queued = JobQueueRepository(session).enqueue(
                kind, payload, self.clock(), max_attempts=self.config.max_attempts
            )

        logger.info(
            "Job enqueued",
            extra={"event": "worker.job.enqueued", "job_id": queued.id, "job_kind": kind},
        )
        return queued

    def enqueue_single(self, history_id: str) -> QueuedJob:
        payload = SingleForwardPayload(history_id=history_id)
        return self.enqueue(SEND_DOCUMENTS, payload.model_dump(mode="json", by_alias=True))

    def enqueue_bulk(self, payload: Dict[str, Any]) -> QueuedJob:
        """Validate a bulk payload and enqueue it in its wire form.

        Raises:
            pydantic.ValidationError: If the payload is malformed
        """
        validated = BulkForwardPayload.model_validate(payload)
        return self.enqueue(
            BULK_SEND_DOCUMENTS, validated.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
