"""Scheduler service for periodic queue polling."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from forwarder.logging import get_logger
from forwarder.utils.timestamps import format_timestamp, utc_now

logger = get_logger(__name__, component="scheduler")

JOB_ID = "queue-poll"


class SchedulerService:
    """
    Wraps APScheduler to poll the delivery queue at a fixed interval.

    Uses BackgroundScheduler so the main thread stays free to handle signals
    and coordinate shutdown.
    """

    def __init__(
        self,
        poll_callable: Callable[[], object],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            poll_callable: Function called on each tick (e.g. worker.run_pending)
            interval_seconds: Seconds between polls
            shutdown_event: Optional event set on shutdown for coordination
        """
        self.poll_callable = poll_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Never overlap polls
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the poll job and start the scheduler; the first poll runs immediately."""
        next_run = utc_now()
        self.scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=JOB_ID,
            name="Delivery queue poll",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": format_timestamp(next_run),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop polling.

        Args:
            wait: If True, wait for a running poll to finish before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """Run one poll synchronously in the calling thread."""
        logger.info("Triggering immediate queue poll", extra={"event": "scheduler.trigger_now"})
        self._tick()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def _tick(self) -> None:
        try:
            self.poll_callable()
        except Exception as e:
            # Keep the schedule alive; the next tick retries
            logger.error(
                f"Queue poll failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.poll_failed"},
            )
