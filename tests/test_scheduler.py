"""Unit tests for the scheduler service.

Tests the SchedulerService including:
- Job registration with correct configuration
- Immediate first run (next_run_time set to now)
- Prevents overlapping polls (max_instances=1)
- Start/shutdown lifecycle
- Trigger now functionality
- A failing poll does not stop the schedule
"""

import threading
import time
from datetime import datetime, timezone
from unittest.mock import Mock

from forwarder.scheduler import SchedulerService
from forwarder.scheduler.service import JOB_ID


class TestSchedulerService:
    """Test suite for SchedulerService."""

    def test_scheduler_initialization(self):
        poll = Mock()
        shutdown_event = threading.Event()

        scheduler = SchedulerService(poll_callable=poll, interval_seconds=60, shutdown_event=shutdown_event)

        assert scheduler.interval_seconds == 60
        assert scheduler.poll_callable is poll
        assert scheduler.shutdown_event is shutdown_event
        assert not scheduler.is_running()

    def test_scheduler_start_and_shutdown(self):
        """Shutdown stops the scheduler and sets the shutdown event."""
        shutdown_event = threading.Event()
        scheduler = SchedulerService(Mock(), interval_seconds=300, shutdown_event=shutdown_event)

        scheduler.start()
        assert scheduler.is_running()

        scheduler.shutdown(wait=False)
        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    def test_scheduler_registers_job_with_correct_config(self):
        scheduler = SchedulerService(Mock(), interval_seconds=120)

        scheduler.start()
        try:
            job = scheduler.scheduler.get_job(JOB_ID)
            assert job is not None
            assert job.trigger.interval.total_seconds() == 120
            assert job.max_instances == 1
            assert job.coalesce is True
        finally:
            scheduler.shutdown(wait=False)

    def test_scheduler_immediate_first_run(self):
        """The first poll runs right after start instead of one interval later."""
        polled = threading.Event()
        scheduler = SchedulerService(polled.set, interval_seconds=3600)

        scheduler.start()
        try:
            assert polled.wait(timeout=5)
        finally:
            scheduler.shutdown(wait=False)

    def test_get_next_run_time(self):
        scheduler = SchedulerService(Mock(), interval_seconds=3600)
        assert scheduler.get_next_run_time() is None

        scheduler.start()
        try:
            time.sleep(0.2)
            next_run = scheduler.get_next_run_time()
            assert next_run is not None
            assert next_run > datetime.now(timezone.utc)
        finally:
            scheduler.shutdown(wait=False)

    def test_trigger_now_executes_immediately(self):
        poll = Mock()
        scheduler = SchedulerService(poll, interval_seconds=3600)

        scheduler.trigger_now()

        poll.assert_called_once_with()

    def test_poll_exceptions_are_contained(self):
        """A raising poll is logged; later ticks still run."""
        poll = Mock(side_effect=[RuntimeError("database is locked"), None])
        scheduler = SchedulerService(poll, interval_seconds=3600)

        scheduler.trigger_now()
        scheduler.trigger_now()

        assert poll.call_count == 2

    def test_shutdown_without_start(self):
        shutdown_event = threading.Event()
        scheduler = SchedulerService(Mock(), interval_seconds=60, shutdown_event=shutdown_event)

        scheduler.shutdown()

        assert shutdown_event.is_set()
