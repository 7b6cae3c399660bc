"""Scheduling module for periodic polling of the delivery queue."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
