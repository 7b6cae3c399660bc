"""Soft checks on raw configuration that warn instead of failing."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for likely mistakes and return warning messages.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    worker = config_dict.get("worker", {})
    if isinstance(worker, dict):
        if worker.get("accept_legacy_jobs") is False:
            warning_messages.append(
                "accept_legacy_jobs is disabled: queued jobs with an unknown kind will fail"
            )
        backoff = worker.get("backoff_seconds")
        if isinstance(backoff, (int, float)) and backoff == 0:
            warning_messages.append("backoff_seconds is 0: failed jobs retry immediately")

    delivery = config_dict.get("delivery", {})
    if isinstance(delivery, dict):
        concurrency = delivery.get("candidate_concurrency", 1)
        if isinstance(concurrency, int) and concurrency > 8:
            warning_messages.append(
                f"High candidate_concurrency ({concurrency}) may hit Drive API rate limits"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages using Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
