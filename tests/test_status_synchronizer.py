"""Tests for the post-delivery status synchronizer."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from forwarder.domain.models import PipelineStatus, StatusHistoryEntry
from forwarder.persistence.exceptions import PersistenceError
from forwarder.status.synchronizer import (
    MAIN_STATUS_DOCUMENTS,
    SUB_STATUS_SUBMITTED,
    SUBMISSION_REASON,
    StatusSynchronizer,
    submission_notes,
)

NOW = datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    store = Mock()
    store.update_pipeline_status.return_value = PipelineStatus(
        main_status=MAIN_STATUS_DOCUMENTS, sub_status=SUB_STATUS_SUBMITTED
    )
    return store


def test_submission_notes():
    assert submission_notes("client@example.com") == "Forwarded to client@example.com"
    assert submission_notes("client@example.com", "urgent") == (
        "Forwarded to client@example.com — urgent"
    )


def test_advance_writes_documents_submitted(store):
    synchronizer = StatusSynchronizer(store, clock=lambda: NOW)

    assert synchronizer.advance_after_delivery(
        "cand-1", "proj-1", "role-welder", "client@example.com", notes="urgent", sender_id="user-7"
    ) is True

    store.update_pipeline_status.assert_called_once_with(
        candidate_id="cand-1",
        project_id="proj-1",
        role_catalog_id="role-welder",
        main_status="documents",
        sub_status="submitted_to_client",
        changed_at=NOW,
        reason=SUBMISSION_REASON,
        notes="Forwarded to client@example.com — urgent",
        changed_by_id="user-7",
    )


def test_advance_without_mapping_returns_false(store):
    store.update_pipeline_status.return_value = None
    synchronizer = StatusSynchronizer(store, clock=lambda: NOW)

    assert synchronizer.advance_after_delivery("cand-9", "proj-1", None, "client@example.com") is False


def test_advance_propagates_persistence_errors(store):
    store.update_pipeline_status.side_effect = PersistenceError("database is locked")
    synchronizer = StatusSynchronizer(store)

    with pytest.raises(PersistenceError):
        synchronizer.advance_after_delivery("cand-1", "proj-1", None, "client@example.com")


def test_progress_for_reads_history(store):
    store.list_status_history.return_value = [
        StatusHistoryEntry(sub_status_name="documents_verified", status_changed_at=NOW)
    ]

    result = StatusSynchronizer(store).progress_for("cand-1", "proj-1")

    store.list_status_history.assert_called_once_with("cand-1", "proj-1")
    assert result.progress == 45
    assert result.current == "documents_verified"
