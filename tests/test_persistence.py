"""Unit tests for persistence layer."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, text

from forwarder.domain.models import DeliveryStatus
from forwarder.persistence import (
    DatabaseConnectionError,
    DataIntegrityError,
    DeliveryHistoryRepository,
    DocumentRepository,
    JobQueueRepository,
    PipelineStatusRepository,
    RecordNotFoundError,
    ReferenceRepository,
    SqlPipelineStore,
    close_database,
    get_session,
    init_database,
)
from forwarder.persistence.schema import (
    CandidateStatusHistoryModel,
    MergedDocumentModel,
    ProjectModel,
    _format_datetime,
    _parse_datetime,
)
from tests.helpers import make_history_record, seed_pipeline

NOW = datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def seeded(database):
    seed_pipeline()


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_parent_directories(self, tmp_path):
        db_file = tmp_path / "subdir" / "nested" / "forwarder.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        close_database()

    def test_init_database_invalid_url_raises_error(self):
        with pytest.raises(DatabaseConnectionError):
            init_database("")

        with pytest.raises(DatabaseConnectionError):
            init_database(None)

    def test_schema_creation_is_idempotent(self, tmp_path):
        db_url = f"sqlite:///{tmp_path / 'forwarder.db'}"

        init_database(db_url)
        init_database(db_url)

        with get_session() as session:
            result = session.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))
            tables = {row[0] for row in result.fetchall()}
        assert {"delivery_history", "delivery_jobs", "candidate_projects", "documents"} <= tables

        close_database()

    def test_get_session_without_init_raises_error(self):
        close_database()

        with pytest.raises(DatabaseConnectionError, match="Database not initialized"):
            with get_session():
                pass


class TestSessionManagement:
    def test_session_commits_on_success(self, database):
        with get_session() as session:
            session.add(ProjectModel(id="p-1", title="Harbour"))

        with get_session() as session:
            assert session.get(ProjectModel, "p-1").title == "Harbour"

    def test_session_rolls_back_on_exception(self, database):
        with pytest.raises(ValueError):
            with get_session() as session:
                session.add(ProjectModel(id="p-1", title="Harbour"))
                raise ValueError("Test exception")

        with get_session() as session:
            assert session.get(ProjectModel, "p-1") is None


class TestTimestampStorage:
    def test_round_trip_keeps_utc(self):
        stored = _format_datetime(datetime(2024, 5, 1, 9, 30, 15, 1234, tzinfo=timezone.utc))

        assert stored == "2024-05-01T09:30:15.001234Z"
        assert _parse_datetime(stored) == datetime(2024, 5, 1, 9, 30, 15, 1234, tzinfo=timezone.utc)

    def test_naive_datetime_is_treated_as_utc(self):
        assert _format_datetime(datetime(2024, 5, 1, 9, 30)) == "2024-05-01T09:30:00.000000Z"

    def test_parse_without_fraction(self):
        assert _parse_datetime("2024-05-01T09:30:00Z") == datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def test_none(self):
        assert _format_datetime(None) is None
        assert _parse_datetime(None) is None


class TestReferenceRepository:
    def test_lookups(self, seeded):
        with get_session() as session:
            repo = ReferenceRepository(session)

            assert repo.get_candidate("cand-1").full_name == "Jane Doe"
            assert repo.get_project("proj-1").title == "Offshore Platform"
            assert repo.get_role_catalog("role-rigger").display_label == "rigger"

    def test_missing_rows_return_none(self, seeded):
        with get_session() as session:
            repo = ReferenceRepository(session)

            assert repo.get_candidate("nobody") is None
            assert repo.get_project("nothing") is None
            assert repo.get_role_catalog("no-role") is None


class TestDocumentRepository:
    def test_documents_follow_requested_order(self, seeded):
        with get_session() as session:
            docs = DocumentRepository(session).get_documents("cand-1", ["doc-2", "doc-1"])

        assert [d.id for d in docs] == ["doc-2", "doc-1"]

    def test_status_filter(self, seeded):
        with get_session() as session:
            docs = DocumentRepository(session).get_documents(
                "cand-1", ["doc-1", "doc-2"], status="verified"
            )

        assert [d.id for d in docs] == ["doc-1"]

    def test_other_candidates_documents_are_excluded(self, seeded):
        with get_session() as session:
            docs = DocumentRepository(session).get_documents("cand-1", ["doc-1", "doc-3", "doc-404"])

        assert [d.id for d in docs] == ["doc-1"]

    def test_duplicates_and_empty_request(self, seeded):
        with get_session() as session:
            repo = DocumentRepository(session)

            assert [d.id for d in repo.get_documents("cand-1", ["doc-1", "doc-1"])] == ["doc-1"]
            assert repo.get_documents("cand-1", []) == []

    def test_latest_merged_document_prefers_role(self, seeded):
        with get_session() as session:
            session.add_all(
                [
                    MergedDocumentModel(
                        id="merged-any",
                        candidate_id="cand-1",
                        project_id="proj-1",
                        file_name="any.pdf",
                        file_url="https://blob.example.com/any.pdf",
                        updated_at="2024-06-01T00:00:00.000000Z",
                    ),
                    MergedDocumentModel(
                        id="merged-new",
                        candidate_id="cand-1",
                        project_id="proj-1",
                        role_catalog_id="role-welder",
                        file_name="new.pdf",
                        file_url="https://blob.example.com/new.pdf",
                        updated_at="2024-05-20T00:00:00.000000Z",
                    ),
                ]
            )

        with get_session() as session:
            repo = DocumentRepository(session)

            assert repo.get_latest_merged_document("cand-1", "proj-1", "role-welder").id == "merged-new"
            assert repo.get_latest_merged_document("cand-1", "proj-1").id == "merged-any"
            assert repo.get_latest_merged_document("cand-1", "proj-1", "role-rigger").id == "merged-any"

    def test_latest_merged_document_falls_back_to_any_role(self, seeded):
        with get_session() as session:
            merged = DocumentRepository(session).get_latest_merged_document("cand-1", "proj-1", "role-rigger")

        assert merged.id == "merged-1"

    def test_no_merged_document(self, seeded):
        with get_session() as session:
            assert DocumentRepository(session).get_latest_merged_document("cand-2", "proj-1") is None


class TestDeliveryHistoryRepository:
    def test_create_and_get(self, database):
        with get_session() as session:
            DeliveryHistoryRepository(session).create(make_history_record("hist-9"))

        with get_session() as session:
            record = DeliveryHistoryRepository(session).get("hist-9")

        assert record.status == DeliveryStatus.PENDING
        assert record.cc_emails == ["lead@example.com"]
        assert [d.id for d in record.document_details] == ["doc-1", "doc-2"]

    def test_create_duplicate_raises_integrity_error(self, database):
        with get_session() as session:
            DeliveryHistoryRepository(session).create(make_history_record("hist-9"))

        with pytest.raises(DataIntegrityError):
            with get_session() as session:
                DeliveryHistoryRepository(session).create(make_history_record("hist-9"))

    def test_mark_sent_clears_error(self, seeded):
        with get_session() as session:
            repo = DeliveryHistoryRepository(session)
            repo.mark_failed("hist-1", "HTTP 500")
            repo.mark_sent("hist-1", NOW)

        with get_session() as session:
            record = DeliveryHistoryRepository(session).get("hist-1")

        assert record.status == DeliveryStatus.SENT
        assert record.sent_at == NOW
        assert record.error is None

    def test_mark_failed_records_error(self, seeded):
        with get_session() as session:
            DeliveryHistoryRepository(session).mark_failed("hist-1", "HTTP 404: Not Found")

        with get_session() as session:
            record = DeliveryHistoryRepository(session).get("hist-1")

        assert record.status == DeliveryStatus.FAILED
        assert record.error == "HTTP 404: Not Found"
        assert record.sent_at is None

    def test_update_of_missing_record_raises(self, database):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                DeliveryHistoryRepository(session).mark_sent("nope", NOW)

    def test_latest_is_newest_and_respects_role(self, seeded):
        with get_session() as session:
            repo = DeliveryHistoryRepository(session)
            repo.create(make_history_record("hist-2", created_at=NOW - timedelta(hours=2)))
            repo.create(
                make_history_record("hist-3", role_catalog_id="role-rigger", created_at=NOW)
            )

        with get_session() as session:
            repo = DeliveryHistoryRepository(session)
            newest = repo.latest("cand-1", "proj-1")
            welder = repo.latest("cand-1", "proj-1", "role-welder")
            missing = repo.latest("cand-2", "proj-1")

        assert newest.id == "hist-3"
        assert welder.id == "hist-2"
        assert missing is None

    def test_search_matches_recipient_notes_and_candidate_name(self, seeded):
        with get_session() as session:
            repo = DeliveryHistoryRepository(session)
            repo.create(
                make_history_record(
                    "hist-2",
                    candidate_id="cand-2",
                    recipient_email="hr@acme.com",
                    notes=None,
                    created_at=NOW,
                )
            )

        with get_session() as session:
            repo = DeliveryHistoryRepository(session)
            by_recipient = repo.search("proj-1", search="ACME")
            by_notes = repo.search("proj-1", search="strong")
            by_name = repo.search("proj-1", search="roe")
            scoped = repo.search("proj-1", candidate_id="cand-1", search="roe")

        assert [r.id for r in by_recipient.items] == ["hist-2"]
        assert [r.id for r in by_notes.items] == ["hist-1"]
        assert [r.id for r in by_name.items] == ["hist-2"]
        assert scoped.items == []
        assert scoped.total == 0

    def test_search_pages_newest_first(self, seeded):
        with get_session() as session:
            repo = DeliveryHistoryRepository(session)
            for hours in (1, 2):
                repo.create(
                    make_history_record(f"hist-{hours + 1}", created_at=NOW + timedelta(hours=hours))
                )

        with get_session() as session:
            repo = DeliveryHistoryRepository(session)
            first = repo.search("proj-1", page=1, limit=2)
            second = repo.search("proj-1", page=2, limit=2)
            other_project = repo.search("proj-2")

        assert [r.id for r in first.items] == ["hist-3", "hist-2"]
        assert [r.id for r in second.items] == ["hist-1"]
        assert second.total == 3
        assert second.total_pages == 2
        assert other_project.total == 0
        assert other_project.total_pages == 0


class TestPipelineStatusRepository:
    def test_find_mapping_prefers_role(self, seeded):
        with get_session() as session:
            repo = PipelineStatusRepository(session)

            assert repo.find_mapping("cand-1", "proj-1", "role-welder").id == "cp-1"
            assert repo.find_mapping("cand-2", "proj-1", "role-welder").id == "cp-2"
            assert repo.find_mapping("cand-2", "proj-1").id == "cp-2"
            assert repo.find_mapping("cand-1", "proj-404") is None

    def test_apply_status_appends_history(self, seeded):
        with get_session() as session:
            repo = PipelineStatusRepository(session)
            mapping = repo.find_mapping("cand-1", "proj-1", "role-welder")
            status = repo.apply_status(
                mapping,
                "documents",
                "submitted_to_client",
                NOW,
                reason="Documents submitted to client",
                notes="Forwarded to client@example.com",
                changed_by_id="user-7",
            )

        assert (status.main_status, status.sub_status) == ("documents", "submitted_to_client")

        with get_session() as session:
            assert PipelineStatusRepository(session).get_status("cp-1") == status
            (row,) = session.execute(select(CandidateStatusHistoryModel)).scalars().all()
            assert row.candidate_project_id == "cp-1"
            assert row.main_status_snapshot == "Documents"
            assert row.sub_status_snapshot == "Submitted to Client"
            assert row.changed_by_id == "user-7"
            assert row.status_changed_at == "2024-05-02T08:00:00.000000Z"

    def test_apply_unknown_status_raises(self, seeded):
        with pytest.raises(RecordNotFoundError, match="not configured"):
            with get_session() as session:
                repo = PipelineStatusRepository(session)
                repo.apply_status(repo.find_mapping("cand-1", "proj-1"), "documents", "lost", NOW)

    def test_list_history_oldest_first(self, seeded):
        with get_session() as session:
            session.add_all(
                [
                    CandidateStatusHistoryModel(
                        candidate_project_id="cp-1",
                        main_status_id="main-docs",
                        sub_status_id="sub-submitted",
                        status_changed_at="2024-05-03T00:00:00.000000Z",
                    ),
                    CandidateStatusHistoryModel(
                        candidate_project_id="cp-1",
                        main_status_id="main-nom",
                        main_status_snapshot="Nominated",
                        project_status_name="Active",
                        status_changed_at="2024-05-01T00:00:00.000000Z",
                    ),
                ]
            )

        with get_session() as session:
            history = PipelineStatusRepository(session).list_history("cand-1", "proj-1")

        assert [(h.main_status_name, h.sub_status_name) for h in history] == [
            ("nominated", None),
            ("documents", "submitted_to_client"),
        ]
        assert history[0].main_status_snapshot == "Nominated"
        assert history[0].project_status_name == "Active"


class TestJobQueueRepository:
    def test_enqueue_and_claim(self, database):
        with get_session() as session:
            queued = JobQueueRepository(session).enqueue("send-documents", {"historyId": "h"}, NOW)

        with get_session() as session:
            (claimed,) = JobQueueRepository(session).claim_due(NOW, limit=10)

        assert claimed.id == queued.id
        assert claimed.status == "running"
        assert claimed.attempts == 1
        assert claimed.payload == {"historyId": "h"}

    def test_claim_skips_future_and_running_jobs(self, database):
        with get_session() as session:
            repo = JobQueueRepository(session)
            first = repo.enqueue("send-documents", {"historyId": "a"}, NOW)
            later = repo.enqueue("send-documents", {"historyId": "b"}, NOW)
            repo.schedule_retry(later.id, "boom", 30, NOW)

        with get_session() as session:
            assert [j.id for j in JobQueueRepository(session).claim_due(NOW, 10)] == [first.id]

        with get_session() as session:
            assert JobQueueRepository(session).claim_due(NOW, 10) == []

    def test_claim_orders_by_availability(self, database):
        with get_session() as session:
            repo = JobQueueRepository(session)
            newer = repo.enqueue("send-documents", {"historyId": "a"}, NOW)
            older = repo.enqueue("send-documents", {"historyId": "b"}, datetime(2024, 5, 1, tzinfo=timezone.utc))

        with get_session() as session:
            claimed = JobQueueRepository(session).claim_due(NOW, 1)

        assert [j.id for j in claimed] == [older.id]
        assert newer.id != older.id

    def test_expired_lease_is_claimed_again(self, database):
        """A running job whose worker never settled it is redelivered once its lease runs out."""
        with get_session() as session:
            queued = JobQueueRepository(session).enqueue("send-documents", {"historyId": "h"}, NOW)

        with get_session() as session:
            (first,) = JobQueueRepository(session).claim_due(NOW, 10, lease_seconds=300)
        assert first.lease_expires_at == NOW + timedelta(seconds=300)

        with get_session() as session:
            assert JobQueueRepository(session).claim_due(NOW + timedelta(seconds=299), 10) == []

        later = NOW + timedelta(days=1)
        with get_session() as session:
            (again,) = JobQueueRepository(session).claim_due(later, 10, lease_seconds=300)

        assert again.id == queued.id
        assert again.status == "running"
        assert again.attempts == 2
        assert again.lease_expires_at == later + timedelta(seconds=300)

    def test_expired_lease_on_final_attempt_fails_the_job(self, database):
        with get_session() as session:
            queued = JobQueueRepository(session).enqueue("send-documents", {}, NOW, max_attempts=1)

        with get_session() as session:
            JobQueueRepository(session).claim_due(NOW, 10, lease_seconds=300)

        with get_session() as session:
            assert JobQueueRepository(session).claim_due(NOW + timedelta(days=1), 10) == []

        with get_session() as session:
            stored = JobQueueRepository(session).get(queued.id)
        assert stored.status == "failed"
        assert stored.last_error == "lease expired on final attempt"
        assert stored.lease_expires_at is None

    def test_settling_clears_the_lease(self, database):
        with get_session() as session:
            queued = JobQueueRepository(session).enqueue("send-documents", {}, NOW)

        with get_session() as session:
            repo = JobQueueRepository(session)
            repo.claim_due(NOW, 10)
            repo.mark_completed(queued.id, NOW)

        with get_session() as session:
            assert JobQueueRepository(session).get(queued.id).lease_expires_at is None
            assert JobQueueRepository(session).claim_due(NOW + timedelta(days=1), 10) == []

    def test_settle_states(self, database):
        with get_session() as session:
            repo = JobQueueRepository(session)
            done = repo.enqueue("send-documents", {}, NOW)
            dead = repo.enqueue("send-documents", {}, NOW)
            repo.mark_completed(done.id, NOW)
            repo.mark_failed(dead.id, "RuntimeError: boom", NOW)

        with get_session() as session:
            repo = JobQueueRepository(session)
            assert repo.count_by_status() == {"completed": 1, "failed": 1}
            assert repo.get(dead.id).last_error == "RuntimeError: boom"

    def test_update_missing_job_raises(self, database):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                JobQueueRepository(session).mark_completed(999, NOW)


class TestSqlPipelineStore:
    def test_update_pipeline_status(self, seeded):
        store = SqlPipelineStore()

        status = store.update_pipeline_status(
            candidate_id="cand-1",
            project_id="proj-1",
            role_catalog_id="role-welder",
            main_status="documents",
            sub_status="submitted_to_client",
            changed_at=NOW,
        )

        assert status.sub_status == "submitted_to_client"
        history = store.list_status_history("cand-1", "proj-1")
        assert [h.sub_status_name for h in history] == ["submitted_to_client"]

    def test_update_without_mapping_returns_none(self, seeded):
        store = SqlPipelineStore()

        assert (
            store.update_pipeline_status(
                candidate_id="cand-1",
                project_id="proj-404",
                role_catalog_id=None,
                main_status="documents",
                sub_status="submitted_to_client",
                changed_at=NOW,
            )
            is None
        )

    def test_history_record_lifecycle(self, seeded):
        store = SqlPipelineStore()

        store.mark_history_sent("hist-1", NOW)

        record = store.get_history_record("hist-1")
        assert record.status == DeliveryStatus.SENT
        assert store.get_history_record("hist-404") is None

    def test_history_record_queries(self, seeded):
        store = SqlPipelineStore()

        created = store.create_history_record(make_history_record("hist-2", created_at=NOW))

        assert created.id == "hist-2"
        assert store.latest_history_record("cand-1", "proj-1").id == "hist-2"
        page = store.search_history_records("proj-1", candidate_id="cand-1", limit=1)
        assert [r.id for r in page.items] == ["hist-2"]
        assert page.total_pages == 2
