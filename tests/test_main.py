"""Unit tests for the main entry point.

Tests the main() function including:
- CLI argument parsing
- Configuration loading with priority (CLI > env > config)
- Subcommand dispatch to the worker and store
- Exit code handling
- Error handling
"""

import json
from unittest.mock import MagicMock, Mock, patch

import pytest

from forwarder.config.environment import EnvironmentConfig
from forwarder.config.exceptions import ConfigurationError
from forwarder.config.models import AppConfig, LoggingConfig
from forwarder.delivery import NoDeliverableDocumentsError
from forwarder.domain.models import ForwardHistoryPage
from forwarder.jobs import WorkerRunResult
from forwarder.main import build_parser, load_runtime_config, main
from forwarder.status.progress import ProgressResult
from tests.helpers import make_history_record


def env_config(**overrides):
    values = {"smtp_host": "smtp.example.com", "smtp_port": 587, "smtp_user": None, "smtp_pass": None}
    values.update(overrides)
    return EnvironmentConfig(**values)


class TestLoadRuntimeConfig:
    """Test suite for load_runtime_config helper."""

    def test_log_level_priority(self):
        """CLI beats environment, which beats the config file."""
        app_config = AppConfig(logging=LoggingConfig(level="WARNING"))
        env = env_config(log_level="INFO")

        with patch("forwarder.main.load_config", return_value=(app_config, env)):
            assert load_runtime_config(None, "DEBUG")[1].log_level == "DEBUG"

        env = env_config(log_level="INFO")
        with patch("forwarder.main.load_config", return_value=(app_config, env)):
            assert load_runtime_config(None, None)[1].log_level == "INFO"

        env = env_config()
        with patch("forwarder.main.load_config", return_value=(app_config, env)):
            assert load_runtime_config(None, None)[1].log_level == "WARNING"

    def test_configuration_error_propagates(self):
        with patch("forwarder.main.load_config", side_effect=ConfigurationError("bad")):
            with pytest.raises(ConfigurationError):
                load_runtime_config(None, None)


class TestParser:
    def test_subcommand_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_enqueue_single_requires_history_id(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["enqueue-single"])

    def test_global_options(self):
        args = build_parser().parse_args(["--log-level", "DEBUG", "progress", "--candidate-id", "c", "--project-id", "p"])

        assert args.log_level == "DEBUG"
        assert (args.command, args.candidate_id, args.project_id) == ("progress", "c", "p")


@pytest.fixture
def runtime():
    """Patch every collaborator main() wires together."""
    with patch("forwarder.main.load_runtime_config") as load, \
         patch("forwarder.main.configure_logging"), \
         patch("forwarder.main.init_database") as init_db, \
         patch("forwarder.main.close_database") as close_db, \
         patch("forwarder.main.SqlPipelineStore") as store_cls, \
         patch("forwarder.main.DeliveryOrchestrator") as orchestrator_cls, \
         patch("forwarder.main.QueueWorker") as worker_cls:
        load.return_value = (AppConfig(), env_config(log_level="INFO", database_url="sqlite:///:memory:"))
        worker = MagicMock()
        worker_cls.return_value = worker
        yield Mock(
            load=load,
            init_db=init_db,
            close_db=close_db,
            store=store_cls.return_value,
            orchestrator_cls=orchestrator_cls,
            worker=worker,
        )


class TestMain:
    def test_drain_success(self, runtime):
        runtime.worker.drain.return_value = WorkerRunResult(claimed=2, completed=2)

        assert main(["drain"]) == 0

        runtime.init_db.assert_called_once_with("sqlite:///:memory:")
        runtime.orchestrator_cls.from_config.assert_called_once()
        runtime.close_db.assert_called_once()

    def test_drain_with_failures(self, runtime):
        runtime.worker.drain.return_value = WorkerRunResult(claimed=2, completed=1, failed=1)

        assert main(["drain"]) == 1

    def test_enqueue_single(self, runtime, capsys):
        runtime.store.get_history_record.return_value = object()
        runtime.worker.enqueue_single.return_value = Mock(id=7, kind="send-documents")

        assert main(["enqueue-single", "--history-id", "hist-1"]) == 0

        runtime.worker.enqueue_single.assert_called_once_with("hist-1")
        assert "Queued job 7 (send-documents)" in capsys.readouterr().out

    def test_enqueue_single_unknown_record(self, runtime, capsys):
        runtime.store.get_history_record.return_value = None

        assert main(["enqueue-single", "--history-id", "hist-404"]) == 1

        runtime.worker.enqueue_single.assert_not_called()
        assert "hist-404" in capsys.readouterr().err
        runtime.close_db.assert_called_once()

    def test_enqueue_bulk(self, runtime, tmp_path):
        payload = {"recipientEmail": "client@example.com", "projectId": "proj-1"}
        path = tmp_path / "bulk.json"
        path.write_text(json.dumps(payload))
        runtime.worker.enqueue_bulk.return_value = Mock(id=8, kind="bulk-send-documents")

        assert main(["enqueue-bulk", "--payload", str(path)]) == 0

        runtime.worker.enqueue_bulk.assert_called_once_with(payload)

    def test_enqueue_bulk_invalid_json(self, runtime, tmp_path, capsys):
        path = tmp_path / "bulk.json"
        path.write_text("{not json")

        assert main(["enqueue-bulk", "--payload", str(path)]) == 1
        assert "not valid JSON" in capsys.readouterr().err

    def test_enqueue_bulk_missing_file(self, runtime, tmp_path, capsys):
        assert main(["enqueue-bulk", "--payload", str(tmp_path / "missing.json")]) == 1
        assert "Cannot read payload file" in capsys.readouterr().err

    def test_enqueue_bulk_invalid_payload(self, runtime, tmp_path, capsys):
        from forwarder.domain.models import BulkForwardPayload

        path = tmp_path / "bulk.json"
        path.write_text(json.dumps({"projectId": "proj-1"}))
        runtime.worker.enqueue_bulk.side_effect = lambda p: BulkForwardPayload.model_validate(p)

        assert main(["enqueue-bulk", "--payload", str(path)]) == 1
        assert "Invalid bulk payload" in capsys.readouterr().err

    def test_progress(self, runtime, capsys):
        with patch("forwarder.main.StatusSynchronizer") as sync_cls:
            sync_cls.return_value.progress_for.return_value = ProgressResult(55, "interview_scheduled")

            assert main(["progress", "--candidate-id", "cand-1", "--project-id", "proj-1"]) == 0

        sync_cls.return_value.progress_for.assert_called_once_with("cand-1", "proj-1")
        out = capsys.readouterr().out
        assert "Progress: 55% (current: interview_scheduled)" in out
        assert "Next step: interview_completed" in out

    def test_progress_without_history(self, runtime, capsys):
        with patch("forwarder.main.StatusSynchronizer") as sync_cls:
            sync_cls.return_value.progress_for.return_value = ProgressResult(0, None)

            assert main(["progress", "--candidate-id", "cand-1", "--project-id", "proj-1"]) == 0

        out = capsys.readouterr().out
        assert "Progress: 0% (current: none)" in out
        assert "Next step" not in out

    def test_worker_mode_runs_scheduler(self, runtime):
        with patch("forwarder.main.SchedulerService") as scheduler_cls, \
             patch("forwarder.main.signal.signal"), \
             patch("forwarder.main.threading.Event") as event_cls:
            assert main(["worker"]) == 0

        kwargs = scheduler_cls.call_args.kwargs
        assert kwargs["poll_callable"] == runtime.worker.run_pending
        assert kwargs["interval_seconds"] == 30
        scheduler_cls.return_value.start.assert_called_once()
        event_cls.return_value.wait.assert_called_once()

    def test_configuration_error(self, runtime, capsys):
        runtime.load.side_effect = ConfigurationError("Environment variable validation failed")

        assert main(["drain"]) == 1
        assert "Configuration Error" in capsys.readouterr().err
        runtime.init_db.assert_not_called()

    def test_unexpected_error(self, runtime, capsys):
        runtime.worker.drain.side_effect = RuntimeError("boom")

        assert main(["drain"]) == 1
        assert "Fatal error: boom" in capsys.readouterr().err
        runtime.close_db.assert_called_once()

    def test_forward_records_and_queues(self, runtime, capsys):
        runtime.worker.enqueue_single.return_value = Mock(id=9, kind="send-documents")
        with patch("forwarder.main.ForwardIntake") as intake_cls:
            intake_cls.return_value.create_record.return_value = make_history_record("hist-new")

            argv = [
                "forward",
                "--candidate-id", "cand-1",
                "--project-id", "proj-1",
                "--recipient", "client@example.com",
                "--cc", "lead@example.com",
                "--send-type", "individual",
                "--document-id", "doc-1",
                "--document-id", "doc-2",
            ]
            assert main(argv) == 0

        intake_cls.assert_called_once_with(runtime.store)
        (request,) = intake_cls.return_value.create_record.call_args.args
        assert request.document_ids == ["doc-1", "doc-2"]
        assert request.cc == ["lead@example.com"]
        runtime.worker.enqueue_single.assert_called_once_with("hist-new")
        assert "Recorded forward hist-new; queued job 9 (send-documents)" in capsys.readouterr().out

    def test_forward_invalid_recipient(self, runtime, capsys):
        with patch("forwarder.main.ForwardIntake") as intake_cls:
            argv = ["forward", "--candidate-id", "cand-1", "--project-id", "proj-1", "--recipient", "nope"]
            assert main(argv) == 1

        intake_cls.return_value.create_record.assert_not_called()
        assert "Invalid forward request" in capsys.readouterr().err

    def test_forward_rejected_request(self, runtime, capsys):
        with patch("forwarder.main.ForwardIntake") as intake_cls:
            intake_cls.return_value.create_record.side_effect = NoDeliverableDocumentsError(
                "No merged document found for candidate cand-1"
            )
            argv = ["forward", "--candidate-id", "cand-1", "--project-id", "proj-1", "--recipient", "client@example.com"]
            assert main(argv) == 1

        runtime.worker.enqueue_single.assert_not_called()
        assert "No merged document found for candidate cand-1" in capsys.readouterr().err
        runtime.close_db.assert_called_once()

    def test_history_lists_a_page(self, runtime, capsys):
        runtime.store.search_history_records.return_value = ForwardHistoryPage(
            items=[make_history_record("hist-2"), make_history_record("hist-1")], total=3, page=1, limit=2
        )

        assert main(["history", "--project-id", "proj-1", "--search", "jane", "--limit", "2"]) == 0

        runtime.store.search_history_records.assert_called_once_with(
            "proj-1", candidate_id=None, role_catalog_id=None, search="jane", page=1, limit=2
        )
        out = capsys.readouterr().out
        assert "cand-1 -> client@example.com" in out
        assert "[hist-2]" in out
        assert "Page 1 of 2 (3 forwards)" in out

    def test_history_latest(self, runtime, capsys):
        runtime.store.latest_history_record.return_value = None

        argv = ["history", "--project-id", "proj-1", "--candidate-id", "cand-1", "--latest"]
        assert main(argv) == 0

        runtime.store.latest_history_record.assert_called_once_with("cand-1", "proj-1", None)
        assert "No forwards found" in capsys.readouterr().out

    def test_history_latest_requires_candidate(self, runtime, capsys):
        assert main(["history", "--project-id", "proj-1", "--latest"]) == 1

        runtime.store.latest_history_record.assert_not_called()
        assert "--latest requires --candidate-id" in capsys.readouterr().err
