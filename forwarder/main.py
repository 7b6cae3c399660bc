"""Main entry point for the Candidate Document Forwarder service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

from pydantic import ValidationError

from forwarder.config.environment import EnvironmentConfig
from forwarder.config.exceptions import ConfigurationError
from forwarder.config.loader import load_config
from forwarder.config.models import AppConfig
from forwarder.delivery import (
    DeliveryError,
    DeliveryOrchestrator,
    ForwardIntake,
    HistoryRecordNotFoundError,
)
from forwarder.domain.models import DeliveryHistoryRecord, ForwardRequest
from forwarder.jobs import QueueWorker
from forwarder.logging import get_logger
from forwarder.logging.config import configure_logging
from forwarder.persistence import SqlPipelineStore, close_database, init_database
from forwarder.persistence.exceptions import PersistenceError
from forwarder.scheduler import SchedulerService
from forwarder.status import StatusSynchronizer, next_progress_key
from forwarder.utils.timestamps import format_timestamp

logger = get_logger(__name__, component="cli")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > environment > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doc-forwarder",
        description="Candidate Document Forwarder - delivers candidate documents to clients",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=LOG_LEVELS,
        help="Log level (overrides config and environment)",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("worker", help="Poll the delivery queue until stopped")
    commands.add_parser("drain", help="Process all due jobs once and exit")

    single = commands.add_parser("enqueue-single", help="Queue a single-candidate forward")
    single.add_argument("--history-id", required=True, help="Delivery history record id")

    bulk = commands.add_parser("enqueue-bulk", help="Queue a bulk forward from a JSON payload file")
    bulk.add_argument("--payload", type=Path, required=True, help="Path to the payload JSON file")

    progress = commands.add_parser("progress", help="Show a candidate's progress in a project")
    progress.add_argument("--candidate-id", required=True)
    progress.add_argument("--project-id", required=True)

    forward = commands.add_parser(
        "forward", help="Record a single-candidate forward and queue its delivery"
    )
    forward.add_argument("--candidate-id", required=True)
    forward.add_argument("--project-id", required=True)
    forward.add_argument("--recipient", required=True, help="Client email address")
    forward.add_argument("--cc", action="append", default=[], help="CC address (repeatable)")
    forward.add_argument("--bcc", action="append", default=[], help="BCC address (repeatable)")
    forward.add_argument("--send-type", choices=["merged", "individual"], default="merged")
    forward.add_argument(
        "--document-id",
        dest="document_ids",
        action="append",
        default=[],
        help="Document to send with --send-type individual (repeatable)",
    )
    forward.add_argument("--role-catalog-id", default=None)
    forward.add_argument("--notes", default=None)
    forward.add_argument("--sender-id", default=None)

    history = commands.add_parser("history", help="List a project's forward history")
    history.add_argument("--project-id", required=True)
    history.add_argument("--candidate-id", default=None)
    history.add_argument("--role-catalog-id", default=None)
    history.add_argument("--search", default=None, help="Match recipient, notes or candidate name")
    history.add_argument("--page", type=int, default=1)
    history.add_argument("--limit", type=int, default=10)
    history.add_argument(
        "--latest", action="store_true", help="Show only the latest forward (needs --candidate-id)"
    )

    return parser


def run_worker(worker: QueueWorker, app_config: AppConfig) -> int:
    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        poll_callable=worker.run_pending,
        interval_seconds=app_config.worker.poll_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Worker started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)
    return 0


def run_drain(worker: QueueWorker) -> int:
    result = worker.drain()
    logger.info(
        f"Drain completed: {result.completed} completed, {result.retried} retried, "
        f"{result.failed} failed, {result.dropped} dropped",
        extra={
            "event": "service.drain.completed",
            "claimed": result.claimed,
            "completed": result.completed,
            "retried": result.retried,
            "failed": result.failed,
            "dropped": result.dropped,
        },
    )
    return 1 if result.failed else 0


def run_enqueue_single(worker: QueueWorker, store: SqlPipelineStore, history_id: str) -> int:
    if store.get_history_record(history_id) is None:
        raise HistoryRecordNotFoundError(history_id)

    queued = worker.enqueue_single(history_id)
    print(f"Queued job {queued.id} ({queued.kind})")
    return 0


def run_enqueue_bulk(worker: QueueWorker, payload_path: Path) -> int:
    try:
        payload = json.loads(payload_path.read_text(encoding="utf-8"))
    except OSError as e:
        print(f"Cannot read payload file: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"Payload is not valid JSON: {e}", file=sys.stderr)
        return 1

    try:
        queued = worker.enqueue_bulk(payload)
    except ValidationError as e:
        print(f"Invalid bulk payload:\n{e}", file=sys.stderr)
        return 1

    print(f"Queued job {queued.id} ({queued.kind})")
    return 0


def run_progress(store: SqlPipelineStore, candidate_id: str, project_id: str) -> int:
    result = StatusSynchronizer(store).progress_for(candidate_id, project_id)
    print(f"Progress: {result.progress}% (current: {result.current or 'none'})")
    upcoming = next_progress_key(result.current)
    if upcoming:
        print(f"Next step: {upcoming}")
    return 0


def run_forward(worker: QueueWorker, store: SqlPipelineStore, args: argparse.Namespace) -> int:
    try:
        request = ForwardRequest(
            candidate_id=args.candidate_id,
            project_id=args.project_id,
            recipient_email=args.recipient,
            cc=args.cc,
            bcc=args.bcc,
            send_type=args.send_type,
            document_ids=args.document_ids,
            role_catalog_id=args.role_catalog_id,
            notes=args.notes,
            sender_id=args.sender_id,
        )
    except ValidationError as e:
        print(f"Invalid forward request:\n{e}", file=sys.stderr)
        return 1

    record = ForwardIntake(store).create_record(request)
    queued = worker.enqueue_single(record.id)
    print(f"Recorded forward {record.id}; queued job {queued.id} ({queued.kind})")
    return 0


def describe_forward(record: DeliveryHistoryRecord) -> str:
    return (
        f"{format_timestamp(record.created_at)}  {record.status.value:<7}  "
        f"{record.candidate_id} -> {record.recipient_email}  "
        f"{record.send_type.value}, {len(record.document_details)} document(s)  [{record.id}]"
    )


def run_history(store: SqlPipelineStore, args: argparse.Namespace) -> int:
    if args.latest:
        if not args.candidate_id:
            print("--latest requires --candidate-id", file=sys.stderr)
            return 1
        record = store.latest_history_record(args.candidate_id, args.project_id, args.role_catalog_id)
        print(describe_forward(record) if record else "No forwards found")
        return 0

    page = store.search_history_records(
        args.project_id,
        candidate_id=args.candidate_id,
        role_catalog_id=args.role_catalog_id,
        search=args.search,
        page=args.page,
        limit=args.limit,
    )
    for record in page.items:
        print(describe_forward(record))
    print(f"Page {page.page} of {page.total_pages} ({page.total} forwards)")
    return 0


def main(argv=None) -> int:
    """
    Main entry point for the Candidate Document Forwarder.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
        )

        logger.info(
            "Document forwarder starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "log_level": env_config.log_level,
                "drive_configured": env_config.drive_configured,
            },
        )

        init_database(env_config.database_url)
        store = SqlPipelineStore()
        orchestrator = DeliveryOrchestrator.from_config(app_config, env_config, store=store)
        worker = QueueWorker(orchestrator, app_config.worker)

        try:
            if args.command == "worker":
                return run_worker(worker, app_config)
            if args.command == "drain":
                return run_drain(worker)
            if args.command == "enqueue-single":
                return run_enqueue_single(worker, store, args.history_id)
            if args.command == "enqueue-bulk":
                return run_enqueue_bulk(worker, args.payload)
            if args.command == "forward":
                return run_forward(worker, store, args)
            if args.command == "history":
                return run_history(store, args)
            return run_progress(store, args.candidate_id, args.project_id)
        finally:
            close_database()
            logger.info(
                "Document forwarder stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except DeliveryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except PersistenceError as e:
        print(f"Database error: {e}", file=sys.stderr)
        logger.error(
            f"Database error: {e}",
            extra={"event": "service.database_error", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
