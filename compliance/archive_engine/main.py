"""
Archive Engine - main entry point and operations CLI.

This module wires the engine components from configuration:
- SQLite record store, asset directory and checksum work queue
- File-system content store
- ArchiveService facade
- Checksum worker and periodic reconciliation loops

Usage:
    archive-engine reconcile
    archive-engine process-checksums
    archive-engine pending-checksums
    archive-engine show <record_id>
    archive-engine run-worker [--reconcile-interval SECONDS]

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - All components share one SQLite database file
    - Schema creation is idempotent and runs before any command
    - Graceful shutdown lets the current worker pass finish

How to change safely:
    - Add new commands as subparsers; keep exit codes meaningful
    - Test shutdown sequence of run-worker
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys

import json_log_formatter

from .config import EngineConfig
from .content import FilesystemContentStore, SqliteAssetDirectory
from .errors import ArchiveEngineError
from .integrity import ChecksumWorker
from .queue import SqliteWorkQueue
from .service import ArchiveService
from .store import RecordStore

logger = logging.getLogger(__name__)


def setup_logging(config: EngineConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Engine configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class Engine:
    """Archive engine component graph.

    Attributes:
        config: Engine configuration
        store: Archive record store
        directory: Asset directory
        work_queue: Deferred checksum queue
        content_store: File-system content store
        service: Lifecycle facade
        worker: Deferred checksum worker

    Example:
        >>> engine = Engine(EngineConfig.from_env())
        >>> engine.initialize()
        >>> engine.service.reconcile_all()
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig.from_env()
        storage = self.config.storage
        db_path = storage.db_path

        self.store = RecordStore(
            db_path,
            wal_mode=storage.wal_mode,
            busy_timeout_ms=storage.busy_timeout_ms,
        )
        self.directory = SqliteAssetDirectory(db_path, busy_timeout_ms=storage.busy_timeout_ms)
        self.work_queue = SqliteWorkQueue(
            db_path,
            busy_timeout_ms=storage.busy_timeout_ms,
            wal_mode=storage.wal_mode,
        )
        self.content_store = FilesystemContentStore(
            self.config.content.public_dir,
            self.config.content.private_dir,
            directory=self.directory,
        )
        self.service = ArchiveService(
            self.store,
            self.directory,
            self.content_store,
            self.work_queue,
            policy=lambda: self.config.policy,
            checksum_config=self.config.checksum,
        )
        self.worker = ChecksumWorker(
            self.store,
            self.work_queue,
            self.service.checksum_engine,
            self.config.checksum,
        )
        self._shutdown_event: asyncio.Event | None = None

    def initialize(self) -> None:
        """Create all tables."""
        self.store.initialize()
        self.directory.initialize()
        self.work_queue.initialize()

    def process_checksums(self) -> int:
        """Requeue records missing a checksum, then drain the queue once.

        Returns:
            Number of items claimed
        """
        self.worker.requeue_pending()
        # Failures with a zero backoff are claimable again at once.
        limit = len(self.work_queue.pending())
        total = 0
        while total < limit:
            claimed = self.worker.process_pending()
            if claimed == 0:
                break
            total += claimed
        return total

    async def run(self, reconcile_interval: float) -> None:
        """Run the checksum worker and periodic reconciliation until shutdown."""
        self._shutdown_event = asyncio.Event()
        self.config.log_config()

        tasks = [
            asyncio.create_task(self.worker.start()),
            asyncio.create_task(self.service.reconciler.run_periodic(reconcile_interval)),
        ]
        logger.info("Archive engine worker started")

        try:
            await self._shutdown_event.wait()
        finally:
            await self.worker.stop()
            await self.service.reconciler.stop()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Archive engine worker stopped", extra=self.worker.stats)

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()


def _run_worker(engine: Engine, reconcile_interval: float) -> None:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        engine.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(engine.run(reconcile_interval))
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Archive engine operations tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # reconcile command
    subparsers.add_parser("reconcile", help="Reconcile all queued and archived records")

    # process-checksums command
    subparsers.add_parser(
        "process-checksums", help="Compute checksums for archived records still missing one"
    )

    # pending-checksums command
    pending_parser = subparsers.add_parser(
        "pending-checksums", help="List archived records still missing a checksum"
    )
    pending_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    # show command
    show_parser = subparsers.add_parser("show", help="Show a record with its notes")
    show_parser.add_argument("record_id", help="Archive record ID")

    # run-worker command
    worker_parser = subparsers.add_parser(
        "run-worker", help="Run the checksum worker and periodic reconciliation"
    )
    worker_parser.add_argument(
        "--reconcile-interval",
        type=float,
        default=3600.0,
        help="Seconds between reconciliation sweeps (default: 3600)",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    engine = Engine(config)
    engine.initialize()

    try:
        if args.command == "reconcile":
            stats = engine.service.reconcile_all()
            print(json.dumps(stats.to_dict(), indent=2))
            sys.exit(1 if stats.errors else 0)

        elif args.command == "process-checksums":
            claimed = engine.process_checksums()
            stats = engine.worker.stats
            print(
                f"Processed {claimed} item(s): {stats['processed_count']} stored, "
                f"{stats['skipped_count']} skipped, {stats['error_count']} failed"
            )
            sys.exit(1 if stats["error_count"] else 0)

        elif args.command == "pending-checksums":
            records = engine.service.get_records_pending_checksum()
            if args.format == "json":
                print(json.dumps([r.to_dict() for r in records], indent=2))
            elif not records:
                print("No records pending checksum")
            else:
                print(f"{len(records)} record(s) pending checksum:")
                for record in records:
                    print(f"  {record.id}  {record.file_name}  ({record.file_size_bytes} bytes)")

        elif args.command == "show":
            snapshot = engine.service.get_snapshot(args.record_id)
            print(snapshot.model_dump_json(indent=2))

        elif args.command == "run-worker":
            _run_worker(engine, args.reconcile_interval)

    except ArchiveEngineError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
