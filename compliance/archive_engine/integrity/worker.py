"""
Deferred checksum worker.

Claims checksum work items from the queue, hashes the content and writes
the digest to the record exactly once.

Processing flow:
    1. Claim up to batch_size items with a lease
    2. Skip (and complete) items whose record is gone, terminal, no longer
       archived, or already checksummed
    3. Hash the content; on read failure release the item with a backoff
    4. Write file_checksum through the guarded store update
    5. Complete the item

Invariants:
    - Idempotent: a record that already has a checksum is never rehashed
    - A failed hash never drops the item; it is retried once its backoff lapses
    - The loop sleeps after every pass that stores nothing
    - Delivery is at-least-once; duplicate items are harmless

How to change safely:
    - Never write file_checksum outside RecordStore.update_record()
    - Keep process_pending() synchronous so the CLI can drive it directly
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..config import ChecksumConfig
from ..errors import ImmutabilityError, RecordNotFoundError, ResourceError, TerminalStateError
from ..queue.base import LeaseLostError, WorkItem, WorkQueue
from ..store.record_store import RecordStore
from .checksum import ChecksumEngine

logger = logging.getLogger(__name__)


class ChecksumWorker:
    """Consumes the deferred checksum queue.

    Thread safety:
        Designed to run as a single task per process. Several processes
        may share a durable queue; leases keep them apart.

    Example:
        >>> worker = ChecksumWorker(store, queue, engine)
        >>> worker.process_pending()  # one pass
        >>> await worker.start()      # runs until stopped
    """

    def __init__(
        self,
        store: RecordStore,
        queue: WorkQueue,
        engine: ChecksumEngine,
        config: ChecksumConfig | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            store: Archive record store
            queue: Work queue holding checksum items
            engine: Checksum engine
            config: Lease, batch and polling settings
        """
        self.store = store
        self.queue = queue
        self.engine = engine
        self.config = config or ChecksumConfig()

        self._running = False
        self._processed_count = 0
        self._skipped_count = 0
        self._error_count = 0

    def requeue_pending(self) -> int:
        """Enqueue every archived file record that still lacks a checksum.

        Returns:
            Number of records enqueued (existing items are not duplicated)
        """
        records = self.store.list_pending_checksums()
        for record in records:
            self.queue.enqueue(record.id)
        if records:
            logger.info("Requeued records pending checksum", extra={"count": len(records)})
        return len(records)

    def process_pending(self) -> int:
        """Run one pass over claimable items.

        Returns:
            Number of items claimed in this pass
        """
        items = self.queue.claim(self.config.batch_size, self.config.lease_seconds)
        for item in items:
            self._process_item(item)
        return len(items)

    def _process_item(self, item: WorkItem) -> None:
        try:
            record = self.store.require_record(item.record_id)
        except RecordNotFoundError:
            logger.warning("Checksum item for unknown record", extra={"record_id": item.record_id})
            self._finish(item, skipped=True)
            return

        if record.file_checksum or not record.is_archived_active:
            logger.debug(
                "Skipping checksum item",
                extra={"record_id": record.id, "status": record.status.value},
            )
            self._finish(item, skipped=True)
            return

        try:
            digest = self.engine.calculate_checksum(record.original_asset_ref)
        except ResourceError as e:
            self._error_count += 1
            delay = self.config.retry_delay(item.attempts)
            logger.error(
                "Deferred checksum failed",
                extra={
                    "record_id": record.id,
                    "attempts": item.attempts,
                    "retry_in_seconds": delay,
                    "error": str(e),
                },
            )
            self.queue.release(item, error=str(e), delay_seconds=delay)
            return

        try:
            self.store.update_record(record.id, {"file_checksum": digest})
        except (ImmutabilityError, TerminalStateError) as e:
            # Record changed while hashing; nothing left to do.
            logger.info(
                "Checksum no longer writable",
                extra={"record_id": record.id, "reason": e.code},
            )
            self._finish(item, skipped=True)
            return

        logger.info(
            "Stored deferred checksum",
            extra={"record_id": record.id, "checksum": digest},
        )
        self._finish(item, skipped=False)

    def _finish(self, item: WorkItem, skipped: bool) -> None:
        try:
            self.queue.complete(item)
        except LeaseLostError:
            logger.warning("Lease lost before completion", extra={"record_id": item.record_id})
            return
        if skipped:
            self._skipped_count += 1
        else:
            self._processed_count += 1

    async def start(self) -> None:
        """Start the worker loop.

        This runs until stop() is called, sleeping poll_interval_seconds
        whenever a pass completes no item.
        """
        if self._running:
            logger.warning("Checksum worker already running")
            return

        self._running = True
        logger.info("Starting checksum worker", extra={"queue": self.queue.name})

        try:
            while self._running:
                finished_before = self._processed_count + self._skipped_count
                await asyncio.to_thread(self.process_pending)
                if self._processed_count + self._skipped_count == finished_before:
                    await asyncio.sleep(self.config.poll_interval_seconds)

        except asyncio.CancelledError:
            logger.info("Checksum worker cancelled")
        except Exception as e:
            logger.error(f"Checksum worker error: {e}", exc_info=True)
            raise

        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the worker loop."""
        self._running = False
        logger.info("Stopping checksum worker")

    @property
    def stats(self) -> dict[str, Any]:
        """Get worker statistics."""
        return {
            "running": self._running,
            "processed_count": self._processed_count,
            "skipped_count": self._skipped_count,
            "error_count": self._error_count,
        }
