"""
Reconciliation of archive records against current content and usage.

Reconciliation re-derives every advisory flag from the live asset
directory and content store, and applies the integrity consequences:

    Queued:
        - content missing      -> hard-delete the queued record
        - otherwise            -> set/clear usage_detected
    Archived (public/admin), file-based:
        - clear all advisory flags, then
        - content missing      -> file_missing
        - integrity failure    -> integrity_mismatch and
            Legacy  -> exemption_void
            General -> archived_deleted (deleted by the system actor)
        - independently        -> recompute usage_detected
    Manual entries, terminal records:
        - skipped

Invariants:
    - Idempotent: a second pass over unchanged inputs writes nothing
    - A record is written only when a flag or its status actually changes
    - Flags and the status transition are written in one update
    - One failing record never stops a sweep

How to change safely:
    - New advisory flags must be recomputed here and listed in WARNING_FLAGS
    - Keep counters on ReconcileStats, never in module globals
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ..content.base import AssetDirectory, AuditSink, ContentStore, reference_count_for
from ..integrity.checksum import ChecksumEngine
from ..store.models import SYSTEM_ACTOR, WARNING_FLAGS, ArchiveRecord, ArchiveStatus
from ..store.record_store import RecordStore

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    """What reconciliation did to one record."""

    UNCHANGED = "unchanged"
    UPDATED = "updated"
    REMOVED = "removed"
    VOIDED = "voided"
    DELETED = "deleted"
    SKIPPED = "skipped"


@dataclass
class ReconcileStats:
    """Counters for one or more reconciliation sweeps.

    Attributes:
        examined: Records looked at
        outcomes: Count per ReconcileOutcome value
        errors: Records whose reconciliation raised
    """

    examined: int = 0
    outcomes: dict[str, int] = field(
        default_factory=lambda: {outcome.value: 0 for outcome in ReconcileOutcome}
    )
    errors: int = 0

    def record(self, outcome: ReconcileOutcome) -> None:
        self.examined += 1
        self.outcomes[outcome.value] += 1

    def record_error(self) -> None:
        self.examined += 1
        self.errors += 1

    @property
    def changed(self) -> int:
        return sum(
            self.outcomes[o.value]
            for o in (
                ReconcileOutcome.UPDATED,
                ReconcileOutcome.REMOVED,
                ReconcileOutcome.VOIDED,
                ReconcileOutcome.DELETED,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {"examined": self.examined, "errors": self.errors, **self.outcomes}


class Reconciler:
    """Brings archive records in line with the live content and usage.

    Example:
        >>> reconciler = Reconciler(store, directory, content_store, engine, audit)
        >>> reconciler.reconcile_record(record)
        <ReconcileOutcome.UNCHANGED: 'unchanged'>
        >>> stats = reconciler.reconcile_all()
    """

    def __init__(
        self,
        store: RecordStore,
        directory: AssetDirectory,
        content_store: ContentStore,
        checksum_engine: ChecksumEngine,
        audit: AuditSink,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            store: Archive record store
            directory: Asset directory (reference counts)
            content_store: Content store (existence checks)
            checksum_engine: Integrity verification
            audit: Audit note writer
            clock: Returns the current time in epoch seconds
        """
        self.store = store
        self.directory = directory
        self.content_store = content_store
        self.checksum_engine = checksum_engine
        self.audit = audit
        self.clock = clock or store.clock

        self.stats = ReconcileStats()
        self._running = False

    def reconcile_record(self, record: ArchiveRecord) -> ReconcileOutcome:
        """Reconcile a single record.

        Args:
            record: Record as currently stored

        Returns:
            What was done to the record
        """
        if record.is_manual_entry or record.is_terminal:
            outcome = ReconcileOutcome.SKIPPED
        elif record.is_queued:
            outcome = self._reconcile_queued(record)
        else:
            outcome = self._reconcile_archived(record)

        self.stats.record(outcome)
        return outcome

    def _reconcile_queued(self, record: ArchiveRecord) -> ReconcileOutcome:
        if self.content_store.resolve(record.original_asset_ref) is None:
            if self.store.delete_queued_record(record.id):
                logger.info(
                    "Auto-removed queued record: source content no longer exists",
                    extra={"record_id": record.id, "file_name": record.file_name},
                )
                return ReconcileOutcome.REMOVED
            return ReconcileOutcome.UNCHANGED

        usage_detected = reference_count_for(self.directory, record.original_asset_ref) > 0
        changes = {"usage_detected": usage_detected, "file_missing": False}
        return self._apply(record, changes)

    def _reconcile_archived(self, record: ArchiveRecord) -> ReconcileOutcome:
        changes: dict[str, Any] = {flag: False for flag in WARNING_FLAGS}
        new_status: ArchiveStatus | None = None

        if self.content_store.resolve(record.original_asset_ref) is None:
            changes["file_missing"] = True
        elif not self.checksum_engine.verify_integrity(record):
            changes["integrity_mismatch"] = True
            if record.is_legacy:
                new_status = ArchiveStatus.EXEMPTION_VOID
            else:
                new_status = ArchiveStatus.ARCHIVED_DELETED
                changes["deleted_date"] = self.clock()
                changes["deleted_by"] = SYSTEM_ACTOR

        changes["usage_detected"] = (
            reference_count_for(self.directory, record.original_asset_ref) > 0
        )

        if new_status is None:
            return self._apply(record, changes)

        changes["status"] = new_status
        self.store.update_record(record.id, changes, expected_status=record.status)

        if new_status is ArchiveStatus.EXEMPTION_VOID:
            logger.warning(
                "Exemption voided: archived content modified",
                extra={"record_id": record.id, "previous_status": record.status.value},
            )
            self.audit.append(
                record.id,
                "Exemption voided: the archived file was modified after archiving "
                "(integrity check failed). This Legacy Archive no longer qualifies "
                "for the compliance exemption.",
                SYSTEM_ACTOR,
            )
            if record.archived_while_in_use:
                self.audit.append(
                    record.id,
                    "This file was archived while in use. Links that were routed to "
                    "the archive detail page now lead directly to the file again.",
                    SYSTEM_ACTOR,
                )
            return ReconcileOutcome.VOIDED

        logger.warning(
            "General archive removed: archived content modified",
            extra={"record_id": record.id, "previous_status": record.status.value},
        )
        self.audit.append(
            record.id,
            "Removed from the archive: the file was modified after archiving "
            "(integrity check failed).",
            SYSTEM_ACTOR,
        )
        return ReconcileOutcome.DELETED

    def _apply(self, record: ArchiveRecord, changes: dict[str, Any]) -> ReconcileOutcome:
        if all(getattr(record, name) == value for name, value in changes.items()):
            return ReconcileOutcome.UNCHANGED
        self.store.update_record(record.id, changes, expected_status=record.status)
        logger.debug(
            "Reconciled record flags",
            extra={"record_id": record.id, "changes": sorted(changes)},
        )
        return ReconcileOutcome.UPDATED

    def reconcile_all(self) -> ReconcileStats:
        """Sweep archived then queued records.

        Per-record failures are logged and counted; the sweep continues.

        Returns:
            Counters for this sweep
        """
        sweep = ReconcileStats()
        records = self.store.list_records(
            statuses=[ArchiveStatus.ARCHIVED_PUBLIC, ArchiveStatus.ARCHIVED_ADMIN]
        ) + self.store.list_records(statuses=[ArchiveStatus.QUEUED])

        for record in records:
            try:
                outcome = self.reconcile_record(record)
            except Exception as e:
                self.stats.record_error()
                sweep.record_error()
                logger.error(
                    f"Reconciliation failed: {e}",
                    extra={"record_id": record.id},
                    exc_info=True,
                )
                continue
            sweep.record(outcome)

        logger.info("Reconciliation sweep finished", extra=sweep.to_dict())
        return sweep

    async def run_periodic(self, interval_seconds: float) -> None:
        """Run reconcile_all() every interval_seconds until stop() is called."""
        if self._running:
            logger.warning("Reconciler already running")
            return

        self._running = True
        logger.info("Starting periodic reconciliation", extra={"interval_seconds": interval_seconds})

        try:
            while self._running:
                await asyncio.to_thread(self.reconcile_all)
                await asyncio.sleep(interval_seconds)

        except asyncio.CancelledError:
            logger.info("Periodic reconciliation cancelled")

        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the periodic loop after the current sweep."""
        self._running = False
        logger.info("Stopping periodic reconciliation")

    @property
    def is_running(self) -> bool:
        return self._running
