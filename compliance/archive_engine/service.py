"""
ArchiveService - the lifecycle facade of the archive engine.

Every compliance decision goes through this class:

    Queue ─▶ Execute(public|admin) ─▶ ArchivedPublic ⇄ ArchivedAdmin
      │                                   │
      └─▶ RemoveFromQueue (hard delete)   ├─▶ Unarchive / DeleteFile ─▶ ArchivedDeleted
                                          └─▶ integrity failure (Legacy) ─▶ ExemptionVoid
                                                                              │
                                     ArchivedDeleted ◀─ Unarchive / DeleteFile ◀┘

Manual entries (pages / external URLs) skip the queue and are created
directly in an archived status.

Invariants:
    - The policy configuration is read once per operation
    - Every operation validates before it mutates; a rejected operation
      leaves the record untouched (Execute failures only set advisory flags)
    - Terminal records reject every lifecycle operation with TerminalStateError,
      except Unarchive / DeleteFile on ExemptionVoid (-> ArchivedDeleted)
    - Notes are appended for every compliance decision

How to change safely:
    - Route all writes through RecordStore.update_record() / insert_record()
    - Build the PolicyGate from the per-operation snapshot, never cache it
    - Keep note texts within NOTE_MAX_LENGTH (system notes are truncated)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from .config import ArchivePolicyConfig, ChecksumConfig
from .content.base import (
    AssetDirectory,
    AuditSink,
    ContentStore,
    reference_count_for,
)
from .errors import (
    ArchiveEngineError,
    ConflictError,
    InvalidTransitionError,
    PolicyBlockedError,
    ResourceError,
    TerminalStateError,
    ValidationError,
)
from .integrity.checksum import ChecksumEngine
from .policy.classification import classify
from .policy.gate import PolicyGate, UsageBlock
from .queue.base import WorkQueue
from .reconcile.reconciler import Reconciler, ReconcileStats
from .store.models import (
    MANUAL_ASSET_TYPES,
    NOTE_MAX_LENGTH,
    VOID_EVIDENCE_FLAGS,
    WARNING_FLAGS,
    ArchiveNote,
    ArchiveReason,
    ArchiveRecord,
    ArchiveStatus,
    Visibility,
)
from .store.record_store import RecordStore, RecordStoreAuditSink
from .store.snapshots import ArchiveRecordSnapshot

logger = logging.getLogger(__name__)

PolicySource = ArchivePolicyConfig | Callable[[], ArchivePolicyConfig]


def _classification_label(late_archive: bool) -> str:
    return "General Archive" if late_archive else "Legacy Archive"


class ArchiveService:
    """Archive lifecycle operations.

    Example:
        >>> service = ArchiveService(store, directory, content_store, queue, policy)
        >>> record = service.queue("managed:42", "reference", actor="alice")
        >>> record = service.execute(record.id, "public", actor="alice")
        >>> service.unarchive(record.id, actor="alice")
    """

    def __init__(
        self,
        store: RecordStore,
        directory: AssetDirectory,
        content_store: ContentStore,
        work_queue: WorkQueue,
        policy: PolicySource | None = None,
        checksum_config: ChecksumConfig | None = None,
        audit: AuditSink | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Archive record store
            directory: Asset directory (category, location, reference count)
            content_store: Content store (resolve, hash, delete)
            work_queue: Deferred checksum queue
            policy: Policy snapshot, or a zero-argument loader returning one
            checksum_config: Checksum size limit
            audit: Audit note writer (defaults to the record store's notes)
            clock: Returns the current time in epoch seconds
        """
        self.store = store
        self.directory = directory
        self.content_store = content_store
        self.work_queue = work_queue
        self._policy_source: PolicySource = policy or ArchivePolicyConfig()
        checksum_config = checksum_config or ChecksumConfig()
        self.checksum_engine = ChecksumEngine(content_store, checksum_config.size_limit_bytes)
        self.audit = audit or RecordStoreAuditSink(store)
        self.clock = clock or store.clock
        self.reconciler = Reconciler(
            store,
            directory,
            content_store,
            self.checksum_engine,
            self.audit,
            clock=self.clock,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def policy_snapshot(self) -> ArchivePolicyConfig:
        """Read the policy configuration once."""
        source = self._policy_source
        return source() if callable(source) else source

    def _gate(self) -> PolicyGate:
        return PolicyGate(self.policy_snapshot())

    def _note(self, record_id: str, text: str, author: str) -> None:
        if len(text) > NOTE_MAX_LENGTH:
            text = text[: NOTE_MAX_LENGTH - 3] + "..."
        self.audit.append(record_id, text, author)

    @staticmethod
    def _require_actor(actor: str) -> str:
        if not actor or not actor.strip():
            raise ValidationError("An actor is required.", field_name="actor")
        return actor.strip()

    @staticmethod
    def _parse_reason(reason: ArchiveReason | str, reason_other: str) -> ArchiveReason:
        try:
            parsed = ArchiveReason(reason)
        except ValueError:
            raise ValidationError(
                f"Invalid archive reason: {reason!r}", field_name="archive_reason"
            ) from None
        if parsed is ArchiveReason.OTHER and not reason_other.strip():
            raise ValidationError(
                "Please specify the reason when selecting 'Other'.",
                field_name="reason_other",
            )
        return parsed

    @staticmethod
    def _parse_visibility(visibility: Visibility | str) -> Visibility:
        try:
            return Visibility(visibility)
        except ValueError:
            raise ValidationError(
                'Visibility must be explicitly set to "public" or "admin".',
                field_name="visibility",
            ) from None

    @staticmethod
    def _reject_terminal(record: ArchiveRecord) -> None:
        if record.is_terminal:
            raise TerminalStateError(
                f"Archive record is {record.status_label} and can no longer be changed.",
                record_id=record.id,
                status=record.status.value,
            )

    @staticmethod
    def _invalid(record: ArchiveRecord, operation: str, message: str) -> InvalidTransitionError:
        return InvalidTransitionError(
            message,
            record_id=record.id,
            status=record.status.value,
            operation=operation,
        )

    def _reject_unless_withdrawable(self, record: ArchiveRecord, operation: str) -> None:
        if record.can_withdraw:
            return
        self._reject_terminal(record)
        raise self._invalid(
            record,
            operation,
            "Only active archived assets or voided exemptions can be withdrawn.",
        )

    def _reject_active_duplicate(self, asset_ref: str) -> None:
        existing = self.store.find_active_record(asset_ref)
        if existing is not None:
            raise ConflictError(
                f"This asset already has an active archive record (status: "
                f"{existing.status_label}). You must unarchive it first before "
                "archiving again.",
                asset_ref=asset_ref,
                existing_record_id=existing.id,
                existing_status=existing.status.value,
            )

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def queue(
        self,
        asset_ref: str,
        reason: ArchiveReason | str,
        actor: str,
        reason_other: str = "",
        public_description: str = "",
        internal_notes: str = "",
    ) -> ArchiveRecord:
        """Queue an asset for archiving (step 1 of 2).

        Being referenced does not block queueing; it is recorded in a note
        and enforced at Execute.

        Args:
            asset_ref: Managed ref ("managed:<id>") or raw path/URL
            reason: Archive reason
            actor: Acting user
            reason_other: Required when reason is "other"
            public_description: Description for the public archive listing
            internal_notes: Admin-only notes

        Returns:
            The new queued record

        Raises:
            ValidationError: Unknown asset, ineligible category or bad input
            ConflictError: The asset already has an active record
        """
        actor = self._require_actor(actor)
        parsed_reason = self._parse_reason(reason, reason_other)
        policy = self.policy_snapshot()

        info = self.directory.lookup(asset_ref)
        if info is None:
            raise ValidationError(
                f"Asset is not known to the asset directory: {asset_ref}",
                field_name="asset_ref",
            )
        if not info.is_archivable:
            raise ValidationError(
                f"Only documents and videos can be archived (category: {info.category.value}).",
                field_name="asset_ref",
            )

        self._reject_active_duplicate(asset_ref)

        record = ArchiveRecord(
            id=str(uuid.uuid4()),
            original_asset_ref=asset_ref,
            file_name=info.file_name or asset_ref.rsplit("/", 1)[-1],
            asset_type=info.asset_type,
            status=ArchiveStatus.QUEUED,
            archive_reason=parsed_reason,
            reason_other=reason_other.strip() if parsed_reason is ArchiveReason.OTHER else "",
            public_description=public_description,
            internal_notes=internal_notes,
            mime_type=info.mime_type,
            file_size_bytes=info.file_size_bytes,
            is_private=info.is_private,
            usage_detected=info.reference_count > 0,
            archived_by=actor,
        )
        self.store.insert_record(record)

        if info.reference_count > 0:
            if policy.allow_while_referenced:
                consequence = "Archiving while in use is allowed by the current policy."
            else:
                consequence = "Archiving will be blocked until these references are removed."
            self._note(
                record.id,
                f"Queued while referenced in {info.reference_count} location(s). {consequence}",
                actor,
            )

        logger.info(
            "Queued asset for archive",
            extra={
                "record_id": record.id,
                "asset_ref": asset_ref,
                "actor": actor,
                "reason": record.reason_label,
                "reference_count": info.reference_count,
            },
        )
        return record

    def execute(self, record_id: str, visibility: Visibility | str, actor: str) -> ArchiveRecord:
        """Archive a queued record (step 2 of 2).

        On a gate failure the record stays Queued with file_missing or
        usage_detected set, and the operation can be retried.

        Args:
            record_id: Queued record
            visibility: "public" or "admin"
            actor: Acting user

        Returns:
            The archived record

        Raises:
            TerminalStateError: Record is terminal
            InvalidTransitionError: Record is not queued
            ValidationError: Invalid visibility
            ResourceError: Content cannot be resolved or read
            PolicyBlockedError: Asset is referenced and the policy forbids it
        """
        actor = self._require_actor(actor)
        policy = self.policy_snapshot()
        gate = PolicyGate(policy)

        record = self.store.require_record(record_id)
        self._reject_terminal(record)
        if not record.is_queued:
            raise self._invalid(record, "execute", "Only queued assets can be archived.")
        target = self._parse_visibility(visibility)

        ref = record.original_asset_ref
        uri = self.content_store.resolve(ref)
        if uri is None:
            self.store.update_record(
                record.id, {"file_missing": True}, expected_status=ArchiveStatus.QUEUED
            )
            logger.warning("Archive blocked: content missing", extra={"record_id": record.id})
            raise ResourceError(f"Archive blocked: cannot resolve source content for {ref}.", asset_ref=ref)

        reference_count = reference_count_for(self.directory, ref)
        decision = gate.can_create_or_execute(reference_count)
        if not decision.allowed:
            self.store.update_record(
                record.id,
                {"usage_detected": True, "file_missing": False},
                expected_status=ArchiveStatus.QUEUED,
            )
            logger.warning(
                "Archive blocked: asset in use",
                extra={"record_id": record.id, "reference_count": reference_count},
            )
            raise PolicyBlockedError(
                f"Archive blocked: {decision.reason}",
                reference_count=reference_count,
                reason=decision.reason,
                record_id=record.id,
            )

        size = self.checksum_engine.content_size(ref, record.file_size_bytes)
        deferred = self.checksum_engine.should_defer(size)
        checksum = None
        if not deferred:
            try:
                checksum = self.checksum_engine.calculate_checksum(ref)
            except ResourceError:
                self.store.update_record(
                    record.id, {"file_missing": True}, expected_status=ArchiveStatus.QUEUED
                )
                raise

        classification = classify(self.clock(), policy, self.store.has_exemption_void(ref))

        changes: dict[str, Any] = {flag: False for flag in WARNING_FLAGS}
        changes.update(classification.to_changes())
        changes.update(
            {
                "status": target.status,
                "archive_uri": uri,
                "usage_detected": decision.in_use,
                "archived_while_in_use": decision.in_use,
                "usage_count_at_archive": reference_count,
                "archived_by": actor,
            }
        )
        if size is not None:
            changes["file_size_bytes"] = size
        if checksum is not None:
            changes["file_checksum"] = checksum

        record = self.store.update_record(record.id, changes, expected_status=ArchiveStatus.QUEUED)

        if deferred:
            self.work_queue.enqueue(record.id)

        parts = [
            f"Archived: {record.status_label}, {_classification_label(record.late_archive)}.",
        ]
        if checksum is not None:
            parts.append(f"Checksum: {checksum}.")
        else:
            parts.append(f"Checksum queued for background processing (file size: {size} bytes).")
        if decision.in_use:
            parts.append(f"Archived while in use ({reference_count} reference(s)).")
        if classification.prior_void_exists:
            parts.append("General Archive forced by a prior voided exemption for this asset.")
        self._note(record.id, " ".join(parts), actor)

        logger.info(
            "Archived asset",
            extra={
                "record_id": record.id,
                "actor": actor,
                "status": record.status.value,
                "late_archive": record.late_archive,
                "checksum_deferred": deferred,
                "archive_uri": uri,
            },
        )
        return record

    def toggle_visibility(self, record_id: str, actor: str) -> ArchiveRecord:
        """Switch an archived record between Public and Admin-only.

        Raising Admin-only to Public is usage-gated for file-based records.

        Raises:
            TerminalStateError: Record is terminal
            InvalidTransitionError: Record is not actively archived
            PolicyBlockedError: Raising to Public is blocked by usage
        """
        actor = self._require_actor(actor)
        gate = self._gate()

        record = self.store.require_record(record_id)
        self._reject_terminal(record)
        if not record.is_archived_active:
            raise self._invalid(
                record,
                "toggle_visibility",
                "Only active archived assets can have visibility toggled.",
            )

        if record.status is ArchiveStatus.ARCHIVED_ADMIN:
            reference_count = reference_count_for(self.directory, record.original_asset_ref)
            block = gate.is_visibility_raise_blocked(record, reference_count)
            if block is not None:
                raise PolicyBlockedError(
                    block.reason,
                    reference_count=block.reference_count,
                    reason=block.reason,
                    record_id=record.id,
                )
            new_status = ArchiveStatus.ARCHIVED_PUBLIC
        else:
            new_status = ArchiveStatus.ARCHIVED_ADMIN

        record = self.store.update_record(
            record.id, {"status": new_status}, expected_status=record.status
        )
        self._note(record.id, f"Visibility changed to {record.status_label}.", actor)

        logger.info(
            "Changed archive visibility",
            extra={"record_id": record.id, "actor": actor, "status": new_status.value},
        )
        return record

    def unarchive(self, record_id: str, actor: str) -> ArchiveRecord:
        """Withdraw an archived record or a voided exemption.

        The content stays where it is; the record becomes ArchivedDeleted
        and stays as audit history. Archiving the asset again creates a
        new record. A voided record keeps the flags that show why its
        exemption was lost.

        Raises:
            TerminalStateError: Record is ArchivedDeleted
            InvalidTransitionError: Record is still queued
        """
        actor = self._require_actor(actor)

        record = self.store.require_record(record_id)
        self._reject_unless_withdrawable(record, "unarchive")
        was_void = record.is_exemption_void

        changes: dict[str, Any] = {
            flag: False
            for flag in WARNING_FLAGS
            if not (was_void and flag in VOID_EVIDENCE_FLAGS)
        }
        changes.update(
            {
                "status": ArchiveStatus.ARCHIVED_DELETED,
                "deleted_date": self.clock(),
                "deleted_by": actor,
            }
        )
        record = self.store.update_record(
            record.id,
            changes,
            expected_status=record.status,
            allow_terminal_from=ArchiveStatus.EXEMPTION_VOID if was_void else None,
        )

        if was_void:
            text = (
                "Unarchived: voided exemption withdrawn from the archive. "
                "Record preserved for audit."
            )
        elif record.is_manual_entry:
            text = "Unarchived: manual entry removed from the archive. Record preserved for audit."
        else:
            text = (
                "Unarchived: removed from the archive listing. The file remains at its "
                "location and the record is preserved for audit."
            )
        self._note(record.id, text, actor)

        logger.info(
            "Unarchived asset",
            extra={"record_id": record.id, "actor": actor, "was_void": was_void},
        )
        return record

    def delete_file(self, record_id: str, actor: str) -> ArchiveRecord:
        """Physically delete the file of an archived record or voided exemption.

        If the record changes concurrently after the file is gone, the
        deletion is still written to the notes before the error propagates.

        Raises:
            TerminalStateError: Record is ArchivedDeleted
            InvalidTransitionError: Record is queued or a manual entry
            ResourceError: Content cannot be resolved or deleted
        """
        actor = self._require_actor(actor)

        record = self.store.require_record(record_id)
        self._reject_unless_withdrawable(record, "delete_file")
        if record.is_manual_entry:
            raise self._invalid(
                record, "delete_file", "Manual entries have no file to delete."
            )

        uri = self.content_store.resolve(record.original_asset_ref)
        if uri is None:
            raise ResourceError(
                "Cannot resolve file path for deletion.", asset_ref=record.original_asset_ref
            )
        if not self.content_store.delete(uri):
            raise ResourceError(f"Failed to delete file: {record.file_name}", asset_ref=uri)

        try:
            record = self.store.update_record(
                record.id,
                {
                    "status": ArchiveStatus.ARCHIVED_DELETED,
                    "deleted_date": self.clock(),
                    "deleted_by": actor,
                },
                expected_status=record.status,
                allow_terminal_from=ArchiveStatus.EXEMPTION_VOID if record.is_exemption_void else None,
            )
        except ArchiveEngineError as e:
            logger.error(
                "File deleted but archive record not updated",
                extra={"record_id": record.id, "uri": uri, "error": e.code},
            )
            self._note(
                record.id,
                f"File deleted from {uri}, but the record status could not be "
                f"updated ({e.code}: {e.message}).",
                actor,
            )
            raise

        self._note(record.id, f"File deleted from {uri}. Archive record preserved.", actor)

        logger.info(
            "Deleted archived file",
            extra={"record_id": record.id, "actor": actor, "uri": uri},
        )
        return record

    def remove_from_queue(self, record_id: str, actor: str) -> None:
        """Hard-delete a queued record; it never became a compliance decision.

        Raises:
            TerminalStateError: Record is terminal
            InvalidTransitionError: Record is not queued
        """
        actor = self._require_actor(actor)

        record = self.store.require_record(record_id)
        self._reject_terminal(record)
        if not record.is_queued:
            raise self._invalid(
                record, "remove_from_queue", "Only queued assets can be removed from the queue."
            )

        if not self.store.delete_queued_record(record.id):
            current = self.store.require_record(record.id)
            raise self._invalid(
                current, "remove_from_queue", "Record left the queue before it could be removed."
            )

        logger.info(
            "Removed asset from archive queue",
            extra={"record_id": record.id, "actor": actor, "file_name": record.file_name},
        )

    def create_manual_entry(
        self,
        title: str,
        url: str,
        asset_type: str,
        reason: ArchiveReason | str,
        visibility: Visibility | str,
        actor: str,
        reason_other: str = "",
        public_description: str = "",
        internal_notes: str = "",
    ) -> ArchiveRecord:
        """Register a page or external resource directly as archived.

        Manual entries are classified at creation and bypass the usage gate.

        Raises:
            ValidationError: Missing title/url, bad asset type, reason or visibility
            ConflictError: The URL already has an active record
        """
        actor = self._require_actor(actor)
        policy = self.policy_snapshot()

        title = title.strip()
        url = url.strip()
        if not title:
            raise ValidationError("A title is required.", field_name="title")
        if not url:
            raise ValidationError("A URL is required.", field_name="url")
        if asset_type not in MANUAL_ASSET_TYPES:
            raise ValidationError(
                f"Manual entries must be one of: {', '.join(sorted(MANUAL_ASSET_TYPES))}.",
                field_name="asset_type",
            )
        parsed_reason = self._parse_reason(reason, reason_other)
        target = self._parse_visibility(visibility)

        self._reject_active_duplicate(url)

        classification = classify(self.clock(), policy, self.store.has_exemption_void(url))
        record = ArchiveRecord(
            id=str(uuid.uuid4()),
            original_asset_ref=url,
            file_name=title,
            asset_type=asset_type,
            status=target.status,
            archive_reason=parsed_reason,
            reason_other=reason_other.strip() if parsed_reason is ArchiveReason.OTHER else "",
            public_description=public_description,
            internal_notes=internal_notes,
            archive_uri=url,
            archive_classification_date=classification.classified_at,
            late_archive=classification.late_archive,
            prior_void_exists=classification.prior_void_exists,
            archived_by=actor,
        )
        self.store.insert_record(record)

        text = (
            f"Manual entry archived: {record.status_label}, "
            f"{_classification_label(record.late_archive)}."
        )
        if classification.prior_void_exists:
            text += " General Archive forced by a prior voided exemption for this URL."
        self._note(record.id, text, actor)

        logger.info(
            "Created manual archive entry",
            extra={
                "record_id": record.id,
                "actor": actor,
                "asset_type": asset_type,
                "late_archive": record.late_archive,
            },
        )
        return record

    def record_manual_modification(self, record_id: str, actor: str) -> ArchiveRecord:
        """Record that the content behind an archived manual entry changed.

        Legacy entries lose their exemption (ExemptionVoid); General entries
        are removed (ArchivedDeleted).

        Raises:
            TerminalStateError: Record is terminal
            InvalidTransitionError: Not an actively archived manual entry
        """
        actor = self._require_actor(actor)

        record = self.store.require_record(record_id)
        self._reject_terminal(record)
        if not record.is_manual_entry or not record.is_archived_active:
            raise self._invalid(
                record,
                "record_manual_modification",
                "Only active archived manual entries can be marked as modified.",
            )

        changes: dict[str, Any] = {"modified_after_archive": True}
        if record.is_legacy:
            changes["status"] = ArchiveStatus.EXEMPTION_VOID
            text = (
                "Exemption voided: the archived content was modified after archiving. "
                "This Legacy Archive no longer qualifies for the compliance exemption."
            )
        else:
            changes.update(
                {
                    "status": ArchiveStatus.ARCHIVED_DELETED,
                    "deleted_date": self.clock(),
                    "deleted_by": actor,
                }
            )
            text = "Removed from the archive: the content was modified after archiving."

        record = self.store.update_record(record.id, changes, expected_status=record.status)
        self._note(record.id, text, actor)

        logger.warning(
            "Manual archive entry modified after archiving",
            extra={"record_id": record.id, "actor": actor, "status": record.status.value},
        )
        return record

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def add_note(self, record_id: str, text: str, actor: str) -> ArchiveNote:
        """Append a user note. Allowed on every status, terminal included.

        Raises:
            RecordNotFoundError: Record does not exist
            ValidationError: Empty or over-long text
        """
        actor = self._require_actor(actor)
        record = self.store.require_record(record_id)
        note = self.store.append_note(record.id, text, actor)
        logger.info("Added archive note", extra={"record_id": record.id, "actor": actor})
        return note

    def list_notes(self, record_id: str) -> list[ArchiveNote]:
        """Notes for a record, oldest first."""
        return self.store.list_notes(record_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_record(self, record_id: str) -> ArchiveRecord:
        return self.store.require_record(record_id)

    def get_snapshot(self, record_id: str) -> ArchiveRecordSnapshot:
        """Read-only snapshot of a record with its notes."""
        record = self.store.require_record(record_id)
        return ArchiveRecordSnapshot.from_record(record, self.store.list_notes(record.id))

    def get_records_for_asset(self, asset_ref: str) -> list[ArchiveRecord]:
        """Full record history of an asset, oldest first."""
        return self.store.list_records_for_asset(asset_ref)

    def get_queued_records(self) -> list[ArchiveRecord]:
        return self.store.list_records(statuses=[ArchiveStatus.QUEUED])

    def get_blocked_records(self) -> list[ArchiveRecord]:
        """Queued records carrying a warning (missing content or in use)."""
        return self.store.list_records(statuses=[ArchiveStatus.QUEUED], with_warnings=True)

    def get_archived_records(self) -> list[ArchiveRecord]:
        return self.store.list_records(
            statuses=[ArchiveStatus.ARCHIVED_PUBLIC, ArchiveStatus.ARCHIVED_ADMIN]
        )

    def get_public_records(self) -> list[ArchiveRecord]:
        """Records shown in the public archive listing."""
        return self.store.list_records(statuses=[ArchiveStatus.ARCHIVED_PUBLIC])

    def get_archived_with_problems(self) -> list[ArchiveRecord]:
        return self.store.list_records(
            statuses=[ArchiveStatus.ARCHIVED_PUBLIC, ArchiveStatus.ARCHIVED_ADMIN],
            with_warnings=True,
        )

    def get_records_pending_checksum(self) -> list[ArchiveRecord]:
        return self.store.list_pending_checksums()

    def get_usage_count(self, record_id: str) -> int:
        record = self.store.require_record(record_id)
        return reference_count_for(self.directory, record.original_asset_ref)

    def list_management_records(self) -> list[ArchiveRecord]:
        """Reconcile, then list every record (call-on-read)."""
        self.reconciler.reconcile_all()
        return self.store.list_records()

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def calculate_checksum(self, asset_ref: str) -> str:
        return self.checksum_engine.calculate_checksum(asset_ref)

    def verify_integrity(self, record_id: str) -> bool:
        return self.checksum_engine.verify_integrity(self.store.require_record(record_id))

    def reconcile(self, record_id: str) -> ArchiveRecord | None:
        """Reconcile one record.

        Returns:
            The record after reconciliation, or None if it was removed
        """
        record = self.store.require_record(record_id)
        self.reconciler.reconcile_record(record)
        return self.store.get_record(record_id)

    def reconcile_all(self) -> ReconcileStats:
        return self.reconciler.reconcile_all()

    # ------------------------------------------------------------------
    # Policy and link routing
    # ------------------------------------------------------------------

    def is_link_routing_enabled(self) -> bool:
        return self._gate().is_link_routing_enabled()

    def get_visibility_raise_block(self, record_id: str) -> UsageBlock | None:
        """Usage block on raising this record to Public, if any."""
        record = self.store.require_record(record_id)
        count = reference_count_for(self.directory, record.original_asset_ref)
        return self._gate().is_visibility_raise_blocked(record, count)

    def get_re_archive_block(self, record_id: str) -> UsageBlock | None:
        """Usage block that would stop this asset being archived again, if any.

        Shown as a warning before Unarchive.
        """
        record = self.store.require_record(record_id)
        count = reference_count_for(self.directory, record.original_asset_ref)
        return self._gate().is_re_execute_blocked(record, count)

    def get_archive_detail_reference(self, asset_id_or_uri: str) -> str | None:
        """Archive record a link to this asset should be routed to.

        Args:
            asset_id_or_uri: Asset ref, content URI or manual entry URL

        Returns:
            Record id of the actively archived record, or None when link
            routing is off, the asset is an image/audio file, or it is not
            archived
        """
        if not self._gate().is_link_routing_enabled():
            return None

        info = self.directory.lookup(asset_id_or_uri)
        if info is not None and not info.is_linkable:
            return None

        record = self.store.find_archived_record(asset_id_or_uri)
        return record.id if record is not None else None

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def should_show_archived_label(self) -> bool:
        return self.policy_snapshot().show_archived_label

    def archived_label(self) -> str:
        return self.policy_snapshot().archived_label

    def compliance_deadline_formatted(self) -> str:
        return self.policy_snapshot().deadline_formatted

    @staticmethod
    def status_label(record: ArchiveRecord) -> str:
        return record.status_label

    @staticmethod
    def warning_labels(record: ArchiveRecord) -> list[str]:
        return record.warning_labels
