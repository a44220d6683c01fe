"""
Archive record and note models.

An ArchiveRecord is the aggregate for one compliance decision about one
asset. Records are never reused: every Queue creates a new record, and
once a record leaves the queue it stays as permanent audit history.

Invariants:
    - ARCHIVED_DELETED and EXEMPTION_VOID are terminal; the single exit is
      EXEMPTION_VOID -> ARCHIVED_DELETED (Unarchive / DeleteFile)
    - At most one non-terminal record exists per original_asset_ref
    - file_checksum and archive_classification_date are write-once
    - late_archive / prior_void_exists / archived_while_in_use /
      usage_count_at_archive are frozen together with the classification date
    - Notes are append-only

How to change safely:
    - New advisory flags must be added to WARNING_FLAGS so reconciliation
      and unarchive clear them consistently
    - New write-once fields must be added to WRITE_ONCE_FIELDS or
      CLASSIFICATION_FIELDS so the store guards them
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

NOTE_MAX_LENGTH = 500

MANAGED_REF_PREFIX = "managed:"

# Actor recorded for transitions the engine makes on its own.
SYSTEM_ACTOR = "system"


class ArchiveStatus(str, Enum):
    """Lifecycle states of an archive record."""

    QUEUED = "queued"
    ARCHIVED_PUBLIC = "archived_public"
    ARCHIVED_ADMIN = "archived_admin"
    ARCHIVED_DELETED = "archived_deleted"
    EXEMPTION_VOID = "exemption_void"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_archived_active(self) -> bool:
        return self in (ArchiveStatus.ARCHIVED_PUBLIC, ArchiveStatus.ARCHIVED_ADMIN)

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


TERMINAL_STATUSES = frozenset({ArchiveStatus.ARCHIVED_DELETED, ArchiveStatus.EXEMPTION_VOID})

ACTIVE_STATUSES = frozenset(
    {ArchiveStatus.QUEUED, ArchiveStatus.ARCHIVED_PUBLIC, ArchiveStatus.ARCHIVED_ADMIN}
)

STATUS_LABELS = {
    ArchiveStatus.QUEUED: "Queued",
    ArchiveStatus.ARCHIVED_PUBLIC: "Archived (Public)",
    ArchiveStatus.ARCHIVED_ADMIN: "Archived (Admin-only)",
    ArchiveStatus.ARCHIVED_DELETED: "Archived (Deleted)",
    ArchiveStatus.EXEMPTION_VOID: "Exemption Void",
}


class ArchiveReason(str, Enum):
    """Why an asset was archived."""

    REFERENCE = "reference"
    RESEARCH = "research"
    RECORDKEEPING = "recordkeeping"
    OTHER = "other"


class Visibility(str, Enum):
    """Visibility chosen at Execute."""

    PUBLIC = "public"
    ADMIN = "admin"

    @property
    def status(self) -> ArchiveStatus:
        if self is Visibility.PUBLIC:
            return ArchiveStatus.ARCHIVED_PUBLIC
        return ArchiveStatus.ARCHIVED_ADMIN


# Asset types registered by hand rather than discovered as files.
MANUAL_ASSET_TYPES = frozenset({"page", "external"})

ASSET_TYPE_LABELS = {
    "pdf": "PDF",
    "word": "Word Document",
    "excel": "Excel Spreadsheet",
    "powerpoint": "PowerPoint",
    "video": "Video",
    "page": "Web Page",
    "external": "External Resource",
}

# Advisory flags describing the asset; cleared and recomputed by reconciliation.
WARNING_FLAGS = (
    "usage_detected",
    "file_missing",
    "integrity_mismatch",
    "modified_after_archive",
)

WARNING_LABELS = {
    "usage_detected": "Usage Detected",
    "file_missing": "File Missing",
    "integrity_mismatch": "Integrity Violation",
    "modified_after_archive": "Modified",
}

WRITE_ONCE_FIELDS = ("file_checksum", "archive_classification_date")

# Snapshot taken in the same write as archive_classification_date.
CLASSIFICATION_FIELDS = (
    "late_archive",
    "prior_void_exists",
    "archived_while_in_use",
    "usage_count_at_archive",
)

# The only transition out of a terminal status: withdrawing a voided exemption.
TERMINAL_EXITS = {ArchiveStatus.EXEMPTION_VOID: ArchiveStatus.ARCHIVED_DELETED}

# Kept when a voided record is withdrawn; together with late_archive = 0
# they record that the asset once lost its exemption.
VOID_EVIDENCE_FLAGS = ("integrity_mismatch", "modified_after_archive")


def managed_ref(content_id: str | int) -> str:
    """Build an asset ref for managed content."""
    return f"{MANAGED_REF_PREFIX}{content_id}"


def parse_ref(ref: str) -> tuple[str | None, str | None]:
    """Split an asset ref into (managed content id, raw path/URL).

    Exactly one side is set.
    """
    if ref.startswith(MANAGED_REF_PREFIX):
        return ref[len(MANAGED_REF_PREFIX):], None
    return None, ref


@dataclass
class ArchiveRecord:
    """One compliance decision about one asset.

    Attributes:
        id: Record identifier (UUID)
        original_asset_ref: Managed-content ref ("managed:<id>") or raw path/URL
        file_name: Display name (file name or manual entry title)
        asset_type: pdf/word/excel/powerpoint/video or page/external
        status: Lifecycle status
        archive_reason: Reason enum
        reason_other: Free text reason when archive_reason is OTHER
        public_description: Shown in the public archive registry
        internal_notes: Admin-only notes captured at Queue
        mime_type: MIME type snapshot
        file_size_bytes: Size snapshot used for the checksum deferral decision
        is_private: Storage visibility snapshot
        archive_uri: Content location resolved at Execute
        file_checksum: SHA-256 hex digest (write-once)
        archive_classification_date: Epoch seconds of Queued -> Archived (write-once)
        usage_detected: Asset currently referenced
        file_missing: Content could not be resolved
        integrity_mismatch: Content hash no longer matches file_checksum
        modified_after_archive: Manual entry content changed after archiving
        late_archive: Classified after the compliance deadline (General Archive)
        prior_void_exists: Forced General because an earlier record was voided
        archived_while_in_use: Archived while referenced (policy allowed it)
        usage_count_at_archive: Reference count at Execute
        archived_by: Last actor making a compliance decision
        deleted_date: When the record was withdrawn / content deleted
        deleted_by: Actor that withdrew the record
        created_at: Creation timestamp (epoch seconds)
        updated_at: Last update timestamp (epoch seconds)
    """

    id: str
    original_asset_ref: str
    file_name: str
    asset_type: str
    status: ArchiveStatus
    archive_reason: ArchiveReason
    reason_other: str = ""
    public_description: str = ""
    internal_notes: str = ""
    mime_type: str | None = None
    file_size_bytes: int | None = None
    is_private: bool = False
    archive_uri: str | None = None
    file_checksum: str | None = None
    archive_classification_date: int | None = None
    usage_detected: bool = False
    file_missing: bool = False
    integrity_mismatch: bool = False
    modified_after_archive: bool = False
    late_archive: bool = False
    prior_void_exists: bool = False
    archived_while_in_use: bool = False
    usage_count_at_archive: int | None = None
    archived_by: str | None = None
    deleted_date: int | None = None
    deleted_by: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_queued(self) -> bool:
        return self.status is ArchiveStatus.QUEUED

    @property
    def is_archived_active(self) -> bool:
        return self.status.is_archived_active

    @property
    def is_exemption_void(self) -> bool:
        return self.status is ArchiveStatus.EXEMPTION_VOID

    @property
    def can_withdraw(self) -> bool:
        """Unarchive / DeleteFile accept active archives and voided exemptions."""
        return self.is_archived_active or self.is_exemption_void

    @property
    def is_manual_entry(self) -> bool:
        return self.asset_type in MANUAL_ASSET_TYPES

    @property
    def is_file_archive(self) -> bool:
        return not self.is_manual_entry

    @property
    def is_legacy(self) -> bool:
        """Legacy archives were classified before the compliance deadline."""
        return not self.late_archive

    @property
    def has_warnings(self) -> bool:
        return any(getattr(self, flag) for flag in WARNING_FLAGS)

    @property
    def warning_labels(self) -> list[str]:
        return [WARNING_LABELS[flag] for flag in WARNING_FLAGS if getattr(self, flag)]

    @property
    def status_label(self) -> str:
        return self.status.label

    @property
    def detailed_status_label(self) -> str:
        warnings = self.warning_labels
        if warnings:
            return f"{self.status_label} ({', '.join(warnings)})"
        return self.status_label

    @property
    def asset_type_label(self) -> str:
        return ASSET_TYPE_LABELS.get(self.asset_type, self.asset_type)

    @property
    def reason_label(self) -> str:
        if self.archive_reason is ArchiveReason.OTHER and self.reason_other:
            return self.reason_other
        return self.archive_reason.value.capitalize()

    def warning_flags(self) -> dict[str, bool]:
        return {flag: bool(getattr(self, flag)) for flag in WARNING_FLAGS}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary (enums as values)."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["status"] = self.status.value
        data["archive_reason"] = self.archive_reason.value
        return data


@dataclass
class ArchiveNote:
    """An append-only audit note attached to an archive record.

    Attributes:
        id: Note identifier (UUID)
        archive_record_id: Back-reference to the record (not ownership)
        text: Note text (at most NOTE_MAX_LENGTH characters)
        author: Actor that wrote the note
        created_at: Creation timestamp (epoch seconds)
    """

    id: str
    archive_record_id: str
    text: str
    author: str
    created_at: int

