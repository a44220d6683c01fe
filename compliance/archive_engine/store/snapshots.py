"""
Read-only reporting snapshots of archive records and notes.

Snapshots are detached copies used by reporting and the ops CLI. They
carry display labels alongside raw values so callers never need to
re-derive them.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .models import ArchiveNote, ArchiveRecord


class ArchiveNoteSnapshot(BaseModel):
    """Archive note snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    archive_record_id: str
    text: str
    author: str
    created_at: int

    @classmethod
    def from_note(cls, note: ArchiveNote) -> ArchiveNoteSnapshot:
        return cls(
            id=note.id,
            archive_record_id=note.archive_record_id,
            text=note.text,
            author=note.author,
            created_at=note.created_at,
        )


class ArchiveRecordSnapshot(BaseModel):
    """Archive record snapshot with display labels."""

    model_config = ConfigDict(frozen=True)

    id: str
    original_asset_ref: str
    file_name: str
    asset_type: str
    asset_type_label: str
    status: str
    status_label: str
    detailed_status_label: str
    archive_reason: str
    reason_label: str
    public_description: str = ""
    internal_notes: str = ""
    mime_type: str | None = None
    file_size_bytes: int | None = None
    is_private: bool = False
    archive_uri: str | None = None
    file_checksum: str | None = None
    archive_classification_date: int | None = None
    is_legacy: bool = Field(..., description="Classified before the compliance deadline")
    warnings: list[str] = Field(default_factory=list, description="Active warning labels")
    late_archive: bool = False
    prior_void_exists: bool = False
    archived_while_in_use: bool = False
    usage_count_at_archive: int | None = None
    archived_by: str | None = None
    deleted_date: int | None = None
    deleted_by: str | None = None
    created_at: int
    updated_at: int
    notes: list[ArchiveNoteSnapshot] = Field(default_factory=list)

    @classmethod
    def from_record(
        cls,
        record: ArchiveRecord,
        notes: list[ArchiveNote] | None = None,
    ) -> ArchiveRecordSnapshot:
        """Build a snapshot from a record and, optionally, its notes."""
        return cls(
            id=record.id,
            original_asset_ref=record.original_asset_ref,
            file_name=record.file_name,
            asset_type=record.asset_type,
            asset_type_label=record.asset_type_label,
            status=record.status.value,
            status_label=record.status_label,
            detailed_status_label=record.detailed_status_label,
            archive_reason=record.archive_reason.value,
            reason_label=record.reason_label,
            public_description=record.public_description,
            internal_notes=record.internal_notes,
            mime_type=record.mime_type,
            file_size_bytes=record.file_size_bytes,
            is_private=record.is_private,
            archive_uri=record.archive_uri,
            file_checksum=record.file_checksum,
            archive_classification_date=record.archive_classification_date,
            is_legacy=record.is_legacy,
            warnings=record.warning_labels,
            late_archive=record.late_archive,
            prior_void_exists=record.prior_void_exists,
            archived_while_in_use=record.archived_while_in_use,
            usage_count_at_archive=record.usage_count_at_archive,
            archived_by=record.archived_by,
            deleted_date=record.deleted_date,
            deleted_by=record.deleted_by,
            created_at=record.created_at,
            updated_at=record.updated_at,
            notes=[ArchiveNoteSnapshot.from_note(n) for n in notes or []],
        )
