"""
Store module for the archive engine - records, notes and read-only snapshots.

This module handles:
- SQLite archive record store (records + append-only notes)
- Record and note models with status / warning labels
- Pydantic snapshots for reporting

Invariants:
    - All record writes go through RecordStore.update_record()
    - At most one non-terminal record per original_asset_ref
    - Notes are never updated or deleted

How to change safely:
    - Test schema migrations thoroughly before deployment
    - Keep WARNING_FLAGS / CLASSIFICATION_FIELDS in sync with the schema
"""

from .models import (
    ACTIVE_STATUSES,
    NOTE_MAX_LENGTH,
    SYSTEM_ACTOR,
    TERMINAL_STATUSES,
    WARNING_FLAGS,
    ArchiveNote,
    ArchiveReason,
    ArchiveRecord,
    ArchiveStatus,
    Visibility,
    managed_ref,
    parse_ref,
)
from .record_store import RecordStore, RecordStoreAuditSink
from .snapshots import ArchiveNoteSnapshot, ArchiveRecordSnapshot

__all__ = [
    # Models
    "ArchiveRecord",
    "ArchiveNote",
    "ArchiveStatus",
    "ArchiveReason",
    "Visibility",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "WARNING_FLAGS",
    "NOTE_MAX_LENGTH",
    "SYSTEM_ACTOR",
    "managed_ref",
    "parse_ref",
    # Store
    "RecordStore",
    "RecordStoreAuditSink",
    # Snapshots
    "ArchiveRecordSnapshot",
    "ArchiveNoteSnapshot",
]
