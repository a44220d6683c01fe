"""
SQLite archive record store.

This module manages the SQLite database that stores:
- Archive records (one row per compliance decision)
- Archive notes (append-only audit trail)

All writes to an existing record go through update_record(), which is the
single write path enforcing the terminal-state and write-once rules.

Invariants:
    - All write operations are atomic (single transaction)
    - Terminal records (archived_deleted, exemption_void) are never updated,
      except the explicit exemption_void -> archived_deleted exit
    - file_checksum / archive_classification_date are write-once
    - Classification flags freeze together with archive_classification_date
    - A partial unique index allows at most one non-terminal record per
      original_asset_ref, closing the check-then-create race
    - Notes are never updated or deleted

How to change safely:
    - Schema migrations must be backward compatible
    - Keep the partial unique index in sync with ACTIVE_STATUSES
    - Use transactions for all write operations

Table schema:
    archive_records:
        - id TEXT PRIMARY KEY (UUID)
        - original_asset_ref TEXT
        - status TEXT
        - ... record fields (see ArchiveRecord)
        - INDEX on (original_asset_ref, status)
        - UNIQUE (original_asset_ref) WHERE status is non-terminal

    archive_notes:
        - id TEXT PRIMARY KEY (UUID)
        - archive_record_id TEXT
        - text TEXT
        - author TEXT
        - created_at INTEGER (epoch seconds)
        - INDEX on (archive_record_id, created_at)
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import fields
from pathlib import Path
from typing import Any

from ..errors import (
    ConflictError,
    ImmutabilityError,
    InvalidTransitionError,
    RecordNotFoundError,
    TerminalStateError,
    ValidationError,
)
from .models import (
    ACTIVE_STATUSES,
    CLASSIFICATION_FIELDS,
    MANUAL_ASSET_TYPES,
    NOTE_MAX_LENGTH,
    TERMINAL_EXITS,
    VOID_EVIDENCE_FLAGS,
    WARNING_FLAGS,
    WRITE_ONCE_FIELDS,
    ArchiveNote,
    ArchiveReason,
    ArchiveRecord,
    ArchiveStatus,
)

logger = logging.getLogger(__name__)

RECORD_COLUMNS = tuple(f.name for f in fields(ArchiveRecord))

BOOLEAN_COLUMNS = frozenset(
    {
        "is_private",
        "usage_detected",
        "file_missing",
        "integrity_mismatch",
        "modified_after_archive",
        "late_archive",
        "prior_void_exists",
        "archived_while_in_use",
    }
)

# Columns owned by the store itself.
_IMMUTABLE_COLUMNS = frozenset({"id", "original_asset_ref", "created_at", "updated_at"})

_ACTIVE_STATUS_SQL = ", ".join(f"'{s.value}'" for s in sorted(ACTIVE_STATUSES, key=lambda s: s.value))


def _now() -> int:
    return int(time.time())


def _to_db(name: str, value: Any) -> Any:
    if isinstance(value, (ArchiveStatus, ArchiveReason)):
        return value.value
    if name in BOOLEAN_COLUMNS:
        return 1 if value else 0
    return value


def _row_to_record(row: sqlite3.Row) -> ArchiveRecord:
    data = {name: row[name] for name in RECORD_COLUMNS}
    data["status"] = ArchiveStatus(data["status"])
    data["archive_reason"] = ArchiveReason(data["archive_reason"])
    for name in BOOLEAN_COLUMNS:
        data[name] = bool(data[name])
    return ArchiveRecord(**data)


def _row_to_note(row: sqlite3.Row) -> ArchiveNote:
    return ArchiveNote(
        id=row["id"],
        archive_record_id=row["archive_record_id"],
        text=row["text"],
        author=row["author"],
        created_at=row["created_at"],
    )


class RecordStore:
    """SQLite store for archive records and their notes.

    Thread safety:
        Each database connection is created per-operation.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = RecordStore("/var/lib/archive-engine/archive.db")
        >>> store.initialize()
        >>> record = store.get_record(record_id)
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the record store.

        Args:
            db_path: Path to the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            clock: Returns the current time in epoch seconds
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.clock = clock or _now

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection.

        Yields:
            SQLite connection
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS archive_records (
                id TEXT PRIMARY KEY,
                original_asset_ref TEXT NOT NULL,
                file_name TEXT NOT NULL,
                asset_type TEXT NOT NULL,
                status TEXT NOT NULL,
                archive_reason TEXT NOT NULL,
                reason_other TEXT NOT NULL DEFAULT '',
                public_description TEXT NOT NULL DEFAULT '',
                internal_notes TEXT NOT NULL DEFAULT '',
                mime_type TEXT,
                file_size_bytes INTEGER,
                is_private INTEGER NOT NULL DEFAULT 0,
                archive_uri TEXT,
                file_checksum TEXT,
                archive_classification_date INTEGER,
                usage_detected INTEGER NOT NULL DEFAULT 0,
                file_missing INTEGER NOT NULL DEFAULT 0,
                integrity_mismatch INTEGER NOT NULL DEFAULT 0,
                modified_after_archive INTEGER NOT NULL DEFAULT 0,
                late_archive INTEGER NOT NULL DEFAULT 0,
                prior_void_exists INTEGER NOT NULL DEFAULT 0,
                archived_while_in_use INTEGER NOT NULL DEFAULT 0,
                usage_count_at_archive INTEGER,
                archived_by TEXT,
                deleted_date INTEGER,
                deleted_by TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_records_ref_status
                ON archive_records(original_asset_ref, status);
            CREATE INDEX IF NOT EXISTS idx_records_status
                ON archive_records(status, created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_records_archive_uri
                ON archive_records(archive_uri);

            -- At most one non-terminal record per asset
            CREATE UNIQUE INDEX IF NOT EXISTS uq_records_active_ref
                ON archive_records(original_asset_ref)
                WHERE status IN ({_ACTIVE_STATUS_SQL});

            CREATE TABLE IF NOT EXISTS archive_notes (
                id TEXT PRIMARY KEY,
                archive_record_id TEXT NOT NULL,
                text TEXT NOT NULL,
                author TEXT NOT NULL,
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_notes_record
                ON archive_notes(archive_record_id, created_at);

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES ({self.SCHEMA_VERSION}, strftime('%s', 'now'));
        """)

    def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        with self._get_connection() as conn:
            self._create_schema(conn)
        logger.info("Initialized archive record store", extra={"db_path": str(self.db_path)})

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def insert_record(self, record: ArchiveRecord) -> ArchiveRecord:
        """Insert a brand-new record.

        Args:
            record: Record to insert; id and timestamps are filled if empty

        Returns:
            The stored record

        Raises:
            ConflictError: If an active record already exists for the asset
        """
        now = self.clock()
        if not record.id:
            record.id = str(uuid.uuid4())
        record.created_at = record.created_at or now
        record.updated_at = now

        columns = ", ".join(RECORD_COLUMNS)
        placeholders = ", ".join("?" for _ in RECORD_COLUMNS)
        values = [_to_db(name, getattr(record, name)) for name in RECORD_COLUMNS]

        with self._get_connection() as conn:
            try:
                conn.execute(
                    f"INSERT INTO archive_records ({columns}) VALUES ({placeholders})",
                    values,
                )
            except sqlite3.IntegrityError as e:
                existing = self._find_active(conn, record.original_asset_ref)
                raise ConflictError(
                    "This asset already has an active archive record. "
                    "You must unarchive it first before archiving again.",
                    asset_ref=record.original_asset_ref,
                    existing_record_id=existing.id if existing else None,
                    existing_status=existing.status.value if existing else None,
                ) from e

        logger.debug(
            "Inserted archive record",
            extra={"record_id": record.id, "status": record.status.value},
        )
        return record

    def get_record(self, record_id: str) -> ArchiveRecord | None:
        """Get a record by ID, or None if not found."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM archive_records WHERE id = ?", (record_id,)
            ).fetchone()
            return _row_to_record(row) if row else None

    def require_record(self, record_id: str) -> ArchiveRecord:
        """Get a record by ID.

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        record = self.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def update_record(
        self,
        record_id: str,
        changes: dict[str, Any],
        expected_status: ArchiveStatus | Iterable[ArchiveStatus] | None = None,
        allow_terminal_from: ArchiveStatus | None = None,
    ) -> ArchiveRecord:
        """Apply changes to a record through the guarded write path.

        Changes whose values equal the stored values are dropped; if nothing
        is left, no write happens.

        Args:
            record_id: Record identifier
            changes: Field name -> new value
            expected_status: Status (or statuses) the record must currently have
            allow_terminal_from: Terminal status the caller may leave, only
                towards its TERMINAL_EXITS target

        Returns:
            The record as stored after the update

        Raises:
            RecordNotFoundError: If the record does not exist
            TerminalStateError: If the record is terminal
            InvalidTransitionError: If the record is not in expected_status
            ImmutabilityError: If a write-once field would be overwritten
            ConflictError: If a status change would create a second active record
            ValueError: If an unknown or store-owned field is given
        """
        unknown = set(changes) - set(RECORD_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown archive record fields: {sorted(unknown)}")
        owned = set(changes) & _IMMUTABLE_COLUMNS
        if owned:
            raise ValueError(f"Fields cannot be changed: {sorted(owned)}")

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT * FROM archive_records WHERE id = ?", (record_id,)
                ).fetchone()
                if not row:
                    raise RecordNotFoundError(record_id)
                current = _row_to_record(row)

                self._guard_update(current, changes, expected_status, allow_terminal_from)

                diff = {
                    name: value
                    for name, value in changes.items()
                    if _to_db(name, value) != _to_db(name, getattr(current, name))
                }
                if not diff:
                    conn.execute("ROLLBACK")
                    return current

                diff["updated_at"] = self.clock()
                assignments = ", ".join(f"{name} = ?" for name in diff)
                values = [_to_db(name, value) for name, value in diff.items()]
                try:
                    conn.execute(
                        f"UPDATE archive_records SET {assignments} WHERE id = ?",
                        (*values, record_id),
                    )
                except sqlite3.IntegrityError as e:
                    raise ConflictError(
                        "Another active archive record exists for this asset.",
                        asset_ref=current.original_asset_ref,
                    ) from e

                conn.execute("COMMIT")

            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

        for name, value in diff.items():
            setattr(current, name, value)

        logger.debug(
            "Updated archive record",
            extra={"record_id": record_id, "fields": sorted(diff)},
        )
        return current

    def _guard_update(
        self,
        current: ArchiveRecord,
        changes: dict[str, Any],
        expected_status: ArchiveStatus | Iterable[ArchiveStatus] | None,
        allow_terminal_from: ArchiveStatus | None = None,
    ) -> None:
        """Reject updates that touch terminal records or frozen fields."""
        terminal_exit = (
            allow_terminal_from is not None
            and current.status is allow_terminal_from
            and current.status in TERMINAL_EXITS
            and changes.get("status") == TERMINAL_EXITS[current.status]
        )
        if current.is_terminal and not terminal_exit:
            raise TerminalStateError(
                f"Archive record is in terminal status '{current.status_label}' "
                "and cannot be changed.",
                record_id=current.id,
                status=current.status.value,
            )
        if terminal_exit:
            for name in VOID_EVIDENCE_FLAGS:
                if getattr(current, name) and name in changes and not changes[name]:
                    raise ImmutabilityError(
                        f"'{name}' records the voided exemption and cannot be cleared.",
                        record_id=current.id,
                        field_name=name,
                    )

        if expected_status is not None:
            allowed = (
                {expected_status}
                if isinstance(expected_status, ArchiveStatus)
                else set(expected_status)
            )
            if current.status not in allowed:
                raise InvalidTransitionError(
                    f"Archive record status changed to '{current.status_label}'.",
                    record_id=current.id,
                    status=current.status.value,
                    operation="update",
                )

        for name in WRITE_ONCE_FIELDS:
            if name in changes and getattr(current, name) is not None:
                raise ImmutabilityError(
                    f"'{name}' is immutable once set.",
                    record_id=current.id,
                    field_name=name,
                )

        if current.archive_classification_date is not None:
            for name in CLASSIFICATION_FIELDS:
                if name in changes:
                    raise ImmutabilityError(
                        f"'{name}' is frozen at archive classification.",
                        record_id=current.id,
                        field_name=name,
                    )

    def delete_queued_record(self, record_id: str) -> bool:
        """Hard-delete a record that is still queued.

        Notes written against the record are kept.

        Returns:
            True if deleted, False if not found or no longer queued
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM archive_records WHERE id = ? AND status = ?",
                (record_id, ArchiveStatus.QUEUED.value),
            )
            return cursor.rowcount > 0

    def _find_active(self, conn: sqlite3.Connection, asset_ref: str) -> ArchiveRecord | None:
        row = conn.execute(
            f"""
            SELECT * FROM archive_records
            WHERE original_asset_ref = ? AND status IN ({_ACTIVE_STATUS_SQL})
            LIMIT 1
            """,
            (asset_ref,),
        ).fetchone()
        return _row_to_record(row) if row else None

    def find_active_record(self, asset_ref: str) -> ArchiveRecord | None:
        """Get the non-terminal record for an asset, if any."""
        with self._get_connection() as conn:
            return self._find_active(conn, asset_ref)

    def has_exemption_void(self, asset_ref: str) -> bool:
        """Whether any record for the asset ever reached exemption_void.

        A voided record that was later withdrawn keeps its evidence flags
        and its Legacy classification, so it still counts.
        """
        evidence = " OR ".join(f"{flag} = 1" for flag in VOID_EVIDENCE_FLAGS)
        with self._get_connection() as conn:
            row = conn.execute(
                f"""
                SELECT 1 FROM archive_records
                WHERE original_asset_ref = ?
                AND (
                    status = ?
                    OR (status = ? AND late_archive = 0 AND ({evidence}))
                )
                LIMIT 1
                """,
                (
                    asset_ref,
                    ArchiveStatus.EXEMPTION_VOID.value,
                    ArchiveStatus.ARCHIVED_DELETED.value,
                ),
            ).fetchone()
            return row is not None

    def find_archived_record(self, ref_or_uri: str) -> ArchiveRecord | None:
        """Find the actively archived record matching an asset ref or content URI."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM archive_records
                WHERE (original_asset_ref = ? OR archive_uri = ?)
                AND status IN (?, ?)
                ORDER BY archive_classification_date DESC
                LIMIT 1
                """,
                (
                    ref_or_uri,
                    ref_or_uri,
                    ArchiveStatus.ARCHIVED_PUBLIC.value,
                    ArchiveStatus.ARCHIVED_ADMIN.value,
                ),
            ).fetchone()
            return _row_to_record(row) if row else None

    def list_records_for_asset(self, asset_ref: str) -> list[ArchiveRecord]:
        """All records ever created for an asset, oldest first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM archive_records
                WHERE original_asset_ref = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (asset_ref,),
            )
            return [_row_to_record(row) for row in cursor.fetchall()]

    def list_records(
        self,
        statuses: Iterable[ArchiveStatus] | None = None,
        with_warnings: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ArchiveRecord]:
        """List records, newest first.

        Args:
            statuses: Optional status filter
            with_warnings: Only records with at least one warning flag
            limit: Maximum records to return
            offset: Pagination offset

        Returns:
            List of records
        """
        query = "SELECT * FROM archive_records WHERE 1 = 1"
        params: list[Any] = []

        if statuses is not None:
            status_values = [s.value for s in statuses]
            if not status_values:
                return []
            query += f" AND status IN ({', '.join('?' for _ in status_values)})"
            params.extend(status_values)

        if with_warnings:
            query += " AND (" + " OR ".join(f"{flag} = 1" for flag in WARNING_FLAGS) + ")"

        query += " ORDER BY COALESCE(archive_classification_date, created_at) DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return [_row_to_record(row) for row in cursor.fetchall()]

    def list_pending_checksums(self) -> list[ArchiveRecord]:
        """Actively archived file records that still have no checksum."""
        manual = ", ".join("?" for _ in MANUAL_ASSET_TYPES)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT * FROM archive_records
                WHERE status IN (?, ?)
                AND file_checksum IS NULL
                AND asset_type NOT IN ({manual})
                ORDER BY archive_classification_date ASC
                """,
                (
                    ArchiveStatus.ARCHIVED_PUBLIC.value,
                    ArchiveStatus.ARCHIVED_ADMIN.value,
                    *sorted(MANUAL_ASSET_TYPES),
                ),
            )
            return [_row_to_record(row) for row in cursor.fetchall()]

    def get_stats(self) -> dict[str, int]:
        """Count records per status plus total notes."""
        with self._get_connection() as conn:
            stats = {status.value: 0 for status in ArchiveStatus}
            cursor = conn.execute(
                "SELECT status, COUNT(*) AS n FROM archive_records GROUP BY status"
            )
            for row in cursor.fetchall():
                stats[row["status"]] = row["n"]

            stats["notes"] = conn.execute("SELECT COUNT(*) FROM archive_notes").fetchone()[0]
            return stats

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def append_note(self, record_id: str, text: str, author: str) -> ArchiveNote:
        """Append an audit note.

        Args:
            record_id: Record the note is about
            text: Note text (1..NOTE_MAX_LENGTH characters)
            author: Actor writing the note

        Returns:
            Created ArchiveNote

        Raises:
            ValidationError: If the text is empty or too long
        """
        text = text.strip()
        if not text:
            raise ValidationError("Note text is required.", field_name="text")
        if len(text) > NOTE_MAX_LENGTH:
            raise ValidationError(
                f"Note cannot exceed {NOTE_MAX_LENGTH} characters.", field_name="text"
            )

        note = ArchiveNote(
            id=str(uuid.uuid4()),
            archive_record_id=record_id,
            text=text,
            author=author,
            created_at=self.clock(),
        )

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO archive_notes (id, archive_record_id, text, author, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (note.id, note.archive_record_id, note.text, note.author, note.created_at),
            )

        return note

    def list_notes(self, record_id: str) -> list[ArchiveNote]:
        """Notes for a record, oldest first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM archive_notes
                WHERE archive_record_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (record_id,),
            )
            return [_row_to_note(row) for row in cursor.fetchall()]


class RecordStoreAuditSink:
    """AuditSink writing notes into the record store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def append(self, record_id: str, text: str, author: str) -> None:
        self.store.append_note(record_id, text, author)
