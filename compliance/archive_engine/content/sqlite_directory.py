"""
SQLite-backed asset directory.

The discovery/scanning process (outside this package) writes one row per
asset into `asset_directory`; the engine only reads it. register() and
set_reference_count() exist for that process and for tests.

Invariants:
    - lookup() never raises for unknown refs; it returns None
    - The engine never writes to this table during lifecycle operations
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .base import AssetCategory, AssetInfo

logger = logging.getLogger(__name__)


class SqliteAssetDirectory:
    """AssetDirectory reading the `asset_directory` table.

    Example:
        >>> directory = SqliteAssetDirectory("/var/lib/archive-engine/archive.db")
        >>> directory.initialize()
        >>> info = directory.lookup("managed:42")
    """

    def __init__(self, db_path: str, busy_timeout_ms: int = 5000) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the asset_directory table if it doesn't exist."""
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS asset_directory (
                    ref TEXT PRIMARY KEY,
                    category TEXT NOT NULL,
                    current_uri TEXT,
                    reference_count INTEGER NOT NULL DEFAULT 0,
                    file_name TEXT NOT NULL DEFAULT '',
                    mime_type TEXT,
                    file_size_bytes INTEGER,
                    is_private INTEGER NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_asset_directory_uri
                    ON asset_directory(current_uri);
            """)

    def register(self, ref: str, info: AssetInfo) -> None:
        """Insert or replace an asset row."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO asset_directory
                (ref, category, current_uri, reference_count, file_name,
                 mime_type, file_size_bytes, is_private)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ref,
                    info.category.value,
                    info.current_uri,
                    info.reference_count,
                    info.file_name,
                    info.mime_type,
                    info.file_size_bytes,
                    1 if info.is_private else 0,
                ),
            )

    def set_reference_count(self, ref: str, reference_count: int) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE asset_directory SET reference_count = ? WHERE ref = ?",
                (reference_count, ref),
            )

    def lookup(self, ref: str) -> AssetInfo | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM asset_directory WHERE ref = ? OR current_uri = ? LIMIT 1",
                (ref, ref),
            ).fetchone()

        if not row:
            return None

        try:
            category = AssetCategory(row["category"])
        except ValueError:
            logger.warning(
                "Unknown asset category in directory",
                extra={"ref": ref, "category": row["category"]},
            )
            category = AssetCategory.OTHER

        return AssetInfo(
            category=category,
            current_uri=row["current_uri"],
            reference_count=row["reference_count"],
            file_name=row["file_name"],
            mime_type=row["mime_type"],
            file_size_bytes=row["file_size_bytes"],
            is_private=bool(row["is_private"]),
        )
