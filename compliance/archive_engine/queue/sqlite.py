"""
Durable SQLite-backed work queue.

Work items live in a `work_items` table, normally inside the same database
file as the archive records, so an enqueue survives process restarts.

Invariants:
    - claim() is a single BEGIN IMMEDIATE transaction; two consumers never
      receive the same item under the same lease
    - complete()/release() only succeed for the current lease_token
    - UNIQUE(queue, record_id) keeps at most one pending item per record

How to change safely:
    - Schema migrations must be backward compatible
    - Keep claim ordering (enqueued_at, rowid) stable
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .base import CHECKSUM_QUEUE, LeaseLostError, WorkItem

logger = logging.getLogger(__name__)


def _row_to_item(row: sqlite3.Row) -> WorkItem:
    return WorkItem(
        id=row["id"],
        queue=row["queue"],
        record_id=row["record_id"],
        attempts=row["attempts"],
        enqueued_at=row["enqueued_at"],
        lease_token=row["lease_token"],
        lease_expires_at=row["lease_expires_at"],
        last_error=row["last_error"],
    )


class SqliteWorkQueue:
    """WorkQueue stored in SQLite.

    Thread safety:
        Each operation opens its own connection. SQLite serializes
        writers; claims use BEGIN IMMEDIATE.

    Example:
        >>> queue = SqliteWorkQueue("/var/lib/archive-engine/archive.db")
        >>> queue.initialize()
        >>> queue.enqueue(record_id)
    """

    def __init__(
        self,
        db_path: str,
        name: str = CHECKSUM_QUEUE,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        """Initialize the queue.

        Args:
            db_path: Path to the SQLite database file
            name: Queue name (several queues can share one table)
            busy_timeout_ms: SQLite busy timeout
            wal_mode: Enable SQLite WAL mode
            clock: Returns the current time in epoch seconds
        """
        self.db_path = Path(db_path)
        self.name = name
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_mode = wal_mode
        self.clock = clock or (lambda: int(time.time()))

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
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the work_items table if it doesn't exist."""
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS work_items (
                    id TEXT PRIMARY KEY,
                    queue TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    enqueued_at INTEGER NOT NULL,
                    lease_token TEXT,
                    lease_expires_at INTEGER,
                    last_error TEXT,
                    UNIQUE (queue, record_id)
                );

                CREATE INDEX IF NOT EXISTS idx_work_items_visible
                    ON work_items(queue, lease_expires_at, enqueued_at);
            """)

    def enqueue(self, record_id: str) -> WorkItem:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO work_items (id, queue, record_id, enqueued_at)
                VALUES (?, ?, ?, ?)
                """,
                (str(uuid.uuid4()), self.name, record_id, self.clock()),
            )
            row = conn.execute(
                "SELECT * FROM work_items WHERE queue = ? AND record_id = ?",
                (self.name, record_id),
            ).fetchone()

        item = _row_to_item(row)
        logger.debug("Enqueued work item", extra={"queue": self.name, "record_id": record_id})
        return item

    def claim(self, limit: int, lease_seconds: int) -> List[WorkItem]:
        now = self.clock()
        claimed: List[WorkItem] = []

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                rows = conn.execute(
                    """
                    SELECT * FROM work_items
                    WHERE queue = ?
                    AND (lease_expires_at IS NULL OR lease_expires_at <= ?)
                    ORDER BY enqueued_at ASC, rowid ASC
                    LIMIT ?
                    """,
                    (self.name, now, limit),
                ).fetchall()

                for row in rows:
                    token = str(uuid.uuid4())
                    conn.execute(
                        """
                        UPDATE work_items
                        SET lease_token = ?, lease_expires_at = ?, attempts = attempts + 1
                        WHERE id = ?
                        """,
                        (token, now + lease_seconds, row["id"]),
                    )
                    claimed.append(
                        WorkItem(
                            id=row["id"],
                            queue=row["queue"],
                            record_id=row["record_id"],
                            attempts=row["attempts"] + 1,
                            enqueued_at=row["enqueued_at"],
                            lease_token=token,
                            lease_expires_at=now + lease_seconds,
                            last_error=row["last_error"],
                        )
                    )

                conn.execute("COMMIT")

            except Exception:
                conn.execute("ROLLBACK")
                raise

        return claimed

    def complete(self, item: WorkItem) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM work_items WHERE id = ? AND lease_token = ?",
                (item.id, item.lease_token),
            )
            if cursor.rowcount == 0:
                raise LeaseLostError(f"Lease lost for {item}")

    def release(
        self, item: WorkItem, error: Optional[str] = None, delay_seconds: int = 0
    ) -> None:
        visible_at = self.clock() + delay_seconds if delay_seconds > 0 else None
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE work_items
                SET lease_token = NULL, lease_expires_at = ?, last_error = ?
                WHERE id = ? AND lease_token = ?
                """,
                (visible_at, error, item.id, item.lease_token),
            )
            if cursor.rowcount == 0:
                logger.warning("Released work item after its lease was lost", extra={"item_id": item.id})

    def pending(self) -> List[WorkItem]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM work_items
                WHERE queue = ?
                ORDER BY enqueued_at ASC, rowid ASC
                """,
                (self.name,),
            ).fetchall()
            return [_row_to_item(row) for row in rows]
