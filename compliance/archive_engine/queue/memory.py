"""
In-memory work queue implementation for testing.

Invariants:
    - All data is lost on process exit
    - Same lease semantics as SqliteWorkQueue
    - Thread-safe for concurrent access

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with WorkQueue protocol
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .base import CHECKSUM_QUEUE, LeaseLostError, WorkItem


class InMemoryWorkQueue:
    """In-memory implementation of WorkQueue.

    Example:
        >>> queue = InMemoryWorkQueue()
        >>> queue.enqueue("record-1")
        >>> items = queue.claim(limit=10, lease_seconds=60)
    """

    def __init__(
        self,
        name: str = CHECKSUM_QUEUE,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.name = name
        self.clock = clock or (lambda: int(time.time()))
        self._items: Dict[str, WorkItem] = {}
        self._order: List[str] = []
        self._lock = threading.Lock()

    def enqueue(self, record_id: str) -> WorkItem:
        with self._lock:
            for item_id in self._order:
                if self._items[item_id].record_id == record_id:
                    return self._items[item_id]

            item = WorkItem(
                id=str(uuid.uuid4()),
                queue=self.name,
                record_id=record_id,
                enqueued_at=self.clock(),
            )
            self._items[item.id] = item
            self._order.append(item.id)
            return item

    def claim(self, limit: int, lease_seconds: int) -> List[WorkItem]:
        now = self.clock()
        claimed: List[WorkItem] = []
        with self._lock:
            for item_id in self._order:
                if len(claimed) >= limit:
                    break
                item = self._items[item_id]
                if item.lease_expires_at is not None and item.lease_expires_at > now:
                    continue
                leased = replace(
                    item,
                    attempts=item.attempts + 1,
                    lease_token=str(uuid.uuid4()),
                    lease_expires_at=now + lease_seconds,
                )
                self._items[item_id] = leased
                claimed.append(leased)
        return claimed

    def complete(self, item: WorkItem) -> None:
        with self._lock:
            current = self._items.get(item.id)
            if current is None or current.lease_token != item.lease_token:
                raise LeaseLostError(f"Lease lost for {item}")
            del self._items[item.id]
            self._order.remove(item.id)

    def release(
        self, item: WorkItem, error: Optional[str] = None, delay_seconds: int = 0
    ) -> None:
        visible_at = self.clock() + delay_seconds if delay_seconds > 0 else None
        with self._lock:
            current = self._items.get(item.id)
            if current is None or current.lease_token != item.lease_token:
                return
            self._items[item.id] = replace(
                current, lease_token=None, lease_expires_at=visible_at, last_error=error
            )

    def pending(self) -> List[WorkItem]:
        with self._lock:
            return [self._items[item_id] for item_id in self._order]
