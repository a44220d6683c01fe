"""
Base protocol and types for the deferred work queue.

Large files are not hashed synchronously at Execute. Instead a work item
carrying the record id is enqueued, and a consumer claims items, does the
work and completes them.

Invariants:
    - Delivery is at-least-once; consumers must be idempotent
    - A claimed item is invisible to other consumers until its lease expires
    - An expired lease makes the item claimable again
    - At most one pending item exists per (queue, record_id)

How to change safely:
    - Protocol changes require updating all implementations
    - Keep claim() ordering oldest-first so no item starves
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

CHECKSUM_QUEUE = "archive_checksum"


class WorkQueueError(Exception):
    """Base exception for work queue operations."""
    pass


class LeaseLostError(WorkQueueError):
    """The item's lease expired and it was claimed by another consumer."""
    pass


@dataclass(frozen=True)
class WorkItem:
    """A unit of deferred work.

    Attributes:
        id: Item identifier
        queue: Queue name
        record_id: Archive record the work is about
        attempts: Number of times the item has been claimed
        enqueued_at: Enqueue timestamp (epoch seconds)
        lease_token: Token identifying the current claim (None when unclaimed)
        lease_expires_at: When the current claim lapses (epoch seconds)
        last_error: Error recorded by the last failed attempt
    """
    id: str
    queue: str
    record_id: str
    attempts: int = 0
    enqueued_at: int = 0
    lease_token: Optional[str] = None
    lease_expires_at: Optional[int] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "queue": self.queue,
            "record_id": self.record_id,
            "attempts": self.attempts,
            "enqueued_at": self.enqueued_at,
            "lease_expires_at": self.lease_expires_at,
            "last_error": self.last_error,
        }

    def __str__(self) -> str:
        return f"WorkItem(queue={self.queue}, record_id={self.record_id}, attempts={self.attempts})"


@runtime_checkable
class WorkQueue(Protocol):
    """Protocol for deferred work queue backends.

    Example:
        >>> queue = SqliteWorkQueue("/var/lib/archive-engine/archive.db")
        >>> queue.enqueue(record.id)
        >>> for item in queue.claim(limit=10, lease_seconds=300):
        ...     process(item)
        ...     queue.complete(item)
    """

    name: str

    @abstractmethod
    def enqueue(self, record_id: str) -> WorkItem:
        """Enqueue work for a record.

        Enqueueing a record that already has a pending item returns the
        existing item.

        Args:
            record_id: Archive record identifier

        Returns:
            The pending WorkItem
        """
        ...

    @abstractmethod
    def claim(self, limit: int, lease_seconds: int) -> List[WorkItem]:
        """Claim up to `limit` visible items, oldest first.

        Args:
            limit: Maximum items to claim
            lease_seconds: How long the items stay invisible

        Returns:
            Claimed items (each with a fresh lease_token)
        """
        ...

    @abstractmethod
    def complete(self, item: WorkItem) -> None:
        """Remove a claimed item after successful processing.

        Raises:
            LeaseLostError: If the lease no longer belongs to this claim
        """
        ...

    @abstractmethod
    def release(
        self, item: WorkItem, error: Optional[str] = None, delay_seconds: int = 0
    ) -> None:
        """Return a claimed item to the queue for a later retry.

        Args:
            item: Claimed item
            error: Error description recorded on the item
            delay_seconds: Keep the item invisible for this long (0 = at once)
        """
        ...

    @abstractmethod
    def pending(self) -> List[WorkItem]:
        """All items in the queue, claimed or not, oldest first."""
        ...
