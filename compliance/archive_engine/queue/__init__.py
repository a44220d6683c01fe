"""
Deferred work queue for the archive engine.

This module provides a pluggable queue interface supporting:
- SQLite (durable, production)
- In-memory (for testing)

Invariants:
    - At-least-once delivery with claim/lease
    - Consumers must be idempotent

How to change safely:
    - New backends must implement the WorkQueue protocol
"""

from .base import CHECKSUM_QUEUE, LeaseLostError, WorkItem, WorkQueue, WorkQueueError
from .memory import InMemoryWorkQueue
from .sqlite import SqliteWorkQueue

__all__ = [
    # Protocol and types
    "WorkQueue",
    "WorkItem",
    "WorkQueueError",
    "LeaseLostError",
    "CHECKSUM_QUEUE",
    # Implementations
    "SqliteWorkQueue",
    "InMemoryWorkQueue",
]
