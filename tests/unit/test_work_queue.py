"""
Unit tests for the deferred work queue backends.

Tests cover:
- Idempotent enqueue per record
- Claim leases and visibility
- Lease expiry and re-claim
- Complete / release with stale leases
- Both in-memory and SQLite backends
"""

import os

import pytest

from compliance.archive_engine.queue import (
    CHECKSUM_QUEUE,
    InMemoryWorkQueue,
    LeaseLostError,
    SqliteWorkQueue,
    WorkQueue,
)


@pytest.fixture(params=["memory", "sqlite"])
def queue(request, data_dir, clock):
    """Work queue under test, one per backend."""
    if request.param == "memory":
        return InMemoryWorkQueue(clock=clock)
    queue = SqliteWorkQueue(os.path.join(data_dir, "queue.db"), wal_mode=False, clock=clock)
    queue.initialize()
    return queue


class TestEnqueue:
    """Tests for enqueueing work."""

    def test_implements_protocol(self, queue):
        assert isinstance(queue, WorkQueue)
        assert queue.name == CHECKSUM_QUEUE

    def test_enqueue_is_idempotent_per_record(self, queue):
        first = queue.enqueue("record-1")
        second = queue.enqueue("record-1")
        queue.enqueue("record-2")

        assert first.id == second.id
        assert [item.record_id for item in queue.pending()] == ["record-1", "record-2"]


class TestLeases:
    """Tests for claim, complete and release."""

    def test_claim_hides_item_until_lease_expires(self, queue, clock):
        queue.enqueue("record-1")

        claimed = queue.claim(limit=10, lease_seconds=60)
        assert len(claimed) == 1
        assert claimed[0].attempts == 1
        assert claimed[0].lease_token

        assert queue.claim(limit=10, lease_seconds=60) == []

        clock.advance(61)
        reclaimed = queue.claim(limit=10, lease_seconds=60)
        assert len(reclaimed) == 1
        assert reclaimed[0].attempts == 2
        assert reclaimed[0].lease_token != claimed[0].lease_token

    def test_claim_respects_limit_oldest_first(self, queue, clock):
        for i in range(3):
            queue.enqueue(f"record-{i}")
            clock.advance(1)

        claimed = queue.claim(limit=2, lease_seconds=60)

        assert [item.record_id for item in claimed] == ["record-0", "record-1"]

    def test_complete_removes_item(self, queue):
        queue.enqueue("record-1")
        [item] = queue.claim(limit=1, lease_seconds=60)

        queue.complete(item)

        assert queue.pending() == []

    def test_complete_with_stale_lease_raises(self, queue, clock):
        queue.enqueue("record-1")
        [stale] = queue.claim(limit=1, lease_seconds=60)
        clock.advance(61)
        [fresh] = queue.claim(limit=1, lease_seconds=60)

        with pytest.raises(LeaseLostError):
            queue.complete(stale)

        queue.complete(fresh)
        assert queue.pending() == []

    def test_release_makes_item_claimable_with_error(self, queue):
        queue.enqueue("record-1")
        [item] = queue.claim(limit=1, lease_seconds=60)

        queue.release(item, error="content unreadable")

        [pending] = queue.pending()
        assert pending.last_error == "content unreadable"
        assert pending.lease_token is None

        [again] = queue.claim(limit=1, lease_seconds=60)
        assert again.attempts == 2

    def test_release_with_delay_hides_item(self, queue, clock):
        queue.enqueue("record-1")
        [item] = queue.claim(limit=1, lease_seconds=60)

        queue.release(item, error="content unreadable", delay_seconds=120)

        [pending] = queue.pending()
        assert pending.lease_token is None
        assert pending.lease_expires_at == clock.now + 120
        assert queue.claim(limit=1, lease_seconds=60) == []

        clock.advance(120)
        [again] = queue.claim(limit=1, lease_seconds=60)
        assert again.attempts == 2

    def test_release_after_lease_lost_is_ignored(self, queue, clock):
        queue.enqueue("record-1")
        [stale] = queue.claim(limit=1, lease_seconds=60)
        clock.advance(61)
        [fresh] = queue.claim(limit=1, lease_seconds=60)

        queue.release(stale, error="too late")

        [pending] = queue.pending()
        assert pending.lease_token == fresh.lease_token
        assert pending.last_error is None
