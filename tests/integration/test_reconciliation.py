"""
Integration tests for reconciliation.

Tests cover:
- Legacy integrity failure -> exemption_void
- General integrity failure -> archived_deleted by the system actor
- Missing content on archived and queued records
- Usage flag recomputation
- Idempotency (no writes, no notes on a second pass)
- Skipping manual entries and terminal records
- Per-record error isolation
- Periodic sweeps
"""

import asyncio

import pytest

from compliance.archive_engine.reconcile import ReconcileOutcome
from compliance.archive_engine.store import SYSTEM_ACTOR, ArchiveStatus
from tests.conftest import AFTER_DEADLINE, DAY


@pytest.fixture
def archived(service, add_asset):
    """Queue and execute a small document as public."""

    def _archived(ref="managed:1", **asset_kwargs):
        add_asset(ref, **asset_kwargs)
        record = service.queue(ref, "reference", actor="alice")
        return service.execute(record.id, "public", actor="alice")

    return _archived


class TestIntegrityConsequences:
    """Tests for transitions driven by integrity failures."""

    def test_legacy_modification_voids_exemption(self, service, archived, content):
        record = archived()
        content.put(record.archive_uri, b"%PDF-1.4 edited report")

        stats = service.reconcile_all()

        voided = service.get_record(record.id)
        assert voided.status is ArchiveStatus.EXEMPTION_VOID
        assert voided.integrity_mismatch is True
        assert voided.is_terminal
        assert stats.outcomes["voided"] == 1
        assert record.id not in {r.id for r in service.get_public_records()}

        note = service.list_notes(record.id)[-1]
        assert note.author == SYSTEM_ACTOR
        assert "Exemption voided" in note.text

    def test_void_of_in_use_archive_adds_access_note(self, service, archived, content, policy):
        policy.set(allow_while_referenced=True)
        record = archived(references=2)
        content.put(record.archive_uri, b"edited")

        service.reconcile(record.id)

        notes = [n.text for n in service.list_notes(record.id)]
        assert "Exemption voided" in notes[-2]
        assert "archived while in use" in notes[-1]

    def test_general_modification_deletes(self, service, archived, content, clock):
        clock.now = AFTER_DEADLINE
        record = archived()
        clock.advance(DAY)
        content.put(record.archive_uri, b"edited")

        service.reconcile_all()

        deleted = service.get_record(record.id)
        assert deleted.status is ArchiveStatus.ARCHIVED_DELETED
        assert deleted.integrity_mismatch is True
        assert deleted.deleted_by == SYSTEM_ACTOR
        assert deleted.deleted_date == clock.now
        assert "modified after archiving" in service.list_notes(record.id)[-1].text
        # Content is left in place
        assert content.exists(record.archive_uri)

    def test_unreadable_content_fails_closed(self, service, archived, content):
        record = archived()
        content.unreadable.add(record.archive_uri)

        service.reconcile(record.id)

        assert service.get_record(record.id).status is ArchiveStatus.EXEMPTION_VOID

    def test_record_without_checksum_is_not_voided(self, service, add_asset, content):
        uri = add_asset("managed:1", data=b"z" * 4096)
        record = service.queue("managed:1", "reference", actor="alice")
        record = service.execute(record.id, "public", actor="alice")
        assert record.file_checksum is None
        content.put(uri, b"z" * 4097)

        service.reconcile(record.id)

        assert service.get_record(record.id).status is ArchiveStatus.ARCHIVED_PUBLIC


class TestFlags:
    """Tests for advisory flag recomputation."""

    def test_missing_archived_content_sets_flag(self, service, archived, content):
        record = archived()
        content.delete(record.archive_uri)

        reconciled = service.reconcile(record.id)

        assert reconciled.status is ArchiveStatus.ARCHIVED_PUBLIC
        assert reconciled.file_missing is True
        assert reconciled.integrity_mismatch is False
        assert [r.id for r in service.get_archived_with_problems()] == [record.id]

    def test_restored_content_clears_flag(self, service, archived, content):
        record = archived()
        data = content.get(record.archive_uri)
        content.delete(record.archive_uri)
        service.reconcile(record.id)

        content.put(record.archive_uri, data)
        reconciled = service.reconcile(record.id)

        assert reconciled.file_missing is False

    def test_usage_recomputed(self, service, archived, directory):
        record = archived()

        directory.set_reference_count("managed:1", 3)
        assert service.reconcile(record.id).usage_detected is True

        directory.set_reference_count("managed:1", 0)
        assert service.reconcile(record.id).usage_detected is False

    def test_queued_usage_recomputed(self, service, add_asset, directory):
        add_asset("managed:1")
        record = service.queue("managed:1", "reference", actor="alice")

        directory.set_reference_count("managed:1", 1)

        assert service.reconcile(record.id).usage_detected is True

    def test_queued_record_removed_when_content_missing(self, service, add_asset, content):
        uri = add_asset("managed:1")
        record = service.queue("managed:1", "reference", actor="alice")
        content.delete(uri)

        stats = service.reconcile_all()

        assert service.reconcile_all().examined == 0
        assert stats.outcomes["removed"] == 1
        assert service.get_records_for_asset("managed:1") == []


class TestIdempotency:
    """A second pass over unchanged inputs writes nothing."""

    def test_second_pass_is_a_no_op(self, service, archived, store, clock, directory, content):
        record = archived("managed:1")
        archived("managed:2")
        directory.set_reference_count("managed:1", 2)
        content.delete(content.resolve("managed:2"))

        first = service.reconcile_all()
        updated_at = {r.id: r.updated_at for r in store.list_records()}
        notes = store.get_stats()["notes"]
        clock.advance(DAY)

        second = service.reconcile_all()

        assert first.outcomes["updated"] == 2
        assert second.changed == 0
        assert second.outcomes["unchanged"] == 2
        assert {r.id: r.updated_at for r in store.list_records()} == updated_at
        assert store.get_stats()["notes"] == notes
        assert service.get_record(record.id).usage_detected is True

    def test_clean_archive_is_unchanged(self, service, archived):
        record = archived()

        outcome = service.reconciler.reconcile_record(service.get_record(record.id))

        assert outcome is ReconcileOutcome.UNCHANGED


class TestSkips:
    """Manual entries and terminal records are left alone."""

    def test_manual_entries_skipped(self, service):
        record = service.create_manual_entry(
            "Old page", "https://example.org/old", "page", "reference", "public", actor="alice"
        )

        outcome = service.reconciler.reconcile_record(service.get_record(record.id))

        assert outcome is ReconcileOutcome.SKIPPED
        assert service.get_record(record.id).file_missing is False

    def test_terminal_records_not_swept(self, service, archived, content):
        record = archived()
        service.unarchive(record.id, actor="alice")
        content.delete(record.archive_uri)

        stats = service.reconcile_all()

        assert stats.examined == 0
        assert service.get_record(record.id).file_missing is False
        assert service.reconciler.reconcile_record(
            service.get_record(record.id)
        ) is ReconcileOutcome.SKIPPED


class TestErrorIsolation:
    """One failing record never stops a sweep."""

    def test_failing_record_is_counted_and_sweep_continues(
        self, service, archived, directory, monkeypatch
    ):
        archived("managed:1")
        healthy = archived("managed:2")
        directory.set_reference_count("managed:2", 1)

        lookup = directory.lookup

        def flaky_lookup(ref):
            if ref == "managed:1":
                raise RuntimeError("directory unavailable")
            return lookup(ref)

        monkeypatch.setattr(directory, "lookup", flaky_lookup)

        stats = service.reconcile_all()

        assert stats.errors == 1
        assert stats.examined == 2
        assert service.get_record(healthy.id).usage_detected is True
        assert service.reconciler.stats.errors == 1


class TestPeriodicReconciliation:
    """Tests for the scheduled sweep."""

    @pytest.mark.asyncio
    async def test_run_periodic_until_stopped(self, service, archived, content):
        record = archived()
        content.delete(record.archive_uri)
        reconciler = service.reconciler

        task = asyncio.create_task(reconciler.run_periodic(0.01))
        for _ in range(100):
            await asyncio.sleep(0.01)
            if reconciler.stats.examined:
                break

        assert reconciler.is_running
        await reconciler.stop()
        await asyncio.wait_for(task, timeout=5)

        assert not reconciler.is_running
        assert service.get_record(record.id).file_missing is True

    @pytest.mark.asyncio
    async def test_cancel_stops_loop(self, service):
        reconciler = service.reconciler

        task = asyncio.create_task(reconciler.run_periodic(60))
        await asyncio.sleep(0.05)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert not reconciler.is_running
