"""
Unit tests for archive record models and snapshots.

Tests cover:
- Status properties and labels
- Warning labels
- Asset ref helpers
- Pydantic snapshots
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from compliance.archive_engine.store import (
    ArchiveNote,
    ArchiveReason,
    ArchiveRecord,
    ArchiveRecordSnapshot,
    ArchiveStatus,
    Visibility,
    managed_ref,
    parse_ref,
)


def make_record(**kwargs):
    defaults = dict(
        id="record-1",
        original_asset_ref="managed:1",
        file_name="report.pdf",
        asset_type="pdf",
        status=ArchiveStatus.ARCHIVED_PUBLIC,
        archive_reason=ArchiveReason.REFERENCE,
    )
    defaults.update(kwargs)
    return ArchiveRecord(**defaults)


class TestStatus:
    """Tests for ArchiveStatus helpers."""

    def test_terminal_statuses(self):
        assert ArchiveStatus.ARCHIVED_DELETED.is_terminal
        assert ArchiveStatus.EXEMPTION_VOID.is_terminal
        assert not ArchiveStatus.QUEUED.is_terminal
        assert not ArchiveStatus.ARCHIVED_ADMIN.is_terminal

    def test_labels(self):
        assert ArchiveStatus.ARCHIVED_PUBLIC.label == "Archived (Public)"
        assert ArchiveStatus.EXEMPTION_VOID.label == "Exemption Void"

    def test_visibility_maps_to_status(self):
        assert Visibility.PUBLIC.status is ArchiveStatus.ARCHIVED_PUBLIC
        assert Visibility.ADMIN.status is ArchiveStatus.ARCHIVED_ADMIN


class TestRecord:
    """Tests for ArchiveRecord properties."""

    def test_manual_entry_detection(self):
        assert make_record(asset_type="page").is_manual_entry
        assert make_record(asset_type="external").is_manual_entry
        assert make_record(asset_type="video").is_file_archive

    def test_warning_labels(self):
        record = make_record(usage_detected=True, integrity_mismatch=True)

        assert record.has_warnings
        assert record.warning_labels == ["Usage Detected", "Integrity Violation"]
        assert record.detailed_status_label == (
            "Archived (Public) (Usage Detected, Integrity Violation)"
        )

    def test_no_warnings(self):
        record = make_record()

        assert not record.has_warnings
        assert record.detailed_status_label == "Archived (Public)"

    def test_reason_label(self):
        assert make_record().reason_label == "Reference"
        assert make_record(
            archive_reason=ArchiveReason.OTHER, reason_other="Board minutes"
        ).reason_label == "Board minutes"

    def test_to_dict_uses_enum_values(self):
        data = make_record().to_dict()

        assert data["status"] == "archived_public"
        assert data["archive_reason"] == "reference"


class TestRefs:
    """Tests for asset ref helpers."""

    def test_managed_ref_round_trip(self):
        assert managed_ref(42) == "managed:42"
        assert parse_ref("managed:42") == ("42", None)

    def test_raw_ref(self):
        assert parse_ref("/sites/default/files/a.pdf") == (None, "/sites/default/files/a.pdf")


class TestSnapshots:
    """Tests for pydantic reporting snapshots."""

    def test_snapshot_carries_labels_and_notes(self):
        record = make_record(file_missing=True, late_archive=True)
        note = ArchiveNote(
            id="note-1",
            archive_record_id="record-1",
            text="File missing",
            author="system",
            created_at=10,
        )

        snapshot = ArchiveRecordSnapshot.from_record(record, [note])

        assert snapshot.status == "archived_public"
        assert snapshot.is_legacy is False
        assert snapshot.warnings == ["File Missing"]
        assert snapshot.notes[0].text == "File missing"
        assert '"asset_type_label":"PDF"' in snapshot.model_dump_json()

    def test_snapshot_is_frozen(self):
        snapshot = ArchiveRecordSnapshot.from_record(make_record())

        with pytest.raises(PydanticValidationError):
            snapshot.status = "queued"
