"""
Integration tests for the operations CLI and engine wiring.

Tests cover:
- Engine construction from environment configuration
- reconcile / process-checksums / pending-checksums / show commands
- Exit codes for configuration and engine errors
- Graceful shutdown of the worker loop
"""

import asyncio
import hashlib
import json
import logging
import os

import pytest

from compliance.archive_engine.config import EngineConfig
from compliance.archive_engine.content import AssetCategory, AssetInfo
from compliance.archive_engine.main import Engine, main
from compliance.archive_engine.store import ArchiveStatus

PDF = b"%PDF-1.4 meeting minutes 2017"


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def env(monkeypatch, data_dir):
    """Point the engine at a temporary data directory."""
    public_dir = os.path.join(data_dir, "public")
    os.makedirs(os.path.join(public_dir, "minutes"))
    monkeypatch.setenv("DATA_DIR", os.path.join(data_dir, "db"))
    monkeypatch.setenv("CONTENT_PUBLIC_DIR", public_dir)
    monkeypatch.setenv("CONTENT_PRIVATE_DIR", os.path.join(data_dir, "private"))
    monkeypatch.setenv("SQLITE_WAL_MODE", "false")
    monkeypatch.setenv("LOG_FORMAT", "text")
    monkeypatch.setenv("CHECKSUM_SIZE_LIMIT_BYTES", "16")
    return public_dir


@pytest.fixture
def engine(env):
    engine = Engine(EngineConfig.from_env())
    engine.initialize()
    return engine


@pytest.fixture
def archived_record(engine, env):
    """A public archive whose checksum is still pending (file above 16 bytes)."""
    with open(os.path.join(env, "minutes", "2017.pdf"), "wb") as f:
        f.write(PDF)
    engine.directory.register(
        "managed:17",
        AssetInfo(
            category=AssetCategory.DOCUMENT,
            current_uri="public://minutes/2017.pdf",
            file_name="2017.pdf",
            mime_type="application/pdf",
            file_size_bytes=len(PDF),
        ),
    )
    record = engine.service.queue("managed:17", "recordkeeping", actor="alice")
    return engine.service.execute(record.id, "public", actor="alice")


class TestEngine:
    """Tests for engine wiring."""

    def test_execute_defers_checksum(self, engine, archived_record):
        assert archived_record.status is ArchiveStatus.ARCHIVED_PUBLIC
        assert archived_record.file_checksum is None
        assert len(engine.work_queue.pending()) == 1

    def test_process_checksums(self, engine, archived_record):
        assert engine.process_checksums() == 1

        stored = engine.store.get_record(archived_record.id)
        assert stored.file_checksum == hashlib.sha256(PDF).hexdigest()

    def test_process_checksums_bounded_on_failure(self, engine, archived_record, env):
        os.remove(os.path.join(env, "minutes", "2017.pdf"))

        assert engine.process_checksums() == 1
        assert engine.worker.stats["error_count"] == 1
        assert len(engine.work_queue.pending()) == 1

    @pytest.mark.asyncio
    async def test_run_until_shutdown(self, engine):
        task = asyncio.create_task(engine.run(reconcile_interval=60))
        await asyncio.sleep(0.05)

        engine.request_shutdown()
        await asyncio.wait_for(task, timeout=5)

        assert engine.worker.stats["running"] is False
        assert not engine.service.reconciler.is_running


class TestCommands:
    """Tests for CLI commands."""

    def test_reconcile(self, archived_record, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["reconcile"])

        assert exc_info.value.code == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["examined"] == 1
        assert stats["errors"] == 0

    def test_pending_checksums(self, archived_record, capsys):
        main(["pending-checksums"])
        out = capsys.readouterr().out
        assert "1 record(s) pending checksum" in out
        assert archived_record.id in out

        main(["pending-checksums", "--format", "json"])
        [entry] = json.loads(capsys.readouterr().out)
        assert entry["id"] == archived_record.id
        assert entry["status"] == "archived_public"

    def test_process_checksums_command(self, archived_record, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["process-checksums"])

        assert exc_info.value.code == 0
        assert "1 stored" in capsys.readouterr().out

        main(["pending-checksums"])
        assert "No records pending checksum" in capsys.readouterr().out

    def test_show(self, archived_record, capsys):
        main(["show", archived_record.id])

        snapshot = json.loads(capsys.readouterr().out)
        assert snapshot["id"] == archived_record.id
        assert snapshot["status_label"] == "Archived (Public)"
        assert snapshot["reason_label"] == "Recordkeeping"
        assert len(snapshot["notes"]) == 1

    def test_show_unknown_record(self, env, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["show", "missing"])

        assert exc_info.value.code == 2
        assert "NOT_FOUND: Archive record not found: missing" in capsys.readouterr().err

    def test_configuration_error(self, env, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(SystemExit) as exc_info:
            main(["reconcile"])

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().err
