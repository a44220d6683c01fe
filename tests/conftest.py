"""
Shared fixtures for archive engine tests.

Components are wired against a temporary SQLite file with in-memory
directory, content and queue doubles, and a controllable clock.
"""

import os
import tempfile
from dataclasses import replace

import pytest

from compliance.archive_engine.config import ArchivePolicyConfig, ChecksumConfig, DEFAULT_COMPLIANCE_DEADLINE
from compliance.archive_engine.content import AssetCategory, InMemoryAssetDirectory, InMemoryContentStore
from compliance.archive_engine.queue import InMemoryWorkQueue
from compliance.archive_engine.service import ArchiveService
from compliance.archive_engine.store import RecordStore

DAY = 86400
BEFORE_DEADLINE = DEFAULT_COMPLIANCE_DEADLINE - 30 * DAY
AFTER_DEADLINE = DEFAULT_COMPLIANCE_DEADLINE + 30 * DAY


class FakeClock:
    """Callable clock returning epoch seconds under test control."""

    def __init__(self, now: int = BEFORE_DEADLINE) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class MutablePolicy:
    """Zero-argument policy loader whose snapshot tests can swap."""

    def __init__(self) -> None:
        self.current = ArchivePolicyConfig()

    def __call__(self) -> ArchivePolicyConfig:
        return self.current

    def set(self, **changes) -> None:
        self.current = replace(self.current, **changes)


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(data_dir, clock):
    """Initialized record store."""
    store = RecordStore(os.path.join(data_dir, "archive.db"), wal_mode=False, clock=clock)
    store.initialize()
    return store


@pytest.fixture
def directory():
    return InMemoryAssetDirectory()


@pytest.fixture
def content(directory):
    return InMemoryContentStore(directory)


@pytest.fixture
def work_queue(clock):
    return InMemoryWorkQueue(clock=clock)


@pytest.fixture
def policy():
    return MutablePolicy()


@pytest.fixture
def checksum_config():
    return ChecksumConfig(size_limit_bytes=1024, lease_seconds=60, poll_interval_seconds=0.01, batch_size=10)


@pytest.fixture
def service(store, directory, content, work_queue, policy, checksum_config, clock):
    return ArchiveService(
        store,
        directory,
        content,
        work_queue,
        policy=policy,
        checksum_config=checksum_config,
        clock=clock,
    )


@pytest.fixture
def add_asset(directory, content):
    """Register an asset in the directory and put its bytes in the content store."""

    def _add(
        ref: str = "managed:1",
        data: bytes = b"%PDF-1.4 annual report",
        category: AssetCategory = AssetCategory.DOCUMENT,
        references: int = 0,
        mime_type: str = "application/pdf",
        uri: str | None = None,
    ) -> str:
        uri = uri or f"public://docs/{ref.replace(':', '_')}.pdf"
        directory.register(
            ref,
            category,
            uri,
            reference_count=references,
            mime_type=mime_type,
            file_size_bytes=len(data),
        )
        content.put(uri, data)
        return uri

    return _add
