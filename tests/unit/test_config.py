"""
Unit tests for environment configuration.

Tests cover:
- Defaults
- Environment overrides
- Validation errors
"""

import pytest

from compliance.archive_engine.config import (
    DEFAULT_CHECKSUM_SIZE_LIMIT,
    DEFAULT_COMPLIANCE_DEADLINE,
    ArchivePolicyConfig,
    ChecksumConfig,
    EngineConfig,
)


class TestPolicyConfig:
    """Tests for ArchivePolicyConfig."""

    def test_defaults(self, monkeypatch):
        for name in (
            "ARCHIVE_ENABLED",
            "ARCHIVE_ALLOW_IN_USE",
            "ARCHIVE_COMPLIANCE_DEADLINE",
            "ARCHIVE_SHOW_LABEL",
            "ARCHIVE_LABEL_TEXT",
        ):
            monkeypatch.delenv(name, raising=False)

        policy = ArchivePolicyConfig.from_env()

        assert policy.feature_enabled is False
        assert policy.allow_while_referenced is False
        assert policy.compliance_deadline == DEFAULT_COMPLIANCE_DEADLINE
        assert policy.archived_label == "Archived"
        assert policy.deadline_formatted == "April 24, 2026"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("ARCHIVE_ENABLED", "true")
        monkeypatch.setenv("ARCHIVE_ALLOW_IN_USE", "TRUE")
        monkeypatch.setenv("ARCHIVE_COMPLIANCE_DEADLINE", "1767225600")
        monkeypatch.setenv("ARCHIVE_SHOW_LABEL", "true")
        monkeypatch.setenv("ARCHIVE_LABEL_TEXT", "Historical")

        policy = ArchivePolicyConfig.from_env()

        assert policy.feature_enabled is True
        assert policy.allow_while_referenced is True
        assert policy.effective_deadline == 1767225600
        assert policy.deadline_formatted == "January 1, 2026"
        assert policy.show_archived_label is True
        assert policy.archived_label == "Historical"


class TestChecksumConfig:
    """Tests for ChecksumConfig."""

    def test_default_size_limit(self, monkeypatch):
        monkeypatch.delenv("CHECKSUM_SIZE_LIMIT_BYTES", raising=False)

        assert ChecksumConfig.from_env().size_limit_bytes == DEFAULT_CHECKSUM_SIZE_LIMIT == 52428800

    def test_override(self, monkeypatch):
        monkeypatch.setenv("CHECKSUM_SIZE_LIMIT_BYTES", "1024")
        monkeypatch.setenv("CHECKSUM_BATCH_SIZE", "5")

        config = ChecksumConfig.from_env()

        assert config.size_limit_bytes == 1024
        assert config.batch_size == 5


class TestEngineConfig:
    """Tests for the aggregate configuration."""

    def test_from_env(self, monkeypatch, data_dir):
        monkeypatch.setenv("DATA_DIR", data_dir)
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = EngineConfig.from_env()

        assert config.storage.db_path.startswith(data_dir)
        assert config.observability.log_format == "text"

    def test_invalid_log_format(self, monkeypatch, data_dir):
        monkeypatch.setenv("DATA_DIR", data_dir)
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(ValueError, match="LOG_FORMAT"):
            EngineConfig.from_env()

    def test_retry_delay_grows_and_is_capped(self):
        config = ChecksumConfig(retry_backoff_seconds=60, max_retry_backoff_seconds=150)

        assert config.retry_delay(1) == 60
        assert config.retry_delay(2) == 120
        assert config.retry_delay(5) == 150

    def test_invalid_retry_backoff(self):
        config = EngineConfig(
            checksum=ChecksumConfig(retry_backoff_seconds=600, max_retry_backoff_seconds=60)
        )

        with pytest.raises(ValueError, match="CHECKSUM_MAX_RETRY_BACKOFF_SECONDS"):
            config.validate()

    def test_invalid_size_limit(self):
        config = EngineConfig(checksum=ChecksumConfig(size_limit_bytes=0))

        with pytest.raises(ValueError, match="CHECKSUM_SIZE_LIMIT_BYTES"):
            config.validate()

    def test_negative_deadline(self):
        config = EngineConfig(policy=ArchivePolicyConfig(compliance_deadline=-1))

        with pytest.raises(ValueError, match="ARCHIVE_COMPLIANCE_DEADLINE"):
            config.validate()
