"""
Configuration management for the archive engine.

All configuration is done via environment variables. This module provides
typed, immutable configuration sections with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Configuration objects are frozen; a snapshot is taken once per
      operation and never re-read halfway through it
    - The compliance deadline defaults to 2026-04-24 00:00:00 UTC

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never change the default deadline: past classifications do not
      depend on it, but new ones would silently shift
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# 2026-04-24 00:00:00 UTC
DEFAULT_COMPLIANCE_DEADLINE = 1776988800

DEFAULT_ARCHIVED_LABEL = "Archived"

# 50MB
DEFAULT_CHECKSUM_SIZE_LIMIT = 52428800


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class ArchivePolicyConfig:
    """Archive policy switches.

    Attributes:
        feature_enabled: Whether the archive feature (and link routing) is on
        allow_while_referenced: Allow archiving assets that are still referenced
        compliance_deadline: Epoch seconds separating Legacy from General archives
        show_archived_label: Whether rendered links get an "Archived" label
        archived_label_text: Custom label text (empty means the default)
    """

    feature_enabled: bool = False
    allow_while_referenced: bool = False
    compliance_deadline: int | None = DEFAULT_COMPLIANCE_DEADLINE
    show_archived_label: bool = False
    archived_label_text: str = ""

    @property
    def effective_deadline(self) -> int:
        """Configured deadline, or the fixed default when unset."""
        return self.compliance_deadline or DEFAULT_COMPLIANCE_DEADLINE

    @property
    def archived_label(self) -> str:
        """Label text with the default applied."""
        return self.archived_label_text or DEFAULT_ARCHIVED_LABEL

    @property
    def deadline_formatted(self) -> str:
        """Deadline formatted like "April 24, 2026" (UTC)."""
        deadline = datetime.fromtimestamp(self.effective_deadline, tz=timezone.utc)
        return f"{deadline:%B} {deadline.day}, {deadline.year}"

    @classmethod
    def from_env(cls) -> ArchivePolicyConfig:
        """Load configuration from environment variables."""
        deadline = os.getenv("ARCHIVE_COMPLIANCE_DEADLINE")
        return cls(
            feature_enabled=_env_bool("ARCHIVE_ENABLED", False),
            allow_while_referenced=_env_bool("ARCHIVE_ALLOW_IN_USE", False),
            compliance_deadline=int(deadline) if deadline else DEFAULT_COMPLIANCE_DEADLINE,
            show_archived_label=_env_bool("ARCHIVE_SHOW_LABEL", False),
            archived_label_text=os.getenv("ARCHIVE_LABEL_TEXT", ""),
        )


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory holding the archive database
        db_name: SQLite file name for records, notes and the checksum queue
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    data_dir: str = "/var/lib/archive-engine"
    db_name: str = "archive.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @property
    def db_path(self) -> str:
        return os.path.join(self.data_dir, self.db_name)

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "/var/lib/archive-engine"),
            db_name=os.getenv("ARCHIVE_DB_NAME", "archive.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", True),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class ContentConfig:
    """Content location configuration.

    Attributes:
        public_dir: Directory backing public:// URIs
        private_dir: Directory backing private:// URIs
    """

    public_dir: str = "/var/www/files"
    private_dir: str = "/var/lib/private-files"

    @classmethod
    def from_env(cls) -> ContentConfig:
        """Load configuration from environment variables."""
        return cls(
            public_dir=os.getenv("CONTENT_PUBLIC_DIR", "/var/www/files"),
            private_dir=os.getenv("CONTENT_PRIVATE_DIR", "/var/lib/private-files"),
        )


@dataclass(frozen=True)
class ChecksumConfig:
    """Checksum engine and deferred worker configuration.

    Attributes:
        size_limit_bytes: Files larger than this are hashed by the worker
        lease_seconds: How long a claimed work item stays invisible
        poll_interval_seconds: Worker sleep between empty polls
        batch_size: Maximum items processed per worker pass
        retry_backoff_seconds: Delay before a failed item is retried,
            multiplied by its attempt count
        max_retry_backoff_seconds: Upper bound on the retry delay
    """

    size_limit_bytes: int = DEFAULT_CHECKSUM_SIZE_LIMIT
    lease_seconds: int = 300
    poll_interval_seconds: float = 30.0
    batch_size: int = 50
    retry_backoff_seconds: int = 60
    max_retry_backoff_seconds: int = 3600

    def retry_delay(self, attempts: int) -> int:
        """Seconds a failed item stays invisible after its nth attempt."""
        return min(self.retry_backoff_seconds * max(attempts, 1), self.max_retry_backoff_seconds)

    @classmethod
    def from_env(cls) -> ChecksumConfig:
        """Load configuration from environment variables."""
        return cls(
            size_limit_bytes=int(
                os.getenv("CHECKSUM_SIZE_LIMIT_BYTES", str(DEFAULT_CHECKSUM_SIZE_LIMIT))
            ),
            lease_seconds=int(os.getenv("CHECKSUM_LEASE_SECONDS", "300")),
            poll_interval_seconds=float(os.getenv("CHECKSUM_POLL_INTERVAL_SECONDS", "30")),
            batch_size=int(os.getenv("CHECKSUM_BATCH_SIZE", "50")),
            retry_backoff_seconds=int(os.getenv("CHECKSUM_RETRY_BACKOFF_SECONDS", "60")),
            max_retry_backoff_seconds=int(
                os.getenv("CHECKSUM_MAX_RETRY_BACKOFF_SECONDS", "3600")
            ),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class EngineConfig:
    """Complete engine configuration.

    Attributes:
        policy: Archive policy switches
        storage: SQLite storage configuration
        content: Content location configuration
        checksum: Checksum engine configuration
        observability: Logging configuration
    """

    policy: ArchivePolicyConfig = field(default_factory=ArchivePolicyConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    content: ContentConfig = field(default_factory=ContentConfig)
    checksum: ChecksumConfig = field(default_factory=ChecksumConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            policy=ArchivePolicyConfig.from_env(),
            storage=StorageConfig.from_env(),
            content=ContentConfig.from_env(),
            checksum=ChecksumConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.policy.compliance_deadline is not None and self.policy.compliance_deadline < 0:
            raise ValueError("ARCHIVE_COMPLIANCE_DEADLINE must be a non-negative epoch timestamp")
        if self.checksum.size_limit_bytes <= 0:
            raise ValueError("CHECKSUM_SIZE_LIMIT_BYTES must be positive")
        if self.checksum.lease_seconds <= 0:
            raise ValueError("CHECKSUM_LEASE_SECONDS must be positive")
        if self.checksum.batch_size <= 0:
            raise ValueError("CHECKSUM_BATCH_SIZE must be positive")
        if self.checksum.retry_backoff_seconds < 0:
            raise ValueError("CHECKSUM_RETRY_BACKOFF_SECONDS must be non-negative")
        if self.checksum.max_retry_backoff_seconds < self.checksum.retry_backoff_seconds:
            raise ValueError(
                "CHECKSUM_MAX_RETRY_BACKOFF_SECONDS must be at least CHECKSUM_RETRY_BACKOFF_SECONDS"
            )
        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be one of: json, text")

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Archive engine configuration loaded",
            extra={
                "feature_enabled": self.policy.feature_enabled,
                "allow_while_referenced": self.policy.allow_while_referenced,
                "compliance_deadline": self.policy.effective_deadline,
                "db_path": self.storage.db_path,
                "checksum_size_limit": self.checksum.size_limit_bytes,
                "log_level": self.observability.log_level,
            },
        )
