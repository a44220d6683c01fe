"""
Checksum engine: SHA-256 of asset content and integrity verification.

Invariants:
    - Checksums are lowercase SHA-256 hex digests
    - verify_integrity() is fail-closed: any resolution or read error
      means "not verified"
    - A record without a stored checksum trivially verifies

How to change safely:
    - Never change the hash algorithm; stored checksums would all mismatch
    - Keep the deferral threshold configurable, not hard-coded in callers
"""

from __future__ import annotations

import logging

from ..config import DEFAULT_CHECKSUM_SIZE_LIMIT
from ..content.base import ContentStore
from ..errors import ResourceError
from ..store.models import ArchiveRecord

logger = logging.getLogger(__name__)


class ChecksumEngine:
    """Computes and verifies content checksums.

    Example:
        >>> engine = ChecksumEngine(content_store)
        >>> digest = engine.calculate_checksum("managed:42")
        >>> engine.verify_integrity(record)
        True
    """

    def __init__(
        self,
        content_store: ContentStore,
        size_limit_bytes: int = DEFAULT_CHECKSUM_SIZE_LIMIT,
    ) -> None:
        """Initialize the checksum engine.

        Args:
            content_store: Content store used to resolve and hash assets
            size_limit_bytes: Files larger than this are hashed asynchronously
        """
        self.content_store = content_store
        self.size_limit_bytes = size_limit_bytes

    def calculate_checksum(self, ref: str) -> str:
        """Compute the SHA-256 of the content behind an asset ref.

        Args:
            ref: Asset ref (managed ref or raw path/URL)

        Returns:
            SHA-256 hex digest

        Raises:
            ResourceError: If the ref cannot be resolved or read
        """
        uri = self.content_store.resolve(ref)
        if uri is None:
            raise ResourceError(f"Content not found for asset: {ref}", asset_ref=ref)
        return self.content_store.hash(uri)

    def should_defer(self, size_bytes: int | None) -> bool:
        """Whether content of this size is hashed by the deferred worker."""
        return size_bytes is not None and size_bytes > self.size_limit_bytes

    def content_size(self, ref: str, known_size: int | None = None) -> int | None:
        """Size used for the deferral decision.

        The live size wins over the snapshot taken at Queue.
        """
        uri = self.content_store.resolve(ref)
        if uri is not None:
            size = self.content_store.size(uri)
            if size is not None:
                return size
        return known_size

    def verify_integrity(self, record: ArchiveRecord) -> bool:
        """Check that the record's content still matches its stored checksum.

        Args:
            record: Archive record

        Returns:
            True if no checksum is stored or the digest matches,
            False on mismatch or any resolution/read error
        """
        if not record.file_checksum:
            return True

        try:
            current = self.calculate_checksum(record.original_asset_ref)
        except ResourceError as e:
            logger.warning(
                "Integrity check could not read content",
                extra={"record_id": record.id, "error": str(e)},
            )
            return False

        if current != record.file_checksum:
            logger.warning(
                "Integrity mismatch",
                extra={
                    "record_id": record.id,
                    "expected": record.file_checksum,
                    "actual": current,
                },
            )
            return False

        return True
