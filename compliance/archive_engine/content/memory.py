"""
In-memory asset directory and content store for testing.

This module provides simple in-memory collaborators for:
- Unit tests
- Integration tests
- Local development without a real file system

Invariants:
    - All data is lost on process exit
    - Same contract as the production implementations
    - Managed refs resolve through the directory's current_uri

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with AssetDirectory / ContentStore
    - Add helpers for testing scenarios rather than special cases in the engine
"""

from __future__ import annotations

import hashlib
import logging
import threading

from ..errors import ResourceError
from .base import AssetCategory, AssetInfo

logger = logging.getLogger(__name__)


class InMemoryAssetDirectory:
    """In-memory implementation of AssetDirectory.

    Example:
        >>> directory = InMemoryAssetDirectory()
        >>> directory.register("managed:1", AssetCategory.DOCUMENT, "public://a.pdf")
        >>> directory.set_reference_count("managed:1", 2)
    """

    def __init__(self) -> None:
        self._assets: dict[str, AssetInfo] = {}
        self._lock = threading.Lock()

    def register(
        self,
        ref: str,
        category: AssetCategory,
        current_uri: str | None,
        reference_count: int = 0,
        file_name: str = "",
        mime_type: str | None = None,
        file_size_bytes: int | None = None,
        is_private: bool = False,
    ) -> AssetInfo:
        """Register (or replace) an asset."""
        info = AssetInfo(
            category=category,
            current_uri=current_uri,
            reference_count=reference_count,
            file_name=file_name or (current_uri or ref).rsplit("/", 1)[-1],
            mime_type=mime_type,
            file_size_bytes=file_size_bytes,
            is_private=is_private,
        )
        with self._lock:
            self._assets[ref] = info
        return info

    def set_reference_count(self, ref: str, reference_count: int) -> None:
        with self._lock:
            info = self._assets[ref]
            self._assets[ref] = AssetInfo(
                category=info.category,
                current_uri=info.current_uri,
                reference_count=reference_count,
                file_name=info.file_name,
                mime_type=info.mime_type,
                file_size_bytes=info.file_size_bytes,
                is_private=info.is_private,
            )

    def remove(self, ref: str) -> None:
        with self._lock:
            self._assets.pop(ref, None)

    def lookup(self, ref: str) -> AssetInfo | None:
        with self._lock:
            return self._assets.get(ref)


class InMemoryContentStore:
    """In-memory implementation of ContentStore.

    Raw refs are used directly as URIs. Managed refs resolve through the
    optional directory.

    Attributes:
        hash_calls: URIs hashed so far, in order (for assertions)
        unreadable: URIs that exist but fail to hash
    """

    def __init__(self, directory: InMemoryAssetDirectory | None = None) -> None:
        self.directory = directory
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()
        self.hash_calls: list[str] = []
        self.unreadable: set[str] = set()

    def put(self, uri: str, data: bytes) -> None:
        """Create or overwrite content."""
        with self._lock:
            self._blobs[uri] = data

    def get(self, uri: str) -> bytes | None:
        with self._lock:
            return self._blobs.get(uri)

    def exists(self, uri: str) -> bool:
        with self._lock:
            return uri in self._blobs

    def resolve(self, ref: str) -> str | None:
        uri = ref
        if self.directory is not None:
            info = self.directory.lookup(ref)
            if info is not None and info.current_uri:
                uri = info.current_uri
        return uri if self.exists(uri) else None

    def hash(self, uri: str) -> str:
        self.hash_calls.append(uri)
        data = self.get(uri)
        if data is None or uri in self.unreadable:
            raise ResourceError(f"Content not readable: {uri}", asset_ref=uri)
        return hashlib.sha256(data).hexdigest()

    def size(self, uri: str) -> int | None:
        data = self.get(uri)
        return len(data) if data is not None else None

    def delete(self, uri: str) -> bool:
        with self._lock:
            return self._blobs.pop(uri, None) is not None

