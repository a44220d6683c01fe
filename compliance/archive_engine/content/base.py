"""
Content collaborator interfaces for the archive engine.

The engine never discovers content itself. It consumes three narrow
interfaces:
- AssetDirectory: category, current location and reference count per asset
- ContentStore: resolve / hash / delete the bytes behind an asset
- AuditSink: append-only audit notes

Invariants:
    - lookup() and resolve() return None for unknown assets; they never raise
    - hash() returns a lowercase SHA-256 hex digest or raises ResourceError
    - delete() never raises for missing content; it returns False

How to change safely:
    - New implementations must satisfy these protocols structurally
    - Keep ARCHIVABLE_CATEGORIES and LINKABLE_CATEGORIES in sync with the
      asset types offered by the directory
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class AssetCategory(str, Enum):
    """Category reported by the asset directory."""

    DOCUMENT = "document"
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"
    PAGE = "page"
    EXTERNAL = "external"
    OTHER = "other"


# Only documents and videos can be queued for archiving.
ARCHIVABLE_CATEGORIES = frozenset({AssetCategory.DOCUMENT, AssetCategory.VIDEO})

# Categories whose links may be routed to an archive detail page.
LINKABLE_CATEGORIES = frozenset(
    {
        AssetCategory.DOCUMENT,
        AssetCategory.VIDEO,
        AssetCategory.PAGE,
        AssetCategory.EXTERNAL,
    }
)

_MIME_ASSET_TYPES = {
    "application/pdf": "pdf",
    "application/msword": "word",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "word",
    "application/vnd.ms-excel": "excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "excel",
    "application/vnd.ms-powerpoint": "powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "powerpoint",
}


def asset_type_for(category: AssetCategory, mime_type: str | None) -> str:
    """Derive the record asset_type from the directory category and MIME type.

    Args:
        category: Directory category
        mime_type: MIME type, if known

    Returns:
        pdf/word/excel/powerpoint for known documents, "video" for videos,
        otherwise the category value
    """
    if category is AssetCategory.VIDEO or (mime_type or "").startswith("video/"):
        return "video"
    if mime_type and mime_type.lower() in _MIME_ASSET_TYPES:
        return _MIME_ASSET_TYPES[mime_type.lower()]
    return category.value


@dataclass(frozen=True)
class AssetInfo:
    """Directory view of one asset.

    Attributes:
        category: Asset category
        current_uri: Current content location (None if unknown)
        reference_count: Number of places currently referencing the asset
        file_name: File name for display
        mime_type: MIME type
        file_size_bytes: Size in bytes, if known
        is_private: Whether the content lives in private storage
    """

    category: AssetCategory
    current_uri: str | None
    reference_count: int = 0
    file_name: str = ""
    mime_type: str | None = None
    file_size_bytes: int | None = None
    is_private: bool = False

    @property
    def is_archivable(self) -> bool:
        return self.category in ARCHIVABLE_CATEGORIES

    @property
    def is_linkable(self) -> bool:
        return self.category in LINKABLE_CATEGORIES

    @property
    def asset_type(self) -> str:
        return asset_type_for(self.category, self.mime_type)


@runtime_checkable
class AssetDirectory(Protocol):
    """Read-only directory of discovered assets."""

    def lookup(self, ref: str) -> AssetInfo | None:
        """Look up an asset by ref (managed ref or raw path/URL)."""
        ...


@runtime_checkable
class ContentStore(Protocol):
    """Access to the bytes behind an asset."""

    def resolve(self, ref: str) -> str | None:
        """Resolve an asset ref to a content URI, or None if it does not exist."""
        ...

    def hash(self, uri: str) -> str:
        """SHA-256 hex digest of the content.

        Raises:
            ResourceError: If the content cannot be read
        """
        ...

    def size(self, uri: str) -> int | None:
        """Content size in bytes, or None if unknown."""
        ...

    def delete(self, uri: str) -> bool:
        """Physically remove the content. Returns False if nothing was removed."""
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Append-only audit note writer."""

    def append(self, record_id: str, text: str, author: str) -> None:
        """Append a note about a record."""
        ...


def reference_count_for(directory: AssetDirectory, ref: str) -> int:
    """Current reference count of an asset; unknown assets count as 0."""
    info = directory.lookup(ref)
    return info.reference_count if info is not None else 0
