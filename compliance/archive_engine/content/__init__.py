"""
Content module for the archive engine - directory and content collaborators.

This module provides:
- AssetDirectory / ContentStore / AuditSink protocols
- FilesystemContentStore (production)
- In-memory directory and content store (testing)

Invariants:
    - The engine never relocates content; it only resolves, hashes and deletes
    - Unknown assets resolve to None rather than raising

How to change safely:
    - New backends must implement the protocols in base.py
"""

from .base import (
    ARCHIVABLE_CATEGORIES,
    LINKABLE_CATEGORIES,
    AssetCategory,
    AssetDirectory,
    AssetInfo,
    AuditSink,
    ContentStore,
    asset_type_for,
    reference_count_for,
)
from .filesystem import FilesystemContentStore
from .memory import InMemoryAssetDirectory, InMemoryContentStore
from .sqlite_directory import SqliteAssetDirectory

__all__ = [
    # Protocols and types
    "AssetDirectory",
    "ContentStore",
    "AuditSink",
    "AssetInfo",
    "AssetCategory",
    "ARCHIVABLE_CATEGORIES",
    "LINKABLE_CATEGORIES",
    "asset_type_for",
    "reference_count_for",
    # Implementations
    "FilesystemContentStore",
    "SqliteAssetDirectory",
    "InMemoryAssetDirectory",
    "InMemoryContentStore",
]
