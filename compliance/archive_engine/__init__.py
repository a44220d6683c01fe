"""
Archive Engine - compliance archive lifecycle and integrity tracking for digital assets.

This package classifies digital assets (documents, videos and manually
registered pages or external URLs) into a compliance archive and keeps an
immutable audit trail of every decision. Files are never relocated; the
engine only records decisions and verifies content.

Architecture:
    ┌─────────────┐     ┌────────────────┐     ┌──────────────┐
    │   Caller    │────▶│ ArchiveService │────▶│ RecordStore  │
    │ (UI / CLI)  │     │    (facade)    │     │   (SQLite)   │
    └─────────────┘     └───────┬────────┘     └──────────────┘
                                │
              ┌─────────────────┼──────────────────┐
              ▼                 ▼                  ▼
        ┌──────────┐     ┌──────────────┐    ┌────────────┐
        │  Policy  │     │   Checksum   │    │ Reconciler │
        │   Gate   │     │    Engine    │    │            │
        └──────────┘     └──────┬───────┘    └────────────┘
                                │ (> size limit)
                                ▼
                        ┌───────────────┐     ┌──────────────┐
                        │  Work Queue   │────▶│ChecksumWorker│
                        └───────────────┘     └──────────────┘

Invariants:
    - At most one non-terminal archive record exists per asset
    - archived_deleted and exemption_void are terminal
    - file_checksum and archive_classification_date are write-once
    - Notes are append-only
    - Legacy status is decided once, at archive classification

How to change safely:
    - Keep all record writes behind RecordStore.update_record()
    - New lifecycle operations go through ArchiveService so they pick up
      the policy snapshot and audit notes

Version: see _version.py.
"""

from ._version import __version__
