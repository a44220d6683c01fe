"""
Integrity module for the archive engine - checksums and the deferred worker.

Invariants:
    - file_checksum is written exactly once per record
    - Integrity checks are fail-closed
"""

from .checksum import ChecksumEngine
from .worker import ChecksumWorker

__all__ = ["ChecksumEngine", "ChecksumWorker"]
