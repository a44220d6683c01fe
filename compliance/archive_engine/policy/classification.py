"""
Legacy / General archive classification.

An archive is Legacy when it was classified on or before the compliance
deadline, and General otherwise. The decision is taken once, when the
record is classified, and frozen on the record as late_archive.

Invariants:
    - is_legacy(record) depends only on the stored late_archive flag
    - A prior exemption_void record for the same asset forces General
    - The deadline comparison is strict: classified exactly at the
      deadline is still Legacy
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import ArchivePolicyConfig
from ..store.models import ArchiveRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Frozen classification snapshot written at archive time.

    Attributes:
        classified_at: archive_classification_date (epoch seconds)
        late_archive: True for General archives
        prior_void_exists: General was forced by an earlier voided exemption
    """

    classified_at: int
    late_archive: bool
    prior_void_exists: bool

    @property
    def is_legacy(self) -> bool:
        return not self.late_archive

    def to_changes(self) -> dict[str, object]:
        """Record fields to write together with the status change."""
        return {
            "archive_classification_date": self.classified_at,
            "late_archive": self.late_archive,
            "prior_void_exists": self.prior_void_exists,
        }


def classify(instant: int, policy: ArchivePolicyConfig, prior_void_exists: bool) -> Classification:
    """Classify an archive taken at `instant`.

    Args:
        instant: Classification time (epoch seconds)
        policy: Policy snapshot providing the compliance deadline
        prior_void_exists: Whether the asset has an exemption_void record

    Returns:
        Classification
    """
    late = instant > policy.effective_deadline
    if prior_void_exists and not late:
        logger.info(
            "Forcing General archive due to prior voided exemption",
            extra={"classified_at": instant},
        )
    return Classification(
        classified_at=instant,
        late_archive=late or prior_void_exists,
        prior_void_exists=prior_void_exists,
    )


def is_legacy(record: ArchiveRecord) -> bool:
    """Whether the record is a Legacy archive."""
    return not record.late_archive
