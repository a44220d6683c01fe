"""
Usage-based policy gate.

Decides whether an asset that is still referenced elsewhere may be
archived, raised to public visibility or re-archived, and whether links
should be routed to archive detail pages.

Invariants:
    - The gate is pure: it never reads or writes records or content
    - Decisions depend only on the policy snapshot it was built with
    - Manual entries (pages / external URLs) always pass

How to change safely:
    - Build a new gate per operation from a fresh policy snapshot
    - Keep block reasons human-readable; they are shown to operators
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config import ArchivePolicyConfig
from ..store.models import ArchiveRecord, ArchiveStatus


@dataclass(frozen=True)
class GateDecision:
    """Outcome of an archive / execute gate check.

    Attributes:
        allowed: Whether the operation may proceed
        reference_count: Reference count the decision was based on
        in_use: Whether the asset was referenced at all
        reason: Why the operation was blocked (empty when allowed)
    """

    allowed: bool
    reference_count: int = 0
    in_use: bool = False
    reason: str = ""


@dataclass(frozen=True)
class UsageBlock:
    """A usage-based block on a visibility raise or re-archive.

    Attributes:
        reference_count: Number of places referencing the asset
        reason: Human-readable explanation
    """

    reference_count: int
    reason: str

    def to_dict(self) -> dict[str, object]:
        return {"usage_count": self.reference_count, "reason": self.reason}


class PolicyGate:
    """Policy checks driven by one policy snapshot.

    Example:
        >>> gate = PolicyGate(ArchivePolicyConfig(allow_while_referenced=False))
        >>> gate.can_create_or_execute(3).allowed
        False
    """

    def __init__(self, policy: ArchivePolicyConfig) -> None:
        self.policy = policy

    def can_create_or_execute(self, reference_count: int, is_manual: bool = False) -> GateDecision:
        """Check whether an asset with this many references may be archived.

        Args:
            reference_count: Current reference count
            is_manual: Manual entries bypass the usage check

        Returns:
            GateDecision
        """
        in_use = reference_count > 0
        if is_manual or not in_use or self.policy.allow_while_referenced:
            return GateDecision(allowed=True, reference_count=reference_count, in_use=in_use)

        return GateDecision(
            allowed=False,
            reference_count=reference_count,
            in_use=True,
            reason=(
                f"File is still referenced in {reference_count} location(s). "
                "Remove references before archiving."
            ),
        )

    def is_link_routing_enabled(self) -> bool:
        """Whether links to archived assets should be routed to detail pages.

        Allowing archive-while-referenced turns routing on even with the
        feature switched off, so existing references keep landing on the
        archive detail page.
        """
        return self.policy.feature_enabled or self.policy.allow_while_referenced

    def is_visibility_raise_blocked(
        self,
        record: ArchiveRecord,
        reference_count: int,
    ) -> UsageBlock | None:
        """Check whether raising Admin-only to Public is blocked by usage."""
        if record.status is not ArchiveStatus.ARCHIVED_ADMIN or record.is_manual_entry:
            return None
        if reference_count <= 0 or self.policy.allow_while_referenced:
            return None
        return UsageBlock(
            reference_count=reference_count,
            reason=(
                f"This document is still referenced in {reference_count} location(s). "
                "Remove references before making it publicly visible."
            ),
        )

    def is_re_execute_blocked(
        self,
        record: ArchiveRecord,
        reference_count: int,
    ) -> UsageBlock | None:
        """Check whether archiving this asset again would be blocked by usage.

        Used to warn before an Unarchive that the asset could not be
        archived again while it is still referenced.
        """
        if record.is_manual_entry:
            return None
        if reference_count <= 0 or self.policy.allow_while_referenced:
            return None
        return UsageBlock(
            reference_count=reference_count,
            reason=(
                f"This document is referenced in {reference_count} location(s). "
                "It cannot be archived again until those references are removed."
            ),
        )
