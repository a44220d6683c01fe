"""
Unit tests for the policy gate and Legacy / General classification.

Tests cover:
- Create / execute gate with and without archive-while-referenced
- Link routing switch
- Visibility raise and re-archive blocks
- Deadline comparison and prior-void forcing
"""

from compliance.archive_engine.config import DEFAULT_COMPLIANCE_DEADLINE, ArchivePolicyConfig
from compliance.archive_engine.policy import PolicyGate, classify, is_legacy
from compliance.archive_engine.store.models import ArchiveReason, ArchiveRecord, ArchiveStatus


def record(status=ArchiveStatus.ARCHIVED_ADMIN, asset_type="pdf", late_archive=False):
    return ArchiveRecord(
        id="record-1",
        original_asset_ref="managed:1",
        file_name="report.pdf",
        asset_type=asset_type,
        status=status,
        archive_reason=ArchiveReason.REFERENCE,
        late_archive=late_archive,
    )


class TestCreateOrExecuteGate:
    """Tests for the usage gate on Queue and Execute."""

    def test_unreferenced_asset_allowed(self):
        decision = PolicyGate(ArchivePolicyConfig()).can_create_or_execute(0)

        assert decision.allowed is True
        assert decision.in_use is False
        assert decision.reason == ""

    def test_referenced_asset_blocked_by_default(self):
        decision = PolicyGate(ArchivePolicyConfig()).can_create_or_execute(3)

        assert decision.allowed is False
        assert decision.in_use is True
        assert decision.reference_count == 3
        assert "3 location(s)" in decision.reason

    def test_referenced_asset_allowed_when_policy_permits(self):
        gate = PolicyGate(ArchivePolicyConfig(allow_while_referenced=True))

        decision = gate.can_create_or_execute(3)

        assert decision.allowed is True
        assert decision.in_use is True

    def test_manual_entries_always_pass(self):
        decision = PolicyGate(ArchivePolicyConfig()).can_create_or_execute(5, is_manual=True)

        assert decision.allowed is True


class TestLinkRouting:
    """Tests for the link routing switch."""

    def test_routing_follows_feature_or_in_use_policy(self):
        assert PolicyGate(ArchivePolicyConfig()).is_link_routing_enabled() is False
        assert PolicyGate(ArchivePolicyConfig(feature_enabled=True)).is_link_routing_enabled() is True
        assert (
            PolicyGate(ArchivePolicyConfig(allow_while_referenced=True)).is_link_routing_enabled()
            is True
        )


class TestUsageBlocks:
    """Tests for visibility raise and re-archive blocks."""

    def test_visibility_raise_blocked_for_referenced_admin_record(self):
        block = PolicyGate(ArchivePolicyConfig()).is_visibility_raise_blocked(record(), 2)

        assert block is not None
        assert block.to_dict()["usage_count"] == 2

    def test_visibility_raise_not_blocked(self):
        gate = PolicyGate(ArchivePolicyConfig())

        assert gate.is_visibility_raise_blocked(record(), 0) is None
        assert gate.is_visibility_raise_blocked(record(ArchiveStatus.ARCHIVED_PUBLIC), 2) is None
        assert gate.is_visibility_raise_blocked(record(asset_type="page"), 2) is None
        assert (
            PolicyGate(ArchivePolicyConfig(allow_while_referenced=True)).is_visibility_raise_blocked(
                record(), 2
            )
            is None
        )

    def test_re_execute_block(self):
        gate = PolicyGate(ArchivePolicyConfig())

        assert gate.is_re_execute_blocked(record(ArchiveStatus.ARCHIVED_PUBLIC), 1) is not None
        assert gate.is_re_execute_blocked(record(ArchiveStatus.ARCHIVED_PUBLIC), 0) is None
        assert gate.is_re_execute_blocked(record(asset_type="external"), 4) is None


class TestClassification:
    """Tests for Legacy / General classification."""

    def test_before_and_at_deadline_is_legacy(self):
        policy = ArchivePolicyConfig()

        assert classify(DEFAULT_COMPLIANCE_DEADLINE - 1, policy, False).is_legacy is True
        assert classify(DEFAULT_COMPLIANCE_DEADLINE, policy, False).is_legacy is True

    def test_after_deadline_is_general(self):
        result = classify(DEFAULT_COMPLIANCE_DEADLINE + 1, ArchivePolicyConfig(), False)

        assert result.late_archive is True
        assert result.prior_void_exists is False

    def test_prior_void_forces_general(self):
        result = classify(DEFAULT_COMPLIANCE_DEADLINE - 100, ArchivePolicyConfig(), True)

        assert result.late_archive is True
        assert result.prior_void_exists is True
        assert result.to_changes() == {
            "archive_classification_date": DEFAULT_COMPLIANCE_DEADLINE - 100,
            "late_archive": True,
            "prior_void_exists": True,
        }

    def test_custom_deadline(self):
        policy = ArchivePolicyConfig(compliance_deadline=1000)

        assert classify(1001, policy, False).late_archive is True
        assert classify(999, policy, False).late_archive is False

    def test_unset_deadline_uses_default(self):
        policy = ArchivePolicyConfig(compliance_deadline=None)

        assert policy.effective_deadline == DEFAULT_COMPLIANCE_DEADLINE

    def test_is_legacy_reads_stored_flag(self):
        assert is_legacy(record(late_archive=False)) is True
        assert is_legacy(record(late_archive=True)) is False
