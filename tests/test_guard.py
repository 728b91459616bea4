"""Tests for the destroy guard."""

from datetime import datetime, timedelta, timezone

from objectsync.guard import can_destroy
from objectsync.models import ObservedState

NOW = datetime(2030, 6, 1, tzinfo=timezone.utc)


def _observed(**lock) -> ObservedState:
    return ObservedState(bucket="locked-bucket", key="test-key", etag="e", version_id="v1", **lock)


class TestCanDestroy:
    """Tests for can_destroy()."""

    def test_unlocked_allowed(self):
        decision = can_destroy(_observed(), force_destroy=False, now=NOW)
        assert decision
        assert not decision.bypass_governance

    def test_legal_hold_blocks(self):
        decision = can_destroy(
            _observed(object_lock_legal_hold_status="ON"), force_destroy=False, now=NOW
        )
        assert not decision
        assert "legal hold" in decision.reason

    def test_legal_hold_blocks_even_with_force_destroy(self):
        decision = can_destroy(
            _observed(object_lock_legal_hold_status="ON"),
            force_destroy=True,
            bypass_governance=True,
            now=NOW,
        )
        assert not decision

    def test_legal_hold_off_allowed(self):
        assert can_destroy(_observed(object_lock_legal_hold_status="OFF"), False, now=NOW)

    def test_governance_blocks_without_force_destroy(self):
        decision = can_destroy(
            _observed(
                object_lock_mode="GOVERNANCE",
                object_lock_retain_until_date=NOW + timedelta(days=1),
            ),
            force_destroy=False,
            bypass_governance=True,
            now=NOW,
        )
        assert not decision
        assert "GOVERNANCE" in decision.reason
        assert "force_destroy" in decision.reason

    def test_governance_blocks_without_bypass(self):
        decision = can_destroy(
            _observed(
                object_lock_mode="GOVERNANCE",
                object_lock_retain_until_date=NOW + timedelta(days=1),
            ),
            force_destroy=True,
            bypass_governance=False,
            now=NOW,
        )
        assert not decision
        assert "bypass" in decision.reason

    def test_governance_bypassed_with_force_destroy(self):
        decision = can_destroy(
            _observed(
                object_lock_mode="GOVERNANCE",
                object_lock_retain_until_date=NOW + timedelta(days=1),
            ),
            force_destroy=True,
            bypass_governance=True,
            now=NOW,
        )
        assert decision
        assert decision.bypass_governance

    def test_compliance_never_bypassed(self):
        decision = can_destroy(
            _observed(
                object_lock_mode="COMPLIANCE",
                object_lock_retain_until_date=NOW + timedelta(days=1),
            ),
            force_destroy=True,
            bypass_governance=True,
            now=NOW,
        )
        assert not decision
        assert "COMPLIANCE" in decision.reason

    def test_expired_retention_allowed(self):
        decision = can_destroy(
            _observed(
                object_lock_mode="COMPLIANCE",
                object_lock_retain_until_date=NOW - timedelta(seconds=1),
            ),
            force_destroy=False,
            now=NOW,
        )
        assert decision

    def test_string_retain_until(self):
        decision = can_destroy(
            _observed(
                object_lock_mode="GOVERNANCE",
                object_lock_retain_until_date="2030-06-02T00:00:00Z",
            ),
            force_destroy=False,
            now=NOW,
        )
        assert not decision

    def test_unreadable_retain_until_blocks(self):
        decision = can_destroy(
            _observed(object_lock_mode="GOVERNANCE", object_lock_retain_until_date="whenever"),
            force_destroy=True,
            bypass_governance=True,
            now=NOW,
        )
        assert not decision
        assert "unreadable" in decision.reason
