"""Unit tests for the capability gate."""

import pytest

from tiergate.gate import HARDWARE_ACCESS_DENIED, CapabilityGate
from tiergate.tiers import ENTERPRISE_TIER, FREE_TIER, PRO_TIER


@pytest.fixture
def gate():
    return CapabilityGate()


class TestCapabilityGate:
    """Tests for CapabilityGate."""

    @pytest.mark.parametrize("tier", [FREE_TIER, PRO_TIER, ENTERPRISE_TIER])
    def test_not_requested(self, gate, tier):
        """Test that no gating happens when privileged mode is not requested."""
        decision = gate.authorize(tier, wants_privileged=False)

        assert decision.effective_privileged is False
        assert decision.denied is False
        assert decision.reason is None

    @pytest.mark.parametrize("tier", [PRO_TIER, ENTERPRISE_TIER])
    def test_requested_and_allowed(self, gate, tier):
        """Test privileged mode on tiers that permit it."""
        decision = gate.authorize(tier, wants_privileged=True)

        assert decision.effective_privileged is True
        assert decision.denied is False

    def test_requested_and_denied(self, gate):
        """Test that a disallowed request is denied, not downgraded."""
        decision = gate.authorize(FREE_TIER, wants_privileged=True)

        assert decision.effective_privileged is False
        assert decision.denied is True
        assert decision.reason == HARDWARE_ACCESS_DENIED
