"""Privileged capability gate."""

from tiergate.models import CapabilityDecision, Tier

HARDWARE_ACCESS_DENIED = "HARDWARE_ACCESS_DENIED"


class CapabilityGate:
    """Reconciles the caller's requested mode with what the tier permits.

    A disallowed privileged request is denied outright rather than
    downgraded to simulation.
    """

    def authorize(self, tier: Tier, wants_privileged: bool) -> CapabilityDecision:
        if not wants_privileged:
            return CapabilityDecision(effective_privileged=False, denied=False)

        if tier.allow_privileged_capability:
            return CapabilityDecision(effective_privileged=True, denied=False)

        return CapabilityDecision(
            effective_privileged=False,
            denied=True,
            reason=HARDWARE_ACCESS_DENIED,
        )
