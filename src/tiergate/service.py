"""Gateway service composing classification, quotas and capability gating."""

import time
from typing import Optional

import structlog

from tiergate.exceptions import CapabilityDeniedError, MissingKeyError, RateLimitExceededError
from tiergate.gate import CapabilityGate
from tiergate.limiter import RateLimitTracker
from tiergate.metrics import metrics
from tiergate.models import Admission, KeyUsage, RateLimitBlocked, Tier
from tiergate.tiers import KeyClassifier, get_classifier

logger = structlog.get_logger()


class GatewayService:
    """Runs every inbound request through the gateway pipeline."""

    def __init__(
        self,
        classifier: Optional[KeyClassifier] = None,
        tracker: Optional[RateLimitTracker] = None,
        gate: Optional[CapabilityGate] = None,
    ) -> None:
        self._classifier = classifier or get_classifier()
        self._tracker = tracker or RateLimitTracker()
        self._gate = gate or CapabilityGate()

    @property
    def tracker(self) -> RateLimitTracker:
        return self._tracker

    async def admit(
        self, raw_key: Optional[str], wants_privileged: bool, now: Optional[float] = None
    ) -> Admission:
        """
        Decide whether a request may proceed.

        Raises:
            MissingKeyError: no key supplied (401)
            RateLimitExceededError: a quota window is exhausted (429)
            CapabilityDeniedError: privileged mode requested on a tier without it (403)
        """
        start_time = time.perf_counter()

        try:
            tier = self._classifier.classify(raw_key)
        except MissingKeyError:
            metrics.decisions_total.labels(tier="none", outcome="reject_401").inc()
            logger.info("request_rejected", outcome="reject_401")
            raise

        result = await self._tracker.check_and_consume(raw_key, tier, now)  # type: ignore[arg-type]
        duration = time.perf_counter() - start_time
        metrics.admit_duration.labels(tier=tier.name.value).observe(duration)

        if isinstance(result, RateLimitBlocked):
            metrics.decisions_total.labels(tier=tier.name.value, outcome="reject_429").inc()
            metrics.rate_limit_blocks_total.labels(
                tier=tier.name.value, window=result.window.value
            ).inc()
            raise RateLimitExceededError(result.window, result.limit, result.reset_at)

        capability = self._gate.authorize(tier, wants_privileged)
        if capability.denied:
            metrics.decisions_total.labels(tier=tier.name.value, outcome="reject_403").inc()
            metrics.capability_denials_total.labels(tier=tier.name.value).inc()
            logger.info("capability_denied", tier=tier.name.value, reason=capability.reason)
            raise CapabilityDeniedError(tier.name.value)

        metrics.decisions_total.labels(tier=tier.name.value, outcome="proceed").inc()
        logger.info(
            "request_admitted",
            tier=tier.name.value,
            privileged=capability.effective_privileged,
            remaining=result.remaining,
        )

        return Admission(tier=tier, rate_limit=result, capability=capability)

    async def usage(self, raw_key: Optional[str]) -> tuple[Tier, KeyUsage]:
        """Classify ``raw_key`` and return its current usage without consuming."""
        tier = self._classifier.classify(raw_key)
        return tier, await self._tracker.usage(raw_key)  # type: ignore[arg-type]


# Singleton instance
_service: Optional[GatewayService] = None


def get_service() -> GatewayService:
    """Get the service singleton."""
    global _service
    if _service is None:
        _service = GatewayService()
    return _service
