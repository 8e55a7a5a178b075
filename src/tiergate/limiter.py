"""Per-key quota tracking over day, hour and minute windows."""

import time
from collections.abc import Callable
from typing import Optional

import structlog

from tiergate.config import get_settings
from tiergate.exceptions import CounterStoreError
from tiergate.metrics import metrics
from tiergate.models import (
    KeyUsage,
    RateLimitAllowed,
    RateLimitBlocked,
    RateLimitResult,
    Tier,
    Window,
)
from tiergate.repository import CounterStore, get_store

logger = structlog.get_logger()


def apply_resets(usage: Optional[KeyUsage], now: float) -> tuple[KeyUsage, bool]:
    """Reset every expired window of ``usage`` in place.

    Returns the usage (fresh when the key has no history) and whether
    anything changed.
    """
    if usage is None:
        return KeyUsage.fresh(now), True

    changed = False
    for window in Window:
        state = usage.window(window)
        if now >= state.reset_at:
            state.count = 0
            state.reset_at = now + window.seconds
            changed = True
    return usage, changed


def first_exhausted(usage: KeyUsage, tier: Tier) -> Optional[RateLimitBlocked]:
    """Return the first window (day, hour, minute) with no capacity left."""
    for window in Window:
        limit = tier.limit_for(window)
        if limit is None:
            continue
        state = usage.window(window)
        if state.count >= limit:
            return RateLimitBlocked(window=window, limit=limit, reset_at=state.reset_at)
    return None


class RateLimitTracker:
    """Checks and consumes quota for API keys.

    Every update is a compare-and-swap against the injected store, so two
    concurrent requests for the same key can never both take the last slot
    of a window.
    """

    def __init__(
        self,
        store: Optional[CounterStore] = None,
        clock: Optional[Callable[[], float]] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._store = store or get_store()
        self._clock = clock or time.time
        self._max_attempts = max_attempts or get_settings().cas_max_attempts

    @property
    def store(self) -> CounterStore:
        return self._store

    async def check_and_consume(
        self, key: str, tier: Tier, now: Optional[float] = None
    ) -> RateLimitResult:
        """Consume one request for ``key`` or report the window that blocks it.

        A blocked call leaves every count unchanged; window resets it
        performed are still persisted.
        """
        if now is None:
            now = self._clock()

        for attempt in range(1, self._max_attempts + 1):
            usage, version = await self._store.get(key)
            usage, reset = apply_resets(usage, now)

            blocked = first_exhausted(usage, tier)
            if blocked is not None:
                if reset:
                    if not await self._store.compare_and_swap(key, version, usage):
                        self._record_conflict(attempt)
                        continue
                    if version == 0:
                        metrics.tracked_keys.inc()
                logger.info(
                    "rate_limit_blocked",
                    tier=tier.name.value,
                    window=blocked.window.value,
                    limit=blocked.limit,
                    reset_at=blocked.reset_at,
                )
                return blocked

            for window in Window:
                usage.window(window).count += 1

            if not await self._store.compare_and_swap(key, version, usage):
                self._record_conflict(attempt)
                continue

            if version == 0:
                metrics.tracked_keys.inc()

            day_limit = tier.requests_per_day
            day = usage.window(Window.DAY)
            remaining = None if day_limit is None else day_limit - day.count

            logger.debug(
                "rate_limit_consumed",
                tier=tier.name.value,
                day_count=day.count,
                hour_count=usage.hour.count,
                minute_count=usage.minute.count,
            )
            return RateLimitAllowed(remaining=remaining, reset_at=day.reset_at, usage=usage)

        logger.error("rate_limit_cas_exhausted", attempts=self._max_attempts)
        raise CounterStoreError("Rate limit state is busy, retry the request")

    async def usage(self, key: str, now: Optional[float] = None) -> KeyUsage:
        """Current usage of ``key`` with expired windows shown as reset.

        Read-only: nothing is consumed or persisted.
        """
        if now is None:
            now = self._clock()
        usage, _ = await self._store.get(key)
        usage, _ = apply_resets(usage, now)
        return usage

    def _record_conflict(self, attempt: int) -> None:
        metrics.cas_conflicts_total.inc()
        logger.debug("rate_limit_cas_conflict", attempt=attempt)
