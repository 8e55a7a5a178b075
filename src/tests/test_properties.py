"""Property-based tests using Hypothesis for the gateway invariants."""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tiergate.exceptions import MissingKeyError
from tiergate.limiter import RateLimitTracker, apply_resets
from tiergate.models import RateLimitAllowed, RateLimitBlocked, Tier, TierName, Window
from tiergate.repository import InMemoryCounterStore
from tiergate.tiers import DEFAULT_PREFIX_RULES, FREE_TIER, TIERS, PrefixKeyClassifier

limits = st.one_of(st.none(), st.integers(min_value=0, max_value=20))


def _tier(minute, hour, day) -> Tier:
    return Tier(
        name=TierName.FREE,
        requestsPerMinute=minute,
        requestsPerHour=hour,
        requestsPerDay=day,
    )


class TestClassificationProperties:
    """Classification is total and pure."""

    @given(key=st.one_of(st.none(), st.text(max_size=40)))
    @settings(max_examples=200)
    def test_total_and_deterministic(self, key):
        """
        Property: every input yields exactly one tier or MissingKeyError,
        and the same tier on every call.
        """
        classifier = PrefixKeyClassifier(DEFAULT_PREFIX_RULES, default=FREE_TIER)

        if not key:
            with pytest.raises(MissingKeyError):
                classifier.classify(key)
            return

        first = classifier.classify(key)
        assert first in TIERS.values()
        assert classifier.classify(key) is first


class TestRateLimitingProperties:
    """Property-based tests for quota enforcement."""

    @given(
        minute=limits,
        hour=limits,
        day=limits,
        requests=st.integers(min_value=1, max_value=60),
    )
    @settings(max_examples=100)
    def test_never_exceeds_smallest_limit(self, minute, hour, day, requests):
        """
        Property: within one minute, allowed requests never exceed the
        smallest finite limit, and counts stay within every limit.
        """
        tier = _tier(minute, hour, day)
        store = InMemoryCounterStore()
        tracker = RateLimitTracker(store=store, clock=lambda: 1000.0, max_attempts=4)

        async def run_test():
            results = [await tracker.check_and_consume("k", tier) for _ in range(requests)]
            usage, _ = await store.get("k")
            return results, usage

        results, usage = asyncio.run(run_test())

        finite = [limit for limit in (minute, hour, day) if limit is not None]
        allowed = sum(isinstance(r, RateLimitAllowed) for r in results)
        expected = min([requests] + finite)
        assert allowed == expected

        for window in Window:
            limit = tier.limit_for(window)
            if limit is not None:
                assert 0 <= usage.window(window).count <= limit

    @given(requests=st.integers(min_value=1, max_value=300))
    @settings(max_examples=25)
    def test_unlimited_tier_never_blocks(self, requests):
        """Property: an unlimited tier accepts any number of requests."""
        tracker = RateLimitTracker(
            store=InMemoryCounterStore(), clock=lambda: 0.0, max_attempts=4
        )
        tier = _tier(None, None, None)

        async def run_test():
            return [await tracker.check_and_consume("ent_k", tier) for _ in range(requests)]

        results = asyncio.run(run_test())

        assert not any(isinstance(r, RateLimitBlocked) for r in results)

    @given(
        gaps=st.lists(st.floats(min_value=0, max_value=200), min_size=1, max_size=40),
    )
    @settings(max_examples=50)
    def test_blocked_calls_change_no_count(self, gaps):
        """
        Property: a blocked call changes no count beyond resetting expired
        windows, and every allowed call increments all three counts by exactly one.
        """
        now = {"t": 0.0}
        store = InMemoryCounterStore()
        tracker = RateLimitTracker(store=store, clock=lambda: now["t"], max_attempts=4)
        tier = _tier(2, 10, 100)

        async def run_test():
            for gap in gaps:
                now["t"] += gap
                before, _ = await store.get("k")
                result = await tracker.check_and_consume("k", tier)
                after, _ = await store.get("k")
                expected, _ = apply_resets(before, now["t"])
                step = 0 if isinstance(result, RateLimitBlocked) else 1

                for window in Window:
                    state = after.window(window)
                    assert state.count == expected.window(window).count + step
                    assert state.reset_at > now["t"]

        asyncio.run(run_test())
