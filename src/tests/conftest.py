"""Pytest configuration and fixtures."""

import pytest

import fakeredis.aioredis


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def memory_store():
    """Create an empty in-memory counter store."""
    from tiergate.repository import InMemoryCounterStore

    return InMemoryCounterStore()


@pytest.fixture
def mock_redis():
    """Create a fake Redis client for testing."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def tracker(memory_store, clock):
    """Create a rate limit tracker on the in-memory store."""
    from tiergate.limiter import RateLimitTracker

    return RateLimitTracker(store=memory_store, clock=clock, max_attempts=16)


@pytest.fixture
def service(tracker):
    """Create a gateway service with the default tier table."""
    from tiergate.gate import CapabilityGate
    from tiergate.service import GatewayService
    from tiergate.tiers import DEFAULT_PREFIX_RULES, FREE_TIER, PrefixKeyClassifier

    return GatewayService(
        classifier=PrefixKeyClassifier(DEFAULT_PREFIX_RULES, default=FREE_TIER),
        tracker=tracker,
        gate=CapabilityGate(),
    )


@pytest.fixture
def sample_tier():
    """Create a small tier for quota tests."""
    from tiergate.models import Tier, TierName

    return Tier(
        name=TierName.FREE,
        requestsPerMinute=2,
        requestsPerHour=10,
        requestsPerDay=100,
        allowPrivilegedCapability=False,
    )


@pytest.fixture
def unlimited_tier():
    """Create a tier without any quota."""
    from tiergate.models import Tier, TierName

    return Tier(
        name=TierName.ENTERPRISE,
        requestsPerMinute=None,
        requestsPerHour=None,
        requestsPerDay=None,
        allowPrivilegedCapability=True,
    )
