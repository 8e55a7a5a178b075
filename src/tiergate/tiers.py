"""Tier table and API key classification."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Optional

import structlog

from tiergate.config import get_settings
from tiergate.exceptions import MissingKeyError
from tiergate.models import Tier, TierName

logger = structlog.get_logger()


FREE_TIER = Tier(
    name=TierName.FREE,
    requestsPerMinute=2,
    requestsPerHour=10,
    requestsPerDay=100,
    allowPrivilegedCapability=False,
)

PRO_TIER = Tier(
    name=TierName.PRO,
    requestsPerMinute=100,
    requestsPerHour=1000,
    requestsPerDay=10000,
    allowPrivilegedCapability=True,
)

ENTERPRISE_TIER = Tier(
    name=TierName.ENTERPRISE,
    requestsPerMinute=None,
    requestsPerHour=None,
    requestsPerDay=None,
    allowPrivilegedCapability=True,
)

TIERS: dict[TierName, Tier] = {
    tier.name: tier for tier in (FREE_TIER, PRO_TIER, ENTERPRISE_TIER)
}

# Key prefix -> tier
DEFAULT_PREFIX_RULES: tuple[tuple[str, Tier], ...] = (
    ("free_", FREE_TIER),
    ("pro_", PRO_TIER),
    ("ent_", ENTERPRISE_TIER),
)


class KeyClassifier(ABC):
    """Resolves a raw API key to a tier. Implementations must be side-effect free."""

    @abstractmethod
    def classify(self, raw_key: Optional[str]) -> Tier:
        """Return the tier for ``raw_key``; raise MissingKeyError when absent."""


class PrefixKeyClassifier(KeyClassifier):
    """Classifies keys by their literal prefix.

    Keys are not authenticated. Unknown prefixes are tolerated and land in
    the default tier.
    """

    def __init__(self, rules: Iterable[tuple[str, Tier]], default: Tier) -> None:
        # Longest prefix wins when prefixes overlap
        self._rules = sorted(rules, key=lambda rule: len(rule[0]), reverse=True)
        self._default = default

    @property
    def default(self) -> Tier:
        return self._default

    def classify(self, raw_key: Optional[str]) -> Tier:
        if not raw_key:
            raise MissingKeyError()

        for prefix, tier in self._rules:
            if raw_key.startswith(prefix):
                return tier

        return self._default


# Singleton instance
_classifier: Optional[KeyClassifier] = None


def get_classifier() -> KeyClassifier:
    """Get the classifier singleton."""
    global _classifier
    if _classifier is None:
        settings = get_settings()
        default = TIERS[TierName(settings.default_tier)]
        _classifier = PrefixKeyClassifier(DEFAULT_PREFIX_RULES, default=default)
        logger.info("key_classifier_ready", default_tier=default.name.value)
    return _classifier
