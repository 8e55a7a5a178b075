"""Domain models for Tiergate."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TierName(StrEnum):
    """Service tiers."""

    FREE = "Free"
    PRO = "Pro"
    ENTERPRISE = "Enterprise"


class Window(StrEnum):
    """Quota window. Declaration order is the evaluation order."""

    DAY = "day"
    HOUR = "hour"
    MINUTE = "minute"

    @property
    def seconds(self) -> int:
        return _WINDOW_SECONDS[self]

    @property
    def label(self) -> str:
        return _WINDOW_LABELS[self]


_WINDOW_SECONDS = {Window.DAY: 86400, Window.HOUR: 3600, Window.MINUTE: 60}
_WINDOW_LABELS = {Window.DAY: "Daily", Window.HOUR: "Hourly", Window.MINUTE: "Minute"}


class Tier(BaseModel):
    """Static service tier. A limit of ``None`` means unlimited."""

    name: TierName
    requests_per_minute: int | None = Field(..., alias="requestsPerMinute", ge=0)
    requests_per_hour: int | None = Field(..., alias="requestsPerHour", ge=0)
    requests_per_day: int | None = Field(..., alias="requestsPerDay", ge=0)
    allow_privileged_capability: bool = Field(False, alias="allowPrivilegedCapability")
    allow_all_protocols: bool = Field(True, alias="allowAllProtocols")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def limit_for(self, window: Window) -> int | None:
        """Return the quota for ``window``, or None when unlimited."""
        if window is Window.DAY:
            return self.requests_per_day
        if window is Window.HOUR:
            return self.requests_per_hour
        return self.requests_per_minute

    @property
    def is_unlimited(self) -> bool:
        return all(self.limit_for(window) is None for window in Window)


class RateWindowState(BaseModel):
    """Counter for one (key, window) pair."""

    count: int = Field(0, ge=0)
    reset_at: float = Field(..., alias="resetAt")

    model_config = ConfigDict(populate_by_name=True)


class KeyUsage(BaseModel):
    """The three window counters tracked for a single API key."""

    day: RateWindowState
    hour: RateWindowState
    minute: RateWindowState

    @classmethod
    def fresh(cls, now: float) -> "KeyUsage":
        """Usage for a key with no history, every window starting at ``now``."""
        return cls(
            **{
                window.value: RateWindowState(count=0, resetAt=now + window.seconds)
                for window in Window
            }
        )

    def window(self, window: Window) -> RateWindowState:
        return getattr(self, window.value)


class RateLimitAllowed(BaseModel):
    """The request fits in every window; counters were incremented."""

    remaining: int | None
    reset_at: float
    usage: KeyUsage

    model_config = ConfigDict(frozen=True)


class RateLimitBlocked(BaseModel):
    """The request was refused by ``window``; no counter was incremented."""

    window: Window
    limit: int
    reset_at: float

    model_config = ConfigDict(frozen=True)


RateLimitResult = RateLimitAllowed | RateLimitBlocked


class CapabilityDecision(BaseModel):
    """Outcome of reconciling the requested mode with the tier."""

    effective_privileged: bool
    denied: bool
    reason: str | None = None

    model_config = ConfigDict(frozen=True)


class Admission(BaseModel):
    """A request that passed every gateway check."""

    tier: Tier
    rate_limit: RateLimitAllowed
    capability: CapabilityDecision

    model_config = ConfigDict(frozen=True)

    @property
    def effective_privileged(self) -> bool:
        return self.capability.effective_privileged

    def headers(self) -> dict[str, str]:
        """Informational headers attached to a successful response."""
        day_limit = self.tier.requests_per_day
        remaining = self.rate_limit.remaining
        return {
            "X-RateLimit-Limit": "unlimited" if day_limit is None else str(day_limit),
            "X-RateLimit-Remaining": "unlimited" if remaining is None else str(remaining),
            "X-RateLimit-Reset": str(int(self.rate_limit.reset_at)),
            "X-API-Tier": self.tier.name.value,
        }


# === HTTP models ===


class AuthorizeRequest(BaseModel):
    """Body of an authorization request."""

    use_real_hardware: bool = Field(False, alias="useRealHardware")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AuthorizeResponse(BaseModel):
    """Body returned when a request is admitted."""

    allow: bool
    tier: TierName
    effective_privileged: bool = Field(..., alias="effectivePrivileged")
    remaining: int | None = None
    reset_at: int = Field(..., alias="resetAt")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    @classmethod
    def from_admission(cls, admission: Admission) -> "AuthorizeResponse":
        return cls(
            allow=True,
            tier=admission.tier.name,
            effectivePrivileged=admission.effective_privileged,
            remaining=admission.rate_limit.remaining,
            resetAt=int(admission.rate_limit.reset_at),
        )


class WindowUsage(BaseModel):
    """Usage of one window as reported to callers."""

    window: Window
    count: int
    limit: int | None
    reset_at: int = Field(..., alias="resetAt")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class UsageResponse(BaseModel):
    """Current usage of the caller's key."""

    tier: TierName
    windows: list[WindowUsage]

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    @classmethod
    def build(cls, tier: Tier, usage: KeyUsage) -> "UsageResponse":
        return cls(
            tier=tier.name,
            windows=[
                WindowUsage(
                    window=window,
                    count=usage.window(window).count,
                    limit=tier.limit_for(window),
                    resetAt=int(usage.window(window).reset_at),
                )
                for window in Window
            ],
        )


class ErrorResponse(BaseModel):
    """Error body shared by every gateway rejection."""

    error: str
    code: str
