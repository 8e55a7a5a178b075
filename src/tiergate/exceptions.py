"""Gateway error taxonomy.

Every error here is an expected, caller-recoverable condition. Each one
carries the HTTP status and the machine-readable ``code`` that clients
branch on, so the HTTP layer renders them without further inspection.
"""

from datetime import datetime, timezone

from tiergate.models import Window


class GatewayError(Exception):
    """Base class for errors rendered as ``{"error", "code"}`` bodies."""

    status_code: int = 400
    code: str = "GATEWAY_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


class MissingKeyError(GatewayError):
    """No API key was supplied with the request."""

    status_code = 401
    code = "INVALID_API_KEY"

    def __init__(self, message: str = "Invalid or missing API key") -> None:
        super().__init__(message)


class RateLimitExceededError(GatewayError):
    """One of the key's quota windows is exhausted."""

    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, window: Window, limit: int, reset_at: float) -> None:
        self.window = window
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(
            f"{window.label} rate limit exceeded. Limit: {limit} requests. "
            f"Reset at: {format_timestamp(reset_at)}"
        )


class CapabilityDeniedError(GatewayError):
    """The caller asked for real hardware but the tier does not allow it."""

    status_code = 403
    code = "HARDWARE_ACCESS_DENIED"

    def __init__(self, tier_name: str) -> None:
        self.tier_name = tier_name
        super().__init__(
            f"Real hardware access is not available on the {tier_name} tier. "
            "Upgrade to Pro or Enterprise."
        )


class InvalidParametersError(GatewayError):
    """Malformed request body."""

    status_code = 400
    code = "INVALID_PARAMETERS"

    def __init__(self, message: str = "Invalid request body") -> None:
        super().__init__(message)


class CounterStoreError(GatewayError):
    """The counter store is unreachable or could not complete an atomic update."""

    status_code = 503
    code = "STORE_UNAVAILABLE"


def format_timestamp(epoch_seconds: float) -> str:
    """Render epoch seconds as an ISO-8601 UTC string with millisecond precision."""
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
