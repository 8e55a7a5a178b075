"""Counter stores holding per-key quota usage."""

import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import NoScriptError, RedisError

from tiergate.config import get_settings
from tiergate.exceptions import CounterStoreError
from tiergate.metrics import metrics
from tiergate.models import KeyUsage

logger = structlog.get_logger()

# Lua script for compare-and-swap on a usage record (atomic operation)
COMPARE_AND_SWAP_SCRIPT = """
local key = KEYS[1]
local index = KEYS[2]
local expected = tonumber(ARGV[1])
local state = ARGV[2]

local current = redis.call('HGET', key, 'version')
if current == false then
    current = 0
else
    current = tonumber(current)
end

if current ~= expected then
    return 0
end

redis.call('HSET', key, 'version', current + 1, 'state', state)
if current == 0 then
    redis.call('SADD', index, key)
end
return 1
"""


class CounterStore(ABC):
    """Versioned storage for :class:`KeyUsage` records.

    ``get`` returns the record with its version (0 for a key never
    written). ``compare_and_swap`` replaces the record only if the stored
    version still equals ``expected_version`` and bumps the version by one.
    """

    async def connect(self) -> None:
        """Open any underlying connection."""

    async def disconnect(self) -> None:
        """Release any underlying connection."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get(self, key: str) -> tuple[Optional[KeyUsage], int]:
        """Return ``(usage, version)`` for ``key``."""

    @abstractmethod
    async def compare_and_swap(self, key: str, expected_version: int, usage: KeyUsage) -> bool:
        """Store ``usage`` if the version is unchanged; return whether it was stored."""

    @abstractmethod
    async def tracked_keys(self) -> int:
        """Number of keys with stored usage."""


class InMemoryCounterStore(CounterStore):
    """Process-local store. State lives exactly as long as the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, tuple[int, KeyUsage]] = {}

    async def get(self, key: str) -> tuple[Optional[KeyUsage], int]:
        with self._lock:
            record = self._records.get(key)
        if record is None:
            return None, 0
        version, usage = record
        return usage.model_copy(deep=True), version

    async def compare_and_swap(self, key: str, expected_version: int, usage: KeyUsage) -> bool:
        with self._lock:
            current_version = self._records.get(key, (0, None))[0]
            if current_version != expected_version:
                return False
            self._records[key] = (current_version + 1, usage.model_copy(deep=True))
            return True

    async def tracked_keys(self) -> int:
        with self._lock:
            return len(self._records)


class RedisCounterStore(CounterStore):
    """Redis-backed store shared by every gateway process."""

    def __init__(self, key_prefix: Optional[str] = None) -> None:
        self._client: redis.Redis | None = None
        self._cas_sha: str | None = None
        self._prefix = key_prefix or get_settings().redis_key_prefix

    def _key(self, api_key: str) -> str:
        return f"{self._prefix}:{api_key}"

    @property
    def _index_key(self) -> str:
        return f"{self._prefix}:keys"

    async def connect(self) -> None:
        """Connect to Redis."""
        settings = get_settings()
        self._client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
            max_connections=settings.redis_pool_size,
        )
        await self._client.ping()
        logger.info("redis_connected", host=settings.redis_host, port=settings.redis_port)

        self._cas_sha = await self._client.script_load(COMPARE_AND_SWAP_SCRIPT)
        logger.info("lua_scripts_loaded", scripts=["compare_and_swap"])

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            logger.info("redis_disconnected")

    async def health_check(self) -> bool:
        """Check if Redis is healthy."""
        try:
            if self._client:
                await self._client.ping()
                return True
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
        return False

    def _client_or_raise(self) -> redis.Redis:
        if not self._client:
            raise CounterStoreError("Redis not connected")
        return self._client

    def _failed(self, operation: str, error: RedisError) -> CounterStoreError:
        metrics.store_operations_total.labels(operation=operation, status="error").inc()
        logger.error("redis_operation_failed", operation=operation, error=str(error))
        return CounterStoreError("Counter store unavailable, retry the request")

    async def get(self, key: str) -> tuple[Optional[KeyUsage], int]:
        client = self._client_or_raise()

        start = time.perf_counter()
        try:
            version, state = await client.hmget(self._key(key), ["version", "state"])  # type: ignore[misc]
        except RedisError as e:
            raise self._failed("get", e) from e
        metrics.store_latency.labels(operation="get").observe(time.perf_counter() - start)
        metrics.store_operations_total.labels(operation="get", status="ok").inc()

        if version is None or state is None:
            return None, 0
        return KeyUsage.model_validate_json(state), int(version)

    async def compare_and_swap(self, key: str, expected_version: int, usage: KeyUsage) -> bool:
        client = self._client_or_raise()
        if not self._cas_sha:
            raise CounterStoreError("Redis not connected")

        start = time.perf_counter()
        try:
            result = await client.evalsha(  # type: ignore[misc]
                self._cas_sha,
                2,
                self._key(key),
                self._index_key,
                str(expected_version),
                usage.model_dump_json(),
            )
        except NoScriptError:
            # Script was flushed, reload it
            try:
                self._cas_sha = await client.script_load(COMPARE_AND_SWAP_SCRIPT)
            except RedisError as e:
                raise self._failed("compare_and_swap", e) from e
            return await self.compare_and_swap(key, expected_version, usage)
        except RedisError as e:
            raise self._failed("compare_and_swap", e) from e

        swapped = int(result) == 1
        metrics.store_latency.labels(operation="compare_and_swap").observe(
            time.perf_counter() - start
        )
        metrics.store_operations_total.labels(
            operation="compare_and_swap", status="ok" if swapped else "conflict"
        ).inc()
        return swapped

    async def tracked_keys(self) -> int:
        client = self._client_or_raise()
        try:
            return int(await client.scard(self._index_key))  # type: ignore[misc]
        except RedisError as e:
            raise self._failed("tracked_keys", e) from e


# Singleton instance
_store: CounterStore | None = None


def get_store() -> CounterStore:
    """Get the counter store singleton selected by settings."""
    global _store
    if _store is None:
        backend = get_settings().store_backend
        if backend == "redis":
            _store = RedisCounterStore()
        elif backend == "memory":
            _store = InMemoryCounterStore()
        else:
            raise ValueError(f"Unknown store backend: {backend}")
    return _store
