"""Key-value persistence: an in-process fast path in front of optional Redis.

Redis owns the truth. The in-process cache is a best-effort mirror: losing it
costs latency, never correctness. Without a Redis URL the store runs in
memory-only mode, which keeps a single process fully functional but forgets
everything on restart.

Misses are not cached: a key set later by another process must become
visible on the next read. For the same reason, while Redis is configured the
mirror holds any value for at most ``mirror_ttl_seconds``.
"""

import time
from typing import Callable, Optional

import redis.asyncio as redis_async
from redis.exceptions import RedisError

from relay.logging_config import get_logger
from relay.services.errors import PersistenceError

logger = get_logger("kv_store")

DEFAULT_TTL_SECONDS = 1800
DEFAULT_MIRROR_TTL_SECONDS = 60
DEFAULT_MAX_ENTRIES = 10000
DEFAULT_CLEANUP_INTERVAL_SECONDS = 60


class MemoryCache:
    """Process-local dict with per-entry expiry and a size cap."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._max_entries = max(int(max_entries), 1)
        self._cleanup_interval_seconds = max(float(cleanup_interval_seconds), 1.0)
        self._clock = clock
        self._next_cleanup = 0.0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        now = self._clock()
        self._purge_if_due(now)
        self._entries[key] = (value, now + ttl_seconds)
        self._enforce_size_limit()

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _purge_if_due(self, now: float) -> None:
        if now < self._next_cleanup:
            return
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._next_cleanup = now + self._cleanup_interval_seconds
        if expired:
            logger.debug(f"Memory cache purged {len(expired)} expired entries")

    def _enforce_size_limit(self) -> None:
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        victims = sorted(self._entries.items(), key=lambda item: item[1][1])[:overflow]
        for key, _ in victims:
            del self._entries[key]
        logger.warning(
            "Memory cache cap reached, evicted entries",
            extra={"context": {"evicted": overflow, "cap": self._max_entries}},
        )


class KeyValueStore:
    """get / set-with-expiry / delete over the memory mirror and Redis."""

    def __init__(
        self,
        redis_client=None,
        *,
        memory: MemoryCache | None = None,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        mirror_ttl_seconds: int = DEFAULT_MIRROR_TTL_SECONDS,
    ) -> None:
        self._redis = redis_client
        self._memory = memory if memory is not None else MemoryCache()
        self.default_ttl_seconds = default_ttl_seconds
        self.mirror_ttl_seconds = mirror_ttl_seconds

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout_seconds: float = 1.0,
        **kwargs,
    ) -> "KeyValueStore":
        """Build a Redis-backed store. Raises PersistenceError on a bad URL."""
        try:
            client = redis_async.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=socket_timeout_seconds,
                socket_timeout=socket_timeout_seconds,
            )
        except ValueError as exc:
            raise PersistenceError(f"Invalid KV_URL: {exc}") from exc
        return cls(client, **kwargs)

    @property
    def durable(self) -> bool:
        return self._redis is not None

    @property
    def memory(self) -> MemoryCache:
        return self._memory

    def _resolve_ttl(self, ttl_seconds: int) -> int:
        return ttl_seconds if ttl_seconds and ttl_seconds > 0 else self.default_ttl_seconds

    def _mirror_ttl(self, ttl: int) -> int:
        # Another worker may overwrite or delete the key in Redis at any time.
        return min(ttl, self.mirror_ttl_seconds) if self._redis is not None else ttl

    async def get(self, key: str) -> Optional[str]:
        value = self._memory.get(key)
        if value is not None or self._redis is None:
            return value

        try:
            value = await self._redis.get(key)
        except (RedisError, OSError) as exc:
            logger.warning(f"KV read failed, serving from memory only: {exc}", extra={"context": {"key": key}})
            return None

        if value is not None:
            self._memory.set(key, value, self._mirror_ttl(self.default_ttl_seconds))
        return value

    async def set(self, key: str, value: str, ttl_seconds: int = 0) -> None:
        ttl = self._resolve_ttl(ttl_seconds)
        self._memory.set(key, value, self._mirror_ttl(ttl))
        if self._redis is None:
            return
        try:
            await self._redis.set(key, value, ex=ttl)
        except (RedisError, OSError) as exc:
            self._memory.set(key, value, ttl)
            logger.warning(f"KV write failed, value kept in memory only: {exc}", extra={"context": {"key": key}})

    async def pop(self, key: str) -> Optional[str]:
        """Read and delete ``key`` in one step. Only one caller across workers gets the value."""
        local = self._memory.get(key)
        self._memory.delete(key)
        if self._redis is None:
            return local
        try:
            return await self._redis.getdel(key)
        except (RedisError, OSError) as exc:
            logger.warning(f"KV pop failed, serving from memory only: {exc}", extra={"context": {"key": key}})
            return local

    async def delete(self, key: str) -> None:
        self._memory.delete(key)
        if self._redis is None:
            return
        try:
            await self._redis.delete(key)
        except (RedisError, OSError) as exc:
            logger.warning(f"KV delete failed: {exc}", extra={"context": {"key": key}})

    async def ping(self) -> bool:
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError) as exc:
            logger.warning(f"KV ping failed: {exc}")
            return False

    async def aclose(self) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
        except (RedisError, OSError) as exc:
            logger.warning(f"KV close failed: {exc}")
