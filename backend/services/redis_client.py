"""
Redis Manager - Key/value store behind the session list cache.

Wraps a redis.asyncio client. When Redis is disabled, unreachable at
startup, or fails mid-operation, the manager switches to LocalTTLCache (a
bounded in-process dict). While in fallback, cache calls retry the Redis
connection at most once per reconnect_interval seconds; on recovery, keys
written or deleted locally during the outage are deleted from Redis so no
listing cached before the outage is served again.
Callers never see Redis errors; a lost cache only costs extra database reads.

Usage:
    redis = RedisManager(url=config.redis_url, enabled=config.redis_enabled)
    await redis.connect()
    await redis.set("parley:sessions:u1", payload, ttl=60)
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Set, Tuple

import redis.asyncio as redis_async
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

REDIS_ERRORS = (RedisError, OSError)


class LocalTTLCache:
    """In-process stand-in for Redis: per-key TTL, least-recently-used eviction."""

    def __init__(self, max_entries: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, Tuple[str, Optional[float]]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self.clock() + ttl if ttl else None
        self._entries[key] = (value, expires_at)
        self._entries.move_to_end(key)
        if len(self._entries) > self.max_entries:
            self._drop_expired()
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _drop_expired(self) -> None:
        now = self.clock()
        for key in [k for k, (_, exp) in self._entries.items() if exp is not None and now >= exp]:
            del self._entries[key]


class RedisManager:
    """Redis client with LocalTTLCache fallback."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        enabled: bool = True,
        fallback_max_entries: int = 1000,
        reconnect_interval: float = 30.0,
    ):
        self.url = url
        self.enabled = enabled
        self.reconnect_interval = reconnect_interval
        self.local = LocalTTLCache(max_entries=fallback_max_entries)
        self._client: Any = None
        self._fallback_mode = False
        self._last_reconnect = 0.0
        # Keys changed in the local cache while Redis was away
        self._changed_locally: Set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        return self._client is not None and not self._fallback_mode

    @property
    def fallback_mode(self) -> bool:
        return self._fallback_mode

    async def connect(self) -> bool:
        """Connect and ping. Returns False (fallback mode) when Redis is off or unreachable."""
        if not self.enabled:
            logger.info("Redis disabled by config, caching in process")
            self._fallback_mode = True
            return False

        async with self._lock:
            if self.available:
                return True
            client = redis_async.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5.0,
                socket_timeout=5.0,
            )
            try:
                await client.ping()
            except REDIS_ERRORS as e:
                logger.warning(f"Redis connection failed: {e}, caching in process")
                self._fallback_mode = True
                self._last_reconnect = time.monotonic()
                await self._close(client)
                return False
            self._client = client
            self._fallback_mode = False
            logger.info(f"Redis connected: {self.url}")
            return True

    async def disconnect(self) -> None:
        async with self._lock:
            client, self._client = self._client, None
            if client is not None:
                await self._close(client)

    async def health_check(self) -> Dict[str, Any]:
        await self._maybe_reconnect()
        if self._fallback_mode:
            return {"status": "fallback", "mode": "in-memory", "cache_size": len(self.local)}
        if self._client is None:
            return {"status": "disconnected", "mode": "none"}

        start = time.monotonic()
        try:
            await self._client.ping()
        except REDIS_ERRORS as e:
            self._switch_to_local(f"health check failed: {e}")
            return {"status": "error", "mode": "fallback", "error": str(e)}
        return {"status": "connected", "mode": "redis", "latency_ms": round((time.monotonic() - start) * 1000, 2)}

    async def get(self, key: str) -> Optional[str]:
        await self._maybe_reconnect()
        if self.available:
            try:
                return await self._client.get(key)
            except REDIS_ERRORS as e:
                self._switch_to_local(f"GET {key} failed: {e}")
        return self.local.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store a value, expiring after `ttl` seconds when given."""
        await self._maybe_reconnect()
        if self.available:
            try:
                await self._client.set(key, value, ex=ttl or None)
                return
            except REDIS_ERRORS as e:
                self._switch_to_local(f"SET {key} failed: {e}")
        self._changed_locally.add(key)
        self.local.set(key, value, ttl)

    async def delete(self, key: str) -> None:
        await self._maybe_reconnect()
        if self.available:
            try:
                await self._client.delete(key)
                return
            except REDIS_ERRORS as e:
                self._switch_to_local(f"DELETE {key} failed: {e}")
        self._changed_locally.add(key)
        self.local.delete(key)

    async def try_reconnect(self) -> bool:
        """Leave fallback mode if Redis answers again."""
        if not self._fallback_mode:
            return True
        if not self.enabled:
            return False
        logger.info("Attempting Redis reconnection...")
        stale, self._client = self._client, None
        if stale is not None:
            await self._close(stale)
        if not await self.connect():
            return False

        changed, self._changed_locally = self._changed_locally, set()
        if changed:
            try:
                await self._client.delete(*changed)
            except REDIS_ERRORS as e:
                self._switch_to_local(f"invalidating {len(changed)} keys failed: {e}")
                self._changed_locally |= changed
                return False
        self.local.clear()
        return True

    async def _maybe_reconnect(self) -> None:
        if not self._fallback_mode or not self.enabled:
            return
        now = time.monotonic()
        if now - self._last_reconnect < self.reconnect_interval:
            return
        self._last_reconnect = now
        await self.try_reconnect()

    def _switch_to_local(self, reason: str) -> None:
        if not self._fallback_mode:
            logger.warning(f"Redis unavailable ({reason}), caching in process")
            self._fallback_mode = True
            self._last_reconnect = time.monotonic()

    async def _close(self, client) -> None:
        try:
            await client.aclose()
        except REDIS_ERRORS as e:
            logger.warning(f"Error closing Redis: {e}")
