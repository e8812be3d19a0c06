"""
Session Cache - Read-through cache for per-owner session listings.

Listing an owner's sessions hits the database on every sidebar refresh, so
the serialized list is cached for a short TTL and dropped whenever a write
touches that owner's sessions.

Key pattern: parley:sessions:{owner_id}
TTL: 60 seconds (session_cache_ttl)

Usage:
    cache = SessionListCache(redis, ttl_seconds=60)
    store = CachingSessionStore(PostgresSessionStore(db), cache)
    sessions = await store.list_sessions(owner_id)
"""

import json
import logging
from typing import Any, Dict, List, Optional

from routers.chat_orchestration.session import ChatMessage, ChatSession, SessionSummary
from .redis_client import RedisManager

logger = logging.getLogger(__name__)

SESSION_LIST_PREFIX = "parley:sessions:"


class SessionListCache:
    """
    Redis-backed cache of SessionSummary lists.

    Cache failures are logged and treated as misses; the database stays the
    source of truth.
    """

    def __init__(self, redis: RedisManager, ttl_seconds: int = 60, enabled: bool = True):
        """
        Args:
            redis: Connected (or fallback) RedisManager
            ttl_seconds: Listing TTL in seconds
            enabled: When False every call is a miss and nothing is stored
        """
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled and ttl_seconds > 0

    def _make_key(self, owner_id: str) -> str:
        return f"{SESSION_LIST_PREFIX}{owner_id}"

    async def get(self, owner_id: str) -> Optional[List[SessionSummary]]:
        """Cached listing for an owner, or None on miss."""
        if not self.enabled:
            return None

        raw = await self.redis.get(self._make_key(owner_id))
        if raw is None:
            return None
        try:
            return [SessionSummary.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable session list cache for {owner_id}: {e}")
            await self.redis.delete(self._make_key(owner_id))
            return None

    async def put(self, owner_id: str, sessions: List[SessionSummary]) -> None:
        if not self.enabled:
            return
        payload = json.dumps([s.to_wire() for s in sessions])
        await self.redis.set(self._make_key(owner_id), payload, ttl=self.ttl_seconds)

    async def invalidate(self, owner_id: str) -> None:
        if not self.enabled:
            return
        await self.redis.delete(self._make_key(owner_id))
        logger.debug(f"Session list cache invalidated: {owner_id}")


class CachingSessionStore:
    """Session store wrapper that serves list_sessions from SessionListCache.

    Every write for an owner invalidates that owner's cached listing, so a
    listing is never staler than one TTL after a write on another process
    and never stale at all within this one.
    """

    def __init__(self, store: Any, cache: SessionListCache):
        self.store = store
        self.cache = cache

    @property
    def backend(self) -> str:
        return getattr(self.store, "backend", type(self.store).__name__)

    async def load_session(self, owner_id: str, session_id: str) -> Optional[ChatSession]:
        return await self.store.load_session(owner_id, session_id)

    async def save_messages(
        self,
        owner_id: str,
        session_id: str,
        messages: List[ChatMessage],
        title: Optional[str] = None,
    ) -> None:
        try:
            await self.store.save_messages(owner_id, session_id, messages, title=title)
        finally:
            await self.cache.invalidate(owner_id)

    async def list_sessions(self, owner_id: str) -> List[SessionSummary]:
        cached = await self.cache.get(owner_id)
        if cached is not None:
            return cached
        sessions = await self.store.list_sessions(owner_id)
        await self.cache.put(owner_id, sessions)
        return sessions

    async def create_session(self, owner_id: str, title: Optional[str] = None) -> ChatSession:
        session = await self.store.create_session(owner_id, title=title)
        await self.cache.invalidate(owner_id)
        return session

    async def delete_session(self, owner_id: str, session_id: str) -> bool:
        deleted = await self.store.delete_session(owner_id, session_id)
        await self.cache.invalidate(owner_id)
        return deleted

    async def health_check(self) -> Dict[str, Any]:
        return {"store": await self.store.health_check(), "cache": await self.cache.redis.health_check()}
