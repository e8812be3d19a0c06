"""
Tests for the session list cache and the Redis fallback it runs on.
"""

import asyncio

from redis.exceptions import ConnectionError as RedisConnectionError

from errors import PersistenceError
from routers.chat_orchestration.session import ChatMessage
from services import redis_client
from services.database import DatabaseManager, classify_connect_error
from services.redis_client import LocalTTLCache, RedisManager
from services.session_cache import SESSION_LIST_PREFIX, CachingSessionStore, SessionListCache
from services.session_store import MemorySessionStore

from conftest import OWNER


class CountingStore(MemorySessionStore):
    def __init__(self):
        super().__init__()
        self.list_calls = 0

    async def list_sessions(self, owner_id):
        self.list_calls += 1
        return await super().list_sessions(owner_id)


async def fallback_redis() -> RedisManager:
    redis = RedisManager(enabled=False)
    await redis.connect()
    return redis


async def caching_store(ttl_seconds=60, enabled=True):
    redis = await fallback_redis()
    inner = CountingStore()
    return CachingSessionStore(inner, SessionListCache(redis, ttl_seconds=ttl_seconds, enabled=enabled)), inner, redis


class FakeRedis:
    """Minimal redis.asyncio client; every call fails while `up` is False."""

    def __init__(self, up=True):
        self.up = up
        self.data = {}
        self.deleted = []
        self.closed = False

    def _check(self):
        if not self.up:
            raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value

    async def delete(self, *keys):
        self._check()
        self.deleted.extend(keys)
        for key in keys:
            self.data.pop(key, None)

    async def aclose(self):
        self.closed = True


class FakeRedisServer:
    """Replaces redis.asyncio.from_url; hands out FakeRedis clients."""

    def __init__(self, up=True):
        self.up = up
        self.clients = []

    def from_url(self, url, **kwargs):
        client = FakeRedis(up=self.up)
        self.clients.append(client)
        return client


def fake_server(monkeypatch, up=True) -> FakeRedisServer:
    server = FakeRedisServer(up=up)
    monkeypatch.setattr(redis_client.redis_async, "from_url", server.from_url)
    return server


class TestRedisFallback:
    def test_disabled_redis_uses_local_cache(self):
        async def scenario():
            redis = await fallback_redis()
            await redis.set("k", "v", ttl=60)
            value = await redis.get("k")
            await redis.delete("k")
            return redis, value, await redis.get("k"), await redis.health_check()

        redis, value, after_delete, health = asyncio.run(scenario())
        assert redis.fallback_mode is True
        assert value == "v"
        assert after_delete is None
        assert health["status"] == "fallback"

    def test_local_cache_expires(self):
        now = [100.0]
        cache = LocalTTLCache(clock=lambda: now[0])
        cache.set("k", "v", ttl=60)
        now[0] += 59
        assert cache.get("k") == "v"
        now[0] += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_local_cache_evicts_least_recently_used(self):
        async def scenario():
            redis = RedisManager(enabled=False, fallback_max_entries=2)
            await redis.connect()
            await redis.set("a", "1")
            await redis.set("b", "2")
            await redis.get("a")
            await redis.set("c", "3")
            return [await redis.get(k) for k in ("a", "b", "c")]

        assert asyncio.run(scenario()) == ["1", None, "3"]

    def test_reconnect_stays_in_fallback_when_disabled(self):
        async def scenario():
            redis = await fallback_redis()
            db = DatabaseManager(enabled=False)
            await db.connect()
            return await redis.try_reconnect(), await db.health_check()

        redis_ok, db_health = asyncio.run(scenario())
        assert redis_ok is False
        assert db_health["status"] == "fallback"


class TestRedisRecovery:
    def test_cache_calls_reconnect_and_invalidate_keys_changed_during_outage(self, monkeypatch):
        server = fake_server(monkeypatch, up=False)

        async def scenario():
            redis = RedisManager(reconnect_interval=0)
            connected = await redis.connect()
            await redis.delete("parley:sessions:u1")
            server.up = True
            value = await redis.get("parley:sessions:u1")
            return redis, connected, value

        redis, connected, value = asyncio.run(scenario())
        assert connected is False
        assert redis.fallback_mode is False
        assert value is None
        assert server.clients[0].closed is True
        assert server.clients[-1].deleted == ["parley:sessions:u1"]
        assert len(redis.local) == 0

    def test_reconnect_attempts_are_throttled(self, monkeypatch):
        server = fake_server(monkeypatch, up=False)

        async def scenario():
            redis = RedisManager(reconnect_interval=30)
            await redis.connect()
            for _ in range(3):
                await redis.set("k", "v")
                await redis.get("k")
            return redis

        redis = asyncio.run(scenario())
        assert redis.fallback_mode is True
        assert len(server.clients) == 1

    def test_failure_mid_operation_switches_to_local_cache(self, monkeypatch):
        server = fake_server(monkeypatch)

        async def scenario():
            redis = RedisManager(reconnect_interval=30)
            await redis.connect()
            await redis.set("k", "from-redis")
            server.clients[0].up = False
            value = await redis.get("k")
            await redis.set("k", "local")
            return redis, value, await redis.get("k")

        redis, value, local_value = asyncio.run(scenario())
        assert value is None
        assert redis.fallback_mode is True
        assert local_value == "local"


class TestCachingSessionStore:
    def test_listing_is_served_from_cache(self):
        async def scenario():
            store, inner, redis = await caching_store()
            await store.create_session(OWNER, title="one")
            first = await store.list_sessions(OWNER)
            second = await store.list_sessions(OWNER)
            cached_raw = await redis.get(f"{SESSION_LIST_PREFIX}{OWNER}")
            return first, second, inner.list_calls, cached_raw

        first, second, calls, cached_raw = asyncio.run(scenario())
        assert calls == 1
        assert [s.title for s in second] == [s.title for s in first] == ["one"]
        assert cached_raw is not None

    def test_writes_invalidate_listing(self):
        async def scenario():
            store, inner, _ = await caching_store()
            session = await store.create_session(OWNER)
            await store.list_sessions(OWNER)
            await store.save_messages(OWNER, session.id, [ChatMessage(role="user", content="hi")], title="hi")
            titles = [s.title for s in await store.list_sessions(OWNER)]
            await store.delete_session(OWNER, session.id)
            remaining = await store.list_sessions(OWNER)
            return titles, remaining, inner.list_calls

        titles, remaining, calls = asyncio.run(scenario())
        assert titles == ["hi"]
        assert remaining == []
        assert calls == 3

    def test_failed_save_still_invalidates(self):
        async def scenario():
            store, inner, redis = await caching_store()
            await store.list_sessions(OWNER)
            error = None
            try:
                await store.save_messages(OWNER, "missing", [])
            except PersistenceError as e:
                error = e
            return error, await redis.get(f"{SESSION_LIST_PREFIX}{OWNER}")

        error, cached = asyncio.run(scenario())
        assert isinstance(error, PersistenceError)
        assert cached is None

    def test_disabled_cache_always_reads_through(self):
        async def scenario():
            store, inner, _ = await caching_store(enabled=False)
            await store.list_sessions(OWNER)
            await store.list_sessions(OWNER)
            return inner.list_calls

        assert asyncio.run(scenario()) == 2

    def test_unreadable_entry_is_discarded(self):
        async def scenario():
            redis = await fallback_redis()
            cache = SessionListCache(redis)
            await redis.set(f"{SESSION_LIST_PREFIX}{OWNER}", "not json")
            result = await cache.get(OWNER)
            return result, await redis.get(f"{SESSION_LIST_PREFIX}{OWNER}")

        assert asyncio.run(scenario()) == (None, None)

    def test_backend_name_passes_through(self):
        store, _, _ = asyncio.run(caching_store())
        assert store.backend == "memory"


class TestConnectErrorClassification:
    def test_auth_failures_are_not_retried(self):
        assert classify_connect_error(OSError('password authentication failed for user "parley"')) == "auth"

    def test_booting_database_is_retried(self):
        assert classify_connect_error(OSError("the database system is starting up")) == "retry"
        assert classify_connect_error(ConnectionRefusedError(111, "refused")) == "retry"

    def test_other_errors_are_fatal(self):
        assert classify_connect_error(OSError("no such host")) == "fatal"
