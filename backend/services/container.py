"""
Service Container - Everything a request needs, built once at startup.

The container is stored on app.state.services and passed by reference; no
module-level client singletons. Tests build their own container from fakes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config import RuntimeConfig
from routers.chat_executors.search import WebSearchClient
from routers.chat_orchestration.orchestrator import ChatOrchestrator
from .auth import TokenVerifier
from .database import DatabaseManager
from .model_registry import ModelRegistry
from .redis_client import RedisManager
from .session_cache import CachingSessionStore, SessionListCache
from .session_store import build_session_store

logger = logging.getLogger(__name__)


@dataclass
class ChatServices:
    config: RuntimeConfig
    registry: ModelRegistry
    store: Any
    search: Any
    auth: TokenVerifier
    orchestrator: ChatOrchestrator = field(init=False)
    redis: Optional[RedisManager] = None
    db: Optional[DatabaseManager] = None

    def __post_init__(self):
        self.orchestrator = ChatOrchestrator(
            registry=self.registry,
            store=self.store,
            search_client=self.search,
            config=self.config,
        )

    async def health(self) -> Dict[str, str]:
        """Component status for /health."""
        checks: Dict[str, str] = {}
        if self.db is not None:
            db_health = await self.db.health_check()
            checks["postgres"] = "ok" if db_health.get("status") == "connected" else "down"
        else:
            checks["postgres"] = "fallback"
        if self.redis is not None:
            redis_health = await self.redis.health_check()
            checks["redis"] = "ok" if redis_health.get("status") in ("connected", "fallback") else "down"
        else:
            checks["redis"] = "disabled"
        checks["session_store"] = getattr(self.store, "backend", "unknown")
        return checks

    async def close(self) -> None:
        """Release network resources (call on shutdown)."""
        aclose = getattr(self.search, "aclose", None)
        if aclose is not None:
            await aclose()
        if self.redis is not None:
            await self.redis.disconnect()
            logger.info("Redis connection closed")
        if self.db is not None:
            await self.db.disconnect()
            logger.info("PostgreSQL pool closed")


async def build_services(config: RuntimeConfig) -> ChatServices:
    """Connect storage and build provider clients from config."""
    store, db = await build_session_store(config)

    redis = None
    if config.session_cache_enabled:
        redis = RedisManager(url=config.redis_url, enabled=config.redis_enabled)
        await redis.connect()
        store = CachingSessionStore(
            store,
            SessionListCache(redis, ttl_seconds=config.session_cache_ttl, enabled=True),
        )

    return ChatServices(
        config=config,
        registry=ModelRegistry.from_config(config),
        store=store,
        search=WebSearchClient(config),
        auth=TokenVerifier(config.jwt_secret),
        redis=redis,
        db=db,
    )
