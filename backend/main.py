"""
Parley - Multi-provider LLM chat backend
FastAPI service with web search, citations and persisted sessions
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import chat, sessions
from errors import register_exception_handlers
from logging_config import setup_logging
from config import runtime_config
from services.container import ChatServices, build_services

setup_logging()
logger = logging.getLogger(__name__)

# Instance ID - changes on every startup, used by the client to detect restarts
INSTANCE_ID = str(uuid.uuid4())


def create_app(services: Optional[ChatServices] = None) -> FastAPI:
    """Build the FastAPI app.

    Args:
        services: Prebuilt service container (tests). When None, services are
            built from runtime_config during startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services if services is not None else await build_services(runtime_config)
        checks = await app.state.services.health()
        logger.info(f"Parley is ready ({', '.join(f'{k}={v}' for k, v in checks.items())})")
        yield
        if owned:
            await app.state.services.close()
        logger.info("Parley signing off")

    app = FastAPI(
        title="Parley",
        description="Multi-provider chat with web search and citations",
        version="1.0.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime_config.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat.router, tags=["chat"])
    app.include_router(sessions.router, prefix="/api", tags=["sessions"])

    @app.get("/health")
    async def health():
        """Health check - pings storage dependencies."""
        checks = await app.state.services.health()
        all_ok = all(v in ("ok", "fallback", "disabled", "memory", "postgresql") for v in checks.values())
        return {
            "status": "healthy" if all_ok else "degraded",
            "service": "parley",
            "instance_id": INSTANCE_ID,
            "checks": checks,
        }

    return app


app = create_app()
