"""
Shared pytest fixtures for the Parley backend tests.

Provides fakes for the two network collaborators (model provider, web
search) so the orchestrator and HTTP layer run without any external service.
"""

import asyncio
import itertools
from typing import Any, Dict, List, Optional

import pytest

from config import RuntimeConfig
from routers.chat_orchestration.orchestrator import ChatOrchestrator, TurnRequest
from routers.chat_orchestration.session import ChatMessage
from services.auth import TokenVerifier
from services.container import ChatServices
from services.llm_client import StreamDelta
from services.model_registry import ModelRegistry
from services.session_store import MemorySessionStore

TEST_JWT_SECRET = "test-secret-with-enough-bytes-for-hs256"
OWNER = "user-1"
OTHER_OWNER = "user-2"


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


class FakeLLMClient:
    """Stand-in for LLMClient.stream_chat.

    Args:
        deltas: StreamDelta items (or plain strings for text) to yield
        error: Exception raised after `error_after` deltas (default: after all)
        error_after: Index at which to raise `error`
    """

    def __init__(self, deltas=None, error: Optional[Exception] = None, error_after: Optional[int] = None):
        self.deltas = [StreamDelta(kind="text", text=d) if isinstance(d, str) else d for d in (deltas or [])]
        self.error = error
        self.error_after = error_after
        self.calls: List[Dict[str, Any]] = []
        self.closed = 0

    async def stream_chat(self, model, messages, options=None, extract_reasoning=False, start_with_reasoning=False):
        self.calls.append(
            {
                "model": model,
                "messages": messages,
                "options": options or {},
                "extract_reasoning": extract_reasoning,
                "start_with_reasoning": start_with_reasoning,
            }
        )
        try:
            for index, delta in enumerate(self.deltas):
                if self.error is not None and self.error_after == index:
                    raise self.error
                yield delta
            if self.error is not None and (self.error_after is None or self.error_after >= len(self.deltas)):
                raise self.error
        finally:
            self.closed += 1

    @property
    def last_system_prompt(self) -> str:
        return self.calls[-1]["messages"][0]["content"]


class FakeSearchClient:
    """Stand-in for WebSearchClient with a canned response."""

    provider = "tavily"

    def __init__(self, results=None, response: Optional[dict] = None, error: Optional[Exception] = None):
        self.response = response if response is not None else {"success": True, "results": list(results or [])}
        self.error = error
        self.queries: List[str] = []

    async def search(self, question: str) -> dict:
        self.queries.append(question)
        if self.error is not None:
            raise self.error
        return self.response


def make_config(**overrides) -> RuntimeConfig:
    values = dict(
        copilot_api_key="copilot-key",
        groq_api_key="groq-key",
        google_api_key="google-key",
        github_api_key="github-key",
        tavily_api_key="tvly-key",
        default_model="gemini-2.5-flash-preview-04-17",
        smoothing_delay_ms=0,
        expose_stream_errors=False,
        database_enabled=False,
        redis_enabled=False,
        jwt_secret=TEST_JWT_SECRET,
    )
    values.update(overrides)
    return RuntimeConfig(**values)


def make_registry(config: RuntimeConfig, llm: FakeLLMClient) -> ModelRegistry:
    clients = {name: llm for name in ("copilot", "groq", "google", "github")}
    return ModelRegistry.from_config(config, clients=clients)


def step_clock(step: float = 0.05):
    """Monotonic fake clock advancing by `step` seconds per call."""
    counter = itertools.count()
    return lambda: next(counter) * step


def user_message(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


def turn_request(session_id: str, text: str = "Hello there", **kwargs) -> TurnRequest:
    values = dict(
        owner_id=OWNER,
        session_id=session_id,
        message=user_message(text),
        model_id="gpt-4o",
        search_enabled=False,
        reasoning_enabled=False,
    )
    values.update(kwargs)
    return TurnRequest(**values)


async def collect(orchestrator: ChatOrchestrator, request: TurnRequest) -> list:
    turn = await orchestrator.prepare_turn(request)
    return [event async for event in orchestrator.stream_turn(turn)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def llm():
    return FakeLLMClient(["Hello", " world"])


@pytest.fixture
def search():
    return FakeSearchClient(
        results=[{"title": "Paris weather", "url": "https://x.com/p", "content": "Sunny, 20C"}]
    )


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def registry(config, llm):
    return make_registry(config, llm)


@pytest.fixture
def orchestrator(registry, store, search, config):
    return ChatOrchestrator(registry=registry, store=store, search_client=search, config=config, clock=step_clock())


@pytest.fixture
def session_id(store):
    return run(store.create_session(OWNER)).id


@pytest.fixture
def services(config, registry, store, search):
    return ChatServices(
        config=config,
        registry=registry,
        store=store,
        search=search,
        auth=TokenVerifier(TEST_JWT_SECRET),
    )


@pytest.fixture
def auth_headers(services):
    token = services.auth.create_token(OWNER)["token"]
    return {"Authorization": f"Bearer {token}"}
