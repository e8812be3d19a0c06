"""
Parley Chat Orchestrator - One chat turn, start to finish

Handles the turn pipeline:
1. prepare_turn(): auth, model and session checks (before any stream starts)
2. stream_turn(): optional web search -> system prompt -> model stream
   -> info annotation -> persist -> finish

Turn state:
    IDLE -> AWAITING_SEARCH -> PROMPT_BUILT -> STREAMING -> COMPLETED | FAILED

Search failures degrade to an empty result set. Model stream failures end
the turn with a masked error event and nothing is saved. Persistence
failures are logged and the client still gets its finish event. If the
consumer stops iterating, the upstream model stream is closed and nothing
is saved.
"""

import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from errors import (
    ErrorCode,
    PersistenceError,
    SearchDegradedError,
    SessionNotFoundError,
    StreamError,
    UnauthorizedError,
    ValidationError,
    log_error,
)
from logging_config import log_llm, log_message_in, log_message_out, log_search, log_thinking
from routers.chat_prompts import DEFAULT_SYSTEM_PROMPT, select_system_prompt
from services.llm_client import smooth_lines
from services.model_registry import ModelRegistry, ModelSpec
from .citations import CitationCollector, build_search_annotation
from .events import (
    STATUS_PENDING,
    STATUS_SEARCHING,
    STATUS_SUCCESS,
    AnnotationEvent,
    ErrorEvent,
    FinishEvent,
    ReasoningDelta,
    StatusEvent,
    TextDelta,
    TurnEvent,
)
from .session import (
    ChatMessage,
    ChatSession,
    InfoAnnotation,
    SearchResultsAnnotation,
    derive_title,
    new_message_id,
)

logger = logging.getLogger(__name__)

MASKED_ERROR_MESSAGE = "An error occurred."


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_SEARCH = "awaiting_search"
    PROMPT_BUILT = "prompt_built"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TurnRequest:
    """Inbound turn: who is asking, where, and with which options."""

    owner_id: Optional[str]
    session_id: str
    message: ChatMessage
    model_id: str
    search_enabled: bool = False
    reasoning_enabled: bool = False


@dataclass
class PreparedTurn:
    """A validated turn plus the state accumulated while it runs."""

    request: TurnRequest
    session: ChatSession
    model: ModelSpec
    state: TurnState = TurnState.IDLE
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    search_results: List[Dict[str, Any]] = field(default_factory=list)
    search_annotation: Optional[SearchResultsAnnotation] = None
    citations: CitationCollector = field(default_factory=CitationCollector)
    assistant_id: str = field(default_factory=new_message_id)

    @property
    def question(self) -> str:
        return self.request.message.content


class ChatOrchestrator:
    """Runs chat turns against injected collaborators.

    Args:
        registry: ModelRegistry (model id -> client and capability flags)
        store: Session store (load_session / save_messages)
        search_client: Object with `async search(question) -> dict`
        config: RuntimeConfig (smoothing delay, error exposure)
        clock: Monotonic clock in seconds, used for time to first chunk
    """

    def __init__(
        self,
        registry: ModelRegistry,
        store: Any,
        search_client: Any,
        config: Any,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.store = store
        self.search_client = search_client
        self.config = config
        self.clock = clock

    # =========================================================================
    # Preparation
    # =========================================================================

    async def prepare_turn(self, request: TurnRequest) -> PreparedTurn:
        """Validate a turn before any response bytes are sent.

        Raises:
            UnauthorizedError: No owner id
            ValidationError: Unknown model, non-user message, or empty message
            SessionNotFoundError: Session missing or owned by someone else
        """
        if not request.owner_id:
            raise UnauthorizedError(details="Authentication required")

        model = self.registry.get(request.model_id)

        if request.message.role != "user":
            raise ValidationError(
                "Invalid message",
                details="Only user messages can start a turn",
                code=ErrorCode.VALIDATION_INVALID_VALUE,
                parameter="message.role",
                expected="user",
                received=request.message.role,
            )
        if not request.message.content.strip():
            raise ValidationError(
                "Message is empty",
                parameter="message.content",
                expected="non-empty text",
            )

        session = await self.store.load_session(request.owner_id, request.session_id)
        if session is None:
            raise SessionNotFoundError(request.session_id)

        log_message_in(
            logger,
            request.message.content,
            model=model.model_id,
            search=request.search_enabled,
            reasoning=request.reasoning_enabled,
            session=request.session_id,
        )
        return PreparedTurn(request=request, session=session, model=model)

    # =========================================================================
    # Streaming
    # =========================================================================

    async def stream_turn(self, turn: PreparedTurn) -> AsyncIterator[TurnEvent]:
        """Run a prepared turn, yielding events in wire order."""
        request = turn.request

        results: List[Dict[str, Any]] = []
        if request.search_enabled:
            turn.state = TurnState.AWAITING_SEARCH
            yield StatusEvent(STATUS_PENDING)
            yield StatusEvent(STATUS_SEARCHING)
            results = await self._run_search(turn)
            turn.search_annotation = build_search_annotation(results)
            yield StatusEvent(STATUS_SUCCESS)
            yield AnnotationEvent(turn.search_annotation)

        turn.system_prompt = select_system_prompt(turn.question, results)
        turn.state = TurnState.PROMPT_BUILT

        model = turn.model
        messages = turn.session.messages_for_llm(turn.system_prompt, pending=[request.message])
        options = self.registry.options_for(model, request.reasoning_enabled)

        text_parts: List[str] = []
        reasoning_parts: List[str] = []
        usage: Dict[str, int] = {}
        waiting_time_ms: Optional[int] = None

        turn.state = TurnState.STREAMING
        log_llm(logger, "start", model=model.model_id)
        start = self.clock()
        try:
            raw = model.client.stream_chat(
                model.upstream_model,
                messages,
                options=options,
                extract_reasoning=model.extracts_reasoning,
                start_with_reasoning=model.starts_with_reasoning,
            )
            async with aclosing(raw):
                deltas = smooth_lines(raw, self.config.smoothing_delay_ms) if model.supports_line_smoothing else raw
                async with aclosing(deltas) as stream:
                    async for delta in stream:
                        if delta.kind == "usage":
                            usage = delta.usage
                            continue
                        if not delta.text:
                            continue
                        if waiting_time_ms is None:
                            waiting_time_ms = max(0, int((self.clock() - start) * 1000))
                        if delta.kind == "reasoning":
                            if not reasoning_parts:
                                log_thinking(logger, "start")
                            reasoning_parts.append(delta.text)
                            yield ReasoningDelta(delta.text)
                        else:
                            text_parts.append(delta.text)
                            yield TextDelta(delta.text)
        except Exception as e:
            turn.state = TurnState.FAILED
            error = StreamError(
                "Model stream failed",
                details=f"{type(e).__name__}: {e}",
                model=model.model_id,
            )
            log_error(logger, error, context="Stream")
            yield ErrorEvent(str(e) if self.config.expose_stream_errors else MASKED_ERROR_MESSAGE)
            return

        log_llm(logger, "end", model=model.model_id, duration=self.clock() - start)
        if reasoning_parts:
            log_thinking(logger, "end", chars=sum(len(p) for p in reasoning_parts))

        if waiting_time_ms is None:
            waiting_time_ms = max(0, int((self.clock() - start) * 1000))

        info = InfoAnnotation(
            model_id=model.model_id,
            waiting_time_ms=waiting_time_ms,
            reasoning_enabled=request.reasoning_enabled,
        )
        annotations: List[Any] = []
        if request.search_enabled:
            annotations.append(turn.search_annotation)
        annotations.append(info)

        text = "".join(text_parts)
        assistant = ChatMessage(
            id=turn.assistant_id,
            role="assistant",
            content=text,
            annotations=annotations,
            reasoning="".join(reasoning_parts) or None,
        )

        yield AnnotationEvent(info)

        persisted = await self._persist(turn, assistant)
        turn.state = TurnState.COMPLETED

        cited = turn.citations.resolve(text)
        log_message_out(
            logger,
            model=model.model_id,
            chars=len(text),
            citations=len(cited),
            waiting_ms=waiting_time_ms,
        )
        yield FinishEvent(
            message=assistant,
            waiting_time_ms=waiting_time_ms,
            usage=usage,
            persisted=persisted,
            citations=cited,
        )

    async def run_turn(self, request: TurnRequest) -> List[TurnEvent]:
        """Prepare and run a turn, collecting every event (non-streaming callers)."""
        turn = await self.prepare_turn(request)
        return [event async for event in self.stream_turn(turn)]

    # =========================================================================
    # Internal
    # =========================================================================

    async def _run_search(self, turn: PreparedTurn) -> List[Dict[str, Any]]:
        """One search call; any failure degrades to no results."""
        provider = getattr(self.search_client, "provider", "search")
        log_search(logger, "start", provider=provider)
        try:
            result = await self.search_client.search(turn.question)
        except Exception as e:
            result = {"success": False, "error": {"message": str(e)}}

        if not isinstance(result, dict) or not result.get("success"):
            error_info = result.get("error") if isinstance(result, dict) else None
            details = error_info.get("message") if isinstance(error_info, dict) else None
            degraded = SearchDegradedError(details=details, service=provider)
            logger.warning(f"[Search] {degraded.code.value}: {degraded}")
            log_search(logger, "end", provider=provider, results=0, degraded=True)
            return []

        results = list(result.get("results") or [])
        turn.search_results = results
        turn.citations.add_from_web_search(result)
        log_search(logger, "end", provider=provider, results=len(results))
        return results

    async def _persist(self, turn: PreparedTurn, assistant: ChatMessage) -> bool:
        """Save [...history, user, assistant] in one write. Never raises."""
        request = turn.request
        session = turn.session
        messages = [*session.messages, request.message, assistant]

        title = None
        if session.has_default_title:
            title = derive_title(messages)

        try:
            await self.store.save_messages(request.owner_id, request.session_id, messages, title=title)
        except PersistenceError as e:
            log_error(logger, e, context="Persist")
            return False
        except Exception as e:
            log_error(
                logger,
                PersistenceError(
                    "Failed to save messages",
                    details=str(e),
                    operation="write",
                    session_id=request.session_id,
                ),
                context="Persist",
            )
            return False

        if title:
            logger.info(f"Session {request.session_id} titled: {title!r}")
        return True
