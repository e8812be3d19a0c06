"""
Parley Chat Orchestration - Chat turn components

Components:
- session: ChatMessage / ChatSession / annotation models
- citations: Search annotation builder and [n] citation resolution
- events: Ordered events a turn yields
- orchestrator: ChatOrchestrator (prepare_turn / stream_turn)

Turn flow:
    prepare_turn() rejects bad requests (401/400/404) before streaming.
    stream_turn() yields status -> search annotation -> deltas
    -> info annotation -> finish, or ends early with an error event.
"""

from .session import (
    ChatMessage,
    ChatSession,
    InfoAnnotation,
    SearchResult,
    SearchResultsAnnotation,
    SessionSummary,
)
from .citations import CitationCollector, build_search_annotation
from .events import (
    AnnotationEvent,
    ErrorEvent,
    FinishEvent,
    ReasoningDelta,
    StatusEvent,
    TextDelta,
)
from .orchestrator import ChatOrchestrator, PreparedTurn, TurnRequest, TurnState

__all__ = [
    "ChatMessage",
    "ChatSession",
    "SessionSummary",
    "InfoAnnotation",
    "SearchResult",
    "SearchResultsAnnotation",
    "CitationCollector",
    "build_search_annotation",
    "AnnotationEvent",
    "ErrorEvent",
    "FinishEvent",
    "ReasoningDelta",
    "StatusEvent",
    "TextDelta",
    "ChatOrchestrator",
    "PreparedTurn",
    "TurnRequest",
    "TurnState",
]
