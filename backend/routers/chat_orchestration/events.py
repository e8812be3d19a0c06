"""
Parley Turn Events - What a chat turn yields, in order

The orchestrator yields these; routers/chat_streaming.py encodes them for
the wire. Ordering within a turn:

    StatusEvent*  AnnotationEvent(search)?  (ReasoningDelta | TextDelta)*
    AnnotationEvent(info)  FinishEvent
or
    ...  ErrorEvent
"""

from dataclasses import dataclass, field
from typing import Dict, List, Union

from .session import Annotation, ChatMessage, SearchResult

# Search status values shown by the client
STATUS_PENDING = "pending"
STATUS_SEARCHING = "Searching..."
STATUS_SUCCESS = "Success"


@dataclass
class StatusEvent:
    status: str
    type: str = "fetch"

    def to_data(self) -> Dict[str, str]:
        return {"type": self.type, "status": self.status}


@dataclass
class AnnotationEvent:
    annotation: Annotation


@dataclass
class TextDelta:
    text: str


@dataclass
class ReasoningDelta:
    text: str


@dataclass
class ErrorEvent:
    message: str


@dataclass
class FinishEvent:
    """Terminal event carrying the assembled assistant message."""

    message: ChatMessage
    waiting_time_ms: int = 0
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: str = "stop"
    persisted: bool = True
    citations: List[SearchResult] = field(default_factory=list)


TurnEvent = Union[StatusEvent, AnnotationEvent, TextDelta, ReasoningDelta, ErrorEvent, FinishEvent]
