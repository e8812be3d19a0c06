"""
Parley Chat Session - Conversation data model

Pydantic models for messages, annotations and sessions. Field aliases match
the JSON the browser client sends and the session store persists
(camelCase message fields, snake_case annotation fields).
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SESSION_TITLE = "New Chat"
TITLE_MAX_CHARS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# ANNOTATIONS
# =============================================================================


class SearchResult(BaseModel):
    """One ranked web search hit as shown under an assistant message."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    url: str = ""
    snippet: str = Field(default="", alias="content")
    icon_url: str = ""


class SearchResultsAnnotation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["search_results"] = "search_results"
    title: str = "Search Results"
    results: List[SearchResult] = Field(default_factory=list)


class InfoAnnotation(BaseModel):
    """Per-response metadata: model, time to first chunk, reasoning toggle."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    type: Literal["info"] = "info"
    model_id: str = Field(alias="model")
    waiting_time_ms: int = Field(default=0, ge=0, alias="waiting_time")
    reasoning_enabled: bool = Field(default=False, alias="is_thinking")


class UnknownAnnotation(BaseModel):
    """Annotation of a kind this server does not interpret. Kept verbatim."""

    model_config = ConfigDict(extra="allow")

    type: str = "unknown"


Annotation = Union[SearchResultsAnnotation, InfoAnnotation, UnknownAnnotation]

_ANNOTATION_TYPES = {
    "search_results": SearchResultsAnnotation,
    "info": InfoAnnotation,
}


def parse_annotation(raw: Any) -> Annotation:
    """Parse one stored/received annotation, tolerating unknown kinds."""
    if isinstance(raw, BaseModel):
        return raw
    if not isinstance(raw, dict):
        return UnknownAnnotation(type="unknown", value=raw)
    model_cls = _ANNOTATION_TYPES.get(raw.get("type", ""))
    if model_cls is None:
        return UnknownAnnotation(**raw)
    return model_cls.model_validate(raw)


# =============================================================================
# MESSAGES / SESSIONS
# =============================================================================


class ChatMessage(BaseModel):
    """A single chat message.

    Immutable once persisted, except for annotations appended by the
    orchestrator when the assistant response completes.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_message_id)
    role: Literal["user", "assistant"]
    content: str = ""
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    annotations: List[Annotation] = Field(default_factory=list)
    reasoning: Optional[str] = None

    @field_validator("annotations", mode="before")
    @classmethod
    def _parse_annotations(cls, value: Any) -> List[Annotation]:
        if value is None:
            return []
        return [parse_annotation(a) for a in value]

    def to_llm(self) -> Dict[str, str]:
        """Message dict for an OpenAI-compatible chat completion call."""
        return {"role": self.role, "content": self.content}

    def to_wire(self) -> Dict[str, Any]:
        """JSON-safe dict using the client/store field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SessionSummary(BaseModel):
    """Session metadata without the transcript (used for listings)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: str = Field(alias="userId")
    title: str = DEFAULT_SESSION_TITLE
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=_utcnow, alias="updatedAt")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ChatSession(SessionSummary):
    """A chat session owned by exactly one user.

    Message order is append-only conversation order.
    """

    messages: List[ChatMessage] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _messages_always_list(cls, value: Any) -> Any:
        # Stored rows may carry a null or non-list value
        return value if isinstance(value, list) else []

    @property
    def has_default_title(self) -> bool:
        return self.title == DEFAULT_SESSION_TITLE

    def summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.id,
            owner_id=self.owner_id,
            title=self.title,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def messages_for_llm(self, system_prompt: str, pending: Optional[List[ChatMessage]] = None) -> List[Dict[str, str]]:
        """Build the message list for a model call.

        Args:
            system_prompt: The system prompt to use
            pending: Messages not yet persisted (the new user turn)
        """
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(m.to_llm() for m in self.messages)
        messages.extend(m.to_llm() for m in pending or [])
        return messages


def derive_title(messages: List[ChatMessage]) -> Optional[str]:
    """Title from the first user message: first 30 chars, '...' when truncated.

    Returns None when there is no user message with text.
    """
    first_user = next((m for m in messages if m.role == "user" and m.content.strip()), None)
    if first_user is None:
        return None
    content = first_user.content.strip()
    if len(content) > TITLE_MAX_CHARS:
        return content[:TITLE_MAX_CHARS] + "..."
    return content
