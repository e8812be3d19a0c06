"""
Parley Chat Streaming - Wire encoding

Helpers between the orchestrator and the HTTP response:
- encode_event(): Turn events -> AI SDK data-stream protocol lines
- encode_turn(): Full response body for one turn

Data-stream framing (one JSON value per line, prefixed by a type code):
    f:{"messageId": ...}        start step
    2:[{...}]                   status data
    8:[{...}]                   message annotation
    g:"..."                     reasoning delta
    0:"..."                     text delta
    3:"..."                     error
    e:{...} / d:{...}           finish step / finish message
"""

import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Dict, Optional

from routers.chat_orchestration.events import (
    AnnotationEvent,
    ErrorEvent,
    FinishEvent,
    ReasoningDelta,
    StatusEvent,
    TextDelta,
    TurnEvent,
)

logger = logging.getLogger(__name__)

DATA_STREAM_HEADERS = {
    "x-vercel-ai-data-stream": "v1",
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def _line(code: str, value: Any) -> str:
    return f"{code}:{json.dumps(value, ensure_ascii=False, separators=(',', ':'))}\n"


def _usage_payload(usage: Dict[str, int]) -> Dict[str, Any]:
    return {
        "promptTokens": usage.get("promptTokens", 0),
        "completionTokens": usage.get("completionTokens", 0),
    }


def encode_event(event: TurnEvent) -> str:
    """Encode one turn event as data-stream protocol text."""
    if isinstance(event, StatusEvent):
        return _line("2", [event.to_data()])
    if isinstance(event, AnnotationEvent):
        return _line("8", [event.annotation.model_dump(mode="json", by_alias=True)])
    if isinstance(event, TextDelta):
        return _line("0", event.text)
    if isinstance(event, ReasoningDelta):
        return _line("g", event.text)
    if isinstance(event, ErrorEvent):
        return _line("3", event.message)
    if isinstance(event, FinishEvent):
        usage = _usage_payload(event.usage)
        return _line(
            "e", {"finishReason": event.finish_reason, "usage": usage, "isContinued": False}
        ) + _line("d", {"finishReason": event.finish_reason, "usage": usage})
    raise TypeError(f"Unknown turn event: {type(event).__name__}")


async def encode_turn(events: AsyncIterator[TurnEvent], message_id: Optional[str] = None) -> AsyncIterator[str]:
    """Encode a turn's event stream as the response body.

    Closing this generator (client disconnect) closes the event stream,
    which in turn closes the upstream model stream.
    """
    message_id = message_id or f"msg-{uuid.uuid4().hex}"
    start_time = time.time()
    text_chars = 0

    yield _line("f", {"messageId": message_id})
    try:
        async for event in events:
            if isinstance(event, TextDelta):
                text_chars += len(event.text)
            yield encode_event(event)
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

    elapsed = time.time() - start_time
    if elapsed > 0:
        logger.info(f"[STREAM] {text_chars} chars in {elapsed:.2f}s ({text_chars / elapsed:.0f} char/s)")
