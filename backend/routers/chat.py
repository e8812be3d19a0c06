"""
Parley Chat Router - Streaming chat endpoint

POST /api/chat runs one turn and streams it in the AI SDK data-stream
format. Request-level failures (401, 400, 404) are raised by prepare_turn
before the stream starts, so they reach the client as normal JSON errors.

Architecture:
- chat.py: HTTP endpoint
- chat_orchestration/: turn pipeline (orchestrator, events, citations, session models)
- chat_prompts.py: System prompts
- chat_streaming.py: Wire encoding
- chat_executors/: Web search
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from services.auth import verify_user
from .chat_orchestration import ChatMessage, TurnRequest
from .chat_streaming import DATA_STREAM_HEADERS, encode_turn

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    """Body sent by the chat client for one turn."""

    model_config = ConfigDict(populate_by_name=True)

    message: ChatMessage
    session_id: str = Field(alias="sessionId", min_length=1)
    selected_model_id: Optional[str] = Field(default=None, alias="selectedModelId")
    is_reasoning_enabled: bool = Field(default=False, alias="isReasoningEnabled")
    is_search_enabled: bool = Field(default=False, alias="isSearchEnabled")


@router.post("/api/chat")
async def chat(body: ChatRequest, request: Request, user: dict = Depends(verify_user)):
    """Run one chat turn and stream the response."""
    services = request.app.state.services
    orchestrator = services.orchestrator

    turn = await orchestrator.prepare_turn(
        TurnRequest(
            owner_id=user["user_id"],
            session_id=body.session_id,
            message=body.message,
            model_id=body.selected_model_id or services.registry.default_model,
            search_enabled=body.is_search_enabled,
            reasoning_enabled=body.is_reasoning_enabled,
        )
    )

    return StreamingResponse(
        encode_turn(orchestrator.stream_turn(turn), message_id=turn.assistant_id),
        media_type="text/plain; charset=utf-8",
        headers=DATA_STREAM_HEADERS,
    )
