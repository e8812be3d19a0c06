"""
Parley Sessions Router
Session CRUD for the chat sidebar, plus the model catalog.

Every session route is scoped to the authenticated owner; another owner's
session id behaves exactly like a missing one (404).
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from errors import ErrorCode, SessionNotFoundError, ValidationError
from services.auth import verify_user
from .chat_orchestration.citations import render_message_citations

# Session ID validation pattern: alphanumeric, hyphens, underscores, max 64 chars
_SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateSessionRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)


def _validate_session_id(session_id: str) -> None:
    if not _SESSION_ID_PATTERN.match(session_id):
        raise ValidationError(
            "Invalid session ID",
            details="Must be alphanumeric/hyphens/underscores, max 64 chars.",
            code=ErrorCode.VALIDATION_INVALID_VALUE,
            parameter="session_id",
            received=session_id,
        )


@router.get("/sessions")
async def list_sessions(request: Request, user: dict = Depends(verify_user)):
    """List the caller's sessions, most recently updated first."""
    store = request.app.state.services.store
    sessions = await store.list_sessions(user["user_id"])
    return {"sessions": [s.to_wire() for s in sessions]}


@router.post("/sessions", status_code=201)
async def create_session(
    request: Request,
    body: Optional[CreateSessionRequest] = None,
    user: dict = Depends(verify_user),
):
    """Create an empty session titled "New Chat" unless a title is given."""
    store = request.app.state.services.store
    title = (body.title or "").strip() if body else ""
    session = await store.create_session(user["user_id"], title=title or None)
    logger.info(f"Session created: {session.id} for {user['user_id']}")
    return session.to_wire()


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    request: Request,
    render_citations: bool = False,
    user: dict = Depends(verify_user),
):
    """Retrieve a session with its messages.

    With render_citations=true, assistant messages have their [n] markers
    rewritten as markdown links to the message's search results.
    """
    _validate_session_id(session_id)
    store = request.app.state.services.store
    session = await store.load_session(user["user_id"], session_id)
    if session is None:
        raise SessionNotFoundError(session_id)

    data = session.to_wire()
    if render_citations:
        for message, wire in zip(session.messages, data["messages"]):
            if message.role == "assistant":
                wire["content"] = render_message_citations(message)
    return data


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request, user: dict = Depends(verify_user)):
    """Delete a session"""
    _validate_session_id(session_id)
    store = request.app.state.services.store
    if not await store.delete_session(user["user_id"], session_id):
        raise SessionNotFoundError(session_id)
    logger.info(f"Session deleted: {session_id}")
    return {"success": True, "session_id": session_id}


@router.get("/models")
async def list_models(request: Request):
    """Model catalog for the picker: ids, names, groups, reasoning list, default."""
    return request.app.state.services.registry.catalog()
