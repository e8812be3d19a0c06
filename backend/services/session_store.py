"""
Session Store - Durable chat transcripts.

Two interchangeable backends:
- PostgresSessionStore: chat_sessions table via DatabaseManager (asyncpg)
- MemorySessionStore: process-local dict, used when PostgreSQL is disabled
  or unreachable, and in tests

Writes are last-writer-wins: save_messages replaces the stored message list
wholesale with no version check.
"""

import asyncio
import copy
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from errors import PersistenceError
from routers.chat_orchestration.session import (
    DEFAULT_SESSION_TITLE,
    ChatMessage,
    ChatSession,
    SessionSummary,
)
from .database import DatabaseManager

logger = logging.getLogger(__name__)


def _messages_payload(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    return [m.to_wire() for m in messages]


def _row_to_session(row: Dict[str, Any]) -> ChatSession:
    messages = row.get("messages")
    if isinstance(messages, str):
        messages = json.loads(messages)
    return ChatSession(
        id=row["id"],
        owner_id=row["userid"],
        title=row.get("title") or DEFAULT_SESSION_TITLE,
        created_at=row["createdat"],
        updated_at=row["updatedat"],
        messages=messages,
    )


def _row_to_summary(row: Dict[str, Any]) -> SessionSummary:
    return SessionSummary(
        id=row["id"],
        owner_id=row["userid"],
        title=row.get("title") or DEFAULT_SESSION_TITLE,
        created_at=row["createdat"],
        updated_at=row["updatedat"],
    )


class PostgresSessionStore:
    """chat_sessions(id, userid, title, createdat, updatedat, messages jsonb)."""

    backend = "postgresql"

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def load_session(self, owner_id: str, session_id: str) -> Optional[ChatSession]:
        """Session owned by owner_id, or None when missing or owned by someone else."""
        try:
            row = await self.db.fetchrow(
                "SELECT id, userid, title, createdat, updatedat, messages "
                "FROM chat_sessions WHERE id = $1 AND userid = $2",
                session_id,
                owner_id,
            )
        except Exception as e:
            raise PersistenceError(
                "Failed to load session",
                details=str(e),
                operation="read",
                session_id=session_id,
            ) from e
        return _row_to_session(row) if row else None

    async def save_messages(
        self,
        owner_id: str,
        session_id: str,
        messages: List[ChatMessage],
        title: Optional[str] = None,
    ) -> None:
        """Replace the stored transcript; optionally set a new title in the same write.

        Raises:
            PersistenceError: On database failure or when no row matched
        """
        try:
            status = await self.db.execute(
                "UPDATE chat_sessions "
                "SET messages = $3::jsonb, title = COALESCE($4, title), "
                "updatedat = GREATEST(updatedat, now()) "
                "WHERE id = $1 AND userid = $2",
                session_id,
                owner_id,
                _messages_payload(messages),
                title,
            )
        except Exception as e:
            raise PersistenceError(
                "Failed to save messages",
                details=str(e),
                operation="write",
                session_id=session_id,
            ) from e

        if status.split()[-1] == "0":
            raise PersistenceError(
                "Failed to save messages",
                details="Session no longer exists",
                operation="write",
                session_id=session_id,
            )

    async def list_sessions(self, owner_id: str) -> List[SessionSummary]:
        try:
            rows = await self.db.fetch(
                "SELECT id, userid, title, createdat, updatedat FROM chat_sessions "
                "WHERE userid = $1 ORDER BY updatedat DESC",
                owner_id,
            )
        except Exception as e:
            raise PersistenceError("Failed to list sessions", details=str(e), operation="read") from e
        return [_row_to_summary(r) for r in rows]

    async def create_session(self, owner_id: str, title: Optional[str] = None) -> ChatSession:
        session_id = uuid.uuid4().hex
        try:
            row = await self.db.fetchrow(
                "INSERT INTO chat_sessions (id, userid, title, messages) "
                "VALUES ($1, $2, $3, '[]'::jsonb) "
                "RETURNING id, userid, title, createdat, updatedat, messages",
                session_id,
                owner_id,
                title or DEFAULT_SESSION_TITLE,
            )
        except Exception as e:
            raise PersistenceError(
                "Failed to create session",
                details=str(e),
                operation="write",
                session_id=session_id,
            ) from e
        return _row_to_session(row)

    async def delete_session(self, owner_id: str, session_id: str) -> bool:
        try:
            status = await self.db.execute(
                "DELETE FROM chat_sessions WHERE id = $1 AND userid = $2",
                session_id,
                owner_id,
            )
        except Exception as e:
            raise PersistenceError(
                "Failed to delete session",
                details=str(e),
                operation="write",
                session_id=session_id,
            ) from e
        return status.split()[-1] != "0"

    async def health_check(self) -> Dict[str, Any]:
        return await self.db.health_check()


class MemorySessionStore:
    """In-process session store keyed by (owner_id, session_id).

    Stores deep copies so callers can never mutate persisted state.
    """

    backend = "memory"

    def __init__(self):
        self._sessions: Dict[tuple, ChatSession] = {}
        self._lock = asyncio.Lock()

    async def load_session(self, owner_id: str, session_id: str) -> Optional[ChatSession]:
        session = self._sessions.get((owner_id, session_id))
        return session.model_copy(deep=True) if session else None

    async def save_messages(
        self,
        owner_id: str,
        session_id: str,
        messages: List[ChatMessage],
        title: Optional[str] = None,
    ) -> None:
        async with self._lock:
            session = self._sessions.get((owner_id, session_id))
            if session is None:
                raise PersistenceError(
                    "Failed to save messages",
                    details="Session no longer exists",
                    operation="write",
                    session_id=session_id,
                )
            session.messages = [m.model_copy(deep=True) for m in messages]
            if title is not None:
                session.title = title
            session.updated_at = max(session.updated_at, datetime.now(timezone.utc))

    async def list_sessions(self, owner_id: str) -> List[SessionSummary]:
        owned = [s for (owner, _), s in self._sessions.items() if owner == owner_id]
        owned.sort(key=lambda s: s.updated_at, reverse=True)
        return [s.summary() for s in owned]

    async def create_session(self, owner_id: str, title: Optional[str] = None) -> ChatSession:
        session = ChatSession(id=uuid.uuid4().hex, owner_id=owner_id, title=title or DEFAULT_SESSION_TITLE)
        async with self._lock:
            self._sessions[(owner_id, session.id)] = session
        return copy.deepcopy(session)

    async def delete_session(self, owner_id: str, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop((owner_id, session_id), None) is not None

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "ok", "mode": "memory", "sessions": len(self._sessions)}


async def build_session_store(config) -> Tuple[Any, Optional[DatabaseManager]]:
    """PostgreSQL-backed store when reachable, else the memory store.

    Returns:
        (store, DatabaseManager or None)
    """
    db = DatabaseManager(
        url=config.database_url,
        enabled=config.database_enabled,
        pool_size=config.database_pool_size,
    )
    if await db.connect():
        return PostgresSessionStore(db), db
    logger.warning("Session store: using in-memory backend (sessions will not survive a restart)")
    return MemorySessionStore(), None
