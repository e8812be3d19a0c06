"""
Tests for the session stores (memory backend and the PostgreSQL queries).
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from errors import PersistenceError
from routers.chat_orchestration.session import ChatMessage
from services.session_store import MemorySessionStore, PostgresSessionStore, build_session_store

from conftest import OTHER_OWNER, OWNER, make_config, run


def message(role, text):
    return ChatMessage(role=role, content=text)


class TestMemorySessionStore:
    def test_create_and_load(self, store):
        created = run(store.create_session(OWNER))
        loaded = run(store.load_session(OWNER, created.id))
        assert loaded.id == created.id
        assert loaded.title == "New Chat"
        assert loaded.messages == []

    def test_load_is_owner_scoped(self, store):
        created = run(store.create_session(OWNER))
        assert run(store.load_session(OTHER_OWNER, created.id)) is None

    def test_save_replaces_transcript_and_title(self, store, session_id):
        run(store.save_messages(OWNER, session_id, [message("user", "a"), message("assistant", "b")], title="a"))
        run(store.save_messages(OWNER, session_id, [message("user", "c")]))

        loaded = run(store.load_session(OWNER, session_id))
        assert [m.content for m in loaded.messages] == ["c"]
        assert loaded.title == "a"

    def test_save_to_missing_session_raises(self, store):
        with pytest.raises(PersistenceError):
            run(store.save_messages(OWNER, "gone", [message("user", "x")]))

    def test_loaded_copy_is_isolated(self, store, session_id):
        loaded = run(store.load_session(OWNER, session_id))
        loaded.messages.append(message("user", "local only"))
        assert run(store.load_session(OWNER, session_id)).messages == []

    def test_updated_at_never_moves_backwards(self, store, session_id):
        future = datetime.now(timezone.utc) + timedelta(days=1)
        store._sessions[(OWNER, session_id)].updated_at = future
        run(store.save_messages(OWNER, session_id, []))
        assert run(store.load_session(OWNER, session_id)).updated_at == future

    def test_list_newest_first(self, store):
        older = run(store.create_session(OWNER, title="older"))
        newer = run(store.create_session(OWNER, title="newer"))
        run(store.create_session(OTHER_OWNER, title="someone else"))
        run(store.save_messages(OWNER, newer.id, [message("user", "bump")]))

        titles = [s.title for s in run(store.list_sessions(OWNER))]
        assert titles == ["newer", "older"]
        assert older.id not in {s.id for s in run(store.list_sessions(OTHER_OWNER))}

    def test_delete(self, store, session_id):
        assert run(store.delete_session(OTHER_OWNER, session_id)) is False
        assert run(store.delete_session(OWNER, session_id)) is True
        assert run(store.load_session(OWNER, session_id)) is None


def row(**overrides):
    now = datetime(2025, 5, 1, tzinfo=timezone.utc)
    values = {
        "id": "s1",
        "userid": OWNER,
        "title": "New Chat",
        "createdat": now,
        "updatedat": now,
        "messages": [],
    }
    values.update(overrides)
    return values


def pg_store(**db_methods):
    db = MagicMock()
    db.execute = AsyncMock(return_value=db_methods.get("execute", "UPDATE 1"))
    db.fetch = AsyncMock(return_value=db_methods.get("fetch", []))
    db.fetchrow = AsyncMock(return_value=db_methods.get("fetchrow"))
    return PostgresSessionStore(db), db


class TestPostgresSessionStore:
    def test_load_scopes_query_to_owner(self):
        store, db = pg_store(fetchrow=row(messages=[{"role": "user", "content": "hi"}]))

        session = run(store.load_session(OWNER, "s1"))

        sql, *params = db.fetchrow.call_args.args
        assert "WHERE id = $1 AND userid = $2" in sql
        assert params == ["s1", OWNER]
        assert session.messages[0].content == "hi"

    def test_load_missing_returns_none(self):
        store, _ = pg_store(fetchrow=None)
        assert run(store.load_session(OWNER, "s1")) is None

    def test_load_null_messages(self):
        store, _ = pg_store(fetchrow=row(messages=None, title=None))
        session = run(store.load_session(OWNER, "s1"))
        assert session.messages == []
        assert session.title == "New Chat"

    def test_save_sends_wire_payload_and_title(self):
        store, db = pg_store()
        run(store.save_messages(OWNER, "s1", [message("user", "hi")], title="hi"))

        sql, session_id, owner_id, payload, title = db.execute.call_args.args
        assert "GREATEST(updatedat, now())" in sql
        assert "COALESCE($4, title)" in sql
        assert (session_id, owner_id, title) == ("s1", OWNER, "hi")
        assert payload[0]["role"] == "user"
        assert "createdAt" in payload[0]

    def test_save_with_no_matching_row_raises(self):
        store, _ = pg_store(execute="UPDATE 0")
        with pytest.raises(PersistenceError) as exc_info:
            run(store.save_messages(OWNER, "s1", []))
        assert exc_info.value.details == "Session no longer exists"

    def test_database_errors_become_persistence_errors(self):
        store, db = pg_store()
        db.execute.side_effect = ConnectionError("pool closed")
        with pytest.raises(PersistenceError) as exc_info:
            run(store.save_messages(OWNER, "s1", []))
        assert exc_info.value.code.value == "PERSISTENCE_WRITE_FAILED"

        db.fetchrow.side_effect = ConnectionError("pool closed")
        with pytest.raises(PersistenceError) as exc_info:
            run(store.load_session(OWNER, "s1"))
        assert exc_info.value.code.value == "PERSISTENCE_READ_FAILED"

    def test_list_orders_by_updated(self):
        store, db = pg_store(fetch=[row(id="b"), row(id="a")])
        sessions = run(store.list_sessions(OWNER))
        assert "ORDER BY updatedat DESC" in db.fetch.call_args.args[0]
        assert [s.id for s in sessions] == ["b", "a"]

    def test_create_uses_default_title(self):
        store, db = pg_store(fetchrow=row())
        run(store.create_session(OWNER))
        assert db.fetchrow.call_args.args[3] == "New Chat"

    def test_delete_reports_whether_a_row_matched(self):
        store, db = pg_store(execute="DELETE 1")
        assert run(store.delete_session(OWNER, "s1")) is True
        db.execute.return_value = "DELETE 0"
        assert run(store.delete_session(OWNER, "s1")) is False


class TestBuildSessionStore:
    def test_memory_backend_when_database_disabled(self):
        store, db = run(build_session_store(make_config(database_enabled=False)))
        assert isinstance(store, MemorySessionStore)
        assert db is None
