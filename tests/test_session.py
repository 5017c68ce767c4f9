"""Tests for server-side sessions and OAuth correlation state."""

from unittest.mock import MagicMock, patch

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from oauth_gate.exceptions import StateMismatchError
from oauth_gate.models import SessionConfig
from oauth_gate.session import (
    NONCE_KEY,
    SAVED_REQUEST_KEY,
    STATE_KEY,
    MemorySessionStore,
    Session,
    SessionMiddleware,
    consume_state,
    get_session,
    pop_saved_request,
    save_request,
    save_state,
)
from oauth_gate.tokens import Nonce, State


class TestMemorySessionStore:
    """Tests for MemorySessionStore."""

    def test_save_and_load(self):
        store = MemorySessionStore()
        store.save("abc", {"key": "value"})
        assert store.load("abc") == {"key": "value"}
        assert len(store) == 1

    def test_load_returns_copy(self):
        store = MemorySessionStore()
        store.save("abc", {"key": "value"})
        store.load("abc")["key"] = "changed"
        assert store.load("abc") == {"key": "value"}

    def test_unknown_session(self):
        assert MemorySessionStore().load("missing") is None

    def test_delete(self):
        store = MemorySessionStore()
        store.save("abc", {})
        store.delete("abc")
        store.delete("abc")
        assert store.load("abc") is None

    def test_expired_session_is_dropped(self):
        store = MemorySessionStore(max_age=0)
        store.save("abc", {"key": "value"})
        assert store.load("abc") is None
        assert len(store) == 0

    def test_cleanup_expired(self):
        store = MemorySessionStore(max_age=60)
        with patch("oauth_gate.session.time") as mock_time:
            mock_time.time.return_value = 1000.0
            store.save("old", {})
            mock_time.time.return_value = 1030.0
            store.save("fresh", {"key": "value"})

            mock_time.time.return_value = 1070.0
            assert store.cleanup_expired() == 1
            assert len(store) == 1
            assert store.load("fresh") == {"key": "value"}

    def test_save_removes_abandoned_sessions(self):
        """Sessions that are never loaded again should not pile up."""
        store = MemorySessionStore(max_age=60)
        with patch("oauth_gate.session.time") as mock_time:
            mock_time.time.return_value = 1000.0
            for i in range(50):
                store.save(f"abandoned-{i}", {STATE_KEY: "s"})

            mock_time.time.return_value = 1061.0
            store.save("new", {STATE_KEY: "s"})

        assert len(store) == 1


class TestSession:
    """Tests for the Session object."""

    def test_set_marks_modified(self):
        session = Session(id="abc")
        assert not session.modified
        session.set("key", "value")
        assert session.modified
        assert session.get("key") == "value"

    def test_pop_missing_key_is_not_a_change(self):
        session = Session(id="abc")
        assert session.pop("missing", "default") == "default"
        assert not session.modified

    def test_regenerate_changes_id_and_keeps_attributes(self):
        session = Session(id="old", attributes={"key": "value"}, is_new=False)
        new_id = session.regenerate()
        assert new_id != "old"
        assert session.id == new_id
        assert session.previous_ids == ["old"]
        assert session.get("key") == "value"

    def test_invalidate(self):
        session = Session(id="abc", attributes={"key": "value"})
        session.invalidate()
        assert session.invalidated
        assert session.attributes == {}


class TestCorrelationState:
    """Tests for state, nonce and saved request helpers."""

    def test_save_state_writes_both_keys(self):
        session = Session(id="abc")
        save_state(session, State("s1"), Nonce("n1"))
        assert session.attributes == {STATE_KEY: "s1", NONCE_KEY: "n1"}

    def test_save_state_overwrites(self):
        session = Session(id="abc")
        save_state(session, State("s1"), Nonce("n1"))
        save_state(session, State("s2"), Nonce("n2"))
        assert session.get(STATE_KEY) == "s2"
        assert session.get(NONCE_KEY) == "n2"

    def test_consume_state_returns_nonce(self):
        session = Session(id="abc")
        save_state(session, State("s1"), Nonce("n1"))
        assert consume_state(session, "s1") == Nonce("n1")
        assert STATE_KEY not in session.attributes
        assert NONCE_KEY not in session.attributes

    def test_consume_state_is_single_use(self):
        session = Session(id="abc")
        save_state(session, State("s1"), Nonce("n1"))
        consume_state(session, "s1")
        with pytest.raises(StateMismatchError):
            consume_state(session, "s1")

    def test_consume_state_mismatch_clears_attempt(self):
        session = Session(id="abc")
        save_state(session, State("s1"), None)
        with pytest.raises(StateMismatchError):
            consume_state(session, "forged")
        assert STATE_KEY not in session.attributes

    def test_consume_state_without_nonce(self):
        session = Session(id="abc")
        save_state(session, State("s1"), None)
        assert consume_state(session, "s1") is None

    def test_consume_state_missing_returned_value(self):
        session = Session(id="abc")
        save_state(session, State("s1"), None)
        with pytest.raises(StateMismatchError):
            consume_state(session, None)

    def test_save_and_pop_request(self):
        session = Session(id="abc")
        request = MagicMock(spec=Request)
        request.url = MagicMock(path="/reports", query="year=2024")
        save_request(session, request)
        assert session.get(SAVED_REQUEST_KEY) == "/reports?year=2024"
        assert pop_saved_request(session) == "/reports?year=2024"
        assert pop_saved_request(session) == "/"


class TestSessionMiddleware:
    """Tests for SessionMiddleware."""

    def _create_client(self, store: MemorySessionStore) -> TestClient:
        async def write(request: Request) -> JSONResponse:
            get_session(request).set("visited", True)
            return JSONResponse({"ok": True})

        async def read(request: Request) -> JSONResponse:
            return JSONResponse({"visited": get_session(request).get("visited")})

        async def logout(request: Request) -> JSONResponse:
            get_session(request).invalidate()
            return JSONResponse({"ok": True})

        app = Starlette(
            routes=[Route("/write", write), Route("/read", read), Route("/logout", logout)]
        )
        return TestClient(
            SessionMiddleware(app, store=store, config=SessionConfig(cookie_name="sid"))
        )

    def test_empty_store_is_used(self):
        """A store passed in empty must not be replaced by a private one."""
        store = MemorySessionStore()
        middleware = SessionMiddleware(Starlette(), store=store)
        assert middleware.store is store

    def test_untouched_session_sets_no_cookie(self):
        store = MemorySessionStore()
        client = self._create_client(store)

        response = client.get("/read")

        assert response.json() == {"visited": None}
        assert "set-cookie" not in response.headers
        assert len(store) == 0

    def test_modified_session_is_persisted(self):
        store = MemorySessionStore()
        client = self._create_client(store)

        response = client.get("/write")
        session_id = response.cookies["sid"]
        assert store.load(session_id) == {"visited": True}

        response = client.get("/read", headers={"Cookie": f"sid={session_id}"})
        assert response.json() == {"visited": True}

    def test_unknown_cookie_starts_new_session(self):
        store = MemorySessionStore()
        client = self._create_client(store)

        response = client.get("/write", headers={"Cookie": "sid=forged"})

        assert response.cookies["sid"] != "forged"
        assert store.load("forged") is None

    def test_invalidate_deletes_session(self):
        store = MemorySessionStore()
        store.save("abc", {"visited": True})
        client = self._create_client(store)

        client.get("/logout", headers={"Cookie": "sid=abc"})

        assert store.load("abc") is None
