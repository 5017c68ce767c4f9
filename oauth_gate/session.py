"""Server-side sessions and the OAuth correlation state kept in them.

The cookie only carries an opaque session identifier; attributes live in a
:class:`SessionStore`. This is what makes session regeneration possible
after login: the identifier changes while the attributes are carried over.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from oauth_gate.exceptions import StateMismatchError
from oauth_gate.models import SessionConfig
from oauth_gate.tokens import Nonce, State

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

STATE_KEY = "oauth_gate.state"
NONCE_KEY = "oauth_gate.nonce"
SAVED_REQUEST_KEY = "oauth_gate.saved_request"
IDENTITY_KEY = "oauth_gate.identity"


def generate_session_id() -> str:
    """Generate a cryptographically secure session ID."""
    return secrets.token_urlsafe(32)


@dataclass
class StoredSession:
    """Session attributes as kept by a store."""

    attributes: dict[str, Any]
    expires_at: float


class SessionStore(ABC):
    """Abstract base class for session storage backends."""

    @abstractmethod
    def load(self, session_id: str) -> dict[str, Any] | None:
        """Return a copy of the session's attributes, or None if unknown."""
        ...

    @abstractmethod
    def save(self, session_id: str, attributes: dict[str, Any]) -> None:
        """Replace the session's attributes in a single write."""
        ...

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Forget the session."""
        ...


class MemorySessionStore(SessionStore):
    """In-memory session storage implementation."""

    def __init__(self, max_age: int = SessionConfig().max_age):
        self.max_age = max_age
        self._sessions: dict[str, StoredSession] = {}
        self._lock = threading.Lock()

    def load(self, session_id: str) -> dict[str, Any] | None:
        with self._lock:
            stored = self._sessions.get(session_id)
            if stored is None:
                return None
            if stored.expires_at <= time.time():
                del self._sessions[session_id]
                return None
            return dict(stored.attributes)

    def save(self, session_id: str, attributes: dict[str, Any]) -> None:
        with self._lock:
            now = time.time()
            self._remove_expired(now)
            self._sessions[session_id] = StoredSession(
                attributes=dict(attributes),
                expires_at=now + self.max_age,
            )

    def cleanup_expired(self) -> int:
        """Drop every expired session and return how many were removed."""
        with self._lock:
            return self._remove_expired(time.time())

    def _remove_expired(self, now: float) -> int:
        expired = [
            session_id
            for session_id, stored in self._sessions.items()
            if stored.expires_at <= now
        ]
        for session_id in expired:
            del self._sessions[session_id]
        return len(expired)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


@dataclass
class Session:
    """The current request's view of a server-side session."""

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    is_new: bool = True
    modified: bool = False
    invalidated: bool = False
    previous_ids: list[str] = field(default_factory=list)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.attributes[key] = value
        self.modified = True

    def update(self, values: dict[str, Any]) -> None:
        """Set several attributes as one change."""
        self.attributes.update(values)
        self.modified = True

    def pop(self, key: str, default: Any = None) -> Any:
        if key not in self.attributes:
            return default
        self.modified = True
        return self.attributes.pop(key)

    def regenerate(self) -> str:
        """Move the attributes to a fresh identifier and return it.

        The old identifier is deleted from the store when the response is
        sent, so a fixated identifier stops working after login.
        """
        self.previous_ids.append(self.id)
        self.id = generate_session_id()
        self.modified = True
        return self.id

    def invalidate(self) -> None:
        self.attributes.clear()
        self.invalidated = True


def get_session(request: Request) -> Session | None:
    """Return the session attached by :class:`SessionMiddleware`, if any."""
    return getattr(request.state, "session", None)


class SessionMiddleware(BaseHTTPMiddleware):
    """Attaches a server-side :class:`Session` to ``request.state.session``."""

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore | None = None,
        config: SessionConfig | None = None,
    ):
        super().__init__(app)
        self.config = config if config is not None else SessionConfig()
        # An empty store is falsy
        self.store = (
            store if store is not None else MemorySessionStore(max_age=self.config.max_age)
        )

    def _load(self, request: Request) -> Session:
        session_id = request.cookies.get(self.config.cookie_name)
        if session_id:
            attributes = self.store.load(session_id)
            if attributes is not None:
                return Session(id=session_id, attributes=attributes, is_new=False)
        return Session(id=generate_session_id())

    async def dispatch(self, request: Request, call_next):
        session = self._load(request)
        request.state.session = session

        response = await call_next(request)

        for previous_id in session.previous_ids:
            self.store.delete(previous_id)

        if session.invalidated:
            self.store.delete(session.id)
            if not session.is_new:
                response.delete_cookie(self.config.cookie_name)
            return response

        if session.modified and (session.attributes or not session.is_new):
            self.store.save(session.id, session.attributes)
            if session.is_new or session.previous_ids:
                response.set_cookie(
                    self.config.cookie_name,
                    session.id,
                    max_age=self.config.max_age,
                    httponly=True,
                    secure=self.config.https_only,
                    samesite=self.config.same_site,
                )
        return response


# =============================================================================
# OAuth correlation state
# =============================================================================


def save_state(session: Session, state: State, nonce: Nonce | None) -> None:
    """Store the state and nonce of a new attempt, replacing any previous one."""
    session.update({STATE_KEY: state.value, NONCE_KEY: nonce.value if nonce else None})


def consume_state(session: Session, returned_state: str | None) -> Nonce | None:
    """Check a callback's state against the session and clear the attempt.

    Returns the nonce stored with the attempt. Both keys are removed whether
    or not the state matches, so a state can be used at most once.
    """
    expected = session.pop(STATE_KEY)
    nonce = session.pop(NONCE_KEY)
    if not expected or not returned_state:
        raise StateMismatchError("No authorization in progress for this session")
    if not hmac.compare_digest(expected.encode(), returned_state.encode()):
        raise StateMismatchError("State does not match the authorization request")
    return Nonce(nonce) if nonce else None


def save_request(session: Session, request: Request) -> None:
    """Remember the URL the user asked for before being redirected."""
    url = request.url
    target = url.path + (f"?{url.query}" if url.query else "")
    session.set(SAVED_REQUEST_KEY, target)


def pop_saved_request(session: Session, default: str = "/") -> str:
    """Return and forget the remembered URL."""
    return session.pop(SAVED_REQUEST_KEY) or default
