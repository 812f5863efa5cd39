"""
In-memory store for established login sessions (session id -> identity, expiry, raw profile).
The session id is the cookie value; it is the only secret the browser carries.

Two read paths on purpose:
- snapshot(): introspection for /auth/me; returns the record even if past expiry.
- resolve_identity(): the authorization gate; an expired session is treated as absent.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from order_server.identity import Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    identity: Identity
    expires_at: float | None
    raw_profile: Any

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


@dataclass(frozen=True)
class SessionSnapshot:
    user: Identity
    expires_at: datetime | None
    profile: Any

    def to_dict(self) -> dict:
        return {
            "user": self.user.to_dict(),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "profile": self.profile,
        }


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._sessions: dict[str, AuthSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, identity: Identity, ttl: float | None, raw_profile: Any) -> str:
        """Store a new session and return its id. ttl=None means no expiry."""
        session_id = new_session_id()
        expires_at = self._clock() + ttl if ttl is not None else None
        session = AuthSession(identity=identity, expires_at=expires_at, raw_profile=raw_profile)
        with self._lock:
            self._sessions[session_id] = session
        return session_id

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def snapshot(self, session_id: str) -> SessionSnapshot | None:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None
        expires_at = None
        if session.expires_at is not None:
            expires_at = datetime.fromtimestamp(session.expires_at, tz=timezone.utc)
        return SessionSnapshot(user=session.identity, expires_at=expires_at, profile=session.raw_profile)

    def resolve_identity(self, session_id: str) -> str | None:
        """User id for a live session; None when unknown or expired."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.expired(self._clock()):
            logger.warning("Session %s... has expired", session_id[:8])
            return None
        return session.identity.id

    def sweep(self) -> int:
        """Drop sessions past their expiry. Sessions without expiry are kept."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.expired(now)]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)
