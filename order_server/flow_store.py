"""
In-memory store for pending authorization flows (state -> code_verifier, nonce).
Used between /auth/login and /auth/callback. TTL to avoid unbounded growth and stale logins.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable

# TTL seconds for a pending flow; never honored past this even if not yet swept
FLOW_TTL = 600


@dataclass(frozen=True)
class PendingFlow:
    code_verifier: str
    nonce: str
    created_at: float


class PendingAuthStore:
    """
    Single-use login attempts keyed by CSRF state. take() pops under the lock,
    so two callbacks racing on one state see exactly one success.
    """

    def __init__(self, ttl: float = FLOW_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._pending: dict[str, PendingFlow] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def store(self, state: str, code_verifier: str, nonce: str) -> None:
        flow = PendingFlow(code_verifier=code_verifier, nonce=nonce, created_at=self._clock())
        with self._lock:
            self._pending[state] = flow

    def take(self, state: str) -> PendingFlow | None:
        """Remove and return the flow if present and not older than the TTL."""
        with self._lock:
            flow = self._pending.pop(state, None)
        if flow is None or (self._clock() - flow.created_at) > self.ttl:
            return None
        return flow

    def sweep(self, max_age: float | None = None) -> int:
        """Drop flows older than max_age (default: TTL). Returns the number removed."""
        max_age = self.ttl if max_age is None else max_age
        now = self._clock()
        with self._lock:
            expired = [s for s, f in self._pending.items() if (now - f.created_at) > max_age]
            for s in expired:
                del self._pending[s]
        return len(expired)
