"""
OAuth orchestrator: authorization URL, pending logins, code exchange, userinfo,
sessions and the session cookie. Constructed once at startup and shared with
request handlers through app.state.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import Response

from order_server.config import DEFAULT_SESSION_TTL, OAuthSettings, SessionSettings
from order_server.flow_store import PendingAuthStore, PendingFlow
from order_server.identity import Identity, extract_identity
from order_server.pkce import generate_nonce, generate_pkce, generate_state
from order_server.provider import OIDCProvider, TokenResponse
from order_server.session_store import SessionSnapshot, SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    url: str
    state: str
    code_verifier: str
    nonce: str


@dataclass(frozen=True)
class SessionCookie:
    key: str
    value: str
    max_age: int
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def apply(self, response: Response) -> None:
        response.set_cookie(**asdict(self))


@dataclass(frozen=True)
class CleanupResult:
    pending_removed: int
    sessions_removed: int


class OAuthClient:
    def __init__(
        self,
        provider: OIDCProvider,
        oauth_settings: OAuthSettings,
        session_settings: SessionSettings,
        *,
        pending: PendingAuthStore | None = None,
        sessions: SessionStore | None = None,
    ) -> None:
        self.provider = provider
        self.settings = oauth_settings
        self.session_settings = session_settings
        self.scopes = tuple(oauth_settings.scopes) or ("openid",)
        self.pending = pending if pending is not None else PendingAuthStore()
        self.sessions = sessions if sessions is not None else SessionStore()

    @property
    def cookie_name(self) -> str:
        return self.session_settings.cookie_name

    @property
    def success_redirect(self) -> str:
        return self.settings.success_redirect

    @property
    def failure_redirect(self) -> str | None:
        return self.settings.failure_redirect

    @property
    def session_ttl(self) -> int:
        """Canonical session lifetime, shared by store expiry and cookie max-age."""
        ttl = self.session_settings.ttl_seconds
        return ttl if isinstance(ttl, int) and ttl > 0 else DEFAULT_SESSION_TTL

    # -- login flow ------------------------------------------------------------

    def build_authorization_url(self) -> AuthorizationRequest:
        """Fresh state, nonce and PKCE pair. Does not store anything."""
        state = generate_state()
        nonce = generate_nonce()
        code_verifier, code_challenge = generate_pkce()
        url = self.provider.authorization_url(
            scopes=self.scopes,
            state=state,
            code_challenge=code_challenge,
            nonce=nonce,
        )
        return AuthorizationRequest(url=url, state=state, code_verifier=code_verifier, nonce=nonce)

    def store_pending(self, state: str, code_verifier: str, nonce: str) -> None:
        self.pending.store(state, code_verifier, nonce)

    def take_pending(self, state: str) -> PendingFlow | None:
        return self.pending.take(state)

    def exchange_code(self, code: str, code_verifier: str, nonce: str | None = None) -> TokenResponse:
        tokens = self.provider.exchange_code(code, code_verifier)
        if tokens.id_token and self.settings.verify_id_token and self.provider.metadata.jwks_uri:
            self.provider.verify_id_token(tokens.id_token, nonce)
        return tokens

    def fetch_userinfo(self, access_token: str) -> dict:
        return self.provider.fetch_userinfo(access_token)

    @staticmethod
    def extract_identity(profile: Any) -> Identity | None:
        return extract_identity(profile)

    # -- sessions --------------------------------------------------------------

    def create_session(self, identity: Identity, raw_profile: Any) -> str:
        return self.sessions.create(identity, self.session_ttl, raw_profile)

    def remove_session(self, session_id: str) -> None:
        self.sessions.remove(session_id)

    def session_snapshot(self, session_id: str) -> SessionSnapshot | None:
        return self.sessions.snapshot(session_id)

    def session_user_id(self, session_id: str | None) -> str | None:
        if not session_id:
            return None
        return self.sessions.resolve_identity(session_id)

    def verify_access_token(self, token: str) -> dict:
        """Claims of a Bearer access token issued by the provider for this client."""
        return self.provider.verify_access_token(token)

    def build_cookie(self, session_id: str) -> SessionCookie:
        return SessionCookie(
            key=self.cookie_name,
            value=session_id,
            max_age=self.session_ttl,
            domain=self.session_settings.cookie_domain,
            secure=self.session_settings.cookie_secure,
        )

    def build_logout_cookie(self) -> SessionCookie:
        return SessionCookie(
            key=self.cookie_name,
            value="",
            max_age=0,
            domain=self.session_settings.cookie_domain,
            secure=self.session_settings.cookie_secure,
        )

    # -- maintenance -----------------------------------------------------------

    def cleanup_expired(self) -> CleanupResult:
        """Sweep stale pending logins and expired sessions."""
        pending_removed = self.pending.sweep()
        if pending_removed:
            logger.info("Cleaned up %d expired pending auth states", pending_removed)
        sessions_removed = self.sessions.sweep()
        if sessions_removed:
            logger.info("Cleaned up %d expired sessions", sessions_removed)
        return CleanupResult(pending_removed=pending_removed, sessions_removed=sessions_removed)

    def close(self) -> None:
        self.provider.close()
