"""
Pytest fixtures for order_server: controllable clock, stub OIDC provider, wired OAuth client and app.
"""
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from fastapi.testclient import TestClient

from order_server.config import OAuthSettings, SessionSettings
from order_server.errors import AuthError
from order_server.flow_store import PendingAuthStore
from order_server.main import create_app
from order_server.oauth import OAuthClient
from order_server.pkce import build_authorize_url
from order_server.provider import ProviderMetadata, TokenResponse
from order_server.session_store import SessionStore

ISSUER = "https://idp.example"
REDIRECT_URL = "http://localhost:8080/auth/callback"
SUCCESS_URL = "http://localhost:5173/auth/success"


class FakeClock:
    """Callable clock the tests move forward by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider:
    """Provider double: accepts one code and serves a fixed userinfo profile."""

    def __init__(self, *, accepted_code="xyz", profile=None, id_token=None, jwks_uri=None):
        self.metadata = ProviderMetadata(
            issuer=ISSUER,
            authorization_endpoint=f"{ISSUER}/authorize",
            token_endpoint=f"{ISSUER}/token",
            userinfo_endpoint=f"{ISSUER}/userinfo",
            jwks_uri=jwks_uri,
        )
        self.accepted_code = accepted_code
        self.profile = {"sub": "u1"} if profile is None else profile
        self.id_token = id_token
        self.exchanges = []
        self.verified = []
        self.userinfo_calls = 0
        self.closed = False

    def authorization_url(self, *, scopes, state, code_challenge, nonce):
        return build_authorize_url(
            authorization_endpoint=self.metadata.authorization_endpoint,
            client_id="test-client",
            redirect_uri=REDIRECT_URL,
            scopes=scopes,
            state=state,
            code_challenge=code_challenge,
            nonce=nonce,
        )

    def exchange_code(self, code, code_verifier):
        self.exchanges.append((code, code_verifier))
        if code != self.accepted_code:
            raise AuthError("code exchange rejected: invalid_grant")
        return TokenResponse(access_token="at-1", token_type="Bearer", expires_in=3600, id_token=self.id_token)

    def verify_id_token(self, id_token, nonce):
        self.verified.append((id_token, nonce))
        return {"sub": "u1", "nonce": nonce}

    def fetch_userinfo(self, access_token):
        self.userinfo_calls += 1
        if isinstance(self.profile, Exception):
            raise self.profile
        return self.profile

    def close(self):
        self.closed = True


@pytest.fixture(scope="session")
def rsa_key():
    """RSA signing key standing in for the provider JWKS key."""
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def oauth_settings():
    return OAuthSettings(
        issuer_url=ISSUER,
        client_id="test-client",
        client_secret=None,
        redirect_url=REDIRECT_URL,
        scopes=("openid", "email"),
        success_redirect=SUCCESS_URL,
    )


@pytest.fixture
def session_settings():
    return SessionSettings(cookie_name="ow_session", cookie_secure=False, ttl_seconds=3600)


@pytest.fixture
def oauth(stub_provider, oauth_settings, session_settings, clock):
    return OAuthClient(
        stub_provider,
        oauth_settings,
        session_settings,
        pending=PendingAuthStore(clock=clock),
        sessions=SessionStore(clock=clock),
    )


@pytest.fixture
def app(oauth):
    return create_app(oauth)


@pytest.fixture
def client(app):
    return TestClient(app)
