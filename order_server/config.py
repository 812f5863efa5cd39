"""
Order server configuration. Values come from the environment; no secrets in this file.
OAuth client credentials and the issuer are required; everything else has a default.
"""
import logging
import os
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_FRONTEND_ORIGIN = "http://localhost:5173"
DEFAULT_SCOPES = "openid email"
DEFAULT_COOKIE_NAME = "ow_session"

# Session lifetime (seconds) when SESSION_TTL_SECONDS is missing or invalid
DEFAULT_SESSION_TTL = 60 * 60

# Sweep of pending logins and expired sessions (seconds)
DEFAULT_CLEANUP_INTERVAL = 5 * 60

# Timeout for discovery, token and userinfo requests (seconds)
DEFAULT_PROVIDER_TIMEOUT = 10.0

HOST = os.environ.get("HOST", DEFAULT_HOST)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


class ConfigError(Exception):
    """Process-level misconfiguration. Only raised at startup."""


@dataclass(frozen=True)
class OAuthSettings:
    issuer_url: str
    client_id: str
    client_secret: str | None
    redirect_url: str
    scopes: tuple[str, ...]
    success_redirect: str
    failure_redirect: str | None = None
    verify_id_token: bool = True
    timeout: float = DEFAULT_PROVIDER_TIMEOUT


@dataclass(frozen=True)
class SessionSettings:
    cookie_name: str = DEFAULT_COOKIE_NAME
    cookie_domain: str | None = None
    cookie_secure: bool = True
    ttl_seconds: int = DEFAULT_SESSION_TTL


@dataclass(frozen=True)
class Settings:
    oauth: OAuthSettings
    session: SessionSettings
    allowed_origins: tuple[str, ...]
    cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL
    port: int = DEFAULT_PORT


def resolve_session_ttl(raw) -> int:
    """
    Single TTL resolution for both the session store and the cookie max-age.
    Missing, non-numeric or non-positive values fall back to DEFAULT_SESSION_TTL.
    """
    if raw is None:
        return DEFAULT_SESSION_TTL
    try:
        ttl = int(str(raw).strip())
    except ValueError:
        logger.warning("Invalid SESSION_TTL_SECONDS %r; using %s", raw, DEFAULT_SESSION_TTL)
        return DEFAULT_SESSION_TTL
    if ttl <= 0:
        logger.warning("Non-positive SESSION_TTL_SECONDS %r; using %s", raw, DEFAULT_SESSION_TTL)
        return DEFAULT_SESSION_TTL
    return ttl


def parse_scopes(raw: str | None) -> tuple[str, ...]:
    """Split on spaces and commas. Empty input defaults to 'openid'."""
    scopes = tuple(s for s in re.split(r"[\s,]+", raw or "") if s)
    if not scopes:
        logger.warning("No OAuth scopes provided; defaulting to 'openid'")
        return ("openid",)
    logger.info("Using %d OAuth scope(s): %s", len(scopes), ", ".join(scopes))
    return scopes


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def _parse_number(name: str, raw: str | None, default, cast=int):
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("Invalid %s %r; using %s", name, raw, default)
        return default
    return value if value > 0 else default


def _require(environ, name: str) -> str:
    value = (environ.get(name) or "").strip()
    if not value:
        raise ConfigError(f"missing required environment variable: {name}")
    return value


def load_settings(environ=None) -> Settings:
    """Build settings from the environment (os.environ unless given)."""
    env = os.environ if environ is None else environ

    port = _parse_number("PORT", env.get("PORT"), DEFAULT_PORT)
    frontend_origin = env.get("FRONTEND_ORIGIN", DEFAULT_FRONTEND_ORIGIN).rstrip("/")

    oauth = OAuthSettings(
        issuer_url=_require(env, "OIDC_ISSUER_URL").rstrip("/"),
        client_id=_require(env, "OAUTH_CLIENT_ID"),
        client_secret=env.get("OAUTH_CLIENT_SECRET") or None,
        redirect_url=env.get("OAUTH_REDIRECT_URL", f"http://localhost:{port}/auth/callback"),
        scopes=parse_scopes(env.get("OAUTH_SCOPES", DEFAULT_SCOPES)),
        success_redirect=env.get("OAUTH_SUCCESS_REDIRECT", f"{frontend_origin}/auth/success"),
        failure_redirect=env.get("OAUTH_FAILURE_REDIRECT") or None,
        verify_id_token=_parse_bool(env.get("OAUTH_VERIFY_ID_TOKEN"), True),
        timeout=_parse_number(
            "PROVIDER_TIMEOUT_SECONDS", env.get("PROVIDER_TIMEOUT_SECONDS"), DEFAULT_PROVIDER_TIMEOUT, float
        ),
    )

    session = SessionSettings(
        cookie_name=env.get("SESSION_COOKIE_NAME") or DEFAULT_COOKIE_NAME,
        cookie_domain=env.get("SESSION_COOKIE_DOMAIN") or None,
        cookie_secure=_parse_bool(env.get("SESSION_COOKIE_SECURE"), True),
        ttl_seconds=resolve_session_ttl(env.get("SESSION_TTL_SECONDS")),
    )

    origins = env.get("ALLOWED_ORIGINS", frontend_origin)
    allowed_origins = tuple(o.strip() for o in origins.split(",") if o.strip())

    return Settings(
        oauth=oauth,
        session=session,
        allowed_origins=allowed_origins,
        cleanup_interval=_parse_number(
            "CLEANUP_INTERVAL_SECONDS", env.get("CLEANUP_INTERVAL_SECONDS"), DEFAULT_CLEANUP_INTERVAL, float
        ),
        port=port,
    )
