"""
Request dependencies: the shared OAuth client, the session cookie and the Bearer header.
CurrentUserId is the session gate for protected routes (expiry enforced); it never redirects.
CurrentCaller also accepts a Bearer access token, which takes precedence over the cookie.
"""
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from order_server.errors import BearerTokenError, Unauthorized
from order_server.identity import Identity, identity_from_claims
from order_server.oauth import OAuthClient


def get_oauth(request: Request) -> OAuthClient:
    """The OAuthClient built at startup."""
    return request.app.state.oauth


OAuth = Annotated[OAuthClient, Depends(get_oauth)]


def get_session_id(request: Request, oauth: OAuth) -> str | None:
    """Session id from the session cookie, or None if absent/empty."""
    return request.cookies.get(oauth.cookie_name) or None


SessionId = Annotated[str | None, Depends(get_session_id)]


def require_user_id(oauth: OAuth, session_id: SessionId) -> str:
    """Dependency: valid, unexpired session -> user id. Raises 401 otherwise."""
    user_id = oauth.session_user_id(session_id)
    if user_id is None:
        raise Unauthorized()
    return user_id


CurrentUserId = Annotated[str, Depends(require_user_id)]


security = HTTPBearer(auto_error=False)


def get_bearer_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    """Bearer token from the Authorization header; None when the header is absent."""
    if credentials is not None:
        return credentials.credentials
    if request.headers.get("Authorization"):
        raise BearerTokenError("invalid_request", "Authorization header must use Bearer scheme")
    return None


BearerToken = Annotated[str | None, Depends(get_bearer_token)]


def require_caller(oauth: OAuth, token: BearerToken, session_id: SessionId) -> Identity:
    """
    Dependency: Bearer access token or live session -> caller identity.
    A presented token is never retried against the cookie.
    """
    if token is not None:
        identity = identity_from_claims(oauth.verify_access_token(token))
        if identity is None:
            raise BearerTokenError("invalid_token", "Token missing sub claim")
        return identity

    user_id = require_user_id(oauth, session_id)
    snapshot = oauth.session_snapshot(session_id)
    return snapshot.user if snapshot is not None else Identity(id=user_id)


CurrentCaller = Annotated[Identity, Depends(require_caller)]
