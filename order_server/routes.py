"""
Login flow and session endpoints.
GET /auth/login, GET /auth/callback, GET /auth/me, POST /auth/logout.
"""
import logging

from fastapi import APIRouter, Response, status
from fastapi.responses import RedirectResponse

from order_server.deps import OAuth, SessionId
from order_server.errors import AuthError, Unauthorized
from order_server.oauth import OAuthClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/login", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
def start_login(oauth: OAuth):
    """Generate state, nonce and PKCE; remember them for the callback; redirect to the provider."""
    auth_request = oauth.build_authorization_url()
    oauth.store_pending(auth_request.state, auth_request.code_verifier, auth_request.nonce)
    return RedirectResponse(url=auth_request.url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


def _complete_login(
    oauth: OAuthClient,
    code: str | None,
    state: str | None,
    error: str | None,
    error_description: str | None,
) -> str:
    """Run the callback steps and return the new session id. Raises AuthError/ProviderHttpError."""
    if error:
        # The attempt is over either way; don't leave its state redeemable
        if state:
            oauth.take_pending(state)
        raise AuthError(f"{error}: {error_description or 'OAuth authorization failed'}")
    if not code:
        raise AuthError("Missing authorization code")
    if not state:
        raise AuthError("Missing state parameter")

    flow = oauth.take_pending(state)
    if flow is None:
        raise AuthError("Unknown or expired state parameter")

    tokens = oauth.exchange_code(code, flow.code_verifier, flow.nonce)
    profile = oauth.fetch_userinfo(tokens.access_token)

    identity = oauth.extract_identity(profile)
    if identity is None:
        raise AuthError("Unable to determine user identity from profile")

    session_id = oauth.create_session(identity, profile)
    logger.info("Created session for user %s", identity.id)
    return session_id


@router.get("/callback", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
def handle_callback(
    oauth: OAuth,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
):
    """
    Handle the provider redirect. On success set the session cookie and redirect to the app.
    Auth failures go to the failure URL when one is configured, else a 400 JSON error.
    """
    try:
        session_id = _complete_login(oauth, code, state, error, error_description)
    except AuthError as e:
        logger.warning("Login callback rejected: %s", e.message)
        if not oauth.failure_redirect:
            raise
        response = RedirectResponse(url=oauth.failure_redirect, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
        oauth.build_logout_cookie().apply(response)
        return response

    response = RedirectResponse(url=oauth.success_redirect, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    oauth.build_cookie(session_id).apply(response)
    return response


@router.get("/me")
def current_session(oauth: OAuth, session_id: SessionId):
    """Current session snapshot (user, expiresAt, profile). 401 when not logged in."""
    if session_id is None:
        raise Unauthorized()
    snapshot = oauth.session_snapshot(session_id)
    if snapshot is None:
        raise Unauthorized()
    return snapshot.to_dict()


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(oauth: OAuth, session_id: SessionId):
    """Drop the session if any and clear the cookie. Always 204."""
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    if session_id is not None:
        oauth.remove_session(session_id)
        oauth.build_logout_cookie().apply(response)
    return response
