"""
Order server — OIDC login, cookie sessions, session- or Bearer-protected API.
Startup discovers the provider (fatal on failure) and starts the periodic session cleanup.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from order_server.cleanup import start_cleanup_task, stop_cleanup_task
from order_server.config import DEFAULT_CLEANUP_INTERVAL, HOST, LOG_LEVEL, Settings, load_settings
from order_server.deps import CurrentCaller
from order_server.errors import register_exception_handlers
from order_server.oauth import OAuthClient
from order_server.provider import OIDCProvider
from order_server.routes import router as auth_router

logger = logging.getLogger(__name__)


def build_oauth_client(settings: Settings | None = None) -> OAuthClient:
    """Provider discovery + OAuth client. Settings come from env unless given; raises ConfigError."""
    if settings is None:
        settings = load_settings()
    provider = OIDCProvider.from_settings(settings.oauth)
    return OAuthClient(provider, settings.oauth, settings.session)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the OAuth client unless one was injected; run cleanup while serving."""
    owns_client = getattr(app.state, "oauth", None) is None
    if owns_client:
        app.state.oauth = build_oauth_client(app.state.settings)
    task = start_cleanup_task(app.state.oauth, app.state.cleanup_interval)
    try:
        yield
    finally:
        await stop_cleanup_task(task)
        if owns_client:
            app.state.oauth.close()
            app.state.oauth = None


def create_app(
    oauth: OAuthClient | None = None,
    *,
    settings: Settings | None = None,
    allowed_origins: list[str] | tuple[str, ...] | None = None,
    cleanup_interval: float | None = None,
) -> FastAPI:
    """
    Explicit arguments win over settings. Without an injected client the lifespan
    builds one from settings (or the environment when settings is None).
    """
    if settings is not None:
        if allowed_origins is None:
            allowed_origins = settings.allowed_origins
        if cleanup_interval is None:
            cleanup_interval = settings.cleanup_interval

    app = FastAPI(title="Order Server", version="0.1.0", lifespan=lifespan)
    app.state.oauth = oauth
    app.state.settings = settings
    app.state.cleanup_interval = cleanup_interval or DEFAULT_CLEANUP_INTERVAL

    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(allowed_origins),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    register_exception_handlers(app)
    app.include_router(auth_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "order_server"}

    @app.get("/me")
    def me(caller: CurrentCaller):
        """Bearer access token or live session. Returns the caller's sub, email and username."""
        return {"sub": caller.id, "email": caller.email, "username": caller.name}

    return app


def app_from_env(settings: Settings | None = None) -> FastAPI:
    """App factory for `uvicorn --factory`: everything from one load of the environment."""
    return create_app(settings=settings if settings is not None else load_settings())


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = load_settings()
    uvicorn.run(app_from_env(settings), host=HOST, port=settings.port)
