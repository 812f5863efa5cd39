"""
Error kinds for the login flow and session checks, rendered as {"error": message} JSON.
Auth = invalid/expired/replayed login attempt; ProviderHttp = provider unreachable or broken;
Unauthorized = no valid session on a protected request (always 401, never a redirect);
BearerTokenError = rejected Authorization header (RFC 6750 body and WWW-Authenticate).
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# Provider error text is cut to this length before it reaches a client
_MAX_DETAIL = 200


def short_detail(text: str) -> str:
    text = " ".join(str(text).split())
    if len(text) > _MAX_DETAIL:
        return text[: _MAX_DETAIL - 3] + "..."
    return text


class OrderServerError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    prefix = "error"
    headers: dict[str, str] | None = None

    def __init__(self, detail: str = ""):
        self.detail = short_detail(detail)
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return f"{self.prefix}: {self.detail}" if self.detail else self.prefix

    def content(self) -> dict:
        return {"error": self.message}


class AuthError(OrderServerError):
    status_code = status.HTTP_400_BAD_REQUEST
    prefix = "oauth error"


class ProviderHttpError(OrderServerError):
    status_code = status.HTTP_502_BAD_GATEWAY
    prefix = "http error"


class Unauthorized(OrderServerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    prefix = "authentication required"
    headers = {"WWW-Authenticate": "Bearer"}


class BearerTokenError(OrderServerError):
    """401 for a bad Bearer credential. error is invalid_request or invalid_token."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, error: str, description: str):
        self.error = error
        super().__init__(description)

    @property
    def prefix(self) -> str:
        return self.error

    @property
    def headers(self) -> dict[str, str]:
        description = self.detail.replace('"', "'")
        return {"WWW-Authenticate": f'Bearer error="{self.error}", error_description="{description}"'}

    def content(self) -> dict:
        return {"error": self.error, "error_description": self.detail}


async def _handle_order_server_error(request: Request, exc: OrderServerError) -> JSONResponse:
    if isinstance(exc, ProviderHttpError):
        logger.error("Provider request failed on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.content(), headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderServerError, _handle_order_server_error)
