import logging
from urllib.parse import urlencode, urlsplit, urlunsplit

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

INVALID_TOKEN_HEADERS = {"WWW-Authenticate": 'Bearer error="invalid_token"'}


def append_query(url: str, params: dict) -> str:
    """Append query parameters to ``url``, keeping any query it already has."""
    parts = urlsplit(url)
    query = urlencode({k: v for k, v in params.items() if v is not None})
    if parts.query:
        query = f"{parts.query}&{query}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


class OAuthException(Exception):
    def __init__(
        self,
        error: str,
        description: str | None = None,
        status_code: int = 400,
        headers: dict | None = None,
    ):
        super().__init__(description or error)
        self.error = error
        self.description = description
        self.status_code = status_code
        self.headers = headers or {}


class InvalidScopeError(OAuthException):
    def __init__(self, scopes: list[str]):
        super().__init__(
            error="invalid_scope",
            description=f"Invalid scopes: {', '.join(scopes)}",
        )
        self.scopes = scopes


class AuthorizationRedirectError(OAuthException):
    """
    An authorization error delivered to the client's (already verified)
    redirect_uri instead of as a JSON body.
    """

    def __init__(
        self,
        error: str,
        description: str | None,
        redirect_uri: str,
        state: str | None,
    ):
        super().__init__(error=error, description=description, status_code=302)
        self.redirect_uri = redirect_uri
        self.state = state

    @classmethod
    def from_error(
        cls,
        exc: OAuthException,
        redirect_uri: str,
        state: str | None,
    ) -> "AuthorizationRedirectError":
        return cls(
            error=exc.error,
            description=exc.description,
            redirect_uri=redirect_uri,
            state=state,
        )

    @property
    def redirect_url(self) -> str:
        return append_query(
            self.redirect_uri,
            {
                "error": self.error,
                "error_description": self.description,
                "state": self.state,
            },
        )


def attach_exception_handlers(app: FastAPI):

    @app.exception_handler(AuthorizationRedirectError)
    async def authorization_redirect_handler(request: Request, exc: AuthorizationRedirectError):
        return RedirectResponse(exc.redirect_url, status_code=302)

    @app.exception_handler(OAuthException)
    async def oauth_exception_handler(request: Request, exc: OAuthException):
        body = {"error": exc.error}

        if exc.description:
            body["error_description"] = exc.description

        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            headers=exc.headers,
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Datastore failure on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "error_description": "Internal server error",
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "error_description": "Internal server error",
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = []

        for err in exc.errors():
            loc = err.get("loc", [])
            err_type = err.get("type", "")

            where = loc[0] if len(loc) > 0 else "request"
            field = loc[-1] if len(loc) > 1 else "field"

            if err_type == "missing":
                messages.append(f"missing field '{field}' in {where}")
            else:
                messages.append(f"invalid field '{field}' in {where}")

        # remove duplicates while preserving order
        messages = list(dict.fromkeys(messages))

        return JSONResponse(
            status_code=400,
            content={
                "error": "invalid_request",
                "error_description": "Invalid request: " + ", ".join(messages),
            },
        )
