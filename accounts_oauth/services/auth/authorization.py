import logging
from typing import Optional

from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_oauth.common.exceptions import (
    AuthorizationRedirectError,
    InvalidScopeError,
    OAuthException,
    append_query,
)
from accounts_oauth.common.security import format_scope
from accounts_oauth.core.config import settings
from accounts_oauth.services.auth import clients, codes, consent

logger = logging.getLogger(__name__)

LOGIN_MODES = ("login", "signup")


def _consent_surface_url(params: dict) -> str:
    return append_query(f"{settings.ACCOUNTS_URL.rstrip('/')}/authorize", params)


async def authorize(
    db: AsyncSession,
    *,
    response_type: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: Optional[str] = None,
    code_challenge_method: Optional[str] = None,
    mode: Optional[str] = None,
    user_id: Optional[str] = None,
) -> RedirectResponse:
    """
    Decide, in a single pass, how to answer an authorization request.

    Either redirects straight back to the client with a code (the caller is
    signed in and an existing consent covers every requested scope) or hands
    off to the interactive login/consent surface with the request's
    parameters and the client's display name. ``state`` is echoed verbatim.

    Errors before the redirect target is verified are raised as JSON
    ``OAuthException``; later ones as ``AuthorizationRedirectError``.
    """
    if response_type not in settings.RESPONSE_TYPES_SUPPORTED:
        raise OAuthException(
            error="unsupported_response_type",
            description="Only 'code' response type is supported",
        )

    if not client_id or not redirect_uri or not state:
        raise OAuthException(
            error="invalid_request",
            description="Missing required parameters",
        )

    client = await clients.require_active(db, client_id)

    requested_scopes = clients.requested_scopes(scope)
    try:
        clients.validate(client, redirect_uri, requested_scopes)
    except InvalidScopeError as exc:
        raise AuthorizationRedirectError.from_error(exc, redirect_uri, state) from exc

    try:
        method = codes.validate_code_challenge(code_challenge, code_challenge_method)
    except OAuthException as exc:
        raise AuthorizationRedirectError.from_error(exc, redirect_uri, state) from exc

    scope_str = format_scope(requested_scopes)

    if user_id:
        existing = await consent.find_active(db, user_id, client_id)
        if consent.covers(existing, requested_scopes):
            try:
                code = await codes.issue(
                    db,
                    client_id=client_id,
                    redirect_uri=redirect_uri,
                    scope=scope_str,
                    user_id=user_id,
                    code_challenge=code_challenge,
                    code_challenge_method=method,
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

            logger.info("Silent authorization for user %s on client %s", user_id, client_id)
            return RedirectResponse(
                append_query(redirect_uri, {"code": code, "state": state}),
                status_code=302,
            )

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope_str,
        "state": state,
        "response_type": "code",
    }
    if method:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = method
    params["mode"] = mode if mode in LOGIN_MODES else "login"
    params["client_name"] = client.client_name

    return RedirectResponse(_consent_surface_url(params), status_code=302)
