import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from accounts_oauth.common import timeutils
from accounts_oauth.common.exceptions import (
    AuthorizationRedirectError,
    InvalidScopeError,
    OAuthException,
    append_query,
)
from accounts_oauth.common.security import (
    format_scope,
    generate_authorization_code,
    hash_token,
)
from accounts_oauth.core.config import settings
from accounts_oauth.models.dto.auth_models import IssueCodeRequest
from accounts_oauth.repositories import auth_repo
from accounts_oauth.services.auth import clients, consent

logger = logging.getLogger(__name__)


def validate_code_challenge(
    code_challenge: str | None,
    code_challenge_method: str | None,
) -> str | None:
    """
    Check the PKCE method that accompanies a challenge and return the method
    to store (defaults to S256). Returns None when there is no challenge.
    """
    if not code_challenge:
        return None

    method = code_challenge_method or settings.DEFAULT_CODE_CHALLENGE_METHOD
    if method not in settings.CODE_CHALLENGE_METHODS_SUPPORTED:
        raise OAuthException(
            error="invalid_request",
            description=f"Unsupported code_challenge_method: {method}",
        )
    return method


async def issue(
    db: AsyncSession,
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    user_id: str,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
) -> str:
    """
    Create a single-use authorization code and return its plaintext value.

    Only the code's digest is stored. The row expires after
    AUTHORIZATION_CODE_TTL and starts with ``used_at`` unset. Does not commit.
    """
    now = timeutils.utc_now()
    code = generate_authorization_code()

    await auth_repo.create_authorization_code(
        db,
        code_hash=hash_token(code),
        client_id=client_id,
        user_id=user_id,
        redirect_uri=redirect_uri,
        scope=scope,
        code_challenge=code_challenge or None,
        code_challenge_method=code_challenge_method if code_challenge else None,
        created_at=now,
        expires_at=now + timedelta(seconds=settings.AUTHORIZATION_CODE_TTL),
    )

    logger.info(
        "Authorization code issued for user %s on client %s (pkce=%s)",
        user_id,
        client_id,
        code_challenge_method if code_challenge else "none",
    )
    return code


async def decide_consent(
    db: AsyncSession,
    payload: IssueCodeRequest,
    user_id: str,
) -> str:
    """
    Apply the user's consent decision and return the URL to send the browser to.

    Client and redirect_uri are validated again here; this call can arrive
    without a preceding /authorize.
    """
    client = await clients.require_active(db, payload.client_id)

    if not payload.consent_granted:
        clients.validate_redirect_uri(client, payload.redirect_uri)
        logger.info("User %s denied consent for client %s", user_id, client.client_id)
        return AuthorizationRedirectError(
            error="access_denied",
            description="User denied the authorization request",
            redirect_uri=payload.redirect_uri,
            state=payload.state,
        ).redirect_url

    scopes = clients.requested_scopes(payload.scope)
    try:
        clients.validate(client, payload.redirect_uri, scopes)
    except InvalidScopeError as exc:
        return AuthorizationRedirectError.from_error(
            exc, payload.redirect_uri, payload.state
        ).redirect_url

    try:
        method = validate_code_challenge(payload.code_challenge, payload.code_challenge_method)
    except OAuthException as exc:
        return AuthorizationRedirectError.from_error(
            exc, payload.redirect_uri, payload.state
        ).redirect_url

    try:
        await consent.upsert(db, user_id, client.client_id, scopes)
        code = await issue(
            db,
            client_id=client.client_id,
            redirect_uri=payload.redirect_uri,
            scope=format_scope(scopes),
            user_id=user_id,
            code_challenge=payload.code_challenge,
            code_challenge_method=method,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return append_query(payload.redirect_uri, {"code": code, "state": payload.state})
