import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from accounts_oauth.common import timeutils
from accounts_oauth.common.exceptions import OAuthException
from accounts_oauth.common.security import generate_token, hash_token, verify_pkce
from accounts_oauth.core.config import settings
from accounts_oauth.models.dto.auth_models import TokenResponse
from accounts_oauth.repositories import auth_repo
from accounts_oauth.services.auth import clients
from accounts_oauth.services.identity.identity_client import (
    HttpIdentityProvider,
    resolve_user,
    scoped_user_claims,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuthorizationCodeGrant:
    client_id: str
    code: str
    redirect_uri: str
    code_verifier: Optional[str] = None


@dataclass(frozen=True)
class RefreshTokenGrant:
    client_id: str
    refresh_token: str


TokenGrant = Union[AuthorizationCodeGrant, RefreshTokenGrant]


def _field(payload: Mapping[str, Any], name: str) -> Optional[str]:
    value = payload.get(name)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise OAuthException(
            error="invalid_request",
            description=f"Invalid parameter: {name}",
        )
    return value


def _missing(description: str) -> OAuthException:
    return OAuthException(error="invalid_request", description=description)


def parse_grant(payload: Mapping[str, Any]) -> TokenGrant:
    """
    Turn a token request body (form or JSON) into exactly one grant variant.

    Raises:
        OAuthException: ``unsupported_grant_type`` for any other grant_type,
            ``invalid_request`` for missing parameters.
    """
    grant_type = _field(payload, "grant_type")
    client_id = _field(payload, "client_id")

    if grant_type == "authorization_code":
        code = _field(payload, "code")
        redirect_uri = _field(payload, "redirect_uri")
        if not client_id:
            raise _missing("Missing client_id")
        if not code or not redirect_uri:
            raise _missing("Missing code or redirect_uri")
        return AuthorizationCodeGrant(
            client_id=client_id,
            code=code,
            redirect_uri=redirect_uri,
            code_verifier=_field(payload, "code_verifier"),
        )

    if grant_type == "refresh_token":
        refresh_token = _field(payload, "refresh_token")
        if not client_id:
            raise _missing("Missing client_id")
        if not refresh_token:
            raise _missing("Missing refresh_token")
        return RefreshTokenGrant(client_id=client_id, refresh_token=refresh_token)

    raise OAuthException(
        error="unsupported_grant_type",
        description="Unsupported grant type",
    )


# ---------------------------------------------------------------------------
# Token pairs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IssuedTokenPair:
    access_token: str
    refresh_token: str
    scope: str
    expires_in: int


async def _issue_token_pair(
    db: AsyncSession,
    *,
    client_id: str,
    user_id: str,
    scope: str,
    now: datetime,
) -> IssuedTokenPair:
    """Persist a fresh access/refresh pair (digests only). Does not commit."""
    access_token = generate_token()
    refresh_token = generate_token()

    access_row = await auth_repo.create_access_token(
        db,
        token_hash=hash_token(access_token),
        client_id=client_id,
        user_id=user_id,
        scope=scope,
        created_at=now,
        expires_at=now + timedelta(seconds=settings.ACCESS_TOKEN_TTL),
    )
    await auth_repo.create_refresh_token(
        db,
        token_hash=hash_token(refresh_token),
        access_token_id=access_row.id,
        client_id=client_id,
        user_id=user_id,
        created_at=now,
        expires_at=now + timedelta(seconds=settings.REFRESH_TOKEN_TTL),
    )

    return IssuedTokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        scope=scope,
        expires_in=settings.ACCESS_TOKEN_TTL,
    )


def _invalid_grant(description: str) -> OAuthException:
    return OAuthException(error="invalid_grant", description=description)


# ---------------------------------------------------------------------------
# authorization_code
# ---------------------------------------------------------------------------

async def _code_grant(
    db: AsyncSession,
    identity_provider: HttpIdentityProvider,
    grant: AuthorizationCodeGrant,
) -> TokenResponse:
    await clients.require_active(db, grant.client_id, status_code=401)

    auth_code = await auth_repo.get_unused_authorization_code(
        db, hash_token(grant.code), grant.client_id
    )
    if auth_code is None:
        raise _invalid_grant("Invalid or expired authorization code")

    now = timeutils.utc_now()
    if timeutils.as_utc(auth_code.expires_at) < now:
        raise _invalid_grant("Authorization code has expired")

    if auth_code.redirect_uri != grant.redirect_uri:
        raise _invalid_grant("Redirect URI mismatch")

    if auth_code.code_challenge:
        if not grant.code_verifier:
            raise _missing("Missing code_verifier")

        method = auth_code.code_challenge_method or settings.DEFAULT_CODE_CHALLENGE_METHOD
        if not verify_pkce(grant.code_verifier, auth_code.code_challenge, method):
            raise _invalid_grant("Invalid code_verifier")

    # looked up before any write so no datastore lock spans the HTTP call
    identity = await resolve_user(identity_provider, auth_code.user_id)

    try:
        if not await auth_repo.consume_authorization_code(db, auth_code.id, now):
            raise _invalid_grant("Authorization code has already been used")

        issued = await _issue_token_pair(
            db,
            client_id=grant.client_id,
            user_id=auth_code.user_id,
            scope=auth_code.scope,
            now=now,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Authorization code redeemed by client %s for user %s",
        grant.client_id,
        auth_code.user_id,
    )

    return TokenResponse(
        access_token=issued.access_token,
        expires_in=issued.expires_in,
        refresh_token=issued.refresh_token,
        scope=issued.scope,
        user=scoped_user_claims(identity, issued.scope),
    )


# ---------------------------------------------------------------------------
# refresh_token
# ---------------------------------------------------------------------------

async def _refresh_grant(
    db: AsyncSession,
    identity_provider: HttpIdentityProvider,
    grant: RefreshTokenGrant,
) -> TokenResponse:
    await clients.require_active(db, grant.client_id, status_code=401)

    stored = await auth_repo.get_active_refresh_token(
        db, hash_token(grant.refresh_token), grant.client_id
    )
    if stored is None:
        raise _invalid_grant("Invalid refresh token")

    now = timeutils.utc_now()
    if timeutils.as_utc(stored.expires_at) < now:
        raise _invalid_grant("Refresh token has expired")

    scope = stored.access_token.scope

    # revoke-old and issue-new commit together or not at all
    try:
        if not await auth_repo.revoke_refresh_token(db, stored.id, now):
            raise _invalid_grant("Invalid refresh token")
        await auth_repo.revoke_access_token(db, stored.access_token_id, now)

        issued = await _issue_token_pair(
            db,
            client_id=grant.client_id,
            user_id=stored.user_id,
            scope=scope,
            now=now,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Refresh token rotated for client %s, user %s",
        grant.client_id,
        stored.user_id,
    )

    return TokenResponse(
        access_token=issued.access_token,
        expires_in=issued.expires_in,
        refresh_token=issued.refresh_token,
        scope=issued.scope,
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

GrantHandler = Callable[[AsyncSession, HttpIdentityProvider, Any], Awaitable[TokenResponse]]

GRANT_HANDLERS: Dict[type, GrantHandler] = {
    AuthorizationCodeGrant: _code_grant,
    RefreshTokenGrant: _refresh_grant,
}


async def exchange(
    db: AsyncSession,
    identity_provider: HttpIdentityProvider,
    grant: TokenGrant,
) -> TokenResponse:
    handler = GRANT_HANDLERS[type(grant)]
    try:
        return await handler(db, identity_provider, grant)
    except OAuthException as exc:
        if exc.error in ("invalid_grant", "invalid_client"):
            logger.warning(
                "Token request rejected for client %s: %s (%s)",
                grant.client_id,
                exc.error,
                exc.description,
            )
        raise


async def issue_token(
    db: AsyncSession,
    identity_provider: HttpIdentityProvider,
    payload: Mapping[str, Any],
) -> TokenResponse:
    return await exchange(db, identity_provider, parse_grant(payload))
