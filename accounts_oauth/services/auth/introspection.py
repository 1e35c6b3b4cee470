from sqlalchemy.ext.asyncio import AsyncSession

from accounts_oauth.common import timeutils
from accounts_oauth.common.exceptions import INVALID_TOKEN_HEADERS, OAuthException
from accounts_oauth.common.security import hash_token, parse_bearer
from accounts_oauth.models.dto.auth_models import IntrospectionResponse
from accounts_oauth.repositories import auth_repo
from accounts_oauth.services.identity.identity_client import (
    HttpIdentityProvider,
    resolve_user,
    scoped_user_claims,
)


def _invalid_token(description: str) -> OAuthException:
    return OAuthException(
        error="invalid_token",
        description=description,
        status_code=401,
        headers=INVALID_TOKEN_HEADERS,
    )


async def introspect(
    db: AsyncSession,
    identity_provider: HttpIdentityProvider,
    authorization: str | None,
) -> IntrospectionResponse:
    """
    Validate a bearer access token and describe it.

    Read-only: validity is decided by ``revoked_at`` and ``expires_at`` at the
    moment of the call. Callable by any party holding only the token.
    """
    token = parse_bearer(authorization)
    if token is None:
        raise _invalid_token("Missing or invalid Authorization header")

    access_token = await auth_repo.get_active_access_token(db, hash_token(token))
    if access_token is None:
        raise _invalid_token("Token not found or revoked")

    if timeutils.as_utc(access_token.expires_at) < timeutils.utc_now():
        raise _invalid_token("Token has expired")

    identity = await resolve_user(identity_provider, access_token.user_id)

    return IntrospectionResponse(
        active=True,
        scope=access_token.scope,
        client_id=access_token.client_id,
        token_type="Bearer",
        exp=timeutils.to_timestamp(access_token.expires_at),
        iat=timeutils.to_timestamp(access_token.created_at),
        sub=identity.id,
        user=scoped_user_claims(identity, access_token.scope),
    )
