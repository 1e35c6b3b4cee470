from sqlalchemy.ext.asyncio import AsyncSession

from accounts_oauth.common.exceptions import InvalidScopeError, OAuthException
from accounts_oauth.common.security import parse_scope
from accounts_oauth.core.config import settings
from accounts_oauth.models.persistance.auth import Client
from accounts_oauth.repositories.auth_repo import get_client_by_id


async def resolve(db: AsyncSession, client_id: str) -> Client | None:
    if not client_id:
        return None
    return await get_client_by_id(db, client_id)


async def require_active(
    db: AsyncSession,
    client_id: str,
    status_code: int = 400,
) -> Client:
    """
    Resolve a client and check it is active.

    The token endpoint reports ``invalid_client`` as 401, the browser-facing
    endpoints as 400.
    """
    client = await resolve(db, client_id)
    if client is None or not client.is_active:
        raise OAuthException(
            error="invalid_client",
            description="Unknown or inactive client",
            status_code=status_code,
        )
    return client


def validate_redirect_uri(client: Client, redirect_uri: str) -> None:
    # exact membership; no prefix or wildcard matching
    if redirect_uri not in client.redirect_uris:
        raise OAuthException(
            error="invalid_request",
            description="Invalid redirect_uri",
        )


def validate_scopes(client: Client, requested_scopes: list[str]) -> None:
    allowed = set(client.allowed_scopes)
    invalid = [scope for scope in requested_scopes if scope not in allowed]
    if invalid:
        raise InvalidScopeError(invalid)


def requested_scopes(scope: str | None) -> list[str]:
    # blank or whitespace-only requests get the default set
    return parse_scope(scope) or parse_scope(settings.DEFAULT_SCOPE)


def validate(client: Client, redirect_uri: str, requested_scopes: list[str]) -> None:
    """
    Check a resolved client against a request.

    The redirect target is checked before the scopes, so an
    ``InvalidScopeError`` means ``redirect_uri`` is safe to send it to.

    Raises:
        OAuthException: ``invalid_client`` if the client is inactive,
            ``invalid_request`` if ``redirect_uri`` is not registered.
        InvalidScopeError: if any requested scope is outside the client's
            allowed set; names the offending scopes.
    """
    if not client.is_active:
        raise OAuthException(
            error="invalid_client",
            description="Unknown or inactive client",
        )
    validate_redirect_uri(client, redirect_uri)
    validate_scopes(client, requested_scopes)
