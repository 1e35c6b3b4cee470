import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from accounts_oauth.common.exceptions import OAuthException
from accounts_oauth.common.security import parse_scope
from accounts_oauth.core.config import settings
from accounts_oauth.models.dto.auth_models import UserClaims

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """The identity service could not be reached or answered unexpectedly."""


@dataclass(frozen=True)
class UserIdentity:
    id: str
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserIdentity":
        """Build from an identity-service admin user record."""
        metadata = payload.get("user_metadata") or {}
        return cls(
            id=str(payload["id"]),
            email=payload.get("email"),
            email_verified=payload.get("email_confirmed_at") is not None,
            name=metadata.get("full_name") or metadata.get("name"),
            avatar_url=metadata.get("avatar_url"),
        )


def scoped_user_claims(identity: UserIdentity, scope: str) -> UserClaims:
    """
    Release ``id`` and ``email_verified`` always, ``email`` only under the
    "email" scope, ``name``/``avatar_url`` only under "profile".
    """
    scopes = parse_scope(scope)
    claims = UserClaims(id=identity.id, email_verified=identity.email_verified)

    if "email" in scopes:
        claims.email = identity.email

    if "profile" in scopes:
        claims.name = identity.name
        claims.avatar_url = identity.avatar_url

    return claims


class HttpIdentityProvider:
    """
    Looks up users in the identity service's admin API.

    Args:
        base_url: Admin API root, e.g. ``https://id.example.com/auth/v1``.
        service_key: Service-role key sent as bearer and ``apikey``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Accept": "application/json",
        }

    async def get_user(self, user_id: str) -> UserIdentity | None:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                resp = await client.get(f"/admin/users/{user_id}", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("Identity lookup for user %s failed: %s", user_id, exc)
            raise IdentityError(f"Identity service request failed: {exc}") from exc

        if resp.status_code == 404:
            return None

        if resp.status_code != 200:
            logger.warning(
                "Identity lookup for user %s returned HTTP %s", user_id, resp.status_code
            )
            raise IdentityError(f"Identity service returned {resp.status_code}")

        try:
            return UserIdentity.from_payload(resp.json())
        except (ValueError, KeyError) as exc:
            raise IdentityError("Malformed identity service response") from exc


async def resolve_user(provider: HttpIdentityProvider, user_id: str) -> UserIdentity:
    """
    Fetch a user's identity, mapping every failure to ``server_error``.

    Raises:
        OAuthException: 500 ``server_error`` if the user is missing or the
            identity service fails. Details go to the log only.
    """
    try:
        identity = await provider.get_user(user_id)
    except IdentityError:
        logger.exception("Identity resolution failed for user %s", user_id)
        identity = None
    else:
        if identity is None:
            logger.warning("Identity service has no user %s", user_id)

    if identity is None:
        raise OAuthException(
            error="server_error",
            description="Failed to get user info",
            status_code=500,
        )
    return identity


def get_identity_provider() -> HttpIdentityProvider:
    return HttpIdentityProvider(
        base_url=settings.IDENTITY_API_URL,
        service_key=settings.IDENTITY_SERVICE_KEY,
        timeout=settings.IDENTITY_TIMEOUT,
    )
