from typing import Dict, Any

import jwt

from accounts_oauth.common.exceptions import OAuthException, INVALID_TOKEN_HEADERS
from accounts_oauth.core.config import settings


class SessionTokenVerifier:
    """
    Verifies the login-session JWT that the accounts UI holds after the user
    signs in, and extracts the caller's user id from it.

    The session token is issued by the identity service, not by this server;
    OAuth access and refresh tokens are opaque and never pass through here.
    """

    SECRET: str = settings.SESSION_JWT_SECRET
    ALGORITHM: str = settings.SESSION_JWT_ALGORITHM
    AUDIENCE: str = settings.SESSION_JWT_AUDIENCE

    def _decode_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and verify a session JWT.

        Raises:
            jwt.ExpiredSignatureError: If the token has expired.
            jwt.InvalidTokenError: If the token is malformed or invalid.
        """
        return jwt.decode(
            token,
            self.SECRET,
            algorithms=[self.ALGORITHM],
            audience=self.AUDIENCE,
            options={"require": ["exp", "sub"]},
        )

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Verify a session token and return its claims.

        Raises:
            OAuthException: ``invalid_token`` (401) for expired or invalid tokens.
        """
        try:
            return self._decode_token(token)
        except jwt.ExpiredSignatureError:
            raise OAuthException(
                error="invalid_token",
                description="Session has expired",
                status_code=401,
                headers=INVALID_TOKEN_HEADERS,
            )
        except jwt.InvalidTokenError:
            raise OAuthException(
                error="invalid_token",
                description="Invalid session token",
                status_code=401,
                headers=INVALID_TOKEN_HEADERS,
            )

    def user_id(self, token: str) -> str:
        return str(self.verify(token)["sub"])
