import base64
import hashlib
import hmac
import secrets

from accounts_oauth.core.config import settings


# ---------------------------------------------------------------------------
# Opaque credentials
# ---------------------------------------------------------------------------

def generate_authorization_code() -> str:
    return secrets.token_urlsafe(settings.TOKEN_BYTES)


def generate_token() -> str:
    """Access/refresh token: TOKEN_BYTES of randomness, hex-encoded."""
    return secrets.token_hex(settings.TOKEN_BYTES)


def hash_token(value: str) -> str:
    """
    Digest stored in place of a code or token. Lookups hash the presented
    value and compare digests.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------

def parse_scope(scope: str | None) -> list[str]:
    """Split a space-delimited scope string, dropping blanks and duplicates."""
    return list(dict.fromkeys((scope or "").split()))


def format_scope(scopes: list[str]) -> str:
    return " ".join(scopes)


# ---------------------------------------------------------------------------
# PKCE (RFC 7636)
# ---------------------------------------------------------------------------

def s256_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_pkce(code_verifier: str, code_challenge: str, method: str = "S256") -> bool:
    if method == "plain":
        expected = code_verifier
    elif method == "S256":
        try:
            expected = s256_challenge(code_verifier)
        except UnicodeEncodeError:
            return False
    else:
        return False

    return hmac.compare_digest(expected.encode("utf-8"), code_challenge.encode("utf-8"))
