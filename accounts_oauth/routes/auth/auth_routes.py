import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accounts_oauth.common.exceptions import INVALID_TOKEN_HEADERS, OAuthException
from accounts_oauth.common.security import parse_bearer
from accounts_oauth.common.token import SessionTokenVerifier
from accounts_oauth.core.db import get_session
from accounts_oauth.models.dto.auth_models import (
    AuthorizationServerMetadata,
    ConsentRevokeRequest,
    ConsentRevokeResponse,
    ErrorResponse,
    HealthResponse,
    IntrospectionResponse,
    IssueCodeRequest,
    IssueCodeResponse,
    TokenResponse,
)
from accounts_oauth.services.auth import (
    auth_services,
    authorization,
    codes,
    consent,
    introspection,
    tokens,
)
from accounts_oauth.services.identity.identity_client import (
    HttpIdentityProvider,
    get_identity_provider,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------

def optional_caller_id(authorization: str | None = Header(None)) -> str | None:
    """User id from a session bearer token, or None when absent or invalid."""
    token = parse_bearer(authorization)
    if token is None:
        return None
    try:
        return SessionTokenVerifier().user_id(token)
    except OAuthException as exc:
        logger.info("Ignoring unusable session on /authorize: %s", exc.description)
        return None


def required_caller_id(authorization: str | None = Header(None)) -> str:
    token = parse_bearer(authorization)
    if token is None:
        raise OAuthException(
            error="invalid_token",
            description="Missing or invalid Authorization header",
            status_code=401,
            headers=INVALID_TOKEN_HEADERS,
        )
    return SessionTokenVerifier().user_id(token)


async def read_token_request(request: Request) -> dict:
    """Token requests may be form-encoded or JSON."""
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise OAuthException(
            error="invalid_request",
            description="Request body must be form-encoded or JSON",
        )

    if not isinstance(payload, dict):
        raise OAuthException(
            error="invalid_request",
            description="Request body must be an object",
        )
    return payload

# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse, include_in_schema=False)
def health():
    return auth_services.health()


@router.get(
    "/.well-known/oauth-authorization-server",
    response_model=AuthorizationServerMetadata,
)
def authorization_server_metadata():
    return auth_services.authorization_server_metadata()

# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

@router.get("/authorize", status_code=302, responses=ERROR_RESPONSES)
async def authorize(
    response_type: str = "",
    client_id: str = "",
    redirect_uri: str = "",
    scope: str = "",
    state: str = "",
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
    mode: str | None = None,
    user_id: str | None = Depends(optional_caller_id),
    db: AsyncSession = Depends(get_session),
):
    return await authorization.authorize(
        db,
        response_type=response_type,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        mode=mode,
        user_id=user_id,
    )


@router.post("/issue-code", response_model=IssueCodeResponse, responses=ERROR_RESPONSES)
async def issue_code(
    payload: IssueCodeRequest,
    user_id: str = Depends(required_caller_id),
    db: AsyncSession = Depends(get_session),
):
    redirect_url = await codes.decide_consent(db, payload, user_id)
    return IssueCodeResponse(redirect_url=redirect_url)

# ---------------------------------------------------------------------------
# Consent
# ---------------------------------------------------------------------------

@router.post("/consents/revoke", response_model=ConsentRevokeResponse, responses=ERROR_RESPONSES)
async def revoke_consent(
    payload: ConsentRevokeRequest,
    user_id: str = Depends(required_caller_id),
    db: AsyncSession = Depends(get_session),
):
    revoked = await consent.revoke(db, user_id, payload.client_id)
    return ConsentRevokeResponse(revoked=revoked)

# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------

@router.post(
    "/token",
    response_model=TokenResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def token(
    request: Request,
    db: AsyncSession = Depends(get_session),
    identity_provider: HttpIdentityProvider = Depends(get_identity_provider),
):
    payload = await read_token_request(request)
    return await tokens.issue_token(db, identity_provider, payload)

# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------

@router.post(
    "/introspect",
    response_model=IntrospectionResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
@router.post(
    "/verify",
    response_model=IntrospectionResponse,
    response_model_exclude_none=True,
    include_in_schema=False,
)
async def introspect(
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_session),
    identity_provider: HttpIdentityProvider = Depends(get_identity_provider),
):
    return await introspection.introspect(db, identity_provider, authorization)
