from pydantic import BaseModel
from typing import List, Optional


# ----- Health -----
class HealthResponse(BaseModel):
    status: str
    app: str
    env: str


# ----- Well-known -----
class AuthorizationServerMetadata(BaseModel):
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    introspection_endpoint: str
    scopes_supported: List[str]
    response_types_supported: List[str]
    grant_types_supported: List[str]
    code_challenge_methods_supported: List[str]
    token_endpoint_auth_methods_supported: List[str]


# ----- Errors -----
class ErrorResponse(BaseModel):
    error: str
    error_description: Optional[str] = None


# ----- Issue code (interactive consent step) -----
class IssueCodeRequest(BaseModel):
    client_id: str
    redirect_uri: str
    scope: str = ""
    state: str
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    consent_granted: bool


class IssueCodeResponse(BaseModel):
    redirect_url: str


# ----- Consent -----
class ConsentRevokeRequest(BaseModel):
    client_id: str


class ConsentRevokeResponse(BaseModel):
    revoked: bool


# ----- Token -----
class UserClaims(BaseModel):
    """Identity claims released to a client, filtered by granted scope."""
    id: str
    email_verified: bool
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str
    scope: str
    user: Optional[UserClaims] = None


# ----- Introspection -----
class IntrospectionResponse(BaseModel):
    active: bool = True
    scope: str
    client_id: str
    token_type: str = "Bearer"
    exp: int
    iat: int
    sub: str
    user: UserClaims
