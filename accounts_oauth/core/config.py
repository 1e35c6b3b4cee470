from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    APP_NAME: str = "Accounts OAuth Server"
    DEBUG: bool = False
    ENV: str = "development"
    PROTOCOL: str = "http"
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def BASE_URL(self) -> str:
        return f"{self.PROTOCOL}://{self.HOST}:{self.PORT}"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///./accounts_oauth.db"
    # seconds a SQLite writer waits for a competing transaction
    DATABASE_BUSY_TIMEOUT: float = 5.0

    # ------------------------------------------------------------------
    # Authorization server
    # ------------------------------------------------------------------
    # Interactive login/consent surface (receives the authorize handoff)
    ACCOUNTS_URL: str = "http://127.0.0.1:5173"

    DEFAULT_SCOPE: str = "openid profile email"
    SUPPORTED_SCOPES: List[str] = ["openid", "email", "profile"]

    RESPONSE_TYPES_SUPPORTED: List[str] = ["code"]
    GRANT_TYPES_SUPPORTED: List[str] = ["authorization_code", "refresh_token"]
    CODE_CHALLENGE_METHODS_SUPPORTED: List[str] = ["S256", "plain"]
    DEFAULT_CODE_CHALLENGE_METHOD: str = "S256"
    TOKEN_ENDPOINT_AUTH_METHOD: str = "none"

    AUTHORIZATION_CODE_TTL: int = 600 # 10 minutes
    ACCESS_TOKEN_TTL: int = 3600 # 1 hour
    REFRESH_TOKEN_TTL: int = 2592000 # 30 days

    TOKEN_BYTES: int = 32

    # ------------------------------------------------------------------
    # Login sessions (caller identity)
    # ------------------------------------------------------------------
    SESSION_JWT_SECRET: str
    SESSION_JWT_ALGORITHM: str = "HS256"
    SESSION_JWT_AUDIENCE: str = "authenticated"

    # ------------------------------------------------------------------
    # Identity service (user claims)
    # ------------------------------------------------------------------
    IDENTITY_API_URL: str = "http://127.0.0.1:9999/auth/v1"
    IDENTITY_SERVICE_KEY: str = ""
    IDENTITY_TIMEOUT: float = 10.0

    # ------------------------------------------------------------------
    # CORS / hosts
    # ------------------------------------------------------------------
    CORS_ALLOW_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]
    ALLOWED_HOSTS: str = "*"

    # ------------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------------
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Singleton settings object (import this everywhere)
settings = Settings()
