import os

os.environ.setdefault("SESSION_JWT_SECRET", "test-session-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ACCOUNTS_URL", "https://accounts.example")
os.environ.setdefault("DEBUG", "false")

import secrets
import time
from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import httpx
import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from accounts_oauth.common import timeutils
from accounts_oauth.common.security import s256_challenge
from accounts_oauth.core.config import settings
from accounts_oauth.core.db import Base, engine_options, get_session
from accounts_oauth.main import app
from accounts_oauth.repositories.auth_repo import create_client
from accounts_oauth.services.identity.identity_client import (
    IdentityError,
    UserIdentity,
    get_identity_provider,
)

MAIL_CLIENT_ID = "mail.example"
MAIL_REDIRECT_URI = "https://mail.example/cb"

ALICE = UserIdentity(
    id="user-alice",
    email="alice@mail.example",
    email_verified=True,
    name="Alice Example",
    avatar_url="https://cdn.mail.example/alice.png",
)


class FakeIdentityProvider:
    """In-memory stand-in for the identity service admin API."""

    def __init__(self, *users: UserIdentity):
        self.users = {user.id: user for user in users}
        self.fail = False
        self.calls: list[str] = []

    async def get_user(self, user_id: str) -> UserIdentity | None:
        self.calls.append(user_id)
        if self.fail:
            raise IdentityError("identity service unavailable")
        return self.users.get(user_id)


class Clock:
    """Moves ``timeutils.utc_now`` for expiry tests."""

    def __init__(self, monkeypatch):
        self._monkeypatch = monkeypatch
        self._real_now = timeutils.utc_now

    def advance(self, **kwargs) -> None:
        moved = self._real_now() + timedelta(**kwargs)
        self._monkeypatch.setattr(timeutils, "utc_now", lambda: moved)


def query_params(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


def generate_pkce_pair() -> tuple[str, str]:
    """What a client does: ``(code_verifier, S256 code_challenge)``."""
    code_verifier = secrets.token_urlsafe(64)
    return code_verifier, s256_challenge(code_verifier)


def make_session_token(user_id: str = ALICE.id, expires_in: int = 3600, **claims) -> str:
    now = int(time.time())
    payload = {
        "sub": user_id,
        "aud": settings.SESSION_JWT_AUDIENCE,
        "iat": now,
        "exp": now + expires_in,
        **claims,
    }
    return jwt.encode(payload, settings.SESSION_JWT_SECRET, algorithm=settings.SESSION_JWT_ALGORITHM)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'oauth.db'}"
    engine = create_async_engine(url, poolclass=NullPool, **engine_options(url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def mail_client(db):
    return await create_client(
        db,
        client_id=MAIL_CLIENT_ID,
        client_name="Mail Example",
        redirect_uris=[MAIL_REDIRECT_URI],
        allowed_scopes=["openid", "email", "profile"],
    )


@pytest.fixture
async def inactive_client(db):
    return await create_client(
        db,
        client_id="retired.example",
        client_name="Retired",
        redirect_uris=["https://retired.example/cb"],
        allowed_scopes=["openid"],
        is_active=False,
    )


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def identity():
    return FakeIdentityProvider(ALICE)


@pytest.fixture
def clock(monkeypatch):
    return Clock(monkeypatch)


@pytest.fixture
def session_headers():
    return {"Authorization": f"Bearer {make_session_token()}"}


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
async def http(session_factory, identity):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_identity_provider] = lambda: identity

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
