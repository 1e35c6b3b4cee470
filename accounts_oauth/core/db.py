from typing import Any, AsyncGenerator, Dict
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from accounts_oauth.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """
    Engine keyword arguments for ``database_url``.

    SQLite serializes writers: a consume or rotation waits up to
    DATABASE_BUSY_TIMEOUT for a competing transaction instead of failing at once.
    """
    options: Dict[str, Any] = {
        "echo": settings.DEBUG,
        "pool_pre_ping": True,
    }
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"timeout": settings.DATABASE_BUSY_TIMEOUT}
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))


AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


Base = declarative_base()


async def init_db() -> None:
    """Create the OAuth tables (clients, consents, codes, tokens) if missing."""
    # registers the tables on Base.metadata
    from accounts_oauth.models.persistance import auth  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    # services own commit/rollback; the session only scopes the request
    async with AsyncSessionLocal() as session:
        yield session
