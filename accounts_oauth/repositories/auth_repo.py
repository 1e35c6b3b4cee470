from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from accounts_oauth.models.persistance.auth import (
    AccessToken,
    AuthorizationCode,
    Client,
    Consent,
    RefreshToken,
)

# Writes below only add/flush; the calling service owns the commit so that
# multi-row changes land in a single transaction.


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

async def create_client(
    db: AsyncSession,
    *,
    client_id: str,
    client_name: str,
    redirect_uris: list[str],
    allowed_scopes: list[str],
    is_active: bool = True,
) -> Client:
    client = Client(
        client_id=client_id,
        client_name=client_name,
        redirect_uris=redirect_uris,
        allowed_scopes=allowed_scopes,
        is_active=is_active,
    )

    db.add(client)
    await db.commit()
    await db.refresh(client)
    return client


async def get_client_by_id(
    db: AsyncSession,
    client_id: str,
) -> Client | None:
    stmt = select(Client).where(Client.client_id == client_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Consents
# ---------------------------------------------------------------------------

async def get_consent(
    db: AsyncSession,
    user_id: str,
    client_id: str,
) -> Consent | None:
    stmt = (
        select(Consent)
        .where(
            Consent.user_id == user_id,
            Consent.client_id == client_id,
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_consent(
    db: AsyncSession,
    user_id: str,
    client_id: str,
) -> Consent | None:
    stmt = (
        select(Consent)
        .where(
            Consent.user_id == user_id,
            Consent.client_id == client_id,
            Consent.revoked_at.is_(None),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def add_consent(
    db: AsyncSession,
    *,
    user_id: str,
    client_id: str,
    scope: str,
    granted_at: datetime,
) -> Consent:
    consent = Consent(
        user_id=user_id,
        client_id=client_id,
        scope=scope,
        granted_at=granted_at,
        revoked_at=None,
    )
    db.add(consent)
    await db.flush()
    return consent


async def revoke_consent(
    db: AsyncSession,
    consent_id: int,
    revoked_at: datetime,
) -> bool:
    stmt = (
        update(Consent)
        .where(Consent.id == consent_id, Consent.revoked_at.is_(None))
        .values(revoked_at=revoked_at)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Authorization codes
# ---------------------------------------------------------------------------

async def create_authorization_code(
    db: AsyncSession,
    *,
    code_hash: str,
    client_id: str,
    user_id: str,
    redirect_uri: str,
    scope: str,
    code_challenge: str | None,
    code_challenge_method: str | None,
    created_at: datetime,
    expires_at: datetime,
) -> AuthorizationCode:
    auth_code = AuthorizationCode(
        code_hash=code_hash,
        client_id=client_id,
        user_id=user_id,
        redirect_uri=redirect_uri,
        scope=scope,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        created_at=created_at,
        expires_at=expires_at,
        used_at=None,
    )
    db.add(auth_code)
    await db.flush()
    return auth_code


async def get_unused_authorization_code(
    db: AsyncSession,
    code_hash: str,
    client_id: str,
) -> AuthorizationCode | None:
    stmt = select(AuthorizationCode).where(
        AuthorizationCode.code_hash == code_hash,
        AuthorizationCode.client_id == client_id,
        AuthorizationCode.used_at.is_(None),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def consume_authorization_code(
    db: AsyncSession,
    code_id: int,
    used_at: datetime,
) -> bool:
    """
    Mark a code used with one conditional UPDATE.

    Returns False when another redemption already set ``used_at``; the row
    itself is the lock, there is no separate read-check-write.
    """
    stmt = (
        update(AuthorizationCode)
        .where(AuthorizationCode.id == code_id, AuthorizationCode.used_at.is_(None))
        .values(used_at=used_at)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Access / refresh tokens
# ---------------------------------------------------------------------------

async def create_access_token(
    db: AsyncSession,
    *,
    token_hash: str,
    client_id: str,
    user_id: str,
    scope: str,
    created_at: datetime,
    expires_at: datetime,
) -> AccessToken:
    access_token = AccessToken(
        token_hash=token_hash,
        client_id=client_id,
        user_id=user_id,
        scope=scope,
        created_at=created_at,
        expires_at=expires_at,
    )
    db.add(access_token)
    await db.flush()
    return access_token


async def create_refresh_token(
    db: AsyncSession,
    *,
    token_hash: str,
    access_token_id: int,
    client_id: str,
    user_id: str,
    created_at: datetime,
    expires_at: datetime,
) -> RefreshToken:
    refresh_token = RefreshToken(
        token_hash=token_hash,
        access_token_id=access_token_id,
        client_id=client_id,
        user_id=user_id,
        created_at=created_at,
        expires_at=expires_at,
    )
    db.add(refresh_token)
    await db.flush()
    return refresh_token


async def get_active_access_token(
    db: AsyncSession,
    token_hash: str,
) -> AccessToken | None:
    stmt = select(AccessToken).where(
        AccessToken.token_hash == token_hash,
        AccessToken.revoked_at.is_(None),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_refresh_token(
    db: AsyncSession,
    token_hash: str,
    client_id: str,
) -> RefreshToken | None:
    stmt = (
        select(RefreshToken)
        .options(joinedload(RefreshToken.access_token))
        .where(
            RefreshToken.token_hash == token_hash,
            RefreshToken.client_id == client_id,
            RefreshToken.revoked_at.is_(None),
        )
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def revoke_refresh_token(
    db: AsyncSession,
    token_id: int,
    revoked_at: datetime,
) -> bool:
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.id == token_id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=revoked_at)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def revoke_access_token(
    db: AsyncSession,
    token_id: int,
    revoked_at: datetime,
) -> bool:
    stmt = (
        update(AccessToken)
        .where(AccessToken.id == token_id, AccessToken.revoked_at.is_(None))
        .values(revoked_at=revoked_at)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1
