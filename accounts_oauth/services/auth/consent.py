import logging

from sqlalchemy.ext.asyncio import AsyncSession

from accounts_oauth.common import timeutils
from accounts_oauth.common.security import format_scope, parse_scope
from accounts_oauth.models.persistance.auth import Consent
from accounts_oauth.repositories import auth_repo

logger = logging.getLogger(__name__)


async def find_active(db: AsyncSession, user_id: str, client_id: str) -> Consent | None:
    return await auth_repo.get_active_consent(db, user_id, client_id)


def covers(consent: Consent | None, requested_scopes: list[str]) -> bool:
    if consent is None:
        return False
    granted = set(parse_scope(consent.scope))
    return set(requested_scopes) <= granted


async def upsert(
    db: AsyncSession,
    user_id: str,
    client_id: str,
    scopes: list[str],
) -> Consent:
    """
    Record that ``user_id`` granted ``scopes`` to ``client_id``.

    There is one row per (user, client): a re-grant replaces the scope set,
    resets ``granted_at`` and clears any revocation. Does not commit.
    Concurrent grants are last-writer-wins.
    """
    now = timeutils.utc_now()
    scope = format_scope(scopes)

    consent = await auth_repo.get_consent(db, user_id, client_id)
    if consent is None:
        consent = await auth_repo.add_consent(
            db,
            user_id=user_id,
            client_id=client_id,
            scope=scope,
            granted_at=now,
        )
    else:
        consent.scope = scope
        consent.granted_at = now
        consent.revoked_at = None
        await db.flush()

    logger.info("Consent recorded for user %s on client %s: %s", user_id, client_id, scope)
    return consent


async def revoke(db: AsyncSession, user_id: str, client_id: str) -> bool:
    consent = await find_active(db, user_id, client_id)
    if consent is None:
        return False

    revoked = await auth_repo.revoke_consent(db, consent.id, timeutils.utc_now())
    await db.commit()

    if revoked:
        logger.info("Consent revoked for user %s on client %s", user_id, client_id)
    return revoked
