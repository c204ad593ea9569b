"""
Database helper functions — small, ownership-scoped queries shared by the
connectors services and routes.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from database.models import Campaign, Integration, OAuthApp, OAuthStateNonce

logger = logging.getLogger(__name__)


def to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


def try_uuid(value: str | uuid.UUID) -> Optional[uuid.UUID]:
    """Parse ``value`` or return ``None``; bad ids are treated as not-found."""
    try:
        return to_uuid(value)
    except (ValueError, AttributeError, TypeError):
        return None


async def list_user_integrations(session: AsyncSession, user_id: str) -> List[Integration]:
    result = await session.execute(
        select(Integration).where(Integration.user_id == to_uuid(user_id))
    )
    return list(result.scalars().all())


async def get_user_integration(
    session: AsyncSession,
    user_id: str,
    platform: str,
    *,
    active_only: bool = False,
) -> Optional[Integration]:
    stmt = select(Integration).where(
        Integration.user_id == to_uuid(user_id),
        Integration.platform == platform,
    )
    if active_only:
        stmt = stmt.where(Integration.is_active.is_(True))
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none()


async def list_active_oauth_apps(session: AsyncSession, user_id: str) -> List[OAuthApp]:
    result = await session.execute(
        select(OAuthApp).where(
            OAuthApp.user_id == to_uuid(user_id),
            OAuthApp.is_active.is_(True),
        )
    )
    return list(result.scalars().all())


async def list_user_campaigns(
    session: AsyncSession,
    user_id: str,
    platforms: Optional[Sequence[str]] = None,
) -> List[Campaign]:
    stmt = select(Campaign).where(Campaign.user_id == to_uuid(user_id))
    if platforms:
        stmt = stmt.where(Campaign.platform.in_(list(platforms)))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def consume_state_nonce(
    session: AsyncSession,
    nonce: str,
    user_id: str,
    platform: str,
    ttl_seconds: Optional[int] = None,
) -> bool:
    """
    Record an OAuth state nonce as used.

    Returns False when the nonce was already consumed (a replayed callback).
    Nonces older than the state TTL are pruned first; their states can no
    longer pass verification anyway.
    Must run before any other pending writes in the session: a concurrent
    replay that loses the insert race rolls the session back.
    """
    ttl = ttl_seconds if ttl_seconds is not None else config.oauth_state_ttl_seconds
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=ttl)
    await session.execute(
        delete(OAuthStateNonce)
        .where(OAuthStateNonce.consumed_at < cutoff)
        .execution_options(synchronize_session=False)
    )

    existing = await session.get(OAuthStateNonce, nonce)
    if existing is None:
        session.add(OAuthStateNonce(nonce=nonce, user_id=to_uuid(user_id), platform=platform))
        try:
            await session.flush()
            return True
        except IntegrityError:
            await session.rollback()
    logger.warning("Replayed OAuth state for user %s platform %s", user_id, platform)
    return False
