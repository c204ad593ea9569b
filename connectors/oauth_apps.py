"""
OAuthAppStore — per-user, per-platform OAuth client registrations.

Every mutation is a single statement whose WHERE clause matches both the app
id and the owner id, so a row owned by someone else is indistinguishable
from a missing one.  Client secrets are sealed with ``SecretCipher`` before
they reach the database; ``list`` and ``get_active_app`` return decrypted
values for internal use and the HTTP layer masks them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from connectors.base import ConnectorApp
from connectors.encryption import SecretCipher, get_cipher
from connectors.errors import ConflictError, NotFoundError, ValidationError
from database.helpers import to_uuid, try_uuid
from database.models import OAuthApp

logger = logging.getLogger(__name__)


@dataclass
class OAuthAppView:
    app_id: str
    platform: str
    client_id: str
    client_secret: Optional[str]
    redirect_uri: str
    scopes: List[str]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def _clean_scopes(scopes: Optional[Sequence[str]]) -> List[str]:
    return [s.strip() for s in (scopes or []) if s and s.strip()]


class OAuthAppStore:
    def __init__(
        self,
        session: AsyncSession,
        cipher: Optional[SecretCipher] = None,
        redirect_uri: Optional[str] = None,
    ):
        self._session = session
        self._cipher = cipher or get_cipher()
        self._redirect_uri = redirect_uri or config.oauth_callback_url

    async def create(
        self,
        user_id: str,
        platform: str,
        client_id: str,
        client_secret: Optional[str] = None,
        scopes: Optional[Sequence[str]] = None,
    ) -> OAuthAppView:
        if not platform or not client_id:
            raise ValidationError("Platform and Client ID are required")

        existing = await self._session.execute(
            select(OAuthApp.app_id).where(
                OAuthApp.user_id == to_uuid(user_id),
                OAuthApp.platform == platform,
            )
        )
        if existing.first() is not None:
            raise ConflictError("OAuth app already exists for this platform")

        app = OAuthApp(
            user_id=to_uuid(user_id),
            platform=platform,
            client_id=client_id,
            client_secret=self._cipher.encrypt_optional(client_secret),
            # Caller-supplied redirect URIs are ignored; the platform console
            # must have exactly this one registered.
            redirect_uri=self._redirect_uri,
            scopes=_clean_scopes(scopes),
            is_active=True,
        )
        self._session.add(app)
        try:
            await self._session.flush()
        except IntegrityError:
            # Lost a race with a concurrent create for the same platform
            await self._session.rollback()
            raise ConflictError("OAuth app already exists for this platform") from None

        logger.info(
            "OAuth app created: user=%s platform=%s has_secret=%s",
            user_id, platform, bool(client_secret),
        )
        return self._view(app, client_secret or None)

    async def update(
        self,
        user_id: str,
        app_id: str,
        client_id: str,
        client_secret: Optional[str] = None,
        scopes: Optional[Sequence[str]] = None,
        is_active: Optional[bool] = None,
    ) -> None:
        """Omitting ``client_secret`` keeps the stored ciphertext."""
        if not client_id:
            raise ValidationError("Client ID is required")
        app_uuid = try_uuid(app_id)
        if app_uuid is None:
            raise NotFoundError("OAuth app not found")

        values = {
            "client_id": client_id,
            "scopes": _clean_scopes(scopes),
        }
        if client_secret:
            values["client_secret"] = self._cipher.encrypt(client_secret)
        if is_active is not None:
            values["is_active"] = is_active

        result = await self._session.execute(
            update(OAuthApp)
            .where(OAuthApp.app_id == app_uuid, OAuthApp.user_id == to_uuid(user_id))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("OAuth app not found")
        logger.info("OAuth app updated: user=%s app=%s secret_rotated=%s", user_id, app_id, bool(client_secret))

    async def delete(self, user_id: str, app_id: str) -> None:
        app_uuid = try_uuid(app_id)
        if app_uuid is None:
            raise NotFoundError("OAuth app not found")
        result = await self._session.execute(
            delete(OAuthApp)
            .where(OAuthApp.app_id == app_uuid, OAuthApp.user_id == to_uuid(user_id))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("OAuth app not found")
        logger.info("OAuth app deleted: user=%s app=%s", user_id, app_id)

    async def list(self, user_id: str) -> List[OAuthAppView]:
        result = await self._session.execute(
            select(OAuthApp)
            .where(OAuthApp.user_id == to_uuid(user_id))
            .order_by(OAuthApp.created_at)
        )
        return [
            self._view(app, self._cipher.decrypt_optional(app.client_secret))
            for app in result.scalars().all()
        ]

    async def get_active_app(self, user_id: str, platform: str) -> Optional[ConnectorApp]:
        result = await self._session.execute(
            select(OAuthApp).where(
                OAuthApp.user_id == to_uuid(user_id),
                OAuthApp.platform == platform,
                OAuthApp.is_active.is_(True),
            ).limit(1)
        )
        app = result.scalar_one_or_none()
        return self._connector_app(app) if app else None

    async def get_app(self, user_id: str, app_id: str) -> Optional[ConnectorApp]:
        """App bound in an OAuth state; still scoped to its owner."""
        app_uuid = try_uuid(app_id)
        if app_uuid is None:
            return None
        result = await self._session.execute(
            select(OAuthApp).where(
                OAuthApp.app_id == app_uuid,
                OAuthApp.user_id == to_uuid(user_id),
            )
        )
        app = result.scalar_one_or_none()
        return self._connector_app(app) if app else None

    def _connector_app(self, app: OAuthApp) -> ConnectorApp:
        return ConnectorApp(
            app_id=str(app.app_id),
            client_id=app.client_id,
            client_secret=self._cipher.decrypt_optional(app.client_secret),
            redirect_uri=app.redirect_uri or self._redirect_uri,
            scopes=list(app.scopes or []),
        )

    @staticmethod
    def _view(app: OAuthApp, client_secret: Optional[str]) -> OAuthAppView:
        return OAuthAppView(
            app_id=str(app.app_id),
            platform=app.platform,
            client_id=app.client_id,
            client_secret=client_secret,
            redirect_uri=app.redirect_uri,
            scopes=list(app.scopes or []),
            is_active=bool(app.is_active),
            created_at=app.created_at,
            updated_at=app.updated_at,
        )
