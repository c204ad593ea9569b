"""
Token manager — exchange / store / refresh / revoke per-user platform tokens.

Tokens are encrypted at rest.  Disconnecting is a soft state change: the
stored tokens and expiry are left untouched so the user can reconnect
without authorizing again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from connectors.base import ConnectorApp, TokenSet
from connectors.credentials import AuditTrail, CredentialBundle
from connectors.encryption import SecretCipher, get_cipher
from connectors.errors import ConfigurationError, CryptoError, NotFoundError, ValidationError
from connectors.oauth_apps import OAuthAppStore
from connectors.registry import ConnectorRegistry
from database.helpers import get_user_integration, to_uuid, try_uuid
from database.models import Integration

logger = logging.getLogger(__name__)


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True iff an expiry is set and is strictly before ``now``."""
    if expires_at is None:
        return False
    return _as_utc(expires_at) < (now or _now())


def _issued(tokens: TokenSet, issued_at: datetime) -> IssuedTokens:
    return IssuedTokens(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=issued_at + timedelta(seconds=tokens.expires_in) if tokens.expires_in else None,
        token_type=tokens.token_type,
        scope=tokens.scope,
    )


class TokenLifecycleManager:
    def __init__(
        self,
        session: AsyncSession,
        registry: ConnectorRegistry,
        cipher: Optional[SecretCipher] = None,
        apps: Optional[OAuthAppStore] = None,
    ):
        self._session = session
        self._registry = registry
        self._cipher = cipher or get_cipher()
        self._apps = apps or OAuthAppStore(session, cipher=self._cipher)

    # ── Exchange / expiry ───────────────────────────────────────────────

    async def exchange(
        self,
        platform: str,
        code: str,
        redirect_uri: Optional[str],
        app: ConnectorApp,
        code_verifier: Optional[str] = None,
    ) -> IssuedTokens:
        """
        Exchange an authorization code for tokens.

        Raises ``ExchangeError`` carrying the platform's raw error body; no
        defaults are ever substituted for a failed exchange.
        """
        if redirect_uri and redirect_uri != app.redirect_uri:
            app = replace(app, redirect_uri=redirect_uri)
        connector = self._registry.get(platform)
        logger.info(
            "Exchanging code: platform=%s has_secret=%s pkce=%s",
            platform, bool(app.client_secret), bool(code_verifier),
        )
        tokens = await connector.exchange_code(
            platform,
            app,
            code,
            code_verifier=code_verifier,
            timeout=config.token_exchange_timeout_seconds,
        )
        return _issued(tokens, _now())

    @staticmethod
    def is_expired(integration: Integration, now: Optional[datetime] = None) -> bool:
        return is_expired(integration.expires_at, now)

    # ── Revoke / disconnect ─────────────────────────────────────────────

    async def revoke(self, platform: str, access_token: str, app: Optional[ConnectorApp] = None) -> bool:
        """
        Best-effort upstream revocation. Never raises; failures are logged
        and the caller carries on with the local disconnect.
        """
        connector = self._registry.get(platform)
        try:
            revoked = await connector.revoke_token(
                platform, app, access_token, timeout=config.revoke_timeout_seconds
            )
        except Exception as exc:
            logger.warning("Token revocation failed for %s: %s", platform, exc)
            return False
        if not revoked:
            logger.info("No revocation endpoint for %s; token left to expire", platform)
        return revoked

    def disconnect(self, integration: Integration) -> Integration:
        """Mark inactive and stamp the audit trail. Tokens and expiry are kept."""
        audit = AuditTrail.load(integration.audit)
        audit.disconnected_at = _now()
        audit.disconnected_manually = True
        integration.audit = audit.dump()
        integration.is_active = False
        return integration

    async def disconnect_platform(self, user_id: str, platform: str) -> Integration:
        integration = await get_user_integration(self._session, user_id, platform)
        if integration is None:
            raise NotFoundError("Integration not found")

        audit = AuditTrail.load(integration.audit)
        if integration.access_token and audit.connection_type != "api_key":
            try:
                access_token = self._cipher.decrypt(integration.access_token)
            except CryptoError:
                logger.error("Stored token for %s/%s could not be decrypted; skipping revoke", user_id, platform)
            else:
                app = None
                if integration.oauth_app_id:
                    app = await self._apps.get_app(user_id, str(integration.oauth_app_id))
                await self.revoke(platform, access_token, app)

        self.disconnect(integration)
        await self._session.flush()
        logger.info("Integration disconnected: user=%s platform=%s", user_id, platform)
        return integration

    async def reconnect(self, user_id: str, platform: str) -> Integration:
        """
        Reactivate a disconnected integration with the credentials it kept.
        No consent round-trip and no credential re-entry.
        """
        integration = await get_user_integration(self._session, user_id, platform)
        if integration is None or not integration.access_token:
            raise NotFoundError("Integration not found")

        audit = AuditTrail.load(integration.audit)
        audit.disconnected_at = None
        audit.disconnected_manually = False
        integration.audit = audit.dump()
        integration.is_active = True
        await self._session.flush()
        logger.info("Integration reconnected: user=%s platform=%s", user_id, platform)
        return integration

    # ── Store ───────────────────────────────────────────────────────────

    async def store_oauth_connection(
        self,
        user_id: str,
        platform: str,
        app_id: Optional[str],
        tokens: IssuedTokens,
    ) -> Integration:
        """Create or reactivate the user's integration for ``platform``."""
        integration = await get_user_integration(self._session, user_id, platform)
        if integration is None:
            integration = Integration(user_id=to_uuid(user_id), platform=platform, audit={}, provider_meta={})
            self._session.add(integration)
            refresh_token = tokens.refresh_token
        else:
            # Keep the stored refresh token when the platform doesn't issue a new one
            refresh_token = tokens.refresh_token or self._cipher.decrypt_optional(integration.refresh_token)

        integration.oauth_app_id = try_uuid(app_id) if app_id else None
        integration.access_token = self._cipher.encrypt(tokens.access_token)
        integration.refresh_token = self._cipher.encrypt_optional(refresh_token)
        integration.expires_at = tokens.expires_at
        integration.is_active = True
        integration.audit = AuditTrail(
            connection_type="oauth",
            connected_at=_now(),
            token_type=tokens.token_type,
            scope=tokens.scope,
        ).dump()

        await self._session.flush()
        logger.info(
            "OAuth integration stored: user=%s platform=%s has_refresh=%s",
            user_id, platform, bool(refresh_token),
        )
        return integration

    async def store_api_key_connection(self, user_id: str, bundle: CredentialBundle) -> Integration:
        """
        Check the bundle with the platform (where it offers a check), then
        create or replace the user's integration.  A rejected key raises
        ``ValidationError`` and nothing is written.
        """
        connector = self._registry.get(bundle.platform)
        account = await connector.validate_credentials(
            bundle.platform, dict(bundle.fields), timeout=config.credential_check_timeout_seconds
        )

        integration = await get_user_integration(self._session, user_id, bundle.platform)
        if integration is None:
            integration = Integration(user_id=to_uuid(user_id), platform=bundle.platform)
            self._session.add(integration)

        integration.access_token = self._cipher.encrypt(bundle.to_json())
        integration.refresh_token = None
        integration.expires_at = None
        integration.is_active = True
        integration.audit = AuditTrail(connection_type="api_key", connected_at=_now()).dump()
        integration.provider_meta = {"credentials": bundle.public_fields(), **account}

        await self._session.flush()
        logger.info("API-key integration stored: user=%s platform=%s", user_id, bundle.platform)
        return integration

    # ── Refresh ─────────────────────────────────────────────────────────

    async def refresh(self, user_id: str, platform: str) -> Integration:
        """
        Exchange the stored refresh token for a new access token.

        Only ever called explicitly; ``needsRefresh`` on the status page is
        advisory.
        """
        integration = await get_user_integration(self._session, user_id, platform, active_only=True)
        if integration is None:
            raise NotFoundError("Integration not found")
        if not integration.refresh_token:
            raise ValidationError(f"No refresh token stored for {platform}")

        app = None
        if integration.oauth_app_id:
            app = await self._apps.get_app(user_id, str(integration.oauth_app_id))
        if app is None:
            raise ConfigurationError(f"No OAuth app configured for {platform}")

        connector = self._registry.get(platform)
        tokens = await connector.refresh_access_token(
            platform,
            app,
            self._cipher.decrypt(integration.refresh_token),
            timeout=config.token_exchange_timeout_seconds,
        )
        issued = _issued(tokens, _now())

        integration.access_token = self._cipher.encrypt(issued.access_token)
        integration.refresh_token = self._cipher.encrypt_optional(issued.refresh_token)
        integration.expires_at = issued.expires_at
        audit = AuditTrail.load(integration.audit)
        audit.last_refreshed_at = _now()
        integration.audit = audit.dump()

        await self._session.flush()
        logger.info("Refreshed %s token for user %s", platform, user_id)
        return integration

    # ── Credentials for data fetch ──────────────────────────────────────

    def credentials_for(self, integration: Integration) -> Dict[str, Any]:
        """
        Decrypted credentials in the shape ``BaseConnector.fetch_campaigns``
        expects: the bundle fields for API-key platforms, otherwise
        ``{"access_token": ...}``.
        """
        if not integration.access_token:
            return {}
        plaintext = self._cipher.decrypt(integration.access_token)
        if AuditTrail.load(integration.audit).connection_type == "api_key":
            return dict(CredentialBundle.from_json(integration.platform, plaintext).fields)
        return {"access_token": plaintext}

