"""
IntegrationStatusAggregator — one status row per catalog platform for a user.

``build_status`` is a pure join over three already-loaded collections (the
catalog, the user's OAuth apps and the user's integrations); the aggregator
only adds the two queries that load them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.platforms import PlatformCatalog
from connectors.credentials import AuditTrail
from connectors.token_manager import is_expired
from database.helpers import list_active_oauth_apps, list_user_integrations
from database.models import Integration, OAuthApp


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def build_status(
    catalog: PlatformCatalog,
    apps: Iterable[OAuthApp],
    integrations: Iterable[Integration],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    configured = {a.platform for a in apps if a.is_active}
    by_platform = {i.platform: i for i in integrations}

    rows: List[Dict[str, Any]] = []
    for entry in catalog:
        integration = by_platform.get(entry.id)
        connected_at = expires_at = None
        if integration is not None:
            connected_at = AuditTrail.load(integration.audit).connected_at
            expires_at = integration.expires_at
        rows.append({
            "id": entry.id,
            "name": entry.name,
            "description": entry.description,
            "icon": entry.icon,
            "category": entry.category,
            "requiresOAuth": entry.requires_oauth,
            "requiresApiKey": entry.requires_api_key,
            "apiKeyFields": [f.model_dump() for f in entry.api_key_fields],
            "hasOAuthConfigured": entry.id in configured,
            "status": "connected" if integration is not None and integration.is_active else "disconnected",
            "connectedAt": _iso(connected_at),
            "expiresAt": _iso(expires_at),
            "needsRefresh": is_expired(expires_at, now),
        })
    return rows


class IntegrationStatusAggregator:
    def __init__(self, session: AsyncSession, catalog: PlatformCatalog):
        self._session = session
        self._catalog = catalog

    async def get_status(self, user_id: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        apps = await list_active_oauth_apps(self._session, user_id)
        integrations = await list_user_integrations(self._session, user_id)
        return build_status(self._catalog, apps, integrations, now)
