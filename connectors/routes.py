"""
Integrations API routes — OAuth app settings, connect / callback, API-key
connect, disconnect, reconnect, refresh, status and the campaigns dashboard
feed.

Route prefix: /api
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_app_store,
    get_data_fetcher,
    get_state_signer,
    get_status_aggregator,
    get_token_manager,
    get_url_builder,
)
from auth.dependencies import db_session, get_current_user_id
from config.platforms import PlatformCatalog, get_platform_catalog
from config.settings import config
from connectors.authorization import AuthorizationUrlBuilder
from connectors.credentials import CredentialBundle
from connectors.encryption import mask_secret
from connectors.errors import ConfigurationError, IntegrationError, ValidationError
from connectors.fetcher import PlatformDataFetcher
from connectors.oauth_apps import OAuthAppStore, OAuthAppView
from connectors.state import OAuthStateSigner
from connectors.status import IntegrationStatusAggregator
from connectors.token_manager import TokenLifecycleManager
from database.helpers import consume_state_nonce
from utils.schemas import (
    ApiKeyRequest,
    ConnectResponse,
    OAuthAppCreate,
    OAuthAppOut,
    OAuthAppUpdate,
    PlatformRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])


def _app_out(app: OAuthAppView) -> Dict[str, Any]:
    return OAuthAppOut(
        id=app.app_id,
        platform=app.platform,
        client_id=app.client_id,
        client_secret=mask_secret(app.client_secret),
        redirect_uri=app.redirect_uri,
        scopes=app.scopes,
        is_active=app.is_active,
        created_at=app.created_at,
        updated_at=app.updated_at,
    ).model_dump(mode="json", by_alias=True)


def _catalog_entry(catalog: PlatformCatalog, platform: str):
    entry = catalog.get(platform)
    if entry is None:
        raise ValidationError("Invalid platform")
    return entry


# ── OAuth app settings ─────────────────────────────────────────────────


@router.get("/settings/oauth-apps")
async def list_oauth_apps(
    user_id: str = Depends(get_current_user_id),
    apps: OAuthAppStore = Depends(get_app_store),
) -> Dict[str, List[Dict[str, Any]]]:
    """List the user's OAuth apps with client secrets masked."""
    return {"apps": [_app_out(a) for a in await apps.list(user_id)]}


@router.post("/settings/oauth-apps")
async def create_oauth_app(
    body: OAuthAppCreate,
    user_id: str = Depends(get_current_user_id),
    apps: OAuthAppStore = Depends(get_app_store),
) -> Dict[str, Any]:
    app = await apps.create(
        user_id,
        body.platform,
        body.client_id,
        client_secret=body.client_secret,
        scopes=body.scopes,
    )
    return {"success": True, "app": _app_out(app)}


@router.put("/settings/oauth-apps/{app_id}")
async def update_oauth_app(
    app_id: str,
    body: OAuthAppUpdate,
    user_id: str = Depends(get_current_user_id),
    apps: OAuthAppStore = Depends(get_app_store),
) -> Dict[str, bool]:
    await apps.update(
        user_id,
        app_id,
        body.client_id,
        client_secret=body.client_secret,
        scopes=body.scopes,
        is_active=body.is_active,
    )
    return {"success": True}


@router.delete("/settings/oauth-apps/{app_id}")
async def delete_oauth_app(
    app_id: str,
    user_id: str = Depends(get_current_user_id),
    apps: OAuthAppStore = Depends(get_app_store),
) -> Dict[str, bool]:
    await apps.delete(user_id, app_id)
    return {"success": True}


# ── OAuth connect / callback ───────────────────────────────────────────


@router.post("/integrations/connect", response_model=ConnectResponse, response_model_by_alias=True)
async def connect(
    body: PlatformRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: PlatformCatalog = Depends(get_platform_catalog),
    builder: AuthorizationUrlBuilder = Depends(get_url_builder),
) -> ConnectResponse:
    """
    Return the consent URL for ``platform``, built from the user's own
    OAuth app.  Frontend opens it in a popup.
    """
    entry = _catalog_entry(catalog, body.platform)
    if not entry.requires_oauth:
        raise ValidationError("Platform does not require OAuth. Use API key instead.")

    auth_url = await builder.build_authorization_url(user_id, body.platform, config.oauth_callback_url)
    if auth_url is None:
        raise ConfigurationError(
            "No OAuth app configured for this platform. Please configure it in settings first."
        )
    return ConnectResponse(auth_url=auth_url)


def _dashboard_redirect(**params: str) -> RedirectResponse:
    query = urlencode({"tab": "integrations", **params})
    return RedirectResponse(f"{config.dashboard_url}?{query}", status_code=307)


@router.get("/integrations/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    session: AsyncSession = Depends(db_session),
    signer: OAuthStateSigner = Depends(get_state_signer),
    apps: OAuthAppStore = Depends(get_app_store),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> RedirectResponse:
    """
    The platform redirects here after consent.  The user is recovered from
    the signed state, not from a session.  Always redirects to the
    dashboard with a success or error message.
    """
    if error:
        return _dashboard_redirect(error=error_description or "Unknown error")
    if not code or not state:
        return _dashboard_redirect(error="Missing authorization code")

    try:
        binding = signer.verify(state)
    except ValidationError as exc:
        return _dashboard_redirect(error=exc.message)

    if not await consume_state_nonce(session, binding.nonce, binding.user_id, binding.platform):
        return _dashboard_redirect(error="Authorization request already used")

    try:
        app = await apps.get_app(binding.user_id, binding.app_id)
        if app is None:
            return _dashboard_redirect(
                error="OAuth app not found. Please recreate it in Settings > Integrations"
            )
        issued = await tokens.exchange(
            binding.platform, code, config.oauth_callback_url, app, code_verifier=binding.code_verifier
        )
        await tokens.store_oauth_connection(binding.user_id, binding.platform, binding.app_id, issued)
    except IntegrationError as exc:
        logger.error("OAuth callback failed for %s: %s", binding.platform, exc)
        return _dashboard_redirect(error="Failed to exchange authorization code")

    logger.info("OAuth connected: user=%s platform=%s", binding.user_id, binding.platform)
    return _dashboard_redirect(success=f"{binding.platform} connected successfully")


# ── API-key connect ────────────────────────────────────────────────────


@router.post("/integrations/api-key")
async def connect_api_key(
    body: ApiKeyRequest,
    user_id: str = Depends(get_current_user_id),
    catalog: PlatformCatalog = Depends(get_platform_catalog),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> Dict[str, Any]:
    entry = _catalog_entry(catalog, body.platform)
    bundle = CredentialBundle.from_submission(entry, body.credentials)
    integration = await tokens.store_api_key_connection(user_id, bundle)
    return {
        "success": True,
        "metadata": {**integration.audit, **integration.provider_meta},
    }


# ── Disconnect / reconnect / refresh ─────────────────────────────────────


@router.post("/integrations/disconnect")
async def disconnect(
    body: PlatformRequest,
    user_id: str = Depends(get_current_user_id),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> Dict[str, bool]:
    """Revoke upstream (best effort) and mark the integration inactive."""
    if not body.platform:
        raise ValidationError("Platform is required")
    await tokens.disconnect_platform(user_id, body.platform)
    return {"success": True}


@router.post("/integrations/reconnect")
async def reconnect(
    body: PlatformRequest,
    user_id: str = Depends(get_current_user_id),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> Dict[str, Any]:
    """Reactivate a soft-disconnected integration using its stored credentials."""
    integration = await tokens.reconnect(user_id, body.platform)
    return {"success": True, "metadata": {**integration.audit, **(integration.provider_meta or {})}}


@router.post("/integrations/refresh")
async def refresh(
    body: PlatformRequest,
    user_id: str = Depends(get_current_user_id),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> Dict[str, Any]:
    integration = await tokens.refresh(user_id, body.platform)
    expires_at = integration.expires_at
    return {"success": True, "expiresAt": expires_at.isoformat() if expires_at else None}


# ── Status / campaigns ─────────────────────────────────────────────────


@router.get("/integrations/status")
async def integration_status(
    user_id: str = Depends(get_current_user_id),
    aggregator: IntegrationStatusAggregator = Depends(get_status_aggregator),
) -> Dict[str, List[Dict[str, Any]]]:
    return {"integrations": await aggregator.get_status(user_id)}


@router.get("/campaigns")
async def campaigns(
    platforms: Optional[str] = Query(None, description="Comma-separated platform ids"),
    user_id: str = Depends(get_current_user_id),
    fetcher: PlatformDataFetcher = Depends(get_data_fetcher),
) -> Dict[str, Any]:
    requested = [p for p in (platforms or "").split(",") if p.strip()]
    result = await fetcher.fetch_all(user_id, requested)
    return result.to_dict()
