"""
FastAPI dependencies that wire the connectors services to a request.

Tests override ``db_session``, ``get_platform_catalog``,
``get_connector_registry`` or ``get_cipher`` via
``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session
from config.platforms import PlatformCatalog, get_platform_catalog
from connectors.authorization import AuthorizationUrlBuilder
from connectors.encryption import SecretCipher, get_cipher
from connectors.fetcher import PlatformDataFetcher
from connectors.oauth_apps import OAuthAppStore
from connectors.registry import ConnectorRegistry, get_connector_registry
from connectors.state import OAuthStateSigner
from connectors.status import IntegrationStatusAggregator
from connectors.token_manager import TokenLifecycleManager


def get_state_signer(cipher: SecretCipher = Depends(get_cipher)) -> OAuthStateSigner:
    return OAuthStateSigner(cipher=cipher)


def get_app_store(
    session: AsyncSession = Depends(db_session),
    cipher: SecretCipher = Depends(get_cipher),
) -> OAuthAppStore:
    return OAuthAppStore(session, cipher=cipher)


def get_url_builder(
    apps: OAuthAppStore = Depends(get_app_store),
    registry: ConnectorRegistry = Depends(get_connector_registry),
    signer: OAuthStateSigner = Depends(get_state_signer),
) -> AuthorizationUrlBuilder:
    return AuthorizationUrlBuilder(apps, registry, signer)


def get_token_manager(
    session: AsyncSession = Depends(db_session),
    registry: ConnectorRegistry = Depends(get_connector_registry),
    cipher: SecretCipher = Depends(get_cipher),
    apps: OAuthAppStore = Depends(get_app_store),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(session, registry, cipher=cipher, apps=apps)


def get_status_aggregator(
    session: AsyncSession = Depends(db_session),
    catalog: PlatformCatalog = Depends(get_platform_catalog),
) -> IntegrationStatusAggregator:
    return IntegrationStatusAggregator(session, catalog)


def get_data_fetcher(
    session: AsyncSession = Depends(db_session),
    registry: ConnectorRegistry = Depends(get_connector_registry),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> PlatformDataFetcher:
    return PlatformDataFetcher(session, registry, tokens)
