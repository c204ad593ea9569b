"""
ConnectorRegistry — maps every platform id to the connector variant that
serves it.  Unknown ids resolve to ``UnsupportedConnector``, which fails
closed.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from connectors.base import BaseConnector
from connectors.email_services import BrevoConnector, SendGridConnector
from connectors.errors import ExchangeError
from connectors.google import GoogleConnector
from connectors.linkedin import LinkedInConnector
from connectors.meta import MetaConnector
from connectors.oauth2 import GenericOAuth2Connector, SpotifyConnector
from connectors.shopify import ShopifyConnector
from connectors.tiktok import TikTokConnector
from connectors.twitter import TwitterConnector

logger = logging.getLogger(__name__)


class UnsupportedConnector(BaseConnector):
    """Stands in for any platform without a known URL shape or token endpoint."""

    @property
    def supported(self) -> bool:
        return False

    def build_auth_url(self, platform, app, state, *, code_challenge=None):
        return None

    async def exchange_code(self, platform, app, code, *, code_verifier=None, timeout=30.0):
        raise ExchangeError(f"Unsupported platform: {platform}", platform=platform)


# ── All known variants, add new ones here ────────────────────────────────

_VARIANTS = (
    GoogleConnector,
    MetaConnector,
    LinkedInConnector,
    TwitterConnector,
    TikTokConnector,
    SpotifyConnector,
    GenericOAuth2Connector,
    ShopifyConnector,
    SendGridConnector,
    BrevoConnector,
)


class ConnectorRegistry:
    """Closed platform → connector mapping."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._connectors: Dict[str, BaseConnector] = {}
        for variant in _VARIANTS:
            conn = variant(transport=transport)
            for platform in conn.platforms:
                if platform in self._connectors:
                    raise ValueError(f"Platform {platform} registered twice")
                self._connectors[platform] = conn
        self._unsupported = UnsupportedConnector(transport=transport)
        logger.debug("Connector registry built with %d platforms", len(self._connectors))

    def get(self, platform: str) -> BaseConnector:
        return self._connectors.get(platform, self._unsupported)

    def is_supported(self, platform: str) -> bool:
        return platform in self._connectors

    def list_platforms(self) -> List[str]:
        return list(self._connectors.keys())


_registry: Optional[ConnectorRegistry] = None


def get_connector_registry() -> ConnectorRegistry:
    """Process-wide registry. Also a FastAPI dependency."""
    global _registry
    if _registry is None:
        _registry = ConnectorRegistry()
    return _registry
