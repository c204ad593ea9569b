"""
AuthorizationUrlBuilder — consent URL for a {user, platform} pair, built
from the user's own registered OAuth app.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from connectors.oauth_apps import OAuthAppStore
from connectors.registry import ConnectorRegistry
from connectors.state import OAuthStateSigner
from connectors.twitter import code_challenge_for, generate_code_verifier

logger = logging.getLogger(__name__)


class AuthorizationUrlBuilder:
    def __init__(
        self,
        apps: OAuthAppStore,
        registry: ConnectorRegistry,
        signer: Optional[OAuthStateSigner] = None,
    ):
        self._apps = apps
        self._registry = registry
        self._signer = signer or OAuthStateSigner()

    async def build_authorization_url(
        self,
        user_id: str,
        platform: str,
        redirect_uri: Optional[str] = None,
    ) -> Optional[str]:
        """
        Return the consent URL, or ``None`` when the user has no active OAuth
        app for ``platform`` or the platform's URL shape is unknown.

        ``redirect_uri`` is only used when the stored app has none; the app
        store always records the canonical callback.
        """
        connector = self._registry.get(platform)
        if not connector.supported:
            logger.info("Authorization requested for unsupported platform %s", platform)
            return None

        app = await self._apps.get_active_app(user_id, platform)
        if app is None:
            return None
        if not app.redirect_uri and redirect_uri:
            app = replace(app, redirect_uri=redirect_uri)

        code_verifier = code_challenge = None
        if connector.uses_pkce(platform):
            code_verifier = generate_code_verifier()
            code_challenge = code_challenge_for(code_verifier)

        state = self._signer.issue(user_id, platform, app.app_id, code_verifier=code_verifier)
        auth_url = connector.build_auth_url(platform, app, state, code_challenge=code_challenge)
        if auth_url:
            logger.info("Authorization URL built: user=%s platform=%s pkce=%s", user_id, platform, bool(code_verifier))
        return auth_url
