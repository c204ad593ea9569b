"""
GoogleConnector — OAuth2 web flow for Google, Google Ads, Google Analytics
and YouTube.

Every Google consent request asks for offline access with a forced consent
prompt so a refresh token is always issued.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from connectors.base import ConnectorApp, StandardOAuth2Connector
from connectors.errors import UpstreamError

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

_ADWORDS_SCOPE = "https://www.googleapis.com/auth/adwords"
_YOUTUBE_SCOPES = (
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/yt-analytics.readonly",
)


class GoogleConnector(StandardOAuth2Connector):
    """OAuth2 connector for the Google product family."""

    platforms = ("google", "googleAds", "googleAnalytics", "youtube", "youtubeAds")

    endpoints = {
        "google": (
            _GOOGLE_AUTH_URL,
            _GOOGLE_TOKEN_URL,
            (
                "https://www.googleapis.com/auth/userinfo.email",
                "https://www.googleapis.com/auth/userinfo.profile",
            ),
        ),
        "googleAds": (_GOOGLE_AUTH_URL, _GOOGLE_TOKEN_URL, (_ADWORDS_SCOPE,)),
        "googleAnalytics": (
            _GOOGLE_AUTH_URL,
            _GOOGLE_TOKEN_URL,
            ("https://www.googleapis.com/auth/analytics.readonly",),
        ),
        "youtube": (_GOOGLE_AUTH_URL, _GOOGLE_TOKEN_URL, _YOUTUBE_SCOPES),
        "youtubeAds": (_GOOGLE_AUTH_URL, _GOOGLE_TOKEN_URL, _YOUTUBE_SCOPES + (_ADWORDS_SCOPE,)),
    }

    def add_auth_params(
        self,
        platform: str,
        app: ConnectorApp,
        params: Dict[str, str],
        scopes: List[str],
        code_challenge: Optional[str],
    ) -> None:
        # Google always requires a scope parameter
        scope = " ".join(scopes) if scopes else "openid email profile"
        params["access_type"] = "offline"     # gets refresh_token
        params["prompt"] = "consent"          # force consent to always get refresh_token
        if platform == "googleAds":
            params["include_granted_scopes"] = "true"
            if not any("adwords" in s for s in scopes):
                scope = f"{scope} {_ADWORDS_SCOPE}".strip()
        params["scope"] = scope

    async def revoke_token(self, platform, app, access_token, *, timeout=10.0):
        """Revoke the token at Google."""
        try:
            async with self._client(timeout) as client:
                resp = await client.post(_GOOGLE_REVOKE_URL, data={"token": access_token})
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Google revoke failed: {exc}", platform=platform) from exc
        if resp.status_code != 200:
            raise UpstreamError(
                f"Google revoke returned HTTP {resp.status_code}",
                platform=platform,
                status_code=resp.status_code,
                payload=resp.text,
            )
        return True
