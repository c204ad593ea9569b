"""
TikTokConnector — TikTok Login Kit and the TikTok for Business (Ads) portal.
"""

from __future__ import annotations

from connectors.base import StandardOAuth2Connector


class TikTokConnector(StandardOAuth2Connector):
    platforms = ("tiktok", "tiktokAds")

    endpoints = {
        "tiktok": (
            "https://www.tiktok.com/v2/auth/authorize",
            "https://open.tiktokapis.com/v2/oauth/token",
            ("user.info.basic", "video.list"),
        ),
        # Ads permissions are granted in the developer portal, not per request
        "tiktokAds": (
            "https://business-api.tiktok.com/portal/auth",
            "https://business-api.tiktok.com/open_api/v1.3/oauth2/access_token",
            (),
        ),
    }

    def add_auth_params(self, platform, app, params, scopes, code_challenge):
        super().add_auth_params(platform, app, params, scopes, code_challenge)
        if platform == "tiktokAds":
            params["app_id"] = app.client_id
