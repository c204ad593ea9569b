"""
Standard OAuth2 platforms that need no per-platform quirks beyond their
endpoints, and Spotify.
"""

from __future__ import annotations

from connectors.base import StandardOAuth2Connector


class GenericOAuth2Connector(StandardOAuth2Connector):
    """Pinterest, Snapchat, Reddit and Amazon Ads."""

    platforms = (
        "pinterest",
        "pinterestAds",
        "snapchat",
        "snapchatAds",
        "reddit",
        "redditAds",
        "amazonAds",
    )

    endpoints = {
        "pinterest": (
            "https://www.pinterest.com/oauth/",
            "https://api.pinterest.com/v5/oauth/token",
            ("boards:read", "pins:read", "user_accounts:read"),
        ),
        "pinterestAds": (
            "https://www.pinterest.com/oauth/",
            "https://api.pinterest.com/v5/oauth/token",
            ("ads:read", "catalogs:read", "boards:read", "pins:read"),
        ),
        "snapchat": (
            "https://accounts.snapchat.com/login/oauth2/authorize",
            "https://accounts.snapchat.com/login/oauth2/access_token",
            ("snapchat-marketing-api",),
        ),
        "snapchatAds": (
            "https://accounts.snapchat.com/login/oauth2/authorize",
            "https://accounts.snapchat.com/login/oauth2/access_token",
            ("snapchat-marketing-api",),
        ),
        "reddit": (
            "https://www.reddit.com/api/v1/authorize",
            "https://www.reddit.com/api/v1/access_token",
            ("identity", "read"),
        ),
        "redditAds": (
            "https://www.reddit.com/api/v1/authorize",
            "https://www.reddit.com/api/v1/access_token",
            ("identity", "read", "ads:read"),
        ),
        "amazonAds": (
            "https://www.amazon.com/ap/oa",
            "https://api.amazon.com/auth/o2/token",
            ("advertising::campaign_management",),
        ),
    }


class SpotifyConnector(StandardOAuth2Connector):
    platforms = ("spotify",)

    endpoints = {
        "spotify": (
            "https://accounts.spotify.com/authorize",
            "https://accounts.spotify.com/api/token",
            ("user-read-private", "user-read-email"),
        ),
    }

    def add_auth_params(self, platform, app, params, scopes, code_challenge):
        super().add_auth_params(platform, app, params, scopes, code_challenge)
        params["show_dialog"] = "true"
