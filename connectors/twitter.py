"""
TwitterConnector — OAuth 2.0 with PKCE (S256) for X and X Ads.

The code verifier travels inside the signed ``state`` so the callback can
complete the exchange without server-side session storage.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from connectors.base import StandardOAuth2Connector

_TWITTER_AUTH_URL = "https://twitter.com/i/oauth2/authorize"
_TWITTER_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
_TWITTER_SCOPES = ("tweet.read", "users.read", "offline.access")


def generate_code_verifier() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")


def code_challenge_for(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class TwitterConnector(StandardOAuth2Connector):
    platforms = ("twitter", "twitterAds")

    endpoints = {
        "twitter": (_TWITTER_AUTH_URL, _TWITTER_TOKEN_URL, _TWITTER_SCOPES),
        "twitterAds": (_TWITTER_AUTH_URL, _TWITTER_TOKEN_URL, _TWITTER_SCOPES),
    }

    def uses_pkce(self, platform: str) -> bool:
        return True

    def add_auth_params(self, platform, app, params, scopes, code_challenge):
        super().add_auth_params(platform, app, params, scopes, code_challenge)
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
