"""
LinkedInConnector — OAuth2 for LinkedIn and LinkedIn Ads.

LinkedIn has no token revocation endpoint; tokens simply expire.
"""

from __future__ import annotations

from connectors.base import StandardOAuth2Connector

_LINKEDIN_AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
_LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"


class LinkedInConnector(StandardOAuth2Connector):
    platforms = ("linkedin", "linkedinAds")

    endpoints = {
        # OpenID Connect sign-in
        "linkedin": (_LINKEDIN_AUTH_URL, _LINKEDIN_TOKEN_URL, ("openid", "profile", "email")),
        # Advertising API only, no member profile scopes
        "linkedinAds": (
            _LINKEDIN_AUTH_URL,
            _LINKEDIN_TOKEN_URL,
            ("r_ads", "r_ads_reporting", "rw_ads", "r_organization_social", "w_organization_social"),
        ),
    }

    async def revoke_token(self, platform, app, access_token, *, timeout=10.0):
        return True
