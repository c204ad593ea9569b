"""
MetaConnector — Facebook Login for Facebook, Instagram and Meta Ads, plus
campaign insights from the Marketing API.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from connectors.base import ConnectorApp, FetchedCampaign, StandardOAuth2Connector
from connectors.errors import UpstreamError

logger = logging.getLogger(__name__)

_GRAPH_VERSION = "v18.0"
_META_AUTH_URL = f"https://www.facebook.com/{_GRAPH_VERSION}/dialog/oauth"
_META_TOKEN_URL = f"https://graph.facebook.com/{_GRAPH_VERSION}/oauth/access_token"
_GRAPH_URL = f"https://graph.facebook.com/{_GRAPH_VERSION}"

_PAGE_SCOPES = ("email", "public_profile", "pages_show_list", "pages_read_engagement")

_CONVERSION_ACTIONS = {"purchase", "lead", "complete_registration", "offsite_conversion"}

_STATUS_MAP = {"ACTIVE": "active", "PAUSED": "paused", "ARCHIVED": "archived", "DELETED": "deleted"}


class MetaConnector(StandardOAuth2Connector):
    """OAuth2 connector for Meta platforms."""

    platforms = ("facebook", "meta", "metaAds", "instagram")

    endpoints = {
        "facebook": (_META_AUTH_URL, _META_TOKEN_URL, _PAGE_SCOPES),
        "meta": (_META_AUTH_URL, _META_TOKEN_URL, _PAGE_SCOPES),
        "metaAds": (_META_AUTH_URL, _META_TOKEN_URL, ("ads_read", "ads_management", "business_management")),
        "instagram": (
            _META_AUTH_URL,
            _META_TOKEN_URL,
            ("instagram_basic", "instagram_manage_insights", "pages_read_engagement"),
        ),
    }

    def add_auth_params(
        self,
        platform: str,
        app: ConnectorApp,
        params: Dict[str, str],
        scopes: List[str],
        code_challenge: Optional[str],
    ) -> None:
        super().add_auth_params(platform, app, params, scopes, code_challenge)
        params["display"] = "popup"

    async def revoke_token(self, platform, app, access_token, *, timeout=10.0):
        """Meta removes every granted permission with a DELETE on /me/permissions."""
        try:
            async with self._client(timeout) as client:
                resp = await client.delete(
                    f"{_GRAPH_URL}/me/permissions",
                    params={"access_token": access_token},
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Meta revoke failed: {exc}", platform=platform) from exc
        if resp.status_code >= 400:
            raise UpstreamError(
                f"Meta revoke returned HTTP {resp.status_code}",
                platform=platform,
                status_code=resp.status_code,
                payload=resp.text,
            )
        return True

    async def fetch_campaigns(self, platform, credentials, *, timeout=15.0):
        if platform not in ("facebook", "metaAds"):
            return []
        access_token = credentials.get("access_token")
        if not access_token:
            return []

        campaigns: List[FetchedCampaign] = []
        async with self._client(timeout) as client:
            accounts = await self._get(
                client, platform, "/me/adaccounts", {"fields": "id", "access_token": access_token}
            )
            for account in accounts.get("data", []):
                data = await self._get(
                    client,
                    platform,
                    f"/{account['id']}/campaigns",
                    {
                        "fields": "id,name,status,insights.date_preset(last_30d){spend,clicks,impressions,actions}",
                        "access_token": access_token,
                    },
                )
                campaigns.extend(
                    _to_campaign(row, account["id"]) for row in data.get("data", [])
                )

        logger.info("Meta: fetched %d campaigns for %s", len(campaigns), platform)
        return campaigns

    async def _get(
        self,
        client: httpx.AsyncClient,
        platform: str,
        path: str,
        params: Dict[str, str],
    ) -> Dict[str, Any]:
        resp = await client.get(f"{_GRAPH_URL}{path}", params=params)
        if resp.status_code >= 400:
            raise UpstreamError(
                f"Meta Graph API {path} returned HTTP {resp.status_code}",
                platform=platform,
                status_code=resp.status_code,
                payload=resp.text,
            )
        return resp.json()


def _to_campaign(row: Dict[str, Any], account_id: str) -> FetchedCampaign:
    insights = (row.get("insights") or {}).get("data") or [{}]
    stats = insights[0]
    try:
        spend = Decimal(str(stats.get("spend", "0")))
    except InvalidOperation:
        spend = Decimal("0")
    conversions = sum(
        int(float(a.get("value", 0)))
        for a in stats.get("actions", [])
        if a.get("action_type", "").split(".")[0] in _CONVERSION_ACTIONS
    )
    return FetchedCampaign(
        platform_campaign_id=str(row["id"]),
        name=row.get("name", ""),
        status=_STATUS_MAP.get(row.get("status", ""), str(row.get("status", "")).lower()),
        spend=f"{spend:.2f}",
        clicks=int(stats.get("clicks", 0)),
        impressions=int(stats.get("impressions", 0)),
        conversions=conversions,
        metadata={"adAccountId": account_id},
    )
