"""
ShopifyConnector — API-key platform backed by the Admin REST API.

Shopify has no ad spend; the store's orders are summarised into a single
campaign-like "Store Performance" row.  Sessions are not exposed by the
REST API, so they are estimated from order volume with a fixed 2%
conversion rate and three page views per session.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from connectors.base import BaseConnector, FetchedCampaign
from connectors.errors import ExchangeError, UpstreamError
from utils.months import month_label, month_start, trailing_months

logger = logging.getLogger(__name__)

_API_VERSION = "2024-01"
_ESTIMATED_CONVERSION_RATE = 0.02
_PAGES_PER_SESSION = 3
_SUMMARY_WINDOW_DAYS = 30


def store_host(store_name: str) -> str:
    """Normalise "my-store", "my-store.myshopify.com" or a full URL to a host."""
    host = store_name.strip()
    for prefix in ("https://", "http://"):
        if host.startswith(prefix):
            host = host[len(prefix):]
    host = host.rstrip("/")
    if "." not in host:
        host = f"{host}.myshopify.com"
    return host


class ShopifyConnector(BaseConnector):
    platforms = ("shopify",)

    def build_auth_url(self, platform, app, state, *, code_challenge=None):
        return None

    async def exchange_code(self, platform, app, code, *, code_verifier=None, timeout=30.0):
        raise ExchangeError("Shopify is connected with an Admin API access token", platform=platform)

    async def fetch_campaigns(self, platform, credentials, *, timeout=15.0):
        store_name = credentials.get("storeName")
        access_token = credentials.get("accessToken")
        if not store_name or not access_token:
            logger.info("Shopify: credentials incomplete, skipping fetch")
            return []

        now = datetime.now(timezone.utc)
        months = trailing_months(12, now)
        orders = await self.get_orders(
            store_host(store_name),
            access_token,
            created_at_min=month_start(*months[0]),
            created_at_max=now,
            timeout=timeout,
        )
        return [self.summarise(orders, now)]

    async def get_orders(
        self,
        host: str,
        access_token: str,
        *,
        created_at_min: Optional[datetime] = None,
        created_at_max: Optional[datetime] = None,
        timeout: float = 15.0,
    ) -> List[Dict[str, Any]]:
        params = {"status": "any", "limit": "250"}
        if created_at_min:
            params["created_at_min"] = created_at_min.isoformat()
        if created_at_max:
            params["created_at_max"] = created_at_max.isoformat()

        url = f"https://{host}/admin/api/{_API_VERSION}/orders.json"
        try:
            async with self._client(timeout) as client:
                resp = await client.get(
                    url,
                    params=params,
                    headers={"X-Shopify-Access-Token": access_token},
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Shopify request failed: {exc}", platform="shopify") from exc

        if resp.status_code >= 400:
            raise UpstreamError(
                f"Shopify API error: HTTP {resp.status_code}",
                platform="shopify",
                status_code=resp.status_code,
                payload=resp.text,
            )
        orders = resp.json().get("orders") or []
        logger.info("Shopify: fetched %d orders from %s", len(orders), host)
        return orders

    def summarise(self, orders: List[Dict[str, Any]], now: datetime) -> FetchedCampaign:
        """Build the Store Performance row from a year of orders."""
        window_start = now - timedelta(days=_SUMMARY_WINDOW_DAYS)
        recent = [o for o in orders if _created_at(o) is not None and _created_at(o) >= window_start]

        total_orders = len(recent)
        total_sales = sum(_price(o) for o in recent)
        sessions = int(total_orders / _ESTIMATED_CONVERSION_RATE) if total_orders else 0

        return FetchedCampaign(
            platform_campaign_id="shopify-store-performance",
            name="Shopify Store Performance",
            status="active",
            spend="0.00",
            clicks=sessions,
            impressions=sessions * _PAGES_PER_SESSION,
            conversions=total_orders,
            revenue=round(total_sales, 2),
            metadata={
                "totalOrders": total_orders,
                "avgOrderValue": round(total_sales / total_orders, 2) if total_orders else 0,
                "conversionRate": _ESTIMATED_CONVERSION_RATE * 100,
                "monthlyBreakdown": monthly_breakdown(orders, now),
            },
        )


def monthly_breakdown(orders: List[Dict[str, Any]], now: datetime) -> List[Dict[str, Any]]:
    buckets = {f"{y}-{m:02d}": {"revenue": 0.0, "orders": 0} for y, m in trailing_months(12, now)}
    for order in orders:
        key = str(order.get("created_at", ""))[:7]
        if key in buckets:
            buckets[key]["revenue"] += _price(order)
            buckets[key]["orders"] += 1
    return [
        {
            "month": month_label(int(key[5:7])),
            "revenue": round(data["revenue"], 2),
            "orders": data["orders"],
        }
        for key, data in buckets.items()
    ]


def _price(order: Dict[str, Any]) -> float:
    try:
        return float(order.get("total_price") or 0)
    except (TypeError, ValueError):
        return 0.0


def _created_at(order: Dict[str, Any]) -> Optional[datetime]:
    raw = order.get("created_at")
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
