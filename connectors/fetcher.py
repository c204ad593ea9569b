"""
PlatformDataFetcher — concurrent fan-out over a user's connected platforms.

Flow for ``fetch_all(user_id, platforms)``:

1. Load the user's active integrations for the requested platforms and
   decrypt their credentials (serially; the DB session is not shared
   across tasks).
2. Fan out one ``fetch_campaigns`` task per platform with
   ``asyncio.gather(..., return_exceptions=True)``, each bounded by
   ``asyncio.wait_for``.  A failed or slow platform contributes zero rows.
3. Merge persisted campaign rows with the live rows.
4. Any requested platform that still has no rows, and whose live fetch did
   not fail, gets three synthetic rows (active, paused, delivered).
   Platforms with real rows never do; a connected platform that failed
   shows no rows rather than placeholder ones.
5. Sum the totals and build the trailing 12-month series.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import config
from connectors.base import FetchedCampaign
from connectors.errors import CryptoError
from connectors.registry import ConnectorRegistry
from connectors.token_manager import TokenLifecycleManager
from database.helpers import get_user_integration, list_user_campaigns
from database.models import Campaign
from utils.months import month_label, trailing_months

logger = logging.getLogger(__name__)

_SYNTHETIC_STATUSES = ("active", "paused", "delivered")


@dataclass
class FetchResult:
    campaigns: List[Dict[str, Any]] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    monthly_data: List[Dict[str, Any]] = field(default_factory=list)
    has_real_data: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaigns": self.campaigns,
            "metrics": self.metrics,
            "monthlyData": self.monthly_data,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _decimal(value: Any) -> Decimal:
    try:
        d = Decimal(str(value if value not in (None, "") else "0"))
    except InvalidOperation:
        return Decimal("0")
    # NaN and Infinity can neither be quantized nor JSON-encoded
    return d if d.is_finite() else Decimal("0")


def _dedupe(platforms: Sequence[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for p in platforms:
        p = p.strip()
        if p:
            seen.setdefault(p, None)
    return list(seen)


class PlatformDataFetcher:
    def __init__(
        self,
        session: AsyncSession,
        registry: ConnectorRegistry,
        tokens: TokenLifecycleManager,
        *,
        rng: Optional[random.Random] = None,
        timeout: Optional[float] = None,
    ):
        self._session = session
        self._registry = registry
        self._tokens = tokens
        self._rng = rng or random.Random()
        self._timeout = timeout if timeout is not None else config.platform_fetch_timeout_seconds

    # ── Public API ──────────────────────────────────────────────────────

    async def fetch_all(
        self,
        user_id: str,
        platforms: Sequence[str],
        now: Optional[datetime] = None,
    ) -> FetchResult:
        now = now or datetime.now(timezone.utc)
        requested = _dedupe(platforms)

        persisted = await list_user_campaigns(self._session, user_id, requested or None)
        rows = [self._persisted_row(c) for c in persisted]
        failed: Set[str] = set()
        if requested:
            live, failed = await self._fan_out(user_id, requested)
            rows.extend(live)

        has_real_data = bool(rows)
        has_synthetic = False
        covered = {r["platform"] for r in rows}
        for platform in requested:
            if platform not in covered and platform not in failed:
                rows.extend(self._synthetic_rows(user_id, platform, now))
                has_synthetic = True

        metrics, totals = self._metrics(rows)
        # Random months only accompany synthetic rows; otherwise the series
        # is derived from the totals, which may all be zero.
        monthly = self._monthly_series(totals, has_real_data or not has_synthetic, now)
        logger.info(
            "Campaign data for user %s: %d rows, %d platforms requested, real_data=%s",
            user_id, len(rows), len(requested), has_real_data,
        )
        return FetchResult(campaigns=rows, metrics=metrics, monthly_data=monthly, has_real_data=has_real_data)

    # ── Fan-out ─────────────────────────────────────────────────────────

    async def _prepare(
        self, user_id: str, platforms: List[str]
    ) -> Tuple[List[Tuple[str, Dict[str, Any]]], Set[str]]:
        prepared: List[Tuple[str, Dict[str, Any]]] = []
        failed: Set[str] = set()
        for platform in platforms:
            integration = await get_user_integration(self._session, user_id, platform, active_only=True)
            if integration is None:
                logger.debug("No active integration for %s", platform)
                continue
            try:
                credentials = self._tokens.credentials_for(integration)
            except CryptoError:
                logger.error("Credentials for %s/%s could not be decrypted", user_id, platform)
                failed.add(platform)
                continue
            except ValueError as exc:
                logger.error("Credentials for %s/%s are malformed: %s", user_id, platform, exc)
                failed.add(platform)
                continue
            prepared.append((platform, credentials))
        return prepared, failed

    async def _fetch_one(self, platform: str, credentials: Dict[str, Any]) -> List[FetchedCampaign]:
        connector = self._registry.get(platform)
        return await asyncio.wait_for(
            connector.fetch_campaigns(platform, credentials, timeout=self._timeout),
            timeout=self._timeout,
        )

    async def _fan_out(
        self, user_id: str, platforms: List[str]
    ) -> Tuple[List[Dict[str, Any]], Set[str]]:
        prepared, failed = await self._prepare(user_id, platforms)
        if not prepared:
            return [], failed

        results = await asyncio.gather(
            *[self._fetch_one(platform, creds) for platform, creds in prepared],
            return_exceptions=True,
        )

        rows: List[Dict[str, Any]] = []
        for (platform, _), result in zip(prepared, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.warning("Fetch for %s timed out after %.1fs", platform, self._timeout)
                failed.add(platform)
            elif isinstance(result, BaseException):
                logger.warning("Fetch for %s failed: %s", platform, result)
                failed.add(platform)
            else:
                rows.extend(self._live_row(user_id, platform, c) for c in result)
        return rows, failed

    # ── Row shapes ──────────────────────────────────────────────────────

    @staticmethod
    def _persisted_row(c: Campaign) -> Dict[str, Any]:
        return {
            "id": str(c.campaign_id),
            "userId": str(c.user_id),
            "integrationId": str(c.integration_id) if c.integration_id else None,
            "platform": c.platform,
            "platformCampaignId": c.platform_campaign_id,
            "name": c.name,
            "status": c.status,
            "spend": c.spend,
            "clicks": c.clicks or 0,
            "impressions": c.impressions or 0,
            "conversions": c.conversions or 0,
            "metadata": c.metadata_,
            "createdAt": _iso(c.created_at),
            "updatedAt": _iso(c.updated_at),
        }

    @staticmethod
    def _live_row(user_id: str, platform: str, c: FetchedCampaign) -> Dict[str, Any]:
        return {
            "id": c.platform_campaign_id,
            "userId": str(user_id),
            "integrationId": None,
            "platform": platform,
            "platformCampaignId": c.platform_campaign_id,
            "name": c.name,
            "status": c.status,
            "spend": c.spend,
            "clicks": c.clicks,
            "impressions": c.impressions,
            "conversions": c.conversions,
            "revenue": c.revenue,
            "metadata": c.metadata,
            "createdAt": None,
            "updatedAt": None,
        }

    def _synthetic_rows(self, user_id: str, platform: str, now: datetime) -> List[Dict[str, Any]]:
        rng = self._rng
        title = platform[:1].upper() + platform[1:]
        return [
            {
                "id": f"sample-{platform}-{i}",
                "userId": str(user_id),
                "integrationId": None,
                "platform": platform,
                "platformCampaignId": f"{platform}-campaign-{i + 1}",
                "name": f"{title} Campaign {i + 1}",
                "status": status,
                "spend": f"{rng.random() * 500 + 100:.2f}",
                "clicks": int(rng.random() * 1000) + 200,
                "impressions": int(rng.random() * 10000) + 2000,
                "conversions": int(rng.random() * 100) + 20,
                "metadata": None,
                "createdAt": now.isoformat(),
                "updatedAt": now.isoformat(),
            }
            for i, status in enumerate(_SYNTHETIC_STATUSES)
        ]

    # ── Aggregation ─────────────────────────────────────────────────────

    @staticmethod
    def _metrics(rows: List[Dict[str, Any]]) -> Tuple[Dict[str, Any], Dict[str, Decimal]]:
        spend = sum((_decimal(r.get("spend")) for r in rows), Decimal("0"))
        clicks = sum(int(r.get("clicks") or 0) for r in rows)
        conversions = sum(int(r.get("conversions") or 0) for r in rows)
        impressions = sum(int(r.get("impressions") or 0) for r in rows)
        metrics = {
            "totalSpend": float(spend.quantize(Decimal("0.01"))),
            "totalClicks": clicks,
            "totalConversions": conversions,
            "totalImpressions": impressions,
        }
        totals = {
            "spend": spend,
            "clicks": Decimal(clicks),
            "conversions": Decimal(conversions),
        }
        return metrics, totals

    def _monthly_series(
        self,
        totals: Dict[str, Decimal],
        from_totals: bool,
        now: datetime,
    ) -> List[Dict[str, Any]]:
        months = trailing_months(12, now)
        if from_totals:
            # No per-month history is stored: spread the totals evenly.
            per_month = {
                k: int((v / 12).to_integral_value(rounding=ROUND_DOWN)) for k, v in totals.items()
            }
            return [{"month": month_label(m), **per_month} for _, m in months]

        rng = self._rng
        return [
            {
                "month": month_label(m),
                "spend": int(rng.random() * 50000) + 20000,
                "clicks": int(rng.random() * 60000) + 30000,
                "conversions": int(rng.random() * 70000) + 20000,
            }
            for _, m in months
        ]
