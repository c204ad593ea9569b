"""
BaseConnector — the fixed capability interface every platform variant implements.

A connector is stateless with respect to users: the per-user OAuth app
(client id / secret / scopes) is passed in as a ``ConnectorApp`` on every
call, because client credentials are registered by each tenant rather than
configured on the server.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from connectors.errors import ExchangeError, UpstreamError


@dataclass(frozen=True)
class ConnectorApp:
    """Decrypted view of a user's OAuthApp, for internal use only."""

    app_id: str
    client_id: str
    client_secret: Optional[str]
    redirect_uri: str
    scopes: List[str] = field(default_factory=list)


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FetchedCampaign:
    """A campaign-like row returned by a platform's data capability."""

    platform_campaign_id: str
    name: str
    status: str
    spend: str = "0"
    clicks: int = 0
    impressions: int = 0
    conversions: int = 0
    revenue: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseConnector(ABC):
    """Abstract base for all platform connectors."""

    #: Platform ids this variant serves.
    platforms: tuple[str, ...] = ()

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Tests inject an ``httpx.MockTransport`` here.
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    # ── Identity ────────────────────────────────────────────────────────

    @property
    def supported(self) -> bool:
        return True

    def uses_pkce(self, platform: str) -> bool:
        return False

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def build_auth_url(
        self,
        platform: str,
        app: ConnectorApp,
        state: str,
        *,
        code_challenge: Optional[str] = None,
    ) -> Optional[str]:
        """
        Build the platform's consent URL.

        Returns ``None`` when the platform has no known authorization
        endpoint; callers fail closed.
        """
        ...

    @abstractmethod
    async def exchange_code(
        self,
        platform: str,
        app: ConnectorApp,
        code: str,
        *,
        code_verifier: Optional[str] = None,
        timeout: float = 30.0,
    ) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        Raises ``ExchangeError`` with the upstream body on any failure.
        """
        ...

    async def refresh_access_token(
        self,
        platform: str,
        app: ConnectorApp,
        refresh_token: str,
        *,
        timeout: float = 30.0,
    ) -> TokenSet:
        raise UpstreamError(f"Token refresh is not supported for {platform}", platform=platform)

    async def revoke_token(self, platform: str, app: Optional[ConnectorApp], access_token: str, *, timeout: float = 10.0) -> bool:
        """
        Revoke the token at the provider (optional).
        Returns True on success, False if the provider doesn't support revocation.
        """
        return False

    # ── API-key validation ──────────────────────────────────────────────

    async def validate_credentials(
        self,
        platform: str,
        credentials: Dict[str, str],
        *,
        timeout: float = 10.0,
    ) -> Dict[str, Any]:
        """
        Check an API-key bundle against the platform before it is stored.

        Returns account details to keep alongside the integration (may be
        empty).  Raises ``ValidationError`` when the platform rejects the key.
        """
        return {}

    # ── Data ────────────────────────────────────────────────────────────

    async def fetch_campaigns(
        self,
        platform: str,
        credentials: Dict[str, Any],
        *,
        timeout: float = 15.0,
    ) -> List[FetchedCampaign]:
        """
        Return campaign-like rows for valid ``credentials``.

        ``credentials`` holds ``access_token`` (OAuth) or the decoded API-key
        bundle fields.  Platforms without a data capability return ``[]``.
        """
        return []


class StandardOAuth2Connector(BaseConnector):
    """
    Authorization-code flow with form-encoded token requests, shared by most
    platforms.  Variants override the hooks for their quirks.
    """

    #: platform id → (authorization_url, token_url, default_scopes)
    endpoints: Dict[str, tuple[str, str, tuple[str, ...]]] = {}

    def build_auth_url(self, platform, app, state, *, code_challenge=None):
        endpoint = self.endpoints.get(platform)
        if endpoint is None:
            return None
        auth_url, _, default_scopes = endpoint
        params: Dict[str, str] = {
            "client_id": app.client_id,
            "redirect_uri": app.redirect_uri,
            "state": state,
            "response_type": "code",
        }
        scopes = list(app.scopes) or list(default_scopes)
        self.add_auth_params(platform, app, params, scopes, code_challenge)
        return f"{auth_url}?{urlencode(params)}"

    def add_auth_params(
        self,
        platform: str,
        app: ConnectorApp,
        params: Dict[str, str],
        scopes: List[str],
        code_challenge: Optional[str],
    ) -> None:
        if scopes:
            params["scope"] = " ".join(scopes)

    def token_url(self, platform: str) -> str:
        endpoint = self.endpoints.get(platform)
        if endpoint is None:
            raise ExchangeError(f"No token endpoint known for {platform}", platform=platform)
        return endpoint[1]

    async def exchange_code(self, platform, app, code, *, code_verifier=None, timeout=30.0):
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": app.client_id,
            "redirect_uri": app.redirect_uri,
        }
        if app.client_secret:
            data["client_secret"] = app.client_secret
        if code_verifier:
            data["code_verifier"] = code_verifier
        payload = await self._post_token(platform, data, timeout, error_cls=ExchangeError)
        return self._token_set(payload)

    async def refresh_access_token(self, platform, app, refresh_token, *, timeout=30.0):
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": app.client_id,
        }
        if app.client_secret:
            data["client_secret"] = app.client_secret
        payload = await self._post_token(platform, data, timeout, error_cls=UpstreamError)
        tokens = self._token_set(payload)
        # Some platforms don't rotate refresh tokens
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token
        return tokens

    async def _post_token(
        self,
        platform: str,
        data: Dict[str, str],
        timeout: float,
        *,
        error_cls: type[UpstreamError],
    ) -> Dict[str, Any]:
        url = self.token_url(platform)
        try:
            async with self._client(timeout) as client:
                resp = await client.post(url, data=data, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise error_cls(f"{platform} token endpoint unreachable: {exc}", platform=platform) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text

        if resp.status_code >= 400:
            raise error_cls(
                f"{platform} token request failed with HTTP {resp.status_code}",
                platform=platform,
                status_code=resp.status_code,
                payload=payload,
            )
        if not isinstance(payload, dict) or "error" in payload or not payload.get("access_token"):
            raise error_cls(
                f"{platform} token response did not contain an access token",
                platform=platform,
                status_code=resp.status_code,
                payload=payload,
            )
        return payload

    def _token_set(self, payload: Dict[str, Any]) -> TokenSet:
        expires_in = payload.get("expires_in")
        return TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=int(expires_in) if expires_in not in (None, "") else None,
            token_type=payload.get("token_type"),
            scope=payload.get("scope"),
            raw=payload,
        )
