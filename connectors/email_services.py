"""
SendGrid and Brevo — API-key email platforms.  The key is checked against
the account endpoint before it is stored, and the account's identity is
kept for display.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from connectors.base import BaseConnector
from connectors.errors import ExchangeError, ValidationError

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials. Please check and try again."


class _AccountCheckConnector(BaseConnector):
    """API-key platform whose key is validated with one authenticated GET."""

    account_url: str = ""
    #: response field → metadata key
    account_fields: Dict[str, str] = {}

    def build_auth_url(self, platform, app, state, *, code_challenge=None):
        return None

    async def exchange_code(self, platform, app, code, *, code_verifier=None, timeout=30.0):
        raise ExchangeError(f"{platform} is connected with an API key", platform=platform)

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        raise NotImplementedError

    async def validate_credentials(self, platform, credentials, *, timeout=10.0):
        api_key = credentials.get("apiKey", "")
        try:
            async with self._client(timeout) as client:
                resp = await client.get(self.account_url, headers=self.auth_headers(api_key))
        except httpx.HTTPError as exc:
            logger.warning("%s key check failed: %s", platform, exc)
            raise ValidationError(INVALID_CREDENTIALS) from exc

        if resp.status_code >= 400:
            logger.info("%s rejected API key (HTTP %d)", platform, resp.status_code)
            raise ValidationError(INVALID_CREDENTIALS)

        try:
            account: Optional[Dict[str, Any]] = resp.json()
        except ValueError:
            account = None
        if not isinstance(account, dict):
            return {}
        return {
            key: account[field]
            for field, key in self.account_fields.items()
            if account.get(field) is not None
        }


class SendGridConnector(_AccountCheckConnector):
    platforms = ("sendgrid",)
    account_url = "https://api.sendgrid.com/v3/user/profile"
    account_fields = {"email": "email", "username": "username"}

    def auth_headers(self, api_key):
        return {"Authorization": f"Bearer {api_key}"}


class BrevoConnector(_AccountCheckConnector):
    platforms = ("brevo",)
    account_url = "https://api.brevo.com/v3/account"
    account_fields = {"email": "email", "companyName": "companyName"}

    def auth_headers(self, api_key):
        return {"api-key": api_key, "Accept": "application/json"}
