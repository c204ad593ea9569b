"""
Error taxonomy for the integrations core.

Route handlers never build HTTP errors for these themselves; the handlers
registered in ``api.middleware`` translate them.
"""

from __future__ import annotations

from typing import Any, Optional


class IntegrationError(Exception):
    """Base class for every error raised by the connectors package."""

    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(IntegrationError):
    """Missing or malformed user input. User-correctable."""

    status_code = 400


class NotFoundError(IntegrationError):
    """Resource absent *or* owned by someone else; the two cases look the same."""

    status_code = 404


class ConflictError(IntegrationError):
    status_code = 409


class ConfigurationError(IntegrationError):
    """The user has not registered an OAuth app for the platform (or the
    deployment itself is misconfigured)."""

    status_code = 400


class UpstreamError(IntegrationError):
    """A platform HTTP call failed."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        platform: str = "",
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.platform = platform
        self.upstream_status = status_code
        self.payload = payload


class ExchangeError(UpstreamError):
    """Authorization-code exchange failed; ``payload`` is the raw upstream body."""


class CryptoError(IntegrationError):
    status_code = 500


class DecryptionError(CryptoError):
    """Stored ciphertext is corrupted, truncated, or was sealed with another key."""
