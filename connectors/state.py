"""
Signed OAuth ``state`` parameter (CSRF protection).

Format: ``base64url(json-payload) + "." + hex(hmac-sha256)``.  The payload
binds the consent request to the user, platform, OAuth app and a random
nonce.  For PKCE platforms it also carries the code verifier, sealed with
the SecretCipher, so the callback needs no server-side session and the
verifier is never readable from the URL.  Replay is detected separately by
recording the nonce once the callback consumes it.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from config.settings import config
from connectors.encryption import SecretCipher, get_cipher
from connectors.errors import CryptoError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthStateBinding:
    user_id: str
    platform: str
    app_id: str
    nonce: str
    issued_at: int
    code_verifier: Optional[str] = None


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(encoded: str) -> bytes:
    return base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))


class OAuthStateSigner:
    def __init__(
        self,
        secret: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        cipher: Optional[SecretCipher] = None,
    ):
        self._secret = (secret or config.effective_state_secret()).encode("utf-8")
        self._ttl = ttl_seconds if ttl_seconds is not None else config.oauth_state_ttl_seconds
        self._clock = clock
        self._cipher = cipher or get_cipher()

    def _sign(self, encoded: str) -> str:
        return hmac.new(self._secret, encoded.encode("ascii"), hashlib.sha256).hexdigest()

    def issue(
        self,
        user_id: str,
        platform: str,
        app_id: str,
        code_verifier: Optional[str] = None,
    ) -> str:
        payload = {
            "user_id": str(user_id),
            "platform": platform,
            "app_id": str(app_id),
            "nonce": secrets.token_hex(16),
            "iat": int(self._clock()),
        }
        if code_verifier:
            payload["code_verifier"] = self._cipher.encrypt(code_verifier)
        encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        return f"{encoded}.{self._sign(encoded)}"

    def verify(self, state: str, platform: Optional[str] = None) -> OAuthStateBinding:
        """
        Return the binding carried by ``state``.

        Raises ``ValidationError`` on bad format, bad signature, expiry or
        when ``platform`` is given and differs from the bound platform.
        """
        encoded, sep, signature = (state or "").partition(".")
        if not encoded or not sep or not signature:
            raise ValidationError("Invalid OAuth state")

        if not hmac.compare_digest(signature, self._sign(encoded)):
            logger.warning("OAuth state signature mismatch")
            raise ValidationError("Invalid OAuth state")

        try:
            payload = json.loads(_b64decode(encoded))
            binding = OAuthStateBinding(
                user_id=payload["user_id"],
                platform=payload["platform"],
                app_id=payload["app_id"],
                nonce=payload["nonce"],
                issued_at=int(payload["iat"]),
                code_verifier=self._cipher.decrypt_optional(payload.get("code_verifier")),
            )
        except (binascii.Error, ValueError, KeyError, TypeError, CryptoError):
            raise ValidationError("Invalid OAuth state") from None

        if binding.issued_at + self._ttl < self._clock():
            raise ValidationError("OAuth state expired")
        if platform is not None and binding.platform != platform:
            raise ValidationError("OAuth state does not match platform")
        return binding
