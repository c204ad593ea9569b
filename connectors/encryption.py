"""
Secret encryption — encrypt / decrypt OAuth client secrets and tokens at rest.

Uses AES-256-GCM from the ``cryptography`` library.  The 256-bit key is the
SHA-256 digest of ``config.encryption_key`` (env var: ``ENCRYPTION_KEY``).

Stored token format (all parts lowercase hex)::

    <iv>:<auth-tag>:<ciphertext>

A fresh 16-byte IV is drawn for every call, so encrypting the same plaintext
twice yields different tokens.  The tag is verified before any plaintext is
returned.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config.settings import config
from connectors.errors import DecryptionError

logger = logging.getLogger(__name__)

IV_BYTES = 16
TAG_BYTES = 16

_HEX = re.compile(r"^[0-9a-f]*$")


class SecretCipher:
    """Stateless AES-256-GCM cipher keyed from a configured secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("SecretCipher requires a non-empty secret")
        self._aesgcm = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_BYTES)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """
        Decrypt a token produced by :meth:`encrypt`.

        Raises ``DecryptionError`` for any malformed, truncated or tampered
        token.  Never returns a partial or empty plaintext on failure.
        """
        parts = token.split(":") if isinstance(token, str) else []
        if len(parts) != 3 or not all(_HEX.match(p) for p in parts):
            raise DecryptionError("Malformed encrypted value")

        iv_hex, tag_hex, ct_hex = parts
        if len(iv_hex) != IV_BYTES * 2 or len(tag_hex) != TAG_BYTES * 2 or len(ct_hex) % 2:
            raise DecryptionError("Malformed encrypted value")

        iv = bytes.fromhex(iv_hex)
        sealed = bytes.fromhex(ct_hex) + bytes.fromhex(tag_hex)
        try:
            plaintext = self._aesgcm.decrypt(iv, sealed, None)
        except InvalidTag:
            raise DecryptionError("Encrypted value failed authentication") from None
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Encrypted value is not valid UTF-8") from None

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        """``None`` or empty stays ``None``: "no secret stored" is not an error."""
        return self.encrypt(plaintext) if plaintext else None

    def decrypt_optional(self, token: Optional[str]) -> Optional[str]:
        return self.decrypt(token) if token else None


_cipher: Optional[SecretCipher] = None


def get_cipher() -> SecretCipher:
    """Lazy-initialise the process cipher once from settings."""
    global _cipher
    if _cipher is None:
        if not config.encryption_key:
            logger.warning(
                "ENCRYPTION_KEY not set; secrets are sealed with the built-in default key. "
                "This is a deployment misconfiguration."
            )
        _cipher = SecretCipher(config.effective_encryption_key())
    return _cipher


def mask_secret(secret: Optional[str], visible: int = 4) -> Optional[str]:
    """Redact a secret for display outside the service boundary."""
    if not secret:
        return None
    if len(secret) <= visible:
        return "••••"
    return "••••" + secret[-visible:]
