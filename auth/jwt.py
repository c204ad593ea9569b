"""
Session tokens — HMAC-SHA256 signed bearer tokens carrying the user id.

Login and registration live outside this service; it only verifies the
tokens the session collaborator issues.  ``create_token`` exists for tests
and operator tooling.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Optional

from fastapi import HTTPException, status

from config.settings import config


def _sign(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(user_id: str, *, expires_in: Optional[int] = None, secret: Optional[str] = None) -> str:
    """Create a signed token containing ``user_id`` and expiry."""
    payload = {
        "user_id": str(user_id),
        "exp": int(time.time()) + (expires_in if expires_in is not None else config.jwt_expiry_seconds),
    }
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return urlsafe_b64encode(raw).decode() + "." + _sign(raw, secret or config.jwt_secret)


def verify_token(token: str, *, secret: Optional[str] = None) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``HTTPException(401)`` on invalid or expired tokens.
    """
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    encoded, _, signature = token.partition(".")
    try:
        raw = urlsafe_b64decode(encoded)
    except (binascii.Error, ValueError):
        raise unauthorized from None
    if not signature or not hmac.compare_digest(signature, _sign(raw, secret or config.jwt_secret)):
        raise unauthorized
    try:
        payload = json.loads(raw)
        user_id = payload["user_id"]
        expires = float(payload.get("exp", 0))
    except (ValueError, KeyError, TypeError):
        raise unauthorized from None
    if expires < time.time():
        raise unauthorized
    return user_id
