"""Short-lived capability tokens authorizing one mark-paid call for one booking.

Wire format: ``base64url(json payload) + "." + base64url(HMAC-SHA256 signature)``
with the payload ``{"bookingId": ..., "expiresAt": <epoch ms>}``. Tokens are
never stored; they simply expire.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import get_settings
from .errors import ConfigurationError


@dataclass(frozen=True)
class TokenVerification:
    valid: bool
    payload: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _sign(secret: str, encoded_payload: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), encoded_payload.encode("ascii"), hashlib.sha256).digest()
    return _b64encode(digest)


def _now_ms() -> int:
    return int(time.time() * 1000)


def mint_capability_token(
    booking_id: str,
    ttl: Optional[int] = None,
    *,
    secret: Optional[str] = None,
    now: Optional[int] = None,
) -> str:
    """Mint a token for ``booking_id`` valid for ``ttl`` seconds."""

    settings = get_settings()
    secret = secret or settings.mark_paid_secret
    if not secret:
        raise ConfigurationError("Capability token signing secret is not configured")
    ttl_seconds = settings.capability_token_ttl_seconds if ttl is None else ttl
    issued_at = _now_ms() if now is None else now
    payload = {"bookingId": booking_id, "expiresAt": issued_at + ttl_seconds * 1000}
    encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{encoded}.{_sign(secret, encoded)}"


def verify_capability_token(
    token: str,
    expected_booking_id: Optional[str] = None,
    *,
    secret: Optional[str] = None,
    now: Optional[int] = None,
) -> TokenVerification:
    secret = secret or get_settings().mark_paid_secret
    if not secret:
        return TokenVerification(False, reason="unconfigured")

    parts = str(token).split(".")
    if len(parts) != 2 or not all(part and part.isascii() for part in parts):
        return TokenVerification(False, reason="malformed")
    encoded, signature = parts

    expected = _sign(secret, encoded)
    if not hmac.compare_digest(signature.encode("ascii"), expected.encode("ascii")):
        return TokenVerification(False, reason="bad_signature")

    try:
        payload = json.loads(_b64decode(encoded))
    except (binascii.Error, ValueError):
        return TokenVerification(False, reason="malformed")
    if not isinstance(payload, dict):
        return TokenVerification(False, reason="malformed")

    expires_at = payload.get("expiresAt")
    if not isinstance(expires_at, int) or (_now_ms() if now is None else now) > expires_at:
        return TokenVerification(False, payload, reason="expired")

    if expected_booking_id is not None and payload.get("bookingId") != expected_booking_id:
        return TokenVerification(False, payload, reason="booking_mismatch")

    return TokenVerification(True, payload)
