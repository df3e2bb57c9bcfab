"""
Short-lived HS256 tokens authorising a broadcast to one channel.
"""

from __future__ import annotations

import base64
import binascii
import json
import time
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

BROADCAST_PERMISSION = "broadcast"
_HEADER = {"alg": "HS256", "typ": "JWT"}


class TokenError(ValueError):
    """Token is malformed, badly signed or expired."""


def decode_secret(secret: str | bytes) -> bytes:
    """Shared secrets are distributed base64 encoded."""
    if isinstance(secret, bytes):
        return secret
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("broadcast secret must be base64 encoded") from exc


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _signature(key: bytes, signing_input: bytes) -> bytes:
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(signing_input)
    return mac.finalize()


def sign_broadcast_token(
    secret: bytes,
    channel_id: str,
    *,
    owner_id: Optional[str] = None,
    ttl_seconds: int = 60,
    now: Optional[float] = None,
) -> str:
    """Sign a token scoped to broadcasting on ``channel_id`` only."""
    issued = int(now if now is not None else time.time())
    claims: Dict[str, Any] = {
        "sub": channel_id,
        "channel_id": channel_id,
        "role": "external",
        "pubsub_perms": {"send": [BROADCAST_PERMISSION]},
        "iat": issued,
        "exp": issued + int(ttl_seconds),
    }
    if owner_id:
        claims["user_id"] = owner_id

    header = _b64url(json.dumps(_HEADER, separators=(",", ":")).encode("utf-8"))
    payload = _b64url(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header}.{payload}".encode("ascii")
    return f"{header}.{payload}.{_b64url(_signature(secret, signing_input))}"


def verify_token(token: str, secret: bytes, *, now: Optional[float] = None) -> Dict[str, Any]:
    """Check signature and expiry and return the claims."""
    try:
        header_seg, payload_seg, signature_seg = token.split(".")
        header = json.loads(_b64url_decode(header_seg))
        claims = json.loads(_b64url_decode(payload_seg))
        signature = _b64url_decode(signature_seg)
    except (ValueError, binascii.Error) as exc:
        raise TokenError("malformed token") from exc

    if header.get("alg") != "HS256":
        raise TokenError(f"unsupported algorithm {header.get('alg')!r}")

    mac = hmac.HMAC(secret, hashes.SHA256())
    mac.update(f"{header_seg}.{payload_seg}".encode("ascii"))
    try:
        mac.verify(signature)
    except InvalidSignature as exc:
        raise TokenError("bad signature") from exc

    current = now if now is not None else time.time()
    if int(claims.get("exp", 0)) <= current:
        raise TokenError("token expired")
    return claims
