"""Bearer-token identity for the affiliate API.

Users sign in through the managed auth service, which issues HS256 JWTs. We
only verify them (signature, expiry) and read the user id from `sub`.
create_access_token() exists for the seed script and the tests.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import settings

_JWT_ALGO = "HS256"
_DEV_TOKEN_TTL = 3600 * 24  # 1 day


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    s += "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s)


def _signature(signing_input: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()


def create_access_token(user_id: str, ttl: int = _DEV_TOKEN_TTL, secret: str | None = None) -> str:
    now = int(time.time())
    header = _b64url(json.dumps({"alg": _JWT_ALGO, "typ": "JWT"}).encode())
    body = _b64url(json.dumps({"sub": user_id, "iat": now, "exp": now + ttl, "role": "authenticated"}).encode())
    sig = _signature(f"{header}.{body}".encode(), secret or settings.AUTH_JWT_SECRET)
    return f"{header}.{body}.{_b64url(sig)}"


def verify_token(token: str, secret: str | None = None) -> Optional[dict]:
    """Payload of a valid, unexpired HS256 token, else None."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    try:
        header = json.loads(_b64url_decode(parts[0]))
        if header.get("alg") != _JWT_ALGO:
            return None
        expected = _signature(f"{parts[0]}.{parts[1]}".encode(), secret or settings.AUTH_JWT_SECRET)
        if not hmac.compare_digest(expected, _b64url_decode(parts[2])):
            return None
        payload = json.loads(_b64url_decode(parts[1]))
    except (ValueError, TypeError, AttributeError):
        # bad base64 / JSON (binascii.Error and JSONDecodeError are ValueErrors)
        return None
    if not isinstance(payload, dict) or not payload.get("sub"):
        return None
    if payload.get("exp", 0) < time.time():
        return None
    return payload


# ---- FastAPI dependency ----

_bearer = HTTPBearer(auto_error=False)


async def get_current_user_id(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[str]:
    if not creds:
        return None
    payload = verify_token(creds.credentials)
    return str(payload["sub"]) if payload else None


async def require_user_id(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user_id
