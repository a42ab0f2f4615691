from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

ALGORITHM = "HS256"


def create_access_token(
    subject: str,
    role: str,
    settings,
    *,
    name: str | None = None,
    ttl_minutes: int | None = None,
) -> str:
    now = datetime.now(tz=timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.auth_token_ttl_minutes
    payload: Dict[str, Any] = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=ttl),
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.auth_secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret: str) -> dict[str, Any]:
    return jwt.decode(token, secret, algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})


def is_token_expired(token: str, secret: str) -> bool:
    try:
        decoded = decode_access_token(token, secret)
    except jwt.InvalidTokenError:
        return True
    exp = decoded.get("exp")
    if isinstance(exp, (int, float)):
        return exp < time.time()
    return False
