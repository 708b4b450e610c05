from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

TOKEN_TYPE = "provider_access"


def create_access_token(provider_id: str, expires_minutes: int | None = None, **claims) -> str:
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {
        **claims,
        "sub": provider_id,
        "type": TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry. Raises ``jwt.PyJWTError`` for anything unusable."""
    payload = jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["exp", "sub"]},
    )
    if payload.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not a provider access token")
    return payload
