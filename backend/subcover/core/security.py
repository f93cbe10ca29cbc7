from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from subcover.core.config import get_settings


def create_access_token(
    *,
    subject: str,
    role: str,
    department: str | None,
    expires_minutes: int | None = None,
) -> str:
    settings = get_settings()
    lifetime = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=lifetime)
    claims = {
        "sub": subject,
        "role": role,
        "department": department,
        "exp": expire,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
