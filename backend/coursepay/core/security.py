"""JWT helpers for the bearer tokens issued by the auth service."""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import jwt

from coursepay.core.config import get_settings


def create_access_token(
    subject: str, expires_delta: timedelta | None = None, **extra: Any
) -> str:
    """Create a JWT access token.

    Tokens are normally minted by the auth service; this helper exists for
    local tooling and tests that need a caller identity.
    """
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=60)
    expire = datetime.now(UTC) + expires_delta
    claims: dict[str, Any] = {"sub": subject, "exp": expire}
    claims.update(extra)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a JWT token, raising JWTError on failure."""
    settings = get_settings()
    return jwt.decode(
        token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
    )
