"""Common API dependencies."""

from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Annotated
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from coursepay.core.config import get_settings
from coursepay.core.security import decode_access_token
from coursepay.core.settings import get_payment_settings
from coursepay.db.session import get_session
from coursepay.integrations import StripeGateway

settings = get_settings()

# Tokens are issued by the auth service; this only names the scheme.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_v1_prefix}/auth/token")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_current_user_id(
    token: Annotated[str, Depends(oauth2_scheme)],
) -> uuid.UUID:
    """Resolve the authenticated user id from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        raise credentials_exception from exc

    subject = payload.get("sub")
    if subject is None:
        raise credentials_exception

    try:
        return uuid.UUID(str(subject))
    except (ValueError, TypeError) as exc:
        raise credentials_exception from exc


@lru_cache
def _build_gateway(
    secret_key: str, webhook_secret: str | None, prefix: str
) -> StripeGateway:
    return StripeGateway(
        secret_key, webhook_secret=webhook_secret, idempotency_prefix=prefix
    )


def get_optional_gateway_client() -> StripeGateway | None:
    """Return the gateway adapter, or ``None`` when Stripe is not configured."""
    payment_settings = get_payment_settings()
    if not payment_settings.stripe_secret_key:
        return None
    return _build_gateway(
        payment_settings.stripe_secret_key,
        payment_settings.stripe_webhook_secret,
        payment_settings.idempotency_prefix,
    )


def get_gateway_client(
    gateway: Annotated[StripeGateway | None, Depends(get_optional_gateway_client)],
) -> StripeGateway:
    """Return the configured payment gateway adapter."""
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment provider not configured",
        )
    return gateway
