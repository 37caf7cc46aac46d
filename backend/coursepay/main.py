"""ASGI entrypoint for the course settlement API."""

import logging
from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from secure import Secure

from coursepay.api import api_router
from coursepay.core.config import get_settings
from coursepay.core.settings import get_payment_settings
from coursepay.db.session import dispose_engine
from coursepay.security.logging_filters import install_sensitive_filter

logger = logging.getLogger(__name__)

settings = get_settings()
secure_headers = Secure.with_default_headers()

_LOGGERS = ("", "coursepay", "uvicorn", "uvicorn.access", "uvicorn.error")
install_sensitive_filter(_LOGGERS)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # pick up handlers configured after import
    install_sensitive_filter(_LOGGERS)
    payments = get_payment_settings()
    if payments.stripe_secret_key is None:
        logger.warning("STRIPE_SECRET_KEY not set; payment routes will answer 503")
    if payments.stripe_webhook_secret is None:
        logger.warning("STRIPE_WEBHOOK_SECRET not set; webhooks will be rejected")
    yield
    await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin for origin in settings.cors_allowlist if origin],
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    secure_headers.set_headers(response)
    return response


app.include_router(api_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    return {"message": settings.app_name}
