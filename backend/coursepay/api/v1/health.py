"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter

from coursepay.core.config import get_settings
from coursepay.core.settings import get_payment_settings

router = APIRouter()


@router.get("", summary="Service health status")
async def healthcheck() -> dict[str, str]:
    """Return application health metadata."""
    settings = get_settings()
    payments = get_payment_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": settings.app_env,
        "payments": "configured" if payments.stripe_secret_key else "disabled",
    }
