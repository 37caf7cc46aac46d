"""Environment-driven settings for the settlement service."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# repository root, next to pyproject.toml
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Service configuration read from the environment and an optional ``.env``."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE, case_sensitive=False, extra="ignore"
    )

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "Course Settlement API"
    api_v1_prefix: str = "/api/v1"

    # async driver for the app, sync driver for alembic
    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(None, alias="SYNC_DATABASE_URL")

    # bearer tokens are minted by the auth service with the shared secret
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")

    stripe_secret_key: str | None = Field(None, alias="STRIPE_SECRET_KEY")
    stripe_publishable_key: str | None = Field(None, alias="STRIPE_PUBLISHABLE_KEY")
    stripe_webhook_secret: str | None = Field(None, alias="STRIPE_WEBHOOK_SECRET")

    payments_currency: str = Field("usd", alias="PAYMENTS_CURRENCY")
    payments_amount_tolerance: Decimal = Field(
        Decimal("0.01"), alias="PAYMENTS_AMOUNT_TOLERANCE", ge=0
    )
    payments_idempotency_window_seconds: int = Field(
        900, alias="PAYMENTS_IDEMPOTENCY_WINDOW_SECONDS", gt=0
    )
    payments_idempotency_prefix: str = Field(
        "coursepay", alias="PAYMENTS_IDEMPOTENCY_PREFIX"
    )
    payments_reconcile_after_minutes: int = Field(
        30, alias="PAYMENTS_RECONCILE_AFTER_MINUTES", ge=1
    )

    cors_allowlist: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173"], alias="CORS_ALLOWLIST"
    )
    cors_allow_credentials: bool = Field(False, alias="CORS_ALLOW_CREDENTIALS")

    @field_validator("cors_allowlist", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        # accept "https://a.example,https://b.example" from the environment
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("payments_currency", mode="after")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.strip().lower()


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
