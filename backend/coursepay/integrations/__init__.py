"""Integration shortcuts."""

from .stripe_client import (
    GatewayClientError,
    GatewayEvent,
    GatewayUnavailableError,
    ProviderIntent,
    StripeGateway,
)

__all__ = [
    "GatewayClientError",
    "GatewayEvent",
    "GatewayUnavailableError",
    "ProviderIntent",
    "StripeGateway",
]
