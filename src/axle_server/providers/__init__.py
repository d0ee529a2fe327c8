"""Wearable provider adapters and registry."""

import httpx

from axle_server.providers.base import AccessTokenLoader, HealthProvider, HealthSnapshot
from axle_server.providers.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderErrorHandler,
    ProviderErrorType,
    ProviderFailure,
    ProviderNotConfiguredError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from axle_server.providers.fitbit import FitbitProvider
from axle_server.providers.garmin import GarminProvider
from axle_server.providers.mock import MockProvider
from axle_server.providers.oura import OuraProvider
from axle_server.providers.whoop import WhoopProvider

PROVIDER_CLASSES: tuple[type[HealthProvider], ...] = (
    FitbitProvider,
    OuraProvider,
    WhoopProvider,
    GarminProvider,
    MockProvider,
)


def build_provider_registry(
    token_loader: AccessTokenLoader | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, HealthProvider]:
    """Instantiate every known adapter, keyed by provider id.

    Unconfigured adapters are still registered; callers check
    ``has_config()`` so the connection can be flagged with a clear error.

    Args:
        token_loader: Resolves decrypted access tokens
        transport: Optional httpx transport shared by all adapters

    Returns:
        Dict of provider id to adapter
    """
    return {cls.provider_id: cls(token_loader, transport) for cls in PROVIDER_CLASSES}


__all__ = [
    "AccessTokenLoader",
    "FitbitProvider",
    "GarminProvider",
    "HealthProvider",
    "HealthSnapshot",
    "MockProvider",
    "OuraProvider",
    "PROVIDER_CLASSES",
    "ProviderAuthError",
    "ProviderError",
    "ProviderErrorHandler",
    "ProviderErrorType",
    "ProviderFailure",
    "ProviderNotConfiguredError",
    "ProviderResponseError",
    "ProviderUnavailableError",
    "WhoopProvider",
    "build_provider_registry",
]
