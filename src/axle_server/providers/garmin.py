"""Garmin Health API adapter."""

from axle_server.core.config import settings
from axle_server.providers.base import HealthProvider, HealthSnapshot
from axle_server.providers.errors import ProviderNotConfiguredError


class GarminProvider(HealthProvider):
    """Garmin pushes data through its partner webhook program rather than a
    pull API, so there is nothing to fetch on demand yet."""

    provider_id = "garmin"

    def has_config(self) -> bool:
        return bool(settings.garmin_client_id and settings.garmin_client_secret)

    async def fetch_latest(self, user_id: str) -> HealthSnapshot:
        raise ProviderNotConfiguredError(self.provider_id, "Garmin pull sync is not supported")
