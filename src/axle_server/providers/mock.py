"""Synthetic provider for local development."""

import random
from datetime import UTC, datetime

from axle_server.core.config import settings
from axle_server.providers.base import HealthProvider, HealthSnapshot


class MockProvider(HealthProvider):
    """Generates plausible daily metrics.

    Registered only when ``MOCK_PROVIDER_ENABLED`` is set.
    """

    provider_id = "mock"

    def __init__(self, *args, rng: random.Random | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.rng = rng or random.Random()

    def has_config(self) -> bool:
        return settings.mock_provider_enabled

    async def fetch_latest(self, user_id: str) -> HealthSnapshot:
        rng = self.rng

        def vary(base: float, spread: float) -> float:
            # +/- spread relative daily variation
            return base * (1 + (rng.random() - 0.5) * spread * 2)

        return HealthSnapshot(
            date=datetime.now(UTC).date(),
            hrv=round(vary(30 + rng.random() * 40, 0.1)),
            resting_hr=round(vary(55 + rng.random() * 20, 0.05)),
            sleep_score=round(vary(70 + rng.random() * 25, 0.05)),
            sleep_hours=round(6 + rng.random() * 2.5, 1),
            stress=round(3 + rng.random() * 4),
            steps=round(vary(5000 + rng.random() * 8000, 0.05)),
            calories=round(vary(1800 + rng.random() * 800, 0.05)),
            raw={"synthetic": True},
        )
