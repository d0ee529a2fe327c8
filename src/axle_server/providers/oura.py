"""Oura Ring API v2 adapter."""

from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from axle_server.core.config import settings
from axle_server.core.numbers import to_number
from axle_server.providers.base import HealthProvider, HealthSnapshot
from axle_server.providers.errors import ProviderResponseError


class OuraProvider(HealthProvider):
    """Reads daily sleep, readiness, activity and stress summaries."""

    provider_id = "oura"
    base_url = "https://api.ouraring.com/v2/usercollection"

    def has_config(self) -> bool:
        return bool(settings.oura_client_id and settings.oura_client_secret)

    async def _fetch_endpoint(
        self, client: httpx.AsyncClient, endpoint: str, start: str, end: str
    ) -> list[dict[str, Any]]:
        body = await self._get_json(client, f"/{endpoint}", {"start_date": start, "end_date": end})
        return [d for d in body.get("data", []) if isinstance(d, dict)]

    async def fetch_latest(self, user_id: str) -> HealthSnapshot:
        """Fetch yesterday and today from Oura and keep the newest day per collection.

        Args:
            user_id: User identifier

        Returns:
            Snapshot dated today (UTC)
        """
        token = await self._access_token(user_id)
        today = datetime.now(UTC).date()
        start = (today - timedelta(days=1)).isoformat()
        end = today.isoformat()

        async with self._client(token) as client:
            daily_sleep = await self._fetch_endpoint(client, "daily_sleep", start, end)
            sleep = await self._fetch_endpoint(client, "sleep", start, end)
            readiness = await self._fetch_endpoint(client, "daily_readiness", start, end)
            activity = await self._fetch_endpoint(client, "daily_activity", start, end)
            stress = await self._fetch_endpoint(client, "daily_stress", start, end)

        latest_sleep = _latest(sleep, long_sleep_only=True)
        latest_stress = _latest(stress)

        snapshot = HealthSnapshot(
            date=today,
            sleep_score=to_number(_latest(daily_sleep).get("score")),
            recovery_score=to_number(_latest(readiness).get("score")),
            steps=to_number(_latest(activity).get("steps")),
            calories=to_number(_latest(activity).get("active_calories")),
            hrv=to_number(latest_sleep.get("average_hrv")),
            resting_hr=to_number(latest_sleep.get("lowest_heart_rate")),
            sleep_hours=_seconds_to_hours(latest_sleep.get("total_sleep_duration")),
            wake_time=_clock(latest_sleep.get("bedtime_end")),
            stress=_stress_scale(latest_stress),
            raw={"sleep": latest_sleep or None, "stress": latest_stress or None},
        )
        if not snapshot.has_data:
            raise ProviderResponseError(self.provider_id, "No Oura data for the last 2 days")
        return snapshot


def _latest(records: list[dict[str, Any]], long_sleep_only: bool = False) -> dict[str, Any]:
    if long_sleep_only:
        records = [r for r in records if r.get("type") in (None, "long_sleep")] or records
    dated = [r for r in records if isinstance(r.get("day"), str)]
    if not dated:
        return {}
    return max(dated, key=lambda r: r["day"])


def _seconds_to_hours(value: Any) -> float | None:
    seconds = to_number(value)
    return round(seconds / 3600, 2) if seconds else None


def _clock(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%H:%M")
    except ValueError:
        return None


def _stress_scale(record: dict[str, Any]) -> float | None:
    """Share of high-stress time vs high-recovery time, on a 0-10 scale."""
    high = to_number(record.get("stress_high"))
    recovery = to_number(record.get("recovery_high"))
    if high is None or recovery is None or high + recovery == 0:
        return None
    return round(high / (high + recovery) * 10, 1)
