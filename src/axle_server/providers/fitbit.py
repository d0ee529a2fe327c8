"""Fitbit Web API adapter."""

from datetime import UTC, datetime
from typing import Any

from axle_server.core.config import settings
from axle_server.core.numbers import to_number
from axle_server.providers.base import HealthProvider, HealthSnapshot
from axle_server.providers.errors import ProviderError, ProviderResponseError


class FitbitProvider(HealthProvider):
    """Reads today's activity summary, resting HR, main sleep and HRV.

    Fitbit's public API has no composite sleep score or stress value; sleep
    efficiency stands in for the sleep score.
    """

    provider_id = "fitbit"
    base_url = "https://api.fitbit.com"

    def has_config(self) -> bool:
        return bool(settings.fitbit_client_id and settings.fitbit_client_secret)

    async def fetch_latest(self, user_id: str) -> HealthSnapshot:
        """Fetch today's Fitbit data.

        Args:
            user_id: User identifier

        Returns:
            Snapshot dated today (UTC)
        """
        token = await self._access_token(user_id)
        today = datetime.now(UTC).date()
        day = today.isoformat()

        async with self._client(token) as client:
            activity = await self._get_json(client, f"/1/user/-/activities/date/{day}.json")
            sleep = await self._get_json(client, f"/1.2/user/-/sleep/date/{day}.json")

            # HRV is supplementary; the rest of the snapshot stands without it
            try:
                hrv_body = await self._get_json(client, f"/1/user/-/hrv/date/{day}.json")
            except ProviderError as e:
                self.logger.info("Fitbit HRV unavailable", user_id=user_id, error=str(e))
                hrv_body = {}

        summary = activity.get("summary") or {}
        main_sleep = _main_sleep(sleep.get("sleep") or [])
        hrv_entries = hrv_body.get("hrv") or []
        hrv_value = (hrv_entries[0].get("value") or {}) if hrv_entries else {}

        duration_ms = to_number(main_sleep.get("duration"))
        snapshot = HealthSnapshot(
            date=today,
            steps=to_number(summary.get("steps")),
            calories=to_number(summary.get("activityCalories")),
            resting_hr=to_number(summary.get("restingHeartRate")),
            sleep_score=to_number(main_sleep.get("efficiency")),
            sleep_hours=round(duration_ms / 3_600_000, 2) if duration_ms else None,
            wake_time=_clock(main_sleep.get("endTime")),
            hrv=to_number(hrv_value.get("dailyRmssd")),
            raw={"summary": summary or None, "sleep": main_sleep or None},
        )
        if not snapshot.has_data:
            raise ProviderResponseError(self.provider_id, f"No Fitbit data for {day}")
        return snapshot


def _main_sleep(entries: list[Any]) -> dict[str, Any]:
    logs = [e for e in entries if isinstance(e, dict)]
    for entry in logs:
        if entry.get("isMainSleep"):
            return entry
    return logs[0] if logs else {}


def _clock(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value).strftime("%H:%M")
    except ValueError:
        return None
