"""WHOOP developer API (v2) adapter."""

from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from axle_server.core.config import settings
from axle_server.core.numbers import to_number
from axle_server.providers.base import HealthProvider, HealthSnapshot
from axle_server.providers.errors import (
    ProviderError,
    ProviderResponseError,
    ProviderUnavailableError,
)

# 1 kJ = 0.239 kcal
KJ_TO_KCAL = 0.239


class WhoopProvider(HealthProvider):
    """Reads the latest cycle, recovery and sleep records.

    WHOOP has no step count or stress scale, so those stay None; its
    recovery score feeds ``recovery_score`` directly.
    """

    provider_id = "whoop"
    base_url = "https://api.prod.whoop.com/developer/v2"

    def has_config(self) -> bool:
        return bool(settings.whoop_client_id and settings.whoop_client_secret)

    async def fetch_latest(self, user_id: str) -> HealthSnapshot:
        """Fetch the last two days of WHOOP collections and map the newest records.

        A single collection failing is tolerated as long as another one
        returned data; auth failures always propagate.

        Args:
            user_id: User identifier

        Returns:
            Snapshot for today (UTC)

        Raises:
            ProviderAuthError: Token missing or rejected
            ProviderError: Nothing usable came back
        """
        token = await self._access_token(user_id)
        end = datetime.now(UTC)
        params = {
            "limit": 5,
            "start": (end - timedelta(days=2)).isoformat(),
            "end": end.isoformat(),
        }

        latest: dict[str, dict[str, Any] | None] = {}
        first_error: ProviderError | None = None

        async with self._client(token) as client:
            for collection in ("cycle", "recovery", "sleep"):
                try:
                    body = await self._get_json(client, f"/{collection}", params)
                except (ProviderUnavailableError, ProviderResponseError, httpx.TransportError) as e:
                    self.logger.warning(
                        "WHOOP collection fetch failed",
                        user_id=user_id,
                        collection=collection,
                        error=str(e),
                    )
                    if first_error is None:
                        first_error = (
                            e
                            if isinstance(e, ProviderError)
                            else ProviderUnavailableError(self.provider_id, str(e))
                        )
                    latest[collection] = None
                    continue
                records = body.get("records") or []
                first = records[0] if records else None
                latest[collection] = first if isinstance(first, dict) else None

        snapshot = to_snapshot(
            latest.get("cycle"), latest.get("recovery"), latest.get("sleep"), end
        )
        if not snapshot.has_data:
            if first_error is not None:
                raise first_error
            raise ProviderResponseError(self.provider_id, "No WHOOP data in the last 2 days")
        return snapshot


def to_snapshot(
    cycle: dict[str, Any] | None,
    recovery: dict[str, Any] | None,
    sleep: dict[str, Any] | None,
    when: datetime,
) -> HealthSnapshot:
    """Map WHOOP records to a snapshot, tolerating any missing key."""
    cycle_score = (cycle or {}).get("score") or {}
    recovery = recovery or {}
    recovery_score = recovery.get("score") or {}
    sleep_score = (sleep or {}).get("score") or {}
    stages = sleep_score.get("stage_summary") or {}

    hrv = to_number(recovery_score.get("hrv_rmssd_milli")) or to_number(
        recovery.get("hrv_rmssd_milli")
    )
    resting_hr = to_number(recovery_score.get("resting_heart_rate")) or to_number(
        recovery.get("resting_heart_rate")
    )

    kilojoules = to_number(cycle_score.get("kilojoule"))
    calories = round(kilojoules * KJ_TO_KCAL) if kilojoules else None

    sleep_hours = None
    in_bed = to_number(stages.get("total_in_bed_time_milli"))
    if in_bed:
        awake = to_number(stages.get("total_awake_time_milli")) or 0.0
        sleep_hours = round((in_bed - awake) / 3_600_000, 2)

    wake_time = None
    sleep_end = (sleep or {}).get("end")
    if isinstance(sleep_end, str):
        try:
            wake_time = datetime.fromisoformat(sleep_end.replace("Z", "+00:00")).strftime("%H:%M")
        except ValueError:
            wake_time = None

    return HealthSnapshot(
        date=when.date(),
        hrv=hrv,
        resting_hr=resting_hr,
        sleep_score=to_number(sleep_score.get("sleep_performance_percentage")),
        sleep_hours=sleep_hours,
        calories=calories,
        recovery_score=to_number(recovery_score.get("recovery_score")),
        wake_time=wake_time,
        raw={"cycle": cycle, "recovery": recovery or None, "sleep": sleep},
    )
