"""Versioned metrics envelope stored on health reports.

Older reports stored a flat camelCase dict (``{"hrv": 42, "restingHR": 58,
"sleepScore": 80, "vitalityScore": 71}``) and some carried nested
``{"recovery": {"score": ..}, "sleep": {"duration": ..}}`` blocks. New reports
store the nested v2 layout. ``MetricsEnvelope.normalize`` is the one place that
understands both; everything else works with the typed model.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from axle_server.core.numbers import to_number

ENVELOPE_VERSION = 2

# v2 field -> legacy flat keys, checked in order
_PROVIDER_ALIASES: dict[str, tuple[str, ...]] = {
    "hrv": ("hrv",),
    "resting_hr": ("resting_hr", "restingHR", "rhr"),
    "sleep_score": ("sleep_score", "sleepScore"),
    "sleep_hours": ("sleep_hours", "sleepHours"),
    "stress": ("stress",),
    "steps": ("steps",),
    "calories": ("calories",),
    "recovery_score": ("recovery_score", "recoveryScore"),
    "fatigue_score": ("fatigue_score", "fatigueScore"),
    "sleep_midpoint_sd": ("sleep_midpoint_sd", "sleepMidpointSd"),
    "wake_time": ("wake_time", "wakeTime"),
}

_AXLE_ALIASES: dict[str, tuple[str, ...]] = {
    "axle_health_score": ("axle_health_score", "axleHealthScore"),
    "vitality_score": ("vitality_score", "vitalityScore", "vitality"),
    "performance_potential": (
        "performance_potential",
        "performancePotential",
        "performancePotentialScore",
    ),
    "circadian_alignment": ("circadian_alignment", "circadianAlignment", "circadianScore"),
    "energy_systems_balance": (
        "energy_systems_balance",
        "energySystemsBalance",
        "energyBalanceScore",
    ),
}


class ProviderMetrics(BaseModel):
    """Raw signals from the wearable (plus fatigue, computed at sync time)."""

    model_config = ConfigDict(extra="ignore")

    hrv: float | None = Field(default=None, description="HRV RMSSD (ms)")
    resting_hr: float | None = Field(default=None, description="Resting heart rate (bpm)")
    sleep_score: float | None = Field(default=None, description="Sleep score 0-100")
    sleep_hours: float | None = Field(default=None, description="Total sleep (hours)")
    stress: float | None = Field(default=None, description="Stress 0-10")
    steps: float | None = Field(default=None, description="Daily steps")
    calories: float | None = Field(default=None, description="Active calories (kcal)")
    recovery_score: float | None = Field(default=None, description="Provider recovery 0-100")
    fatigue_score: float | None = Field(default=None, description="Computed fatigue 0-100")
    sleep_midpoint_sd: float | None = Field(
        default=None, description="Std dev of sleep midpoint (hours)"
    )
    wake_time: str | None = Field(default=None, description="Wake time, HH:MM")
    source: str | None = Field(default=None, description="Provider id")


class WeatherSnapshot(BaseModel):
    """Environment at the user's cached location for the report date."""

    model_config = ConfigDict(extra="ignore")

    lat: float | None = None
    lon: float | None = None
    sunrise: str | None = Field(default=None, description="ISO local time")
    sunset: str | None = Field(default=None, description="ISO local time")
    uv_index: float | None = None
    aqi: int | None = Field(default=None, description="Overall AQI index 1-6")
    temp_c: float | None = None


class AxleScores(BaseModel):
    """Composite scores, each 0-100."""

    model_config = ConfigDict(extra="ignore")

    axle_health_score: int | None = None
    vitality_score: int | None = None
    performance_potential: int | None = None
    circadian_alignment: int | None = None
    energy_systems_balance: int | None = None


class MetricsEnvelope(BaseModel):
    """Typed, versioned contents of ``HealthReport.metrics``."""

    model_config = ConfigDict(extra="ignore")

    version: int = ENVELOPE_VERSION
    provider: ProviderMetrics = Field(default_factory=ProviderMetrics)
    weather: WeatherSnapshot | None = None
    axle: AxleScores = Field(default_factory=AxleScores)

    @classmethod
    def normalize(cls, raw: dict[str, Any] | None) -> "MetricsEnvelope":
        """Build an envelope from any stored metrics payload.

        Args:
            raw: ``HealthReport.metrics`` as loaded from the database (v2 nested,
                legacy flat, or None)

        Returns:
            Typed envelope; unknown or non-numeric values become None
        """
        if not isinstance(raw, dict):
            return cls()

        provider_raw = raw.get("provider") if isinstance(raw.get("provider"), dict) else {}
        axle_raw = raw.get("axle") if isinstance(raw.get("axle"), dict) else {}

        provider: dict[str, Any] = {}
        for field, keys in _PROVIDER_ALIASES.items():
            value = _first(provider_raw, keys)
            if value is None:
                value = _first(raw, keys)
            provider[field] = value

        # Legacy nested blocks
        if provider["recovery_score"] is None:
            provider["recovery_score"] = _nested(raw, "recovery", "score")
        if provider["sleep_hours"] is None:
            provider["sleep_hours"] = _nested(raw, "sleep", "duration")
        if provider["sleep_score"] is None:
            provider["sleep_score"] = _nested(raw, "rawBiometrics", "sleepScore")

        for field in provider:
            if field != "wake_time":
                provider[field] = to_number(provider[field])
        if not isinstance(provider["wake_time"], str):
            provider["wake_time"] = None
        provider["source"] = provider_raw.get("source") or raw.get("source")

        axle: dict[str, Any] = {}
        for field, keys in _AXLE_ALIASES.items():
            value = _first(axle_raw, keys)
            if value is None:
                value = _first(raw, keys)
            number = to_number(value)
            axle[field] = round(number) if number is not None else None

        weather_raw = raw.get("weather") or raw.get("environment")
        weather = (
            WeatherSnapshot.model_validate(weather_raw) if isinstance(weather_raw, dict) else None
        )

        return cls(
            version=ENVELOPE_VERSION,
            provider=ProviderMetrics.model_validate(provider),
            weather=weather,
            axle=AxleScores.model_validate(axle),
        )

    def to_storage(self) -> dict[str, Any]:
        """Serialize for ``HealthReport.metrics``."""
        return self.model_dump(mode="json")

    def merged_over(self, existing: dict[str, Any] | None) -> dict[str, Any]:
        """Merge this envelope over an existing stored payload.

        Keys this envelope sets win; keys only present in ``existing`` (for
        example data written by other tools) are kept.

        Args:
            existing: Previously stored metrics dict

        Returns:
            Dict ready to store
        """
        merged: dict[str, Any] = dict(existing or {})
        for key, value in self.to_storage().items():
            if value is None and key in merged:
                continue
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **{k: v for k, v in value.items() if v is not None}}
            else:
                merged[key] = value
        return merged


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _nested(data: dict[str, Any], outer: str, inner: str) -> Any:
    block = data.get(outer)
    if isinstance(block, dict):
        return block.get(inner)
    return None
