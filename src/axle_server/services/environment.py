"""Environment lookups: sunrise/sunset, weather/UV and air quality.

All sources are free, keyless APIs (Open-Meteo, OpenAQ). Every request has
its own timeout and every failure degrades to None fields; callers treat
a missing value as "no environment data", never as an error.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

import httpx
import structlog

from axle_server.core.config import settings

logger = structlog.get_logger()

FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
OPENAQ_URL = "https://api.openaq.org/v2/measurements"

WEATHER_DAILY_FIELDS = (
    "temperature_2m_mean,relative_humidity_2m_mean,wind_speed_10m_max,"
    "precipitation_probability_mean,uv_index_max"
)

# AQI lookups are slower; give them a bit more time than the other calls
AQI_TIMEOUT_FACTOR = 5 / 3

USER_AGENT = "axle-server/1.0"


@dataclass
class SolarData:
    sunrise: str | None = None
    sunset: str | None = None
    day_length_hours: float | None = None


@dataclass
class WeatherData:
    temperature: float | None = None
    humidity: float | None = None
    wind_speed: float | None = None
    precipitation_probability: float | None = None
    uv_index: float | None = None


@dataclass
class AirQualityData:
    pm25: float | None = None
    pm10: float | None = None
    no2: float | None = None
    o3: float | None = None
    overall_index: int | None = None


@dataclass
class EnvironmentData:
    """Combined environment snapshot for one location and day."""

    day: date
    lat: float | None = None
    lon: float | None = None
    solar: SolarData = field(default_factory=SolarData)
    weather: WeatherData = field(default_factory=WeatherData)
    aqi: AirQualityData = field(default_factory=AirQualityData)

    def to_weather_snapshot(self) -> dict[str, Any]:
        """Fields stored in the metrics envelope's ``weather`` block."""
        return {
            "lat": self.lat,
            "lon": self.lon,
            "sunrise": self.solar.sunrise,
            "sunset": self.solar.sunset,
            "uv_index": self.weather.uv_index,
            "aqi": self.aqi.overall_index,
            "temp_c": self.weather.temperature,
        }


class TTLCache:
    """Tiny in-process cache with per-entry expiry.

    Every ``set`` prunes expired entries and, once ``max_entries`` is reached,
    evicts the entry closest to expiry.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self.cleanup()
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now > expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


def pm25_to_index(pm25: float) -> int:
    """Simplified AQI band (1 good .. 6 hazardous) from PM2.5 in ug/m3."""
    if pm25 <= 12:
        return 1
    if pm25 <= 35:
        return 2
    if pm25 <= 55:
        return 3
    if pm25 <= 150:
        return 4
    if pm25 <= 250:
        return 5
    return 6


class EnvironmentService:
    """Fetches and caches environment data per (lat, lon, day)."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        """Initialize environment service.

        Args:
            transport: httpx transport override (tests use ``httpx.MockTransport``)
            cache: Shared cache; a fresh one is created if omitted
        """
        self.transport = transport
        self.cache = cache or TTLCache(settings.environment_cache_ttl_seconds)
        self.logger = logger.bind(service="environment")

    async def get_environment(
        self,
        lat: float | None,
        lon: float | None,
        day: date,
    ) -> EnvironmentData:
        """Get solar, weather and AQI data for a location and date.

        The three sources are fetched concurrently. Missing coordinates
        short-circuit to an empty result without any network call.

        Args:
            lat: Latitude
            lon: Longitude
            day: Local date of interest

        Returns:
            EnvironmentData; fields are None where a source failed
        """
        if lat is None or lon is None:
            return EnvironmentData(day=day)

        key = self._key(lat, lon, day, "environment")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.environment_timeout_seconds),
            headers={"User-Agent": USER_AGENT},
            transport=self.transport,
        ) as client:
            solar, weather, aqi = await asyncio.gather(
                self.get_solar(client, lat, lon, day),
                self.get_weather(client, lat, lon, day),
                self.get_air_quality(client, lat, lon, day),
            )

        result = EnvironmentData(day=day, lat=lat, lon=lon, solar=solar, weather=weather, aqi=aqi)
        self.cache.set(key, result)
        return result

    async def get_solar(
        self, client: httpx.AsyncClient, lat: float, lon: float, day: date
    ) -> SolarData:
        """Sunrise and sunset (local time, ISO) from Open-Meteo."""
        key = self._key(lat, lon, day, "solar")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        data = await self._fetch_json(
            client,
            FORECAST_URL,
            {
                "latitude": lat,
                "longitude": lon,
                "daily": "sunrise,sunset",
                "timezone": "auto",
                "start_date": day.isoformat(),
                "end_date": day.isoformat(),
            },
        )
        daily = (data or {}).get("daily") or {}
        sunrise = _first(daily.get("sunrise"))
        sunset = _first(daily.get("sunset"))
        if not sunrise or not sunset:
            return SolarData()

        day_length = None
        try:
            delta = datetime.fromisoformat(sunset) - datetime.fromisoformat(sunrise)
            day_length = round(delta.total_seconds() / 3600, 2)
        except (TypeError, ValueError):
            pass  # leave day length unset for odd timestamp formats

        result = SolarData(sunrise=sunrise, sunset=sunset, day_length_hours=day_length)
        self.cache.set(key, result)
        return result

    async def get_weather(
        self, client: httpx.AsyncClient, lat: float, lon: float, day: date
    ) -> WeatherData:
        """Daily weather; past dates use the archive API."""
        key = self._key(lat, lon, day, "weather")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        url = ARCHIVE_URL if day < datetime.now(UTC).date() else FORECAST_URL
        data = await self._fetch_json(
            client,
            url,
            {
                "latitude": lat,
                "longitude": lon,
                "daily": WEATHER_DAILY_FIELDS,
                "timezone": "auto",
                "start_date": day.isoformat(),
                "end_date": day.isoformat(),
            },
        )
        daily = (data or {}).get("daily")
        if not isinstance(daily, dict):
            return WeatherData()

        result = WeatherData(
            temperature=_first(daily.get("temperature_2m_mean")),
            humidity=_first(daily.get("relative_humidity_2m_mean")),
            wind_speed=_first(daily.get("wind_speed_10m_max")),
            precipitation_probability=_first(daily.get("precipitation_probability_mean")),
            uv_index=_first(daily.get("uv_index_max")),
        )
        self.cache.set(key, result)
        return result

    async def get_air_quality(
        self, client: httpx.AsyncClient, lat: float, lon: float, day: date
    ) -> AirQualityData:
        """Average pollutant readings within 50 km, from OpenAQ."""
        key = self._key(lat, lon, day, "aqi")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        data = await self._fetch_json(
            client,
            OPENAQ_URL,
            {
                "coordinates": f"{lat},{lon}",
                "radius": 50000,
                "limit": 100,
                "order_by": "datetime",
                "sort": "desc",
                "date_from": day.isoformat(),
                "date_to": day.isoformat(),
            },
            timeout=settings.environment_timeout_seconds * AQI_TIMEOUT_FACTOR,
        )
        results = (data or {}).get("results")
        if not isinstance(results, list):
            return AirQualityData()

        by_parameter: dict[str, list[float]] = {}
        for measurement in results:
            if not isinstance(measurement, dict):
                continue
            parameter = measurement.get("parameter")
            value = measurement.get("value")
            if parameter and isinstance(value, int | float) and not isinstance(value, bool):
                by_parameter.setdefault(parameter, []).append(float(value))

        def average(parameter: str) -> float | None:
            values = by_parameter.get(parameter)
            return sum(values) / len(values) if values else None

        pm25 = average("pm25")
        result = AirQualityData(
            pm25=pm25,
            pm10=average("pm10"),
            no2=average("no2"),
            o3=average("o3"),
            overall_index=pm25_to_index(pm25) if pm25 is not None else None,
        )
        self.cache.set(key, result)
        return result

    async def _fetch_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any] | None:
        """GET JSON, returning None on any HTTP or decoding failure."""
        try:
            if timeout is not None:
                response = await client.get(url, params=params, timeout=timeout)
            else:
                response = await client.get(url, params=params)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.warning("Environment request failed", url=url, error=str(e))
            return None
        return body if isinstance(body, dict) else None

    @staticmethod
    def _key(lat: float, lon: float, day: date, kind: str) -> str:
        return f"{lat:.4f}|{lon:.4f}|{day.isoformat()}|{kind}"


def _first(values: Any) -> Any:
    if isinstance(values, list) and values:
        return values[0]
    return None
