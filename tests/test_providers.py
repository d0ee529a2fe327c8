"""Tests for wearable provider adapters and error classification."""

import asyncio
from datetime import UTC, datetime

import httpx
import pytest

from axle_server.core.config import settings
from axle_server.providers import (
    FitbitProvider,
    GarminProvider,
    OuraProvider,
    ProviderAuthError,
    ProviderErrorHandler,
    ProviderErrorType,
    ProviderNotConfiguredError,
    ProviderResponseError,
    ProviderUnavailableError,
    WhoopProvider,
    build_provider_registry,
)
from axle_server.providers.whoop import to_snapshot


async def _token(user_id: str, provider: str) -> str | None:
    return "token-123"


async def _no_token(user_id: str, provider: str) -> str | None:
    return None


WHOOP_RESPONSES = {
    "/developer/v2/cycle": {"records": [{"score": {"kilojoule": 10000}}]},
    "/developer/v2/recovery": {
        "records": [
            {"score": {"recovery_score": 67, "hrv_rmssd_milli": 48.2, "resting_heart_rate": 54}}
        ]
    },
    "/developer/v2/sleep": {
        "records": [
            {
                "end": "2026-03-10T06:52:00.000Z",
                "score": {
                    "sleep_performance_percentage": 91,
                    "stage_summary": {
                        "total_in_bed_time_milli": 8 * 3_600_000,
                        "total_awake_time_milli": 30 * 60_000,
                    },
                },
            }
        ]
    },
}


class TestWhoop:
    async def test_fetch_latest_maps_records(self) -> None:
        seen_auth: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_auth.append(request.headers["Authorization"])
            return httpx.Response(200, json=WHOOP_RESPONSES[request.url.path])

        provider = WhoopProvider(_token, httpx.MockTransport(handler))
        snapshot = await provider.fetch_latest("u1")

        assert seen_auth == ["Bearer token-123"] * 3
        assert snapshot.recovery_score == 67
        assert snapshot.hrv == 48.2
        assert snapshot.resting_hr == 54
        assert snapshot.sleep_score == 91
        assert snapshot.sleep_hours == 7.5
        assert snapshot.calories == 2390
        assert snapshot.wake_time == "06:52"
        assert snapshot.steps is None

    async def test_one_collection_failing_is_tolerated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/sleep"):
                return httpx.Response(503)
            return httpx.Response(200, json=WHOOP_RESPONSES[request.url.path])

        snapshot = await WhoopProvider(_token, httpx.MockTransport(handler)).fetch_latest("u1")

        assert snapshot.recovery_score == 67
        assert snapshot.sleep_score is None

    async def test_everything_failing_raises_first_error(self) -> None:
        provider = WhoopProvider(_token, httpx.MockTransport(lambda r: httpx.Response(502)))

        with pytest.raises(ProviderUnavailableError):
            await provider.fetch_latest("u1")

    async def test_rejected_token_raises_auth_error(self) -> None:
        provider = WhoopProvider(_token, httpx.MockTransport(lambda r: httpx.Response(401)))

        with pytest.raises(ProviderAuthError):
            await provider.fetch_latest("u1")

    async def test_missing_token(self) -> None:
        provider = WhoopProvider(_no_token, httpx.MockTransport(lambda r: httpx.Response(200)))

        with pytest.raises(ProviderAuthError):
            await provider.fetch_latest("u1")

    def test_to_snapshot_tolerates_missing_records(self) -> None:
        snapshot = to_snapshot(None, None, None, datetime(2026, 3, 10, tzinfo=UTC))
        assert not snapshot.has_data


class TestOura:
    async def test_fetch_latest_uses_newest_day(self) -> None:
        today = datetime.now(UTC).date().isoformat()
        data = {
            "daily_sleep": [{"day": "2000-01-01", "score": 60}, {"day": today, "score": 84}],
            "sleep": [
                {"day": today, "type": "rest", "average_hrv": 10},
                {
                    "day": today,
                    "type": "long_sleep",
                    "average_hrv": 52,
                    "lowest_heart_rate": 49,
                    "total_sleep_duration": 27000,
                    "bedtime_end": "2026-03-10T07:05:00+01:00",
                },
            ],
            "daily_readiness": [{"day": today, "score": 78}],
            "daily_activity": [{"day": today, "steps": 8400, "active_calories": 450}],
            "daily_stress": [{"day": today, "stress_high": 3600, "recovery_high": 5400}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            endpoint = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"data": data[endpoint]})

        snapshot = await OuraProvider(_token, httpx.MockTransport(handler)).fetch_latest("u1")

        assert snapshot.sleep_score == 84
        assert snapshot.hrv == 52
        assert snapshot.resting_hr == 49
        assert snapshot.sleep_hours == 7.5
        assert snapshot.recovery_score == 78
        assert snapshot.steps == 8400
        assert snapshot.stress == 4.0
        assert snapshot.wake_time == "07:05"

    async def test_empty_collections_raise(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"data": []}))

        with pytest.raises(ProviderResponseError):
            await OuraProvider(_token, transport).fetch_latest("u1")


class TestFitbit:
    async def test_hrv_failure_does_not_fail_fetch(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if "/hrv/" in path:
                return httpx.Response(404)
            if "/activities/" in path:
                return httpx.Response(
                    200,
                    json={
                        "summary": {
                            "steps": 12000,
                            "restingHeartRate": 57,
                            "activityCalories": 700,
                        }
                    },
                )
            return httpx.Response(
                200,
                json={
                    "sleep": [
                        {"isMainSleep": False, "efficiency": 50},
                        {
                            "isMainSleep": True,
                            "efficiency": 93,
                            "duration": 7 * 3_600_000,
                            "endTime": "2026-03-10T06:30:00.000",
                        },
                    ]
                },
            )

        snapshot = await FitbitProvider(_token, httpx.MockTransport(handler)).fetch_latest("u1")

        assert snapshot.steps == 12000
        assert snapshot.resting_hr == 57
        assert snapshot.sleep_score == 93
        assert snapshot.sleep_hours == 7.0
        assert snapshot.wake_time == "06:30"
        assert snapshot.hrv is None


async def test_garmin_is_not_supported() -> None:
    with pytest.raises(ProviderNotConfiguredError):
        await GarminProvider(_token).fetch_latest("u1")


def test_registry_contains_every_adapter(monkeypatch: pytest.MonkeyPatch) -> None:
    registry = build_provider_registry(_token)

    assert set(registry) == {"fitbit", "oura", "whoop", "garmin", "mock"}

    monkeypatch.setattr(settings, "oura_client_id", None)
    assert not registry["oura"].has_config()
    monkeypatch.setattr(settings, "oura_client_id", "id")
    monkeypatch.setattr(settings, "oura_client_secret", "secret")
    assert registry["oura"].has_config()


class TestErrorHandler:
    @pytest.fixture
    def handler(self) -> ProviderErrorHandler:
        return ProviderErrorHandler()

    @pytest.mark.parametrize(
        ("exception", "expected"),
        [
            (ProviderNotConfiguredError("oura", "no creds"), ProviderErrorType.NOT_CONFIGURED),
            (ProviderAuthError("oura", "bad token", 401), ProviderErrorType.AUTH_FAILED),
            (ProviderUnavailableError("oura", "slow down", 429), ProviderErrorType.RATE_LIMITED),
            (ProviderUnavailableError("oura", "down", 503), ProviderErrorType.API_UNAVAILABLE),
            (ProviderResponseError("oura", "garbage"), ProviderErrorType.INVALID_RESPONSE),
            (asyncio.TimeoutError(), ProviderErrorType.API_TIMEOUT),
            (httpx.ReadTimeout("timeout"), ProviderErrorType.API_TIMEOUT),
            (httpx.ConnectError("refused"), ProviderErrorType.API_UNAVAILABLE),
            (KeyError("score"), ProviderErrorType.INVALID_RESPONSE),
            (RuntimeError("boom"), ProviderErrorType.INTERNAL_ERROR),
        ],
    )
    def test_classification(
        self,
        handler: ProviderErrorHandler,
        exception: Exception,
        expected: ProviderErrorType,
    ) -> None:
        failure = handler.classify(exception, provider="oura", context={"user_id": "u1"})

        assert failure.error_type == expected
        assert failure.provider == "oura"
        assert failure.message
        assert failure.to_log_dict()["user_id"] == "u1"

    def test_http_status_error(self, handler: ProviderErrorHandler) -> None:
        request = httpx.Request("GET", "https://api.example.com/x")
        response = httpx.Response(403, request=request)
        error = httpx.HTTPStatusError("forbidden", request=request, response=response)

        failure = handler.classify(error, provider="fitbit")

        assert failure.error_type == ProviderErrorType.AUTH_FAILED
        assert failure.details["status_code"] == 403

    def test_transient_flag(self, handler: ProviderErrorHandler) -> None:
        assert handler.classify(asyncio.TimeoutError(), provider="whoop").is_transient
        assert not handler.classify(ProviderAuthError("whoop", "x"), provider="whoop").is_transient
