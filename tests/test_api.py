"""API endpoint tests."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from litestar.status_codes import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)
from litestar.testing import AsyncTestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from axle_server.app import create_app
from axle_server.core.config import settings
from axle_server.services.daily_job import DailySuggestionJob
from axle_server.services.environment import EnvironmentService
from axle_server.services.scheduler import SuggestionScheduler
from tests.fixtures import make_report, make_workout

NOW_DAY = datetime.now(UTC).date()
PREFIX = settings.api_prefix


@pytest.fixture
async def client(
    async_engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    offline_environment: EnvironmentService,
) -> AsyncIterator[AsyncTestClient]:
    """Test client wired to the in-memory database."""
    job = DailySuggestionJob(
        session_factory=session_factory,
        providers={},
        environment=offline_environment,
    )
    app = create_app(db_engine=async_engine, scheduler=SuggestionScheduler(job))
    async with AsyncTestClient(app=app) as test_client:
        yield test_client


async def test_health_check(client: AsyncTestClient) -> None:
    response = await client.get("/health")

    assert response.status_code == HTTP_200_OK
    data = response.json()
    assert data["status"] == "ok"
    assert "version" in data


class TestSuggestions:
    async def test_get_today_creates_once(
        self, client: AsyncTestClient, async_session: AsyncSession
    ) -> None:
        async_session.add(make_workout("u1", 1, category="Powerlifting", today=NOW_DAY))
        await async_session.commit()

        first = await client.get(f"{PREFIX}/users/u1/suggestions/today")
        second = await client.get(f"{PREFIX}/users/u1/suggestions/today")

        assert first.status_code == HTTP_200_OK
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        suggestion = first.json()["suggestion"]
        assert suggestion["id"] == second.json()["suggestion"]["id"]
        assert suggestion["request"]["category"] == "Cardio"
        assert suggestion["source"] == "on_demand"
        assert suggestion["date"] == NOW_DAY.isoformat()

    async def test_start_once_then_conflict(self, client: AsyncTestClient) -> None:
        await client.get(f"{PREFIX}/users/u1/suggestions/today")
        url = f"{PREFIX}/users/u1/suggestions/today/start"

        started = await client.post(url, json={"workout_id": "w-1"})
        again = await client.post(url, json={"workout_id": "w-2"})

        assert started.status_code == HTTP_200_OK
        assert started.json()["suggestion"]["workout_id"] == "w-1"
        assert again.status_code == HTTP_409_CONFLICT

    async def test_start_without_suggestion_is_404(self, client: AsyncTestClient) -> None:
        response = await client.post(
            f"{PREFIX}/users/nobody/suggestions/today/start", json={"workout_id": "w-1"}
        )

        assert response.status_code == HTTP_404_NOT_FOUND

    async def test_start_requires_workout_id(self, client: AsyncTestClient) -> None:
        response = await client.post(f"{PREFIX}/users/u1/suggestions/today/start", json={})

        assert response.status_code == HTTP_400_BAD_REQUEST


class TestHealth:
    async def test_sync_without_wearables(self, client: AsyncTestClient) -> None:
        response = await client.post(f"{PREFIX}/users/u1/health/sync")

        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "skipped_no_wearables"

    async def test_reports_are_normalized(
        self, client: AsyncTestClient, async_session: AsyncSession
    ) -> None:
        async_session.add_all(
            [
                make_report("u1", NOW_DAY - timedelta(days=1), {"hrv": 44, "sleepScore": 81}),
                make_report("u1", NOW_DAY - timedelta(days=60), {"hrv": 30}),
            ]
        )
        await async_session.commit()

        response = await client.get(f"{PREFIX}/users/u1/health/reports", params={"days": 7})

        assert response.status_code == HTTP_200_OK
        reports = response.json()
        assert len(reports) == 1
        assert reports[0]["metrics"]["provider"]["hrv"] == 44.0
        assert reports[0]["metrics"]["provider"]["sleep_score"] == 81.0

    async def test_reports_days_validated(self, client: AsyncTestClient) -> None:
        response = await client.get(f"{PREFIX}/users/u1/health/reports", params={"days": 0})

        assert response.status_code == HTTP_400_BAD_REQUEST


class TestAdmin:
    async def test_manual_run_and_status(
        self, client: AsyncTestClient, async_session: AsyncSession
    ) -> None:
        async_session.add(make_workout("u1", 2, today=NOW_DAY))
        await async_session.commit()

        run = await client.post(f"{PREFIX}/admin/jobs/daily-suggestions/run")

        assert run.status_code == HTTP_200_OK
        body = run.json()
        assert body["processed"] == 1
        assert body["created"] == 1
        assert body["errors"] == 0
        assert "duration_ms" in body

        status = await client.get(f"{PREFIX}/admin/jobs/daily-suggestions/status")

        assert status.status_code == HTTP_200_OK
        data = status.json()
        assert data["suggestions_today"] == 1
        assert data["recent_runs"][0]["trigger"] == "manual"
        assert data["scheduler"]["last_run_stats"]["created"] == 1

    async def test_failed_manual_run_is_a_server_error(
        self, client: AsyncTestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            DailySuggestionJob,
            "active_user_ids",
            AsyncMock(side_effect=RuntimeError("database unavailable")),
        )

        run = await client.post(f"{PREFIX}/admin/jobs/daily-suggestions/run")

        assert run.status_code == HTTP_500_INTERNAL_SERVER_ERROR
        status = await client.get(f"{PREFIX}/admin/jobs/daily-suggestions/status")
        data = status.json()
        assert data["scheduler"]["last_run_stats"]["error"] == "database unavailable"
        assert data["recent_runs"][0]["status"] == "failed"

    async def test_admin_key_required_when_configured(
        self, client: AsyncTestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "api_key", "admin-secret")
        url = f"{PREFIX}/admin/jobs/daily-suggestions/status"

        missing = await client.get(url)
        wrong = await client.get(url, headers={"X-API-Key": "nope"})
        ok = await client.get(url, headers={"X-API-Key": "admin-secret"})
        bearer = await client.get(url, headers={"Authorization": "Bearer admin-secret"})

        assert missing.status_code == HTTP_401_UNAUTHORIZED
        assert wrong.status_code == HTTP_401_UNAUTHORIZED
        assert ok.status_code == HTTP_200_OK
        assert bearer.status_code == HTTP_200_OK
