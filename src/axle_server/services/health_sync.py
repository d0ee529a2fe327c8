"""Health sync: wearable fetch -> fatigue -> environment -> Axle -> daily report.

One pass per user per day. The existing-report check makes repeated calls
for the same day no-ops, and each connected provider is tried in turn
until one succeeds. A provider failure only marks that connection as
errored; it never aborts the user's pass.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from axle_server.core.config import settings
from axle_server.core.database import dialect_insert
from axle_server.core.security import get_token_encryption
from axle_server.models.base import generate_uuid
from axle_server.models.health_report import HealthReport
from axle_server.models.profile import Profile
from axle_server.models.wearable import ConnectionStatus, WearableConnection
from axle_server.models.workout import Workout
from axle_server.providers import (
    HealthProvider,
    HealthSnapshot,
    ProviderErrorHandler,
    ProviderNotConfiguredError,
    build_provider_registry,
)
from axle_server.schemas.metrics import MetricsEnvelope, ProviderMetrics, WeatherSnapshot
from axle_server.services.axle import AxleService
from axle_server.services.environment import EnvironmentService
from axle_server.services.fatigue import compute_fatigue

logger = structlog.get_logger()

FATIGUE_WINDOW_DAYS = 14

# Shared across syncs so the environment cache survives between users
_default_environment: EnvironmentService | None = None


def get_environment_service() -> EnvironmentService:
    """Process-wide environment service (and cache)."""
    global _default_environment
    if _default_environment is None:
        _default_environment = EnvironmentService()
    return _default_environment


class HealthSyncStatus(str, Enum):
    """Outcome of one user's health sync."""

    SKIPPED_NO_WEARABLES = "skipped_no_wearables"
    SKIPPED_EXISTING_REPORT = "skipped_existing_report"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass
class HealthSyncResult:
    """Result of ``HealthSyncService.sync_user``.

    Attributes:
        status: Outcome
        provider: Provider whose data was stored (when synced)
        errors: Provider id -> error message for every failed provider
        report_id: Health report written (when synced)
    """

    status: HealthSyncStatus
    provider: str | None = None
    errors: dict[str, str] = field(default_factory=dict)
    report_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "provider": self.provider,
            "errors": self.errors,
            "report_id": self.report_id,
        }


class WearableTokenStore:
    """Decrypts wearable access tokens for provider adapters."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def access_token(self, user_id: str, provider: str) -> str | None:
        stmt = select(WearableConnection.access_token_encrypted).where(
            WearableConnection.user_id == user_id,
            func.lower(WearableConnection.provider) == provider.lower(),
        )
        encrypted = (await self.session.execute(stmt)).scalar_one_or_none()
        if not encrypted:
            return None
        return get_token_encryption().decrypt(encrypted)


class HealthSyncService:
    """Runs the daily health sync for a user.

    Usage:
        async with get_session() as session:
            service = HealthSyncService(session)
            result = await service.sync_user(user_id)
    """

    def __init__(
        self,
        session: AsyncSession,
        providers: dict[str, HealthProvider] | None = None,
        environment: EnvironmentService | None = None,
    ) -> None:
        """Initialize health sync service.

        Args:
            session: Database session
            providers: Provider registry (defaults to every known adapter)
            environment: Environment service (defaults to the shared one)
        """
        self.session = session
        self.providers = (
            providers
            if providers is not None
            else build_provider_registry(WearableTokenStore(session).access_token)
        )
        self.environment = environment or get_environment_service()
        self.axle = AxleService(session)
        self.error_handler = ProviderErrorHandler()
        self.logger = logger.bind(service="health_sync")

    async def sync_user(
        self,
        user_id: str,
        today: date | None = None,
        force: bool = False,
    ) -> HealthSyncResult:
        """Sync today's wearable data for a user and write the daily report.

        Args:
            user_id: User identifier
            today: Report date (defaults to today, UTC)
            force: Re-fetch even if today's report exists (merges into it)

        Returns:
            HealthSyncResult describing what happened
        """
        today = today or datetime.now(UTC).date()
        log = self.logger.bind(user_id=user_id, date=today.isoformat())

        connections = await self._connected_wearables(user_id)
        if not connections:
            log.debug("No connected wearables")
            return HealthSyncResult(status=HealthSyncStatus.SKIPPED_NO_WEARABLES)

        if not force and await self.get_report(user_id, today) is not None:
            log.debug("Health report already exists")
            return HealthSyncResult(status=HealthSyncStatus.SKIPPED_EXISTING_REPORT)

        errors: dict[str, str] = {}

        for connection in connections:
            provider_id = connection.provider.lower()
            provider = self.providers.get(provider_id)

            try:
                if provider is None:
                    raise ProviderNotConfiguredError(provider_id, "Unknown provider")
                if not provider.has_config():
                    raise ProviderNotConfiguredError(provider_id, "Missing app credentials")

                snapshot = await asyncio.wait_for(
                    provider.fetch_latest(user_id),
                    timeout=settings.provider_timeout_seconds,
                )
            except Exception as e:
                failure = self.error_handler.classify(
                    e, provider=provider_id, context={"user_id": user_id}
                )
                errors[provider_id] = failure.message
                connection.status = ConnectionStatus.ERROR.value
                connection.error = failure.message
                await self.session.commit()
                continue

            report = await self._store_snapshot(user_id, today, provider_id, snapshot)

            connection.status = ConnectionStatus.CONNECTED.value
            connection.error = None
            connection.last_sync = datetime.now(UTC)
            await self.session.commit()

            log.info("Health sync complete", provider=provider_id, report_id=report.id)
            return HealthSyncResult(
                status=HealthSyncStatus.SYNCED,
                provider=provider_id,
                errors=errors,
                report_id=report.id,
            )

        log.warning("All providers failed", errors=errors)
        return HealthSyncResult(status=HealthSyncStatus.FAILED, errors=errors)

    async def get_report(self, user_id: str, day: date) -> HealthReport | None:
        """Return the user's report for a day, if any."""
        stmt = select(HealthReport).where(
            HealthReport.user_id == user_id,
            HealthReport.date == day,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_reports(self, user_id: str, days: int = 30) -> list[HealthReport]:
        """Reports from the last ``days`` days, newest first."""
        since = datetime.now(UTC).date() - timedelta(days=days)
        stmt = (
            select(HealthReport)
            .where(HealthReport.user_id == user_id)
            .where(HealthReport.date >= since)
            .order_by(HealthReport.date.desc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def upsert_report(
        self,
        user_id: str,
        day: date,
        envelope: MetricsEnvelope,
        summary: str | None = None,
        suggestions: list[str] | None = None,
        fatigue_score: float | None = None,
    ) -> HealthReport:
        """Insert or update the (user, day) report, merging metrics.

        Args:
            user_id: User identifier
            day: Report date
            envelope: New metrics; merged over any stored payload
            summary: One-line summary
            suggestions: Human-readable tips
            fatigue_score: Fatigue 0-100

        Returns:
            The stored report
        """
        existing = await self.get_report(user_id, day)
        metrics = envelope.merged_over(existing.metrics if existing else None)
        now = datetime.now(UTC)

        stmt = dialect_insert(self.session, HealthReport).values(
            id=generate_uuid(),
            user_id=user_id,
            date=day,
            metrics=metrics,
            summary=summary,
            suggestions=suggestions or [],
            fatigue_score=fatigue_score,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "date"],
            set_={
                "metrics": stmt.excluded.metrics,
                "summary": stmt.excluded.summary,
                "suggestions": stmt.excluded.suggestions,
                "fatigue_score": stmt.excluded.fatigue_score,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()

        if existing is not None:
            await self.session.refresh(existing)
            return existing
        report = await self.get_report(user_id, day)
        if report is None:
            raise ValueError(f"Health report for {user_id} on {day} was not stored")
        return report

    async def _connected_wearables(self, user_id: str) -> list[WearableConnection]:
        stmt = (
            select(WearableConnection)
            .where(WearableConnection.user_id == user_id)
            .where(WearableConnection.connected.is_(True))
            .order_by(WearableConnection.created_at, WearableConnection.provider)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def _store_snapshot(
        self,
        user_id: str,
        today: date,
        provider_id: str,
        snapshot: HealthSnapshot,
    ) -> HealthReport:
        since = datetime.combine(today, time.min, tzinfo=UTC) - timedelta(days=FATIGUE_WINDOW_DAYS)
        stmt = (
            select(Workout)
            .where(Workout.user_id == user_id)
            .where(Workout.created_at >= since)
            .order_by(Workout.created_at.desc())
        )
        recent = list((await self.session.execute(stmt)).scalars().all())
        fatigue = compute_fatigue(snapshot, recent)

        weather = await self._weather_for(user_id, today)

        provider_metrics = ProviderMetrics(
            hrv=snapshot.hrv,
            resting_hr=snapshot.resting_hr,
            sleep_score=snapshot.sleep_score,
            sleep_hours=snapshot.sleep_hours,
            stress=snapshot.stress,
            steps=snapshot.steps,
            calories=snapshot.calories,
            recovery_score=snapshot.recovery_score,
            fatigue_score=round(fatigue * 100, 1),
            sleep_midpoint_sd=snapshot.sleep_midpoint_sd,
            wake_time=snapshot.wake_time,
            source=provider_id,
        )
        axle, _ = await self.axle.compute(user_id, today, provider_metrics, weather)
        envelope = MetricsEnvelope(provider=provider_metrics, weather=weather, axle=axle)

        return await self.upsert_report(
            user_id,
            today,
            envelope,
            summary=build_summary(envelope),
            suggestions=build_tips(envelope),
            fatigue_score=provider_metrics.fatigue_score,
        )

    async def _weather_for(self, user_id: str, today: date) -> WeatherSnapshot | None:
        profile = await self.session.get(Profile, user_id)
        location = profile.location if profile else None
        if location is None:
            return None

        lat, lon = location
        try:
            env = await self.environment.get_environment(lat, lon, today)
        except Exception as e:
            self.logger.warning(
                "Environment fetch failed, continuing without weather",
                user_id=user_id,
                error=str(e),
            )
            return None
        return WeatherSnapshot.model_validate(env.to_weather_snapshot())


def build_summary(envelope: MetricsEnvelope) -> str:
    """One-line human summary of a day's metrics."""
    parts = []
    axle = envelope.axle
    if axle.axle_health_score is not None:
        parts.append(f"Axle {axle.axle_health_score}/100")
    provider = envelope.provider
    if provider.recovery_score is not None:
        parts.append(f"Recovery {round(provider.recovery_score)}/100")
    if provider.sleep_hours is not None:
        parts.append(f"Sleep {provider.sleep_hours:.1f}h")
    elif provider.sleep_score is not None:
        parts.append(f"Sleep score {round(provider.sleep_score)}")
    if provider.fatigue_score is not None:
        parts.append(f"Fatigue {round(provider.fatigue_score)}/100")
    return ", ".join(parts) or "No metrics available"


def build_tips(envelope: MetricsEnvelope) -> list[str]:
    """Short recommendations derived from the scores."""
    tips: list[str] = []
    provider = envelope.provider
    axle = envelope.axle

    if provider.fatigue_score is not None and provider.fatigue_score >= 70:
        tips.append("Fatigue is high: favour mobility or easy aerobic work today.")
    if provider.sleep_score is not None and provider.sleep_score < 60:
        tips.append("Sleep was poor: aim for an earlier night.")
    if axle.performance_potential is not None and axle.performance_potential >= 85:
        tips.append("Readiness is high: a good day for a hard session.")
    if axle.energy_systems_balance is not None and axle.energy_systems_balance < 40:
        tips.append("Training has been lopsided: mix easy and hard sessions this week.")
    return tips
