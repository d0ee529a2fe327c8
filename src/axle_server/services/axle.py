"""Axle score composition.

Turns a day's provider metrics, environment and workout history into the
``axle`` block of the metrics envelope.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from axle_server.models.workout import Workout
from axle_server.schemas.metrics import AxleScores, ProviderMetrics, WeatherSnapshot
from axle_server.services.baseline import BaselineService
from axle_server.services.scoring import (
    ZoneMinutes,
    score_circadian,
    score_energy_balance,
    score_performance_potential,
    score_vitality,
)

logger = structlog.get_logger()

ZONE_WINDOW_DAYS = 14

# Steps in the first two hours after waking, as a share of daily steps
MORNING_STEP_SHARE = 0.2


@dataclass
class DerivedMetrics:
    """Training load derived from workout history."""

    strain_24h: float | None = None
    strain_48h: float | None = None
    rpe_24h: float | None = None
    zone_minutes_14d: ZoneMinutes | None = None
    steps_first_2h: int | None = None


def zone_for_intensity(intensity: int) -> int:
    """Map a 1-10 workout intensity onto a heart-rate zone (1-5)."""
    if intensity <= 3:
        return 1
    if intensity <= 5:
        return 2
    if intensity <= 6:
        return 3
    if intensity <= 8:
        return 4
    return 5


def derive_metrics(
    workouts: list[Workout],
    day: date,
    steps: float | None,
) -> DerivedMetrics:
    """Compute strain, RPE and zone minutes from workouts before ``day``.

    Args:
        workouts: Workouts from at least the 14 days before ``day``
        day: Report date; only workouts strictly before its midnight count
        steps: Daily steps, for the morning-steps proxy

    Returns:
        DerivedMetrics (fields are None when there is nothing to derive)
    """
    day_start = datetime.combine(day, time.min, tzinfo=UTC)
    since_24h = day_start - timedelta(days=1)
    since_48h = day_start - timedelta(days=2)
    since_14d = day_start - timedelta(days=ZONE_WINDOW_DAYS)

    strain_24h = 0.0
    strain_48h = 0.0
    rpe_values: list[float] = []
    zones = [0.0] * 5
    any_zone_workouts = False

    for workout in workouts:
        created = _aware(workout.created_at)
        if created >= day_start or created < since_14d:
            continue

        any_zone_workouts = True
        zones[zone_for_intensity(workout.intensity or 0) - 1] += workout.duration or 0

        if created >= since_48h:
            strain_48h += workout.intensity or 0
        if created >= since_24h:
            strain_24h += workout.intensity or 0
            if workout.difficulty is not None:
                rpe_values.append(workout.difficulty)

    return DerivedMetrics(
        strain_24h=strain_24h or None,
        strain_48h=strain_48h or None,
        rpe_24h=sum(rpe_values) / len(rpe_values) if rpe_values else None,
        zone_minutes_14d=ZoneMinutes(*zones) if any_zone_workouts else None,
        steps_first_2h=round(steps * MORNING_STEP_SHARE) if steps else None,
    )


class AxleService:
    """Computes the composite Axle scores for a user's day."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize Axle service.

        Args:
            session: Database session
        """
        self.session = session
        self.baselines = BaselineService(session)
        self.logger = logger.bind(service="axle")

    async def compute(
        self,
        user_id: str,
        day: date,
        provider: ProviderMetrics,
        weather: WeatherSnapshot | None = None,
    ) -> tuple[AxleScores, DerivedMetrics]:
        """Compute vitality, performance potential, circadian and energy scores.

        Args:
            user_id: User identifier
            day: Report date
            provider: Today's provider metrics
            weather: Environment snapshot, if available

        Returns:
            Tuple of (scores, derived metrics)
        """
        since = datetime.combine(day, time.min, tzinfo=UTC) - timedelta(days=ZONE_WINDOW_DAYS)
        stmt = (
            select(Workout)
            .where(Workout.user_id == user_id)
            .where(Workout.created_at >= since)
            .order_by(Workout.created_at.desc())
        )
        result = await self.session.execute(stmt)
        workouts = list(result.scalars().all())

        derived = derive_metrics(workouts, day, provider.steps)
        baselines = await self.baselines.compute_baselines(user_id, today=day)

        vitality = score_vitality(
            provider.sleep_score,
            provider.steps,
            provider.hrv,
            provider.resting_hr,
            provider.stress,
            baselines,
        )
        performance = round(
            score_performance_potential(
                provider.hrv, provider.sleep_score, derived.strain_48h, derived.rpe_24h
            )
        )
        circadian = round(
            score_circadian(
                provider.sleep_midpoint_sd,
                provider.wake_time,
                weather.sunrise if weather else None,
                derived.steps_first_2h,
                weather.uv_index if weather else None,
            )
        )
        energy = round(score_energy_balance(derived.zone_minutes_14d))

        scores = AxleScores(
            axle_health_score=round((vitality + performance + circadian + energy) / 4),
            vitality_score=vitality,
            performance_potential=performance,
            circadian_alignment=circadian,
            energy_systems_balance=energy,
        )

        self.logger.info(
            "Computed Axle scores",
            user_id=user_id,
            day=day.isoformat(),
            axle_health_score=scores.axle_health_score,
            vitality=vitality,
            performance=performance,
        )
        return scores, derived


def _aware(value: datetime) -> datetime:
    # SQLite returns naive datetimes; everything is stored as UTC
    return value if value.tzinfo else value.replace(tzinfo=UTC)
