"""Baseline calculation service for user health metrics."""

from datetime import UTC, date, datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from axle_server.core.config import settings
from axle_server.core.numbers import is_number
from axle_server.models.health_report import HealthReport
from axle_server.schemas.metrics import MetricsEnvelope
from axle_server.services.statistics import (
    MetricBaselines,
    compute_rolling_baseline,
    winsorize,
)

logger = structlog.get_logger()

# Envelope provider fields that get a baseline
BASELINE_METRICS = ("hrv", "resting_hr", "sleep_score", "stress", "steps")


class BaselineService:
    """Service for computing rolling metric baselines.

    Baselines are personal reference values computed from the trailing
    window of health reports. They are cheap to compute at the data volumes
    involved, so nothing is persisted; every scoring call recomputes them.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize baseline service.

        Args:
            session: Database session
        """
        self.session = session
        self.logger = logger.bind(service="baseline")

    async def compute_baselines(
        self,
        user_id: str,
        window_days: int | None = None,
        today: date | None = None,
    ) -> MetricBaselines:
        """Compute winsorized baselines over the trailing window.

        A failed fetch never fails scoring: it is logged and all-zero
        baselines are returned, which makes every scorer fall back to its
        population formula.

        Args:
            user_id: User identifier
            window_days: Trailing window length (defaults to settings)
            today: Window end date (defaults to today, UTC)

        Returns:
            Baselines for hrv, resting_hr, sleep_score, stress and steps
        """
        window = window_days if window_days is not None else settings.baseline_window_days
        end = today or datetime.now(UTC).date()
        start = end - timedelta(days=window)

        stmt = (
            select(HealthReport.metrics)
            .where(HealthReport.user_id == user_id)
            .where(HealthReport.date >= start)
            .where(HealthReport.date <= end)
            .order_by(HealthReport.date.desc())
        )
        # Savepoint: a failed read must not abort the caller's transaction
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(stmt)
                payloads = result.scalars().all()
        except Exception as e:
            self.logger.warning(
                "Failed to fetch health reports for baselines",
                user_id=user_id,
                error=str(e),
            )
            return MetricBaselines()

        series: dict[str, list[float]] = {name: [] for name in BASELINE_METRICS}
        for payload in payloads:
            provider = MetricsEnvelope.normalize(payload).provider
            for name in BASELINE_METRICS:
                value = getattr(provider, name)
                if is_number(value):
                    series[name].append(float(value))

        baselines = MetricBaselines(
            **{name: compute_rolling_baseline(winsorize(values)) for name, values in series.items()}
        )

        self.logger.debug(
            "Computed baselines",
            user_id=user_id,
            reports=len(payloads),
            samples={name: len(values) for name, values in series.items()},
        )
        return baselines
