"""Daily suggestion job.

Runs once a day for every active user (anyone who logged a workout in the
last two weeks): refresh today's health report, compute a suggestion and
store it. Users are isolated from each other; one user's failure is counted
and logged, never fatal. The only fatal condition is failing to list the
active users at all.

Overlapping runs (a scheduled run racing a manual trigger, or two
instances) are safe: the suggestion table's unique (user_id, date)
constraint lets exactly one insert win and the loser counts as skipped.
"""

import asyncio
import time as time_module
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from axle_server.core.config import settings
from axle_server.core.database import async_session_maker
from axle_server.models.job_run import JobRun, JobTrigger
from axle_server.models.suggested_workout import SuggestionSource
from axle_server.models.workout import Workout
from axle_server.providers import HealthProvider
from axle_server.services.environment import EnvironmentService
from axle_server.services.health_sync import HealthSyncService
from axle_server.services.suggestion import SuggestionService

logger = structlog.get_logger()


@dataclass
class JobSummary:
    """Counters from one job run.

    Attributes:
        processed: Active users examined
        created: Suggestions inserted
        skipped: Users that already had today's suggestion
        errors: Users whose processing raised
        duration_ms: Wall time of the run
    """

    processed: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "created": self.created,
            "skipped": self.skipped,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
        }


class UserOutcome(str, Enum):
    """What happened to one user in a run."""

    CREATED = "created"
    SKIPPED = "skipped"
    ERROR = "error"


class DailySuggestionJob:
    """Orchestrates the daily health sync and suggestion run.

    Usage:
        job = DailySuggestionJob()
        summary = await job.run(JobTrigger.CLI)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        providers: dict[str, HealthProvider] | None = None,
        environment: EnvironmentService | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize the job.

        Args:
            session_factory: Session factory; every user gets its own session
            providers: Provider registry override (tests)
            environment: Environment service override (tests)
            today: Clock override returning the UTC date to process
        """
        self.session_factory = session_factory
        self.providers = providers
        self.environment = environment
        self._today = today or (lambda: datetime.now(UTC).date())
        self.logger = logger.bind(component="daily_suggestion_job")

    async def run(self, trigger: JobTrigger = JobTrigger.SCHEDULER) -> JobSummary:
        """Run the job for every active user.

        Args:
            trigger: What started this run (recorded on the JobRun row)

        Returns:
            JobSummary with counters

        Raises:
            Exception: If the active-user query fails
        """
        started = time_module.monotonic()
        today = self._today()
        job_id = str(uuid.uuid4())
        log = self.logger.bind(job_id=job_id, trigger=trigger.value)
        log.info("Daily suggestion job started", date=today.isoformat())

        run_id = await self._start_run(job_id, trigger)

        try:
            user_ids = await self.active_user_ids()
        except Exception as e:
            log.exception("Failed to load active users")
            await self._fail_run(run_id, str(e))
            raise

        summary = JobSummary(processed=len(user_ids))
        semaphore = asyncio.Semaphore(settings.daily_job_concurrency)

        async def bounded(user_id: str) -> UserOutcome:
            async with semaphore:
                return await self.process_user(user_id, today)

        outcomes = await asyncio.gather(*(bounded(user_id) for user_id in user_ids))

        for outcome in outcomes:
            if outcome == UserOutcome.CREATED:
                summary.created += 1
            elif outcome == UserOutcome.SKIPPED:
                summary.skipped += 1
            else:
                summary.errors += 1

        summary.duration_ms = int((time_module.monotonic() - started) * 1000)
        await self._complete_run(run_id, summary)

        log.info("Daily suggestion job complete", **summary.to_dict())
        return summary

    async def active_user_ids(self) -> list[str]:
        """Users with a workout in the last ``active_user_window_days`` days."""
        window_start = datetime.now(UTC) - timedelta(days=settings.active_user_window_days)
        async with self.session_factory() as session:
            stmt = (
                select(Workout.user_id)
                .where(Workout.created_at >= window_start)
                .distinct()
                .order_by(Workout.user_id)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def process_user(self, user_id: str, today: date) -> UserOutcome:
        """Sync and suggest for one user; never raises."""
        log = self.logger.bind(user_id=user_id)
        try:
            async with self.session_factory() as session:
                suggestions = SuggestionService(session)
                if await suggestions.exists(user_id, today):
                    log.debug("Suggestion already exists")
                    return UserOutcome.SKIPPED

                sync = HealthSyncService(
                    session,
                    providers=self.providers,
                    environment=self.environment,
                )
                sync_result = await sync.sync_user(user_id, today)
                log.debug("Health sync finished", status=sync_result.status.value)

                target = await suggestions.compute_for_user(user_id, today)
                row = await suggestions.insert(user_id, today, target, SuggestionSource.CRON)
                if row is None:
                    return UserOutcome.SKIPPED

                log.info(
                    "Suggestion created",
                    category=target.category.value,
                    intensity=target.intensity,
                    duration=target.duration,
                )
                return UserOutcome.CREATED
        except Exception:
            log.exception("Failed to process user")
            return UserOutcome.ERROR

    async def _start_run(self, job_id: str, trigger: JobTrigger) -> int:
        async with self.session_factory() as session:
            job_run = JobRun(job_id=job_id, trigger=trigger.value)
            session.add(job_run)
            await session.commit()
            return job_run.id

    async def _complete_run(self, run_id: int, summary: JobSummary) -> None:
        await self._update_run(
            run_id,
            lambda job_run: job_run.complete(
                processed=summary.processed,
                created=summary.created,
                skipped=summary.skipped,
                errors=summary.errors,
            ),
        )

    async def _fail_run(self, run_id: int, message: str) -> None:
        try:
            await self._update_run(run_id, lambda job_run: job_run.fail(message))
        except Exception as e:
            self.logger.error("Could not record failed job run", error=str(e))

    async def _update_run(self, run_id: int, apply: Callable[[JobRun], Any]) -> None:
        async with self.session_factory() as session:
            job_run = await session.get(JobRun, run_id)
            if job_run is None:
                return
            apply(job_run)
            await session.commit()


async def get_recent_runs(session: AsyncSession, limit: int = 10) -> list[JobRun]:
    """Most recent job runs, newest first."""
    stmt = select(JobRun).order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(limit)
    return list((await session.execute(stmt)).scalars().all())
