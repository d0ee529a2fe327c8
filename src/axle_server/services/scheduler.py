"""Daily suggestion scheduler using APScheduler.

Runs ``DailySuggestionJob`` once a day at ``DAILY_JOB_HOUR:DAILY_JOB_MINUTE``
UTC. The last run's outcome lives on the scheduler instance; the full
history is in the ``job_runs`` table.

Usage:
    # In app startup
    scheduler = SuggestionScheduler(job)
    await scheduler.start()

    # In app shutdown
    await scheduler.stop()
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from axle_server.core.config import settings
from axle_server.models.job_run import JobTrigger
from axle_server.services.daily_job import DailySuggestionJob

if TYPE_CHECKING:
    from apscheduler.job import Job

logger = structlog.get_logger()


class SuggestionScheduler:
    """Cron-style scheduler for the daily suggestion job.

    Attributes:
        job: The job to run
        scheduler: APScheduler instance
        is_running: Whether the scheduler is started
        last_run_at: When the last run finished
        last_run_stats: Summary (or error) of the last run
    """

    def __init__(self, job: DailySuggestionJob | None = None) -> None:
        """Initialize the scheduler.

        Args:
            job: Job to schedule (defaults to one using the global session maker)
        """
        self.job = job or DailySuggestionJob()
        self.scheduler = AsyncIOScheduler(timezone=UTC)
        self.is_running = False
        self.last_run_at: datetime | None = None
        self.last_run_stats: dict[str, object] | None = None
        self._daily_job: Job | None = None
        self.logger = logger.bind(component="suggestion_scheduler")

    async def start(self) -> None:
        """Start the scheduler unless disabled by configuration."""
        if not settings.daily_job_enabled:
            self.logger.info("Daily suggestion job disabled by configuration")
            return

        if self.is_running:
            self.logger.warning("Scheduler already running")
            return

        self._daily_job = self.scheduler.add_job(
            self._run_job,
            trigger=CronTrigger(
                hour=settings.daily_job_hour,
                minute=settings.daily_job_minute,
                timezone=UTC,
            ),
            id="daily_suggestions",
            name="Daily workout suggestions",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping scheduled runs
        )
        self.scheduler.start()
        self.is_running = True

        self.logger.info(
            "Suggestion scheduler started",
            hour=settings.daily_job_hour,
            minute=settings.daily_job_minute,
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        self.logger.info("Suggestion scheduler stopped")

    async def _execute(self, trigger: JobTrigger) -> dict[str, object]:
        """Run the job and record its outcome; job failures propagate."""
        try:
            summary = await self.job.run(trigger)
        except Exception as e:
            self.logger.exception("Daily suggestion job failed", trigger=trigger.value)
            self.last_run_stats = {
                "trigger": trigger.value,
                "error": str(e),
                "timestamp": datetime.now(UTC).isoformat(),
            }
            raise

        self.last_run_at = datetime.now(UTC)
        self.last_run_stats = {"trigger": trigger.value, **summary.to_dict()}
        return self.last_run_stats

    async def _run_job(self) -> None:
        # APScheduler callback: the failure is already logged and recorded
        try:
            await self._execute(JobTrigger.SCHEDULER)
        except Exception:
            return

    async def trigger_manual_run(self) -> dict[str, object]:
        """Run the job now, outside the schedule.

        Returns:
            Summary of the run

        Raises:
            Exception: Whatever made the job fail (e.g. active users could not be loaded)
        """
        self.logger.info("Manual daily suggestion run triggered")
        return await self._execute(JobTrigger.MANUAL)

    def get_status(self) -> dict[str, object]:
        """Scheduler state for monitoring."""
        next_run = None
        if self._daily_job and self.is_running:
            next_run_time = self._daily_job.next_run_time
            if next_run_time:
                next_run = next_run_time.isoformat()

        return {
            "enabled": settings.daily_job_enabled,
            "is_running": self.is_running,
            "schedule": f"{settings.daily_job_minute} {settings.daily_job_hour} * * * (UTC)",
            "next_run_at": next_run,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_stats": self.last_run_stats,
        }
