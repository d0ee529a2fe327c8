"""Job run model: audit trail of daily suggestion job executions."""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from axle_server.models.base import Base


class JobRunStatus(str, Enum):
    """Status of a job run.

    Attributes:
        STARTED: Run has begun but not completed
        SUCCESS: Every active user was processed without error
        PARTIAL: Run finished but some users errored
        FAILED: Run aborted (e.g. the active-user query failed)
    """

    STARTED = "started"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class JobTrigger(str, Enum):
    """What initiated the job run."""

    SCHEDULER = "scheduler"
    MANUAL = "manual"
    CLI = "cli"


class JobRun(Base):
    """One execution of the daily suggestion job.

    Example queries:
        # Most recent runs
        SELECT * FROM job_runs ORDER BY started_at DESC LIMIT 10;

        # Runs with per-user errors
        SELECT * FROM job_runs WHERE errors > 0;
    """

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    job_id: Mapped[str] = mapped_column(String(36), index=True)  # UUID for correlation

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    trigger: Mapped[str] = mapped_column(String(20), default=JobTrigger.SCHEDULER.value)
    status: Mapped[str] = mapped_column(String(20), default=JobRunStatus.STARTED.value, index=True)

    processed: Mapped[int] = mapped_column(Integer, default=0)
    created: Mapped[int] = mapped_column(Integer, default=0)
    skipped: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_job_runs_status_started", "status", "started_at"),)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<JobRun(id={self.id}, job_id='{self.job_id}', status='{self.status}')>"

    def complete(self, processed: int, created: int, skipped: int, errors: int) -> None:
        """Mark the run finished with its counters.

        Args:
            processed: Active users examined
            created: Suggestions inserted by this run
            skipped: Users that already had a suggestion (or lost an insert race)
            errors: Users whose processing raised
        """
        self._finish()
        self.processed = processed
        self.created = created
        self.skipped = skipped
        self.errors = errors
        self.status = JobRunStatus.PARTIAL.value if errors else JobRunStatus.SUCCESS.value

    def fail(self, message: str) -> None:
        """Mark the run as aborted.

        Args:
            message: Error description
        """
        self._finish()
        self.status = JobRunStatus.FAILED.value
        self.error_message = message[:2000]

    def _finish(self) -> None:
        now = datetime.now(UTC)
        self.completed_at = now
        started = self.started_at
        if started.tzinfo is None:
            # SQLite drops tzinfo on round-trip
            started = started.replace(tzinfo=UTC)
        self.duration_ms = int((now - started).total_seconds() * 1000)

    def to_dict(self) -> dict[str, object]:
        """Serialize for the status endpoint."""
        return {
            "job_id": self.job_id,
            "trigger": self.trigger,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "processed": self.processed,
            "created": self.created,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_message": self.error_message,
        }
