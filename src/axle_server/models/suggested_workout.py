"""Suggested workout model."""

from datetime import date
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Date, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from axle_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class SuggestionSource(str, Enum):
    """What produced a suggestion row."""

    CRON = "cron"
    ON_DEMAND = "on_demand"


class SuggestedWorkout(Base, UserScopedMixin, TimestampMixin):
    """The day's workout suggestion for a user.

    The (user_id, date) unique constraint is the only concurrency control
    between overlapping job runs and on-demand requests: losers of an insert
    race get an IntegrityError and re-read the winner's row.
    """

    __tablename__ = "suggested_workouts"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_suggested_workout_user_date"),
        {"comment": "Daily workout suggestions, one per user per day"},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # {"category": ..., "intensity": ..., "duration": ...}
    request: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    rationale: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    workout_id: Mapped[str | None] = mapped_column(
        String(36),
        comment="Workout created when the user started this suggestion",
    )
    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SuggestionSource.CRON.value,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SuggestedWorkout(user_id={self.user_id}, date={self.date}, "
            f"category={self.request.get('category') if self.request else None})>"
        )

    @property
    def is_started(self) -> bool:
        """Return True once a workout has been attached."""
        return self.workout_id is not None
