"""Logged and generated workouts."""

from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from axle_server.core.numbers import to_number
from axle_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class WorkoutCategory(str, Enum):
    """Workout categories understood by the suggestion engine."""

    CROSSFIT = "CrossFit"
    STRENGTH = "Strength"
    HIIT = "HIIT"
    CARDIO = "Cardio"
    POWERLIFTING = "Powerlifting"


class Workout(Base, UserScopedMixin, TimestampMixin):
    """A user's workout.

    Written by the workout-creation flows; this service only reads it as
    history for fatigue, strain and suggestion logic.
    """

    __tablename__ = "workouts"
    __table_args__ = (Index("ix_workouts_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="WorkoutCategory value",
    )
    intensity: Mapped[int] = mapped_column(Integer, nullable=False, comment="1-10 scale")
    duration: Mapped[int] = mapped_column(Integer, nullable=False, comment="Minutes")
    notes: Mapped[str | None] = mapped_column(Text)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)

    # {"difficulty": RPE 1-10, "hrv": ms, "restingHR": bpm, ...}
    feedback: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Workout(user_id={self.user_id}, category={self.category}, "
            f"intensity={self.intensity}, created_at={self.created_at})>"
        )

    @property
    def difficulty(self) -> float | None:
        """Perceived exertion from feedback, if recorded."""
        return _feedback_number(self.feedback, "difficulty")

    @property
    def feedback_hrv(self) -> float | None:
        """HRV captured alongside this workout's feedback."""
        return _feedback_number(self.feedback, "hrv")

    @property
    def feedback_resting_hr(self) -> float | None:
        """Resting HR captured alongside this workout's feedback."""
        return _feedback_number(self.feedback, "restingHR", "resting_hr")


def _feedback_number(feedback: dict[str, Any] | None, *keys: str) -> float | None:
    if not feedback:
        return None
    for key in keys:
        value = to_number(feedback.get(key))
        if value is not None:
            return value
    return None
