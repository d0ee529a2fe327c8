"""Personal record model."""

from datetime import date

from sqlalchemy import Date, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from axle_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class PersonalRecord(Base, UserScopedMixin, TimestampMixin):
    """A lift or movement PR, read as context for suggestions."""

    __tablename__ = "personal_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    movement: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50))
    weight_kg: Mapped[float | None] = mapped_column(Float)
    reps: Mapped[int | None] = mapped_column(Integer)
    unit: Mapped[str | None] = mapped_column(String(10))
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<PersonalRecord(user_id={self.user_id}, "
            f"movement={self.movement}, date={self.date})>"
        )
