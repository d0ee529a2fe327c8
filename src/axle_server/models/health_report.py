"""Daily health report model."""

from datetime import date
from typing import Any

from sqlalchemy import JSON, Date, Float, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from axle_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class HealthReport(Base, UserScopedMixin, TimestampMixin):
    """One health report per user per day.

    ``metrics`` stores the serialized metrics envelope (provider signals,
    environment snapshot, computed Axle scores). Always read it back through
    ``MetricsEnvelope.normalize`` since older rows use a flat legacy layout.
    """

    __tablename__ = "health_reports"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_health_report_user_date"),
        {"comment": "Daily wearable metrics and computed scores"},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    metrics: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    summary: Mapped[str | None] = mapped_column(Text)
    suggestions: Mapped[list[str] | None] = mapped_column(JSON, comment="Human-readable tips")
    fatigue_score: Mapped[float | None] = mapped_column(Float, comment="0-100")

    def __repr__(self) -> str:
        """String representation."""
        return f"<HealthReport(user_id={self.user_id}, date={self.date})>"
