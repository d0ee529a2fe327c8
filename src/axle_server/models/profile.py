"""User profile model."""

from sqlalchemy import Boolean, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from axle_server.models.base import Base, TimestampMixin


class Profile(Base, TimestampMixin):
    """Per-user preferences relevant to health scoring.

    Only the location fields are used here: when the user has opted in, the
    last known coordinates drive the environment (weather, sunrise, AQI) lookup.
    """

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True, comment="Auth user UUID")

    location_opt_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_lat: Mapped[float | None] = mapped_column(Float)
    last_lon: Mapped[float | None] = mapped_column(Float)
    timezone: Mapped[str | None] = mapped_column(String(64))

    @property
    def location(self) -> tuple[float, float] | None:
        """Cached coordinates if the user opted in and we have them."""
        if not self.location_opt_in or self.last_lat is None or self.last_lon is None:
            return None
        return self.last_lat, self.last_lon
