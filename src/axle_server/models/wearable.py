"""Wearable connection model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from axle_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class ConnectionStatus(str, Enum):
    """Health of a wearable connection.

    Attributes:
        CONNECTED: Last sync succeeded (or none attempted yet)
        ERROR: Last fetch failed; ``error`` holds the message
        DISCONNECTED: User revoked or removed the device
    """

    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class WearableConnection(Base, UserScopedMixin, TimestampMixin):
    """A user's link to a wearable provider.

    Tokens are Fernet-encrypted at rest; decrypt with
    ``axle_server.core.security.get_token_encryption()``.
    """

    __tablename__ = "wearable_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_wearable_user_provider"),
        {"comment": "Wearable provider connections and sync status"},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    provider: Mapped[str] = mapped_column(String(20), nullable=False, comment="Provider id")
    connected: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ConnectionStatus.CONNECTED.value,
        nullable=False,
    )
    error: Mapped[str | None] = mapped_column(Text)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    access_token_encrypted: Mapped[str | None] = mapped_column(Text)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WearableConnection(user_id={self.user_id}, provider={self.provider}, "
            f"status={self.status})>"
        )
