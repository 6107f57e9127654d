from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped

from app.db.types import JSONBCompat, UTCDateTime

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Notification(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """In-app notification addressed to a single account."""

    __tablename__ = "notifications"

    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_name: Mapped[str] = Column(String(64), nullable=False, index=True)
    title: Mapped[str] = Column(String(200), nullable=False)
    content: Mapped[str] = Column(Text, nullable=False)
    level: Mapped[str] = Column(
        String(16),
        nullable=False,
        server_default=text("'info'"),
        default="info",
        doc="info/success/warning/error",
    )
    payload = Column(JSONBCompat(), nullable=True)
    read_at: Mapped[datetime | None] = Column(UTCDateTime(), nullable=True)


__all__ = ["Notification"]
