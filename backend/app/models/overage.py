from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped

from app.db.types import UTCDateTime

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Overage(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Quota units used beyond the plan allowance, per owner/resource/billing period."""

    __tablename__ = "overages"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "resource_type",
            "period_start",
            "period_end",
            name="uq_overages_user_type_period",
        ),
    )

    user_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    resource_type: Mapped[str] = Column(String(32), nullable=False)
    amount: Mapped[int] = Column(Integer, nullable=False, server_default=text("0"), default=0)
    period_start: Mapped[datetime] = Column(UTCDateTime(), nullable=False)
    period_end: Mapped[datetime] = Column(UTCDateTime(), nullable=False)
    # Flipped by the external billing process.
    billed: Mapped[bool] = Column(Boolean, nullable=False, server_default=text("FALSE"), default=False)


__all__ = ["Overage"]
