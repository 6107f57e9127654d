from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, String, Text, text
from sqlalchemy.orm import Mapped, relationship

from app.db.types import UTCDateTime

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    Account that owns protected workflows.

    The HubSpot OAuth credential lives on the account row; only the
    credential provider reads or rotates it.
    """

    __tablename__ = "users"

    email: Mapped[str] = Column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str | None] = Column(String(255), nullable=True)
    is_active: Mapped[bool] = Column(Boolean, server_default=text("TRUE"), default=True, nullable=False)
    plan_id: Mapped[str | None] = Column(String(32), nullable=True)

    hubspot_portal_id: Mapped[str | None] = Column(String(64), nullable=True)
    hubspot_access_token: Mapped[str | None] = Column(Text, nullable=True)
    hubspot_refresh_token: Mapped[str | None] = Column(Text, nullable=True)
    hubspot_token_expires_at: Mapped[datetime | None] = Column(UTCDateTime(), nullable=True)

    workflows: Mapped[list[Workflow]] = relationship(
        "Workflow",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


__all__ = ["User"]
