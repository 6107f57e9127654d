from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, relationship

from app.db.types import UTCDateTime

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Workflow(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    A remote HubSpot workflow selected for protection.

    - The latest version is always derived (`max(version_number)`), never
      stored here.
    - `sync_status` / `last_synced_at` back the "last successful sync"
      indicator; a workflow whose remote entity vanished is flagged `stale`
      and keeps its protection.
    """

    __tablename__ = "workflows"
    __table_args__ = (
        UniqueConstraint("owner_id", "remote_workflow_id", name="uq_workflows_owner_remote"),
        Index("ix_workflows_protected_auto_sync", "is_protected", "auto_sync"),
    )

    owner_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    remote_workflow_id: Mapped[str] = Column(String(64), nullable=False)
    name: Mapped[str] = Column(String(255), nullable=False)

    is_protected: Mapped[bool] = Column(Boolean, nullable=False, server_default=text("TRUE"), default=True)
    auto_sync: Mapped[bool] = Column(Boolean, nullable=False, server_default=text("TRUE"), default=True)
    sync_interval_minutes: Mapped[int | None] = Column(Integer, nullable=True)

    sync_status: Mapped[str] = Column(
        String(16),
        nullable=False,
        server_default=text("'pending'"),
        default="pending",
    )
    last_synced_at: Mapped[datetime | None] = Column(UTCDateTime(), nullable=True)
    last_sync_error: Mapped[str | None] = Column(Text, nullable=True)
    remote_missing_at: Mapped[datetime | None] = Column(UTCDateTime(), nullable=True)

    owner: Mapped[User] = relationship("User", back_populates="workflows")
    versions: Mapped[list[WorkflowVersion]] = relationship(
        "WorkflowVersion",
        back_populates="workflow",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkflowVersion.version_number",
    )


__all__ = ["Workflow"]
