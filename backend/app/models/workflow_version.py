from __future__ import annotations

import enum

from sqlalchemy import Column, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, relationship

from app.db.types import JSONBCompat

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

SYSTEM_ACTOR = "system"


class SnapshotType(str, enum.Enum):
    """How a version came to exist. The set is closed; render/filter exhaustively."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"
    ROLLBACK_RESULT = "rollback"


class WorkflowVersion(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    Immutable snapshot of a workflow's remote definition (append-only).

    `version_number` is gapless per workflow, starting at 1; uniqueness of
    (workflow_id, version_number) is enforced by the database and used by
    the append path to detect concurrent writers.
    """

    __tablename__ = "workflow_versions"
    __table_args__ = (
        UniqueConstraint("workflow_id", "version_number", name="uq_workflow_versions_workflow_number"),
        Index("ix_workflow_versions_workflow_created", "workflow_id", "created_at"),
    )

    workflow_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_number: Mapped[int] = Column(Integer, nullable=False)
    snapshot_type: Mapped[SnapshotType] = Column(
        Enum(
            SnapshotType,
            name="snapshot_type",
            native_enum=False,
            length=16,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    # User id as a string, or SYSTEM_ACTOR for scheduled runs.
    created_by: Mapped[str] = Column(String(64), nullable=False)
    data = Column(JSONBCompat(), nullable=False)
    note: Mapped[str | None] = Column(Text, nullable=True)

    workflow: Mapped[Workflow] = relationship("Workflow", back_populates="versions")


__all__ = ["SYSTEM_ACTOR", "SnapshotType", "WorkflowVersion"]
