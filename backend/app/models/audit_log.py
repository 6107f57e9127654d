from __future__ import annotations

from sqlalchemy import Column, Index, String
from sqlalchemy.orm import Mapped

from app.db.types import JSONBCompat

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class AuditLog(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One row per state-changing operation (actor, action, entity, before/after)."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id", "created_at"),
    )

    actor_id: Mapped[str] = Column(String(64), nullable=False, index=True)
    action: Mapped[str] = Column(String(64), nullable=False)
    entity_type: Mapped[str] = Column(String(32), nullable=False)
    entity_id: Mapped[str] = Column(String(64), nullable=False)
    old_value = Column(JSONBCompat(), nullable=True)
    new_value = Column(JSONBCompat(), nullable=True)


__all__ = ["AuditLog"]
