from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from app.logging_config import logger
from app.models import AuditLog
from app.repositories.audit_log_repository import persist_audit_log


def record_audit_log(
    db: Session,
    *,
    actor_id: UUID | str,
    action: str,
    entity_type: str,
    entity_id: UUID | str,
    old_value: Any = None,
    new_value: Any = None,
) -> AuditLog | None:
    """
    Write one audit entry, best-effort.

    Called after the primary change is committed. A failure here is logged
    and rolled back; it never undoes or fails the primary operation.
    """
    try:
        log = AuditLog(
            actor_id=str(actor_id),
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            old_value=jsonable_encoder(old_value) if old_value is not None else None,
            new_value=jsonable_encoder(new_value) if new_value is not None else None,
        )
        persist_audit_log(db, log=log)
        db.commit()
        return log
    except Exception:
        logger.exception("Failed to record audit log %s for %s %s", action, entity_type, entity_id)
        try:
            db.rollback()
        except Exception:  # pragma: no cover
            logger.exception("Rollback after audit failure also failed")
        return None


__all__ = ["record_audit_log"]
