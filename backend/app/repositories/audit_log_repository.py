from __future__ import annotations

from sqlalchemy.orm import Session

from app.models import AuditLog


def persist_audit_log(db: Session, *, log: AuditLog) -> AuditLog:
    db.add(log)
    return log


__all__ = ["persist_audit_log"]
