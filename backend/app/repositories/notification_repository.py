from __future__ import annotations

from sqlalchemy.orm import Session

from app.models import Notification


def persist_notification(db: Session, *, notification: Notification) -> Notification:
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


__all__ = ["persist_notification"]
