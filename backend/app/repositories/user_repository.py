from __future__ import annotations

import uuid
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import User


def get_user_by_id(db: Session, *, user_id: UUID | str) -> User | None:
    if isinstance(user_id, str):
        try:
            user_uuid = uuid.UUID(user_id)
        except ValueError:
            return None
    else:
        user_uuid = user_id
    return db.get(User, user_uuid)


def store_hubspot_tokens(
    db: Session,
    *,
    user: User,
    access_token: str,
    refresh_token: str | None,
    expires_at: datetime | None,
) -> User:
    user.hubspot_access_token = access_token
    if refresh_token:
        user.hubspot_refresh_token = refresh_token
    user.hubspot_token_expires_at = expires_at
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


__all__ = ["get_user_by_id", "store_hubspot_tokens"]
