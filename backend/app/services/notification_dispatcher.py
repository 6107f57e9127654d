from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session, sessionmaker

from app.logging_config import logger
from app.models import Notification
from app.repositories.notification_repository import persist_notification

EVENT_WORKFLOW_CHANGED = "workflow.changed"
EVENT_WORKFLOW_ROLLED_BACK = "workflow.rolled_back"

_TEMPLATES: dict[str, tuple[str, str, str]] = {
    EVENT_WORKFLOW_CHANGED: (
        "Workflow changed",
        "A change to workflow {name} was captured as version {version_number}.",
        "info",
    ),
    EVENT_WORKFLOW_ROLLED_BACK: (
        "Workflow rolled back",
        "Workflow {name} was restored from version {target_version_number} ({mode}).",
        "warning",
    ),
}


class NotificationDispatcher(Protocol):
    async def notify(self, event_name: str, payload: dict[str, Any], owner_id: UUID) -> None: ...


class InAppNotificationDispatcher:
    """
    Stores an in-app notification for the owner, in its own session.

    Delivery problems are logged and swallowed; callers fire and forget.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def notify(self, event_name: str, payload: dict[str, Any], owner_id: UUID) -> None:
        title, template, level = _TEMPLATES.get(event_name, (event_name, "{event}", "info"))
        try:
            content = template.format_map(_SafeDict(payload, event=event_name))
            with self._session_factory() as db:
                persist_notification(
                    db,
                    notification=Notification(
                        user_id=owner_id,
                        event_name=event_name,
                        title=title,
                        content=content,
                        level=level,
                        payload=jsonable_encoder(payload),
                    ),
                )
        except Exception:
            logger.exception("Failed to dispatch %s notification for owner %s", event_name, owner_id)


class _SafeDict(dict):
    def __init__(self, payload: dict[str, Any], **extra: Any) -> None:
        super().__init__(payload)
        self.update(extra)

    def __missing__(self, key: str) -> str:
        return "?"


__all__ = [
    "EVENT_WORKFLOW_CHANGED",
    "EVENT_WORKFLOW_ROLLED_BACK",
    "InAppNotificationDispatcher",
    "NotificationDispatcher",
]
