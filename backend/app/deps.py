from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from .db import SessionLocal, get_db_session
from .services.credential_provider import CredentialProvider, StoredCredentialProvider
from .services.hubspot_workflow_client import HubSpotWorkflowClient, RemoteWorkflowClient
from .services.notification_dispatcher import InAppNotificationDispatcher, NotificationDispatcher
from .services.rollback_service import RollbackService
from .services.snapshot_service import SnapshotService


def build_credential_provider(session_factory: sessionmaker[Session]) -> StoredCredentialProvider:
    return StoredCredentialProvider(session_factory)


def build_snapshot_service(
    session_factory: sessionmaker[Session],
    *,
    client: RemoteWorkflowClient | None = None,
    credential_provider: CredentialProvider | None = None,
) -> SnapshotService:
    """Wire the snapshot service used by the API, the Celery task and the CLI script."""
    return SnapshotService(
        client or HubSpotWorkflowClient(),
        credential_provider or build_credential_provider(session_factory),
        InAppNotificationDispatcher(session_factory),
    )


def build_rollback_service(
    session_factory: sessionmaker[Session],
    *,
    client: RemoteWorkflowClient | None = None,
    credential_provider: CredentialProvider | None = None,
) -> RollbackService:
    return RollbackService(
        client or HubSpotWorkflowClient(),
        credential_provider or build_credential_provider(session_factory),
        InAppNotificationDispatcher(session_factory),
    )


def get_db() -> Iterator[Session]:
    """
    Provide a synchronous SQLAlchemy session.
    """
    yield from get_db_session()


def get_session_factory() -> sessionmaker[Session]:
    """
    Session factory for collaborators that open their own sessions
    (credential refresh, notifications). Tests override this dependency.
    """
    return SessionLocal


def get_workflow_client() -> RemoteWorkflowClient:
    return HubSpotWorkflowClient()


def get_credential_provider(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> CredentialProvider:
    return build_credential_provider(session_factory)


def get_notification_dispatcher(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> NotificationDispatcher:
    return InAppNotificationDispatcher(session_factory)


def get_snapshot_service(
    client: RemoteWorkflowClient = Depends(get_workflow_client),
    credential_provider: CredentialProvider = Depends(get_credential_provider),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SnapshotService:
    return SnapshotService(client, credential_provider, notifier)


def get_rollback_service(
    client: RemoteWorkflowClient = Depends(get_workflow_client),
    credential_provider: CredentialProvider = Depends(get_credential_provider),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> RollbackService:
    return RollbackService(client, credential_provider, notifier)


__all__ = [
    "build_credential_provider",
    "build_rollback_service",
    "build_snapshot_service",
    "get_credential_provider",
    "get_db",
    "get_notification_dispatcher",
    "get_rollback_service",
    "get_session_factory",
    "get_snapshot_service",
    "get_workflow_client",
]
