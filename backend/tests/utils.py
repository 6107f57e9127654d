from __future__ import annotations

import asyncio
import copy
import itertools
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import FastAPI
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.deps import get_db, get_session_factory
from app.jwt_auth import create_access_token
from app.models import Base, SnapshotType, User, Workflow, WorkflowVersion
from app.repositories.workflow_version_repository import append_workflow_version
from app.services.credential_provider import Credential
from app.services.hubspot_workflow_client import RemoteDefinition
from app.services.workflow_errors import AuthExpired, RemoteNotFound


def make_session_factory(url: str = "sqlite+pysqlite:///:memory:") -> sessionmaker[Session]:
    if url.endswith(":memory:"):
        engine = create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, future=True, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def install_inmemory_db(app: FastAPI) -> sessionmaker[Session]:
    SessionLocal = make_session_factory()

    def _get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: SessionLocal
    return SessionLocal


def jwt_auth_headers(user_id: UUID | str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def seed_user(
    session: Session,
    *,
    email: str = "owner@example.com",
    plan_id: str | None = None,
    access_token: str | None = "stored-access-token",
    refresh_token: str | None = None,
    expires_at: datetime | None = None,
    is_active: bool = True,
) -> User:
    user = User(
        email=email,
        display_name=email.split("@")[0],
        plan_id=plan_id,
        is_active=is_active,
        hubspot_access_token=access_token,
        hubspot_refresh_token=refresh_token,
        hubspot_token_expires_at=expires_at,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def seed_workflow(
    session: Session,
    *,
    owner: User,
    remote_workflow_id: str = "101",
    name: str = "Lead nurture",
    is_protected: bool = True,
    auto_sync: bool = True,
    sync_interval_minutes: int | None = None,
) -> Workflow:
    workflow = Workflow(
        owner_id=owner.id,
        remote_workflow_id=remote_workflow_id,
        name=name,
        is_protected=is_protected,
        auto_sync=auto_sync,
        sync_interval_minutes=sync_interval_minutes,
    )
    session.add(workflow)
    session.commit()
    session.refresh(workflow)
    return workflow


def seed_versions(
    session: Session,
    *,
    workflow: Workflow,
    payloads: list[dict[str, Any]],
    snapshot_type: SnapshotType = SnapshotType.AUTOMATIC,
) -> list[WorkflowVersion]:
    return [
        append_workflow_version(
            session,
            workflow_id=workflow.id,
            snapshot_type=snapshot_type,
            created_by="system",
            data=payload,
        )
        for payload in payloads
    ]


class FakeRemoteClient:
    """In-memory stand-in for HubSpot; errors and delays are scripted per remote id."""

    def __init__(self, definitions: dict[str, dict[str, Any]] | None = None) -> None:
        self.definitions: dict[str, dict[str, Any]] = {
            key: copy.deepcopy(value) for key, value in (definitions or {}).items()
        }
        self.fetch_errors: dict[str, list[Exception]] = {}
        self.write_errors: list[Exception] = []
        self.delays: dict[str, float] = {}
        self.created: list[dict[str, Any]] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.fetch_calls: list[tuple[str, str]] = []
        self._ids = itertools.count(9000)

    def _definition(self, remote_id: str, data: dict[str, Any]) -> RemoteDefinition:
        enabled = data.get("enabled")
        return RemoteDefinition(
            remote_id=remote_id,
            data=copy.deepcopy(data),
            enabled=enabled if isinstance(enabled, bool) else None,
        )

    async def list_workflows(self, credential: Credential) -> list[RemoteDefinition]:
        return [self._definition(key, value) for key, value in self.definitions.items()]

    async def fetch(self, credential: Credential, remote_workflow_id: str) -> RemoteDefinition:
        self.fetch_calls.append((credential.access_token, remote_workflow_id))
        delay = self.delays.get(remote_workflow_id)
        if delay:
            await asyncio.sleep(delay)
        errors = self.fetch_errors.get(remote_workflow_id)
        if errors:
            raise errors.pop(0)
        if remote_workflow_id not in self.definitions:
            raise RemoteNotFound(f"workflow {remote_workflow_id} not found")
        return self._definition(remote_workflow_id, self.definitions[remote_workflow_id])

    async def update(
        self, credential: Credential, remote_workflow_id: str, data: dict[str, Any]
    ) -> RemoteDefinition:
        delay = self.delays.get(remote_workflow_id)
        if delay:
            await asyncio.sleep(delay)
        if self.write_errors:
            raise self.write_errors.pop(0)
        if remote_workflow_id not in self.definitions:
            raise RemoteNotFound(f"workflow {remote_workflow_id} not found")
        self.updates.append((remote_workflow_id, copy.deepcopy(data)))
        self.definitions[remote_workflow_id] = copy.deepcopy(data)
        return self._definition(remote_workflow_id, data)

    async def create_inactive(self, credential: Credential, data: dict[str, Any]) -> RemoteDefinition:
        if self.write_errors:
            raise self.write_errors.pop(0)
        remote_id = str(next(self._ids))
        body = copy.deepcopy(data)
        body["enabled"] = False
        self.created.append(body)
        self.definitions[remote_id] = {**body, "id": remote_id}
        return self._definition(remote_id, self.definitions[remote_id])


class FakeCredentialProvider:
    def __init__(
        self,
        *,
        rejected_accounts: set[UUID] | None = None,
        broken_accounts: set[UUID] | None = None,
    ) -> None:
        self.rejected_accounts = set(rejected_accounts or ())
        self.broken_accounts = set(broken_accounts or ())
        self.calls: list[tuple[UUID, bool]] = []

    async def get_valid_credential(self, account_id: UUID, *, force_refresh: bool = False) -> Credential:
        self.calls.append((account_id, force_refresh))
        if account_id in self.broken_accounts:
            raise ValueError("token endpoint returned non-JSON body")
        if account_id in self.rejected_accounts:
            raise AuthExpired(f"no credential for {account_id}")
        suffix = "refreshed" if force_refresh else "current"
        return Credential(account_id=account_id, access_token=f"{account_id}-{suffix}")


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any], UUID]] = []

    async def notify(self, event_name: str, payload: dict[str, Any], owner_id: UUID) -> None:
        self.events.append((event_name, payload, owner_id))

    def names(self) -> list[str]:
        return [event for event, _, _ in self.events]
