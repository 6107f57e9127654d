from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from app.models import User, Workflow


def get_workflow(db: Session, *, workflow_id: UUID) -> Workflow | None:
    return db.get(Workflow, workflow_id)


def get_workflow_by_remote_id(db: Session, *, owner_id: UUID, remote_workflow_id: str) -> Workflow | None:
    stmt: Select[tuple[Workflow]] = select(Workflow).where(
        Workflow.owner_id == owner_id,
        Workflow.remote_workflow_id == str(remote_workflow_id),
    )
    return db.execute(stmt).scalars().first()


def list_workflows_for_owner(db: Session, *, owner_id: UUID, protected_only: bool = False) -> list[Workflow]:
    stmt = select(Workflow).where(Workflow.owner_id == owner_id)
    if protected_only:
        stmt = stmt.where(Workflow.is_protected.is_(True))
    stmt = stmt.order_by(Workflow.created_at.asc())
    return list(db.execute(stmt).scalars().all())


def count_protected_workflows(db: Session, *, owner_id: UUID) -> int:
    stmt = select(func.count(Workflow.id)).where(
        Workflow.owner_id == owner_id,
        Workflow.is_protected.is_(True),
    )
    return int(db.execute(stmt).scalar_one())


def list_credentialed_account_ids(db: Session) -> list[UUID]:
    """Active accounts holding a HubSpot credential (access or refresh token)."""
    stmt = (
        select(User.id)
        .where(
            User.is_active.is_(True),
            (User.hubspot_access_token.is_not(None)) | (User.hubspot_refresh_token.is_not(None)),
        )
        .order_by(User.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


def persist_workflow(db: Session, *, workflow: Workflow) -> Workflow:
    db.add(workflow)
    return workflow


def commit_refresh(db: Session, *, workflow: Workflow) -> Workflow:
    db.commit()
    db.refresh(workflow)
    return workflow


__all__ = [
    "commit_refresh",
    "count_protected_workflows",
    "get_workflow",
    "get_workflow_by_remote_id",
    "list_credentialed_account_ids",
    "list_workflows_for_owner",
    "persist_workflow",
]
