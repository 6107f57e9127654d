from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.logging_config import logger
from app.models import SnapshotType, WorkflowVersion
from app.services.workflow_errors import VersionConflict
from app.settings import settings


def _max_version_number(db: Session, workflow_id: UUID) -> int:
    current = db.execute(
        select(func.max(WorkflowVersion.version_number)).where(WorkflowVersion.workflow_id == workflow_id)
    ).scalar_one()
    return int(current or 0)


def append_workflow_version(
    db: Session,
    *,
    workflow_id: UUID,
    snapshot_type: SnapshotType,
    created_by: str,
    data: dict[str, Any],
    note: str | None = None,
    max_attempts: int | None = None,
    should_append: Callable[[WorkflowVersion | None], bool] | None = None,
) -> WorkflowVersion | None:
    """
    Append an immutable version with number `max(existing) + 1` (1 when empty).

    The unique (workflow_id, version_number) constraint arbitrates concurrent
    writers: a violation means another writer committed that number first,
    so the transaction is rolled back and the number recomputed. Numbers
    therefore follow commit order. The caller's pending changes must be
    committed before calling, since a retry rolls the session back.

    `should_append` is evaluated against the latest committed version before
    every attempt. When it returns False (for instance because the writer
    that won the race already stored the same definition) nothing is written
    and None is returned.
    """
    attempts = max(1, int(max_attempts or settings.version_append_max_attempts))
    for attempt in range(1, attempts + 1):
        if should_append is not None:
            latest = get_latest_workflow_version(db, workflow_id=workflow_id)
            if not should_append(latest):
                logger.info(
                    "Append to workflow %s declined at v%s (attempt %s/%s)",
                    workflow_id,
                    latest.version_number if latest is not None else 0,
                    attempt,
                    attempts,
                )
                return None
        number = _max_version_number(db, workflow_id) + 1
        row = WorkflowVersion(
            workflow_id=workflow_id,
            version_number=number,
            snapshot_type=snapshot_type,
            created_by=str(created_by),
            data=data,
            note=note,
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                "Version number %s already taken for workflow %s (attempt %s/%s), retrying",
                number,
                workflow_id,
                attempt,
                attempts,
            )
            continue
        db.refresh(row)
        return row

    raise VersionConflict(
        f"Could not allocate a version number for workflow {workflow_id}",
        details={"workflow_id": str(workflow_id), "attempts": attempts},
    )


def get_latest_workflow_version(db: Session, *, workflow_id: UUID) -> WorkflowVersion | None:
    stmt: Select[tuple[WorkflowVersion]] = (
        select(WorkflowVersion)
        .where(WorkflowVersion.workflow_id == workflow_id)
        .order_by(WorkflowVersion.version_number.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def list_workflow_versions(
    db: Session,
    *,
    workflow_id: UUID,
    limit: int = 50,
    before_number: int | None = None,
    created_after: datetime | None = None,
) -> list[WorkflowVersion]:
    """
    Most recent first. Pass the last seen `version_number` as `before_number`
    to fetch the next page.
    """
    limit = max(1, min(int(limit or 50), settings.history_max_limit))
    stmt = select(WorkflowVersion).where(WorkflowVersion.workflow_id == workflow_id)
    if before_number is not None:
        stmt = stmt.where(WorkflowVersion.version_number < int(before_number))
    if created_after is not None:
        stmt = stmt.where(WorkflowVersion.created_at >= created_after)
    stmt = stmt.order_by(WorkflowVersion.version_number.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())


def count_workflow_versions(db: Session, *, workflow_id: UUID) -> int:
    return int(
        db.execute(
            select(func.count(WorkflowVersion.id)).where(WorkflowVersion.workflow_id == workflow_id)
        ).scalar_one()
    )


def get_workflow_version(db: Session, *, version_id: UUID) -> WorkflowVersion | None:
    return db.get(WorkflowVersion, version_id)


__all__ = [
    "append_workflow_version",
    "count_workflow_versions",
    "get_latest_workflow_version",
    "get_workflow_version",
    "list_workflow_versions",
]
