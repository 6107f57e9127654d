"""
Owner-facing workflow operations: protection, history, comparison, sync
status and monitoring settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.logging_config import logger
from app.models import SnapshotType, Workflow, WorkflowVersion
from app.repositories.workflow_repository import (
    commit_refresh,
    count_protected_workflows,
    get_workflow,
    get_workflow_by_remote_id,
    list_workflows_for_owner,
    persist_workflow,
)
from app.repositories.workflow_version_repository import (
    count_workflow_versions,
    get_latest_workflow_version,
    get_workflow_version,
    list_workflow_versions,
)
from app.services.audit_log_service import record_audit_log
from app.services.change_detector import diff_definitions
from app.services.credential_provider import Credential
from app.services.plan_limits import RESOURCE_WORKFLOW, PlanLimitsProvider
from app.services.quota_guard import QuotaDecision, check_and_record
from app.services.snapshot_service import SnapshotService
from app.services.workflow_errors import AuthExpired, ValidationError, WorkflowNotFoundError
from app.settings import settings

AUDIT_ACTION_PROTECT = "protect_workflow"
AUDIT_ACTION_UNPROTECT = "unprotect_workflow"
AUDIT_ACTION_MONITORING = "monitoring_settings_updated"

MIN_SYNC_INTERVAL_MINUTES = 5
MAX_SYNC_INTERVAL_MINUTES = 7 * 24 * 60


@dataclass(frozen=True)
class ProtectResult:
    workflow: Workflow
    initial_version: WorkflowVersion | None
    quota: QuotaDecision
    created: bool


def get_owned_workflow(db: Session, *, workflow_id: UUID, owner_id: UUID) -> Workflow:
    """Load a workflow, hiding other owners' workflows behind the same not-found error."""
    workflow = get_workflow(db, workflow_id=workflow_id)
    if workflow is None or workflow.owner_id != owner_id:
        raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", details={"workflow_id": str(workflow_id)})
    return workflow


def get_owned_version(db: Session, *, version_id: UUID, owner_id: UUID) -> WorkflowVersion:
    version = get_workflow_version(db, version_id=version_id)
    if version is None:
        raise WorkflowNotFoundError(f"Version {version_id} not found", details={"version_id": str(version_id)})
    get_owned_workflow(db, workflow_id=version.workflow_id, owner_id=owner_id)
    return version


async def protect_workflow(
    db: Session,
    *,
    owner_id: UUID,
    remote_workflow_id: str,
    snapshot_service: SnapshotService,
    credential: Credential | None = None,
) -> ProtectResult:
    """
    Start protecting a remote workflow and capture its initial snapshot.

    Protecting beyond the plan allowance is allowed; the excess is recorded
    as an overage for the current billing period.
    """
    remote_workflow_id = str(remote_workflow_id).strip()
    if not remote_workflow_id:
        raise ValidationError("remote_workflow_id must not be empty")

    existing = get_workflow_by_remote_id(db, owner_id=owner_id, remote_workflow_id=remote_workflow_id)
    if existing is not None and existing.is_protected:
        return ProtectResult(
            workflow=existing,
            initial_version=None,
            quota=QuotaDecision(allowed=True, overage_recorded=False),
            created=False,
        )

    # Fails with RemoteNotFound / AuthExpired before anything is written.
    definition = await snapshot_service.fetch_definition(owner_id, remote_workflow_id, credential=credential)

    quota = check_and_record(
        db,
        owner_id=owner_id,
        resource_type=RESOURCE_WORKFLOW,
        current_count=count_protected_workflows(db, owner_id=owner_id),
        plan_limit=PlanLimitsProvider(db).get_limit(owner_id, RESOURCE_WORKFLOW),
    )
    if not quota.allowed:
        logger.warning("Owner %s exceeds the workflow allowance; protecting %s as overage", owner_id, remote_workflow_id)

    name = definition.name or f"Workflow {remote_workflow_id}"
    created = existing is None
    if existing is None:
        workflow = Workflow(
            owner_id=owner_id,
            remote_workflow_id=remote_workflow_id,
            name=name,
            is_protected=True,
            auto_sync=True,
            sync_status="pending",
        )
        persist_workflow(db, workflow=workflow)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            workflow = get_workflow_by_remote_id(db, owner_id=owner_id, remote_workflow_id=remote_workflow_id)
            if workflow is None:
                raise
            created = False
            workflow.is_protected = True
            workflow.name = name
            db.commit()
        db.refresh(workflow)
    else:
        workflow = existing
        workflow.is_protected = True
        workflow.name = name
        workflow = commit_refresh(db, workflow=workflow)

    workflow_id = workflow.id
    record_audit_log(
        db,
        actor_id=owner_id,
        action=AUDIT_ACTION_PROTECT,
        entity_type="workflow",
        entity_id=workflow_id,
        old_value=None if created else {"is_protected": False},
        new_value={
            "is_protected": True,
            "remote_workflow_id": remote_workflow_id,
            "overage_recorded": quota.overage_recorded,
        },
    )

    initial = snapshot_service.record_snapshot(
        db,
        workflow,
        definition.data,
        snapshot_type=SnapshotType.MANUAL,
        actor_id=owner_id,
        note="Initial snapshot" if created else "Snapshot on re-protect",
    )
    workflow = snapshot_service.mark_synced(db, workflow_id, name=definition.name) or workflow
    logger.info("Owner %s now protects workflow %s (remote %s)", owner_id, workflow_id, remote_workflow_id)
    return ProtectResult(workflow=workflow, initial_version=initial, quota=quota, created=created)


async def list_remote_workflows(
    db: Session,
    *,
    owner_id: UUID,
    snapshot_service: SnapshotService,
) -> list[dict[str, Any]]:
    """HubSpot workflows of the owner's portal, flagged with their protection state."""
    credential = await snapshot_service.credential_provider.get_valid_credential(owner_id)
    try:
        definitions = await snapshot_service.client.list_workflows(credential)
    except AuthExpired:
        credential = await snapshot_service.credential_provider.get_valid_credential(owner_id, force_refresh=True)
        definitions = await snapshot_service.client.list_workflows(credential)

    tracked = {wf.remote_workflow_id: wf for wf in list_workflows_for_owner(db, owner_id=owner_id)}
    items = []
    for definition in definitions:
        workflow = tracked.get(definition.remote_id)
        items.append(
            {
                "remote_workflow_id": definition.remote_id,
                "name": definition.name or f"Workflow {definition.remote_id}",
                "status": definition.status,
                "updated_at": definition.updated_at,
                "workflow_id": workflow.id if workflow is not None else None,
                "is_protected": bool(workflow is not None and workflow.is_protected),
            }
        )
    return items


def unprotect_workflow(db: Session, *, workflow: Workflow, actor_id: UUID) -> Workflow:
    """Stop protecting; stored versions are kept."""
    if not workflow.is_protected:
        return workflow
    workflow.is_protected = False
    workflow = commit_refresh(db, workflow=workflow)
    record_audit_log(
        db,
        actor_id=actor_id,
        action=AUDIT_ACTION_UNPROTECT,
        entity_type="workflow",
        entity_id=workflow.id,
        old_value={"is_protected": True},
        new_value={"is_protected": False},
    )
    return workflow


def get_history(
    db: Session,
    *,
    workflow: Workflow,
    limit: int | None = None,
    before_number: int | None = None,
    now: datetime | None = None,
) -> list[WorkflowVersion]:
    """
    Versions most recent first, limited to the owner's plan history window.
    """
    history_days = PlanLimitsProvider(db).get_history_days(workflow.owner_id)
    created_after = None
    if history_days is not None:
        created_after = (now or datetime.now(UTC)) - timedelta(days=int(history_days))
    return list_workflow_versions(
        db,
        workflow_id=workflow.id,
        limit=limit or settings.history_default_limit,
        before_number=before_number,
        created_after=created_after,
    )


def compare_versions(
    db: Session,
    *,
    owner_id: UUID,
    version_a_id: UUID,
    version_b_id: UUID,
) -> dict[str, Any]:
    """Field-level differences going from version A to version B."""
    version_a = get_owned_version(db, version_id=version_a_id, owner_id=owner_id)
    version_b = get_owned_version(db, version_id=version_b_id, owner_id=owner_id)
    if version_a.workflow_id != version_b.workflow_id:
        raise ValidationError(
            "Versions belong to different workflows",
            details={"version_a": str(version_a.id), "version_b": str(version_b.id)},
        )
    changes = diff_definitions(version_a.data or {}, version_b.data or {})
    return {
        "workflow_id": version_a.workflow_id,
        "version_a": version_a,
        "version_b": version_b,
        "identical": not changes,
        "changes": changes,
    }


def get_sync_status(db: Session, *, workflow: Workflow) -> dict[str, Any]:
    latest = get_latest_workflow_version(db, workflow_id=workflow.id)
    return {
        "workflow_id": workflow.id,
        "remote_workflow_id": workflow.remote_workflow_id,
        "name": workflow.name,
        "is_protected": workflow.is_protected,
        "auto_sync": workflow.auto_sync,
        "sync_interval_minutes": workflow.sync_interval_minutes,
        "sync_status": workflow.sync_status,
        "last_synced_at": workflow.last_synced_at,
        "last_sync_error": workflow.last_sync_error,
        "remote_missing_at": workflow.remote_missing_at,
        "latest_version_number": latest.version_number if latest else None,
        "version_count": count_workflow_versions(db, workflow_id=workflow.id),
    }


def list_sync_status(db: Session, *, owner_id: UUID) -> list[dict[str, Any]]:
    return [
        get_sync_status(db, workflow=workflow)
        for workflow in list_workflows_for_owner(db, owner_id=owner_id, protected_only=True)
    ]


def update_monitoring_settings(
    db: Session,
    *,
    workflow: Workflow,
    actor_id: UUID,
    auto_sync: bool | None = None,
    sync_interval_minutes: int | None = None,
    clear_interval: bool = False,
) -> Workflow:
    if sync_interval_minutes is not None and not (
        MIN_SYNC_INTERVAL_MINUTES <= int(sync_interval_minutes) <= MAX_SYNC_INTERVAL_MINUTES
    ):
        raise ValidationError(
            "sync_interval_minutes out of range",
            details={"min": MIN_SYNC_INTERVAL_MINUTES, "max": MAX_SYNC_INTERVAL_MINUTES},
        )

    old_value = {"auto_sync": workflow.auto_sync, "sync_interval_minutes": workflow.sync_interval_minutes}
    if auto_sync is not None:
        workflow.auto_sync = bool(auto_sync)
    if clear_interval:
        workflow.sync_interval_minutes = None
    elif sync_interval_minutes is not None:
        workflow.sync_interval_minutes = int(sync_interval_minutes)
    new_value = {"auto_sync": workflow.auto_sync, "sync_interval_minutes": workflow.sync_interval_minutes}
    if new_value == old_value:
        return workflow

    workflow = commit_refresh(db, workflow=workflow)
    record_audit_log(
        db,
        actor_id=actor_id,
        action=AUDIT_ACTION_MONITORING,
        entity_type="workflow",
        entity_id=workflow.id,
        old_value=old_value,
        new_value=new_value,
    )
    return workflow


__all__ = [
    "ProtectResult",
    "compare_versions",
    "get_history",
    "get_owned_version",
    "get_owned_workflow",
    "get_sync_status",
    "list_remote_workflows",
    "list_sync_status",
    "protect_workflow",
    "unprotect_workflow",
    "update_monitoring_settings",
]
