from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.deps import get_db, get_rollback_service, get_snapshot_service
from app.jwt_auth import AuthenticatedUser, require_jwt_token
from app.models import SnapshotType
from app.schemas.workflow import (
    RemoteWorkflowResponse,
    WorkflowCompareResponse,
    WorkflowHistoryResponse,
    WorkflowMonitoringUpdateRequest,
    WorkflowProtectRequest,
    WorkflowProtectResponse,
    WorkflowReconcileResponse,
    WorkflowResponse,
    WorkflowRollbackRequest,
    WorkflowRollbackResponse,
    WorkflowSyncStatusResponse,
    WorkflowVersionResponse,
    WorkflowVersionSummary,
)
from app.services.rollback_service import RollbackService
from app.services.snapshot_service import SnapshotService
from app.services.workflow_errors import WorkflowNotFoundError
from app.services.workflow_service import (
    compare_versions,
    get_history,
    get_owned_version,
    get_owned_workflow,
    get_sync_status,
    list_remote_workflows,
    list_sync_status,
    protect_workflow,
    unprotect_workflow,
    update_monitoring_settings,
)
from app.settings import settings

router = APIRouter(
    tags=["workflows"],
    prefix="/v1/workflows",
    dependencies=[Depends(require_jwt_token)],
)


@router.post("/protect", response_model=WorkflowProtectResponse, status_code=status.HTTP_201_CREATED)
async def protect_workflow_endpoint(
    payload: WorkflowProtectRequest,
    db: Session = Depends(get_db),
    snapshot_service: SnapshotService = Depends(get_snapshot_service),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowProtectResponse:
    result = await protect_workflow(
        db,
        owner_id=current_user.id,
        remote_workflow_id=payload.remote_workflow_id,
        snapshot_service=snapshot_service,
    )
    return WorkflowProtectResponse(
        workflow=WorkflowResponse.model_validate(result.workflow),
        initial_version=(
            WorkflowVersionSummary.model_validate(result.initial_version) if result.initial_version else None
        ),
        created=result.created,
        quota_exceeded=not result.quota.allowed,
        overage_recorded=result.quota.overage_recorded,
    )


@router.get("/remote", response_model=list[RemoteWorkflowResponse])
async def list_remote_workflows_endpoint(
    db: Session = Depends(get_db),
    snapshot_service: SnapshotService = Depends(get_snapshot_service),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> list[RemoteWorkflowResponse]:
    items = await list_remote_workflows(db, owner_id=current_user.id, snapshot_service=snapshot_service)
    return [RemoteWorkflowResponse(**item) for item in items]


@router.get("/sync-status", response_model=list[WorkflowSyncStatusResponse])
def list_sync_status_endpoint(
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> list[WorkflowSyncStatusResponse]:
    return [WorkflowSyncStatusResponse(**item) for item in list_sync_status(db, owner_id=current_user.id)]


@router.get("/compare", response_model=WorkflowCompareResponse)
def compare_versions_endpoint(
    version_a: UUID = Query(..., description="Base version"),
    version_b: UUID = Query(..., description="Version compared against the base"),
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowCompareResponse:
    result = compare_versions(
        db,
        owner_id=current_user.id,
        version_a_id=version_a,
        version_b_id=version_b,
    )
    return WorkflowCompareResponse(
        workflow_id=result["workflow_id"],
        version_a=WorkflowVersionSummary.model_validate(result["version_a"]),
        version_b=WorkflowVersionSummary.model_validate(result["version_b"]),
        identical=result["identical"],
        changes=result["changes"],
    )


@router.post("/{workflow_id}/reconcile", response_model=WorkflowReconcileResponse)
async def reconcile_workflow_endpoint(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    snapshot_service: SnapshotService = Depends(get_snapshot_service),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowReconcileResponse:
    get_owned_workflow(db, workflow_id=workflow_id, owner_id=current_user.id)
    version = await snapshot_service.reconcile(
        db,
        workflow_id,
        actor_id=current_user.id,
        snapshot_type=SnapshotType.MANUAL,
    )
    return WorkflowReconcileResponse(
        workflow_id=workflow_id,
        changed=version is not None,
        version=WorkflowVersionSummary.model_validate(version) if version is not None else None,
    )


@router.get("/{workflow_id}/history", response_model=WorkflowHistoryResponse)
def get_history_endpoint(
    workflow_id: UUID,
    limit: int = Query(settings.history_default_limit, ge=1, le=settings.history_max_limit),
    before: int | None = Query(None, ge=1, description="Only versions numbered below this one"),
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowHistoryResponse:
    workflow = get_owned_workflow(db, workflow_id=workflow_id, owner_id=current_user.id)
    versions = get_history(db, workflow=workflow, limit=limit, before_number=before)
    next_before = versions[-1].version_number if len(versions) == limit and versions else None
    return WorkflowHistoryResponse(
        workflow_id=workflow_id,
        items=[WorkflowVersionSummary.model_validate(v) for v in versions],
        next_before=next_before,
    )


@router.get("/{workflow_id}/versions/{version_id}", response_model=WorkflowVersionResponse)
def get_version_endpoint(
    workflow_id: UUID,
    version_id: UUID,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowVersionResponse:
    version = get_owned_version(db, version_id=version_id, owner_id=current_user.id)
    if version.workflow_id != workflow_id:
        get_owned_workflow(db, workflow_id=workflow_id, owner_id=current_user.id)
        raise WorkflowNotFoundError(
            f"Version {version_id} not found for workflow {workflow_id}",
            details={"workflow_id": str(workflow_id), "version_id": str(version_id)},
        )
    return WorkflowVersionResponse.model_validate(version)


@router.post("/{workflow_id}/rollback", response_model=WorkflowRollbackResponse)
async def rollback_workflow_endpoint(
    workflow_id: UUID,
    payload: WorkflowRollbackRequest,
    db: Session = Depends(get_db),
    rollback_service: RollbackService = Depends(get_rollback_service),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowRollbackResponse:
    get_owned_workflow(db, workflow_id=workflow_id, owner_id=current_user.id)
    version = await rollback_service.rollback(
        db,
        workflow_id,
        payload.version_id,
        payload.mode,
        actor_id=current_user.id,
    )
    return WorkflowRollbackResponse(
        workflow_id=workflow_id,
        mode=payload.mode,
        target_version_id=payload.version_id,
        version=WorkflowVersionSummary.model_validate(version),
    )


@router.get("/{workflow_id}/sync-status", response_model=WorkflowSyncStatusResponse)
def get_sync_status_endpoint(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowSyncStatusResponse:
    workflow = get_owned_workflow(db, workflow_id=workflow_id, owner_id=current_user.id)
    return WorkflowSyncStatusResponse(**get_sync_status(db, workflow=workflow))


@router.patch("/{workflow_id}/monitoring", response_model=WorkflowResponse)
def update_monitoring_endpoint(
    workflow_id: UUID,
    payload: WorkflowMonitoringUpdateRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowResponse:
    workflow = get_owned_workflow(db, workflow_id=workflow_id, owner_id=current_user.id)
    workflow = update_monitoring_settings(
        db,
        workflow=workflow,
        actor_id=current_user.id,
        auto_sync=payload.auto_sync,
        sync_interval_minutes=payload.sync_interval_minutes,
        clear_interval=payload.clear_interval,
    )
    return WorkflowResponse.model_validate(workflow)


@router.delete("/{workflow_id}/protection", response_model=WorkflowResponse)
def unprotect_workflow_endpoint(
    workflow_id: UUID,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_jwt_token),
) -> WorkflowResponse:
    workflow = get_owned_workflow(db, workflow_id=workflow_id, owner_id=current_user.id)
    workflow = unprotect_workflow(db, workflow=workflow, actor_id=current_user.id)
    return WorkflowResponse.model_validate(workflow)


__all__ = ["router"]
