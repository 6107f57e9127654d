from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.workflow_version import SnapshotType

SyncStatusValue = Literal["pending", "synced", "stale", "error"]
RollbackModeValue = Literal["overwrite", "create-new-inactive"]


class WorkflowProtectRequest(BaseModel):
    remote_workflow_id: str = Field(..., min_length=1, max_length=64, description="HubSpot workflow id")


class WorkflowResponse(BaseModel):
    id: UUID
    owner_id: UUID
    remote_workflow_id: str
    name: str
    is_protected: bool
    auto_sync: bool
    sync_interval_minutes: int | None = None
    sync_status: SyncStatusValue
    last_synced_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RemoteWorkflowResponse(BaseModel):
    remote_workflow_id: str
    name: str
    status: Literal["active", "inactive", "unknown"]
    updated_at: datetime | None = None
    workflow_id: UUID | None = None
    is_protected: bool = False


class WorkflowVersionSummary(BaseModel):
    id: UUID
    workflow_id: UUID
    version_number: int
    snapshot_type: SnapshotType
    created_by: str
    note: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkflowVersionResponse(WorkflowVersionSummary):
    data: dict[str, Any]


class WorkflowProtectResponse(BaseModel):
    workflow: WorkflowResponse
    initial_version: WorkflowVersionSummary | None = None
    created: bool
    quota_exceeded: bool = Field(default=False, description="Protected beyond the plan allowance")
    overage_recorded: bool = False


class WorkflowReconcileResponse(BaseModel):
    workflow_id: UUID
    changed: bool
    version: WorkflowVersionSummary | None = None


class WorkflowHistoryResponse(BaseModel):
    workflow_id: UUID
    items: list[WorkflowVersionSummary]
    next_before: int | None = Field(
        default=None,
        description="Pass as `before` to fetch the next (older) page",
    )


class WorkflowRollbackRequest(BaseModel):
    version_id: UUID
    mode: RollbackModeValue = "overwrite"


class WorkflowRollbackResponse(BaseModel):
    workflow_id: UUID
    mode: RollbackModeValue
    target_version_id: UUID
    version: WorkflowVersionSummary


class FieldChange(BaseModel):
    old: Any = None
    new: Any = None
    change: Literal["added", "removed", "modified"]


class WorkflowCompareResponse(BaseModel):
    workflow_id: UUID
    version_a: WorkflowVersionSummary
    version_b: WorkflowVersionSummary
    identical: bool
    changes: dict[str, FieldChange]


class WorkflowSyncStatusResponse(BaseModel):
    workflow_id: UUID
    remote_workflow_id: str
    name: str
    is_protected: bool
    auto_sync: bool
    sync_interval_minutes: int | None = None
    sync_status: SyncStatusValue
    last_synced_at: datetime | None = None
    last_sync_error: str | None = None
    remote_missing_at: datetime | None = None
    latest_version_number: int | None = None
    version_count: int = 0


class WorkflowMonitoringUpdateRequest(BaseModel):
    auto_sync: bool | None = None
    sync_interval_minutes: int | None = Field(default=None, ge=5, le=7 * 24 * 60)
    clear_interval: bool = Field(default=False, description="Fall back to the global sync cadence")

    @model_validator(mode="after")
    def validate_fields(self) -> WorkflowMonitoringUpdateRequest:
        if self.clear_interval and self.sync_interval_minutes is not None:
            raise ValueError("clear_interval and sync_interval_minutes are mutually exclusive")
        return self


__all__ = [
    "FieldChange",
    "RemoteWorkflowResponse",
    "WorkflowCompareResponse",
    "WorkflowHistoryResponse",
    "WorkflowMonitoringUpdateRequest",
    "WorkflowProtectRequest",
    "WorkflowProtectResponse",
    "WorkflowReconcileResponse",
    "WorkflowResponse",
    "WorkflowRollbackRequest",
    "WorkflowRollbackResponse",
    "WorkflowSyncStatusResponse",
    "WorkflowVersionResponse",
    "WorkflowVersionSummary",
]
