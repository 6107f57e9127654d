"""
Snapshot service: fetch the live definition, compare it with the latest
stored version and append a new version only when it changed.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import logger
from app.models import SYSTEM_ACTOR, SnapshotType, Workflow, WorkflowVersion
from app.repositories.workflow_repository import commit_refresh, get_workflow
from app.repositories.workflow_version_repository import append_workflow_version
from app.services.audit_log_service import record_audit_log
from app.services.change_detector import has_changed
from app.services.credential_provider import Credential, CredentialProvider
from app.services.hubspot_workflow_client import RemoteDefinition, RemoteWorkflowClient
from app.services.notification_dispatcher import EVENT_WORKFLOW_CHANGED, NotificationDispatcher
from app.services.workflow_errors import AuthExpired, RemoteNotFound, WorkflowGuardError, WorkflowNotFoundError

AUDIT_ACTION_SNAPSHOT = "sync"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _version_ref(version: WorkflowVersion | None) -> dict[str, Any] | None:
    if version is None:
        return None
    return {"version_id": str(version.id), "version_number": version.version_number}


class SnapshotService:
    def __init__(
        self,
        client: RemoteWorkflowClient,
        credential_provider: CredentialProvider,
        notifier: NotificationDispatcher | None = None,
    ) -> None:
        self.client = client
        self.credential_provider = credential_provider
        self.notifier = notifier

    async def fetch_definition(
        self,
        owner_id: UUID,
        remote_workflow_id: str,
        *,
        credential: Credential | None = None,
    ) -> RemoteDefinition:
        """Fetch the live definition, refreshing the credential once if it is rejected."""
        if credential is None:
            credential = await self.credential_provider.get_valid_credential(owner_id)
        try:
            return await self.client.fetch(credential, remote_workflow_id)
        except AuthExpired:
            logger.info("Credential rejected for account %s, refreshing once", owner_id)
            refreshed = await self.credential_provider.get_valid_credential(owner_id, force_refresh=True)
            return await self.client.fetch(refreshed, remote_workflow_id)

    def record_snapshot(
        self,
        db: Session,
        workflow: Workflow,
        data: dict[str, Any],
        *,
        snapshot_type: SnapshotType,
        actor_id: UUID | str,
        note: str | None = None,
    ) -> WorkflowVersion | None:
        """
        Append a version if `data` differs from the latest one, then audit it.

        Returns None (and writes nothing) when the definition is unchanged,
        including when a concurrent reconcile stored the same definition first.
        """
        workflow_id = workflow.id
        latest: WorkflowVersion | None = None

        def _still_changed(current: WorkflowVersion | None) -> bool:
            nonlocal latest
            latest = current
            return has_changed(current, data)

        version = append_workflow_version(
            db,
            workflow_id=workflow_id,
            snapshot_type=snapshot_type,
            created_by=str(actor_id),
            data=data,
            note=note,
            should_append=_still_changed,
        )
        if version is None:
            return None
        record_audit_log(
            db,
            actor_id=actor_id,
            action=AUDIT_ACTION_SNAPSHOT,
            entity_type="workflow",
            entity_id=workflow_id,
            old_value=_version_ref(latest),
            new_value={**_version_ref(version), "snapshot_type": version.snapshot_type.value},
        )
        logger.info(
            "Snapshot v%s (%s) stored for workflow %s",
            version.version_number,
            version.snapshot_type.value,
            workflow_id,
        )
        return version

    async def reconcile(
        self,
        db: Session,
        workflow_id: UUID,
        *,
        actor_id: UUID | str = SYSTEM_ACTOR,
        credential: Credential | None = None,
        snapshot_type: SnapshotType = SnapshotType.AUTOMATIC,
    ) -> WorkflowVersion | None:
        """
        Reconcile one workflow with its remote state.

        - Unprotected workflow: no-op, returns None.
        - Remote unchanged: returns None; no version and no audit entry.
        - Remote changed: returns the newly appended version.

        Remote errors propagate unchanged after the sync status is updated;
        RemoteNotFound flags the workflow as stale but keeps it protected.
        """
        workflow = get_workflow(db, workflow_id=workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", details={"workflow_id": str(workflow_id)})
        if not workflow.is_protected:
            logger.debug("Workflow %s is not protected; skipping reconcile", workflow_id)
            return None

        owner_id = workflow.owner_id
        remote_workflow_id = workflow.remote_workflow_id
        try:
            definition = await self.fetch_definition(owner_id, remote_workflow_id, credential=credential)
        except RemoteNotFound as exc:
            self.mark_remote_missing(db, workflow_id, reason=exc.message)
            raise
        except WorkflowGuardError as exc:
            self.mark_sync_failure(db, workflow_id, reason=f"{exc.code}: {exc.message}")
            raise

        version = self.record_snapshot(
            db,
            workflow,
            definition.data,
            snapshot_type=snapshot_type,
            actor_id=actor_id,
        )
        workflow = self.mark_synced(db, workflow_id, name=definition.name)

        if version is not None and snapshot_type is SnapshotType.AUTOMATIC and self.notifier is not None:
            await self.notifier.notify(
                EVENT_WORKFLOW_CHANGED,
                {
                    "workflow_id": str(workflow_id),
                    "name": workflow.name if workflow is not None else remote_workflow_id,
                    "version_id": str(version.id),
                    "version_number": version.version_number,
                    "snapshot_type": version.snapshot_type.value,
                },
                owner_id,
            )
        return version

    def mark_synced(self, db: Session, workflow_id: UUID, *, name: str | None = None) -> Workflow | None:
        workflow = get_workflow(db, workflow_id=workflow_id)
        if workflow is None:
            return None
        workflow.sync_status = "synced"
        workflow.last_synced_at = _utcnow()
        workflow.last_sync_error = None
        workflow.remote_missing_at = None
        if name and name != workflow.name:
            workflow.name = name
        return commit_refresh(db, workflow=workflow)

    def mark_remote_missing(self, db: Session, workflow_id: UUID, *, reason: str) -> None:
        workflow = get_workflow(db, workflow_id=workflow_id)
        if workflow is None:
            return
        workflow.sync_status = "stale"
        workflow.last_sync_error = reason
        if workflow.remote_missing_at is None:
            workflow.remote_missing_at = _utcnow()
        commit_refresh(db, workflow=workflow)
        logger.warning("Workflow %s no longer exists upstream; flagged stale", workflow_id)

    def mark_sync_failure(self, db: Session, workflow_id: UUID, *, reason: str) -> None:
        try:
            db.rollback()
            workflow = get_workflow(db, workflow_id=workflow_id)
            if workflow is None:
                return
            workflow.sync_status = "error"
            workflow.last_sync_error = reason[:2000]
            commit_refresh(db, workflow=workflow)
        except Exception:
            logger.exception("Failed to record sync failure for workflow %s", workflow_id)
            db.rollback()


__all__ = ["AUDIT_ACTION_SNAPSHOT", "SnapshotService"]
