"""
Rollback: restore a stored version onto the remote platform.

Lifecycle of one request:

    requested -> validating -> writing -> recording -> completed
                      \\            \\           \\
                       +------------+-----------+--> failed

- validating: target version must exist and belong to the workflow;
  nothing is written when this fails.
- writing: remote update (overwrite) or remote create (create-new-inactive),
  bounded by a timeout; on failure no version is recorded.
- recording: append a `rollback` version with the target payload. A failure
  here happens after the remote write and is surfaced as such.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import logger
from app.models import SnapshotType, Workflow, WorkflowVersion
from app.repositories.workflow_repository import get_workflow
from app.repositories.workflow_version_repository import (
    append_workflow_version,
    get_latest_workflow_version,
    get_workflow_version,
)
from app.services.audit_log_service import record_audit_log
from app.services.credential_provider import Credential, CredentialProvider
from app.services.hubspot_workflow_client import RemoteDefinition, RemoteWorkflowClient, build_inactive_copy
from app.services.notification_dispatcher import EVENT_WORKFLOW_ROLLED_BACK, NotificationDispatcher
from app.services.workflow_errors import (
    AuthExpired,
    RemoteUnavailable,
    RollbackFailed,
    ValidationError,
    WorkflowNotFoundError,
)
from app.settings import settings

AUDIT_ACTION_ROLLBACK = "rollback_workflow"


class RollbackMode(str, Enum):
    OVERWRITE = "overwrite"
    CREATE_NEW_INACTIVE = "create-new-inactive"


class RollbackState(str, Enum):
    REQUESTED = "requested"
    VALIDATING = "validating"
    WRITING = "writing"
    RECORDING = "recording"
    COMPLETED = "completed"
    FAILED = "failed"


class RollbackService:
    def __init__(
        self,
        client: RemoteWorkflowClient,
        credential_provider: CredentialProvider,
        notifier: NotificationDispatcher | None = None,
        *,
        write_timeout: float | None = None,
    ) -> None:
        self.client = client
        self.credential_provider = credential_provider
        self.notifier = notifier
        self.write_timeout = float(write_timeout or settings.workflow_reconcile_timeout_seconds)

    def _enter(self, workflow_id: UUID, state: RollbackState) -> None:
        logger.debug("Rollback of workflow %s -> %s", workflow_id, state.value)

    def _validate(
        self, db: Session, workflow_id: UUID, target_version_id: UUID, mode: Any
    ) -> tuple[Workflow, WorkflowVersion, RollbackMode]:
        try:
            rollback_mode = RollbackMode(mode)
        except ValueError:
            raise ValidationError(
                f"Unsupported rollback mode: {mode!r}",
                details={"mode": str(mode), "allowed": [m.value for m in RollbackMode]},
            ) from None

        workflow = get_workflow(db, workflow_id=workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", details={"workflow_id": str(workflow_id)})

        target = get_workflow_version(db, version_id=target_version_id)
        if target is None:
            raise WorkflowNotFoundError(
                f"Version {target_version_id} not found",
                details={"version_id": str(target_version_id)},
            )
        if target.workflow_id != workflow.id:
            raise ValidationError(
                "Target version belongs to a different workflow",
                details={
                    "workflow_id": str(workflow.id),
                    "version_id": str(target.id),
                    "version_workflow_id": str(target.workflow_id),
                },
            )
        return workflow, target, rollback_mode

    async def _write_once(
        self,
        credential: Credential,
        remote_workflow_id: str,
        payload: dict[str, Any],
        mode: RollbackMode,
    ) -> RemoteDefinition:
        if mode is RollbackMode.OVERWRITE:
            call = self.client.update(credential, remote_workflow_id, payload)
        else:
            call = self.client.create_inactive(credential, payload)
        try:
            return await asyncio.wait_for(call, timeout=self.write_timeout)
        except TimeoutError as exc:
            raise RemoteUnavailable(f"Rollback write timed out after {self.write_timeout:.0f}s") from exc

    async def _write(
        self,
        owner_id: UUID,
        remote_workflow_id: str,
        payload: dict[str, Any],
        mode: RollbackMode,
        credential: Credential | None,
    ) -> RemoteDefinition:
        if credential is None:
            credential = await self.credential_provider.get_valid_credential(owner_id)
        try:
            return await self._write_once(credential, remote_workflow_id, payload, mode)
        except AuthExpired:
            # The rejected write did not apply; retrying with a rotated token is safe.
            logger.info("Credential rejected during rollback for account %s, refreshing once", owner_id)
            refreshed = await self.credential_provider.get_valid_credential(owner_id, force_refresh=True)
            return await self._write_once(refreshed, remote_workflow_id, payload, mode)

    async def rollback(
        self,
        db: Session,
        workflow_id: UUID,
        target_version_id: UUID,
        mode: RollbackMode | str,
        *,
        actor_id: UUID | str,
        credential: Credential | None = None,
    ) -> WorkflowVersion:
        """
        Restore `target_version_id` onto the remote platform and record the
        result as a new `rollback` version, whose payload is the target's.

        Raises ValidationError / WorkflowNotFoundError before any side effect,
        RollbackFailed(state="writing") when the remote write failed and
        RollbackFailed(state="recording") when the write succeeded but the
        version could not be stored.
        """
        self._enter(workflow_id, RollbackState.REQUESTED)

        self._enter(workflow_id, RollbackState.VALIDATING)
        workflow, target, rollback_mode = self._validate(db, workflow_id, target_version_id, mode)
        owner_id = workflow.owner_id
        remote_workflow_id = workflow.remote_workflow_id
        workflow_name = workflow.name
        target_id = target.id
        target_number = target.version_number
        payload = dict(target.data or {})
        previous = get_latest_workflow_version(db, workflow_id=workflow_id)
        previous_ref = (
            {"version_id": str(previous.id), "version_number": previous.version_number} if previous else None
        )

        self._enter(workflow_id, RollbackState.WRITING)
        if rollback_mode is RollbackMode.CREATE_NEW_INACTIVE:
            outgoing = build_inactive_copy(payload, name_suffix=f"(restored v{target_number})")
        else:
            outgoing = payload
        try:
            written = await self._write(owner_id, remote_workflow_id, outgoing, rollback_mode, credential)
        except Exception as exc:
            self._enter(workflow_id, RollbackState.FAILED)
            logger.warning(
                "Rollback of workflow %s to v%s failed while writing: %s",
                workflow_id,
                target_number,
                exc,
            )
            raise RollbackFailed(
                f"Remote write failed; workflow {workflow_id} was not modified",
                state=RollbackState.WRITING.value,
                cause=exc,
                details={"workflow_id": str(workflow_id), "target_version_id": str(target_id)},
            ) from exc

        if rollback_mode is RollbackMode.OVERWRITE:
            note = f"Restored from version {target_number}"
        else:
            note = f"Restored from version {target_number} as new inactive workflow {written.remote_id}"

        self._enter(workflow_id, RollbackState.RECORDING)
        try:
            version = append_workflow_version(
                db,
                workflow_id=workflow_id,
                snapshot_type=SnapshotType.ROLLBACK_RESULT,
                created_by=str(actor_id),
                data=payload,
                note=note,
            )
        except Exception as exc:
            self._enter(workflow_id, RollbackState.FAILED)
            logger.error(
                "Rollback of workflow %s was written upstream (%s) but could not be recorded: %s",
                workflow_id,
                rollback_mode.value,
                exc,
            )
            raise RollbackFailed(
                "Remote write succeeded but the rollback version could not be recorded",
                state=RollbackState.RECORDING.value,
                cause=exc,
                details={
                    "workflow_id": str(workflow_id),
                    "target_version_id": str(target_id),
                    "remote_workflow_id": written.remote_id,
                },
            ) from exc

        record_audit_log(
            db,
            actor_id=actor_id,
            action=AUDIT_ACTION_ROLLBACK,
            entity_type="workflow",
            entity_id=workflow_id,
            old_value=previous_ref,
            new_value={
                "version_id": str(version.id),
                "version_number": version.version_number,
                "target_version_id": str(target_id),
                "target_version_number": target_number,
                "mode": rollback_mode.value,
                "remote_workflow_id": written.remote_id,
            },
        )
        self._enter(workflow_id, RollbackState.COMPLETED)
        logger.info(
            "Workflow %s rolled back to v%s (%s) as v%s",
            workflow_id,
            target_number,
            rollback_mode.value,
            version.version_number,
        )

        if self.notifier is not None:
            await self.notifier.notify(
                EVENT_WORKFLOW_ROLLED_BACK,
                {
                    "workflow_id": str(workflow_id),
                    "name": workflow_name,
                    "version_id": str(version.id),
                    "version_number": version.version_number,
                    "target_version_id": str(target_id),
                    "target_version_number": target_number,
                    "mode": rollback_mode.value,
                    "remote_workflow_id": written.remote_id,
                },
                owner_id,
            )
        return version


__all__ = ["AUDIT_ACTION_ROLLBACK", "RollbackMode", "RollbackService", "RollbackState"]
