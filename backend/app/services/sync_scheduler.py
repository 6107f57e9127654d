"""
Periodic reconciliation of every protected, auto-synced workflow.

One cycle walks all credentialed accounts and reconciles their due
workflows with bounded parallelism. Each reconciliation runs in its own
database session under its own timeout, so one failing or hanging workflow
never aborts or blocks the others.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from app.logging_config import logger
from app.models import SYSTEM_ACTOR, SnapshotType, Workflow
from app.repositories.workflow_repository import list_credentialed_account_ids, list_workflows_for_owner
from app.services.credential_provider import Credential, CredentialProvider
from app.services.snapshot_service import SnapshotService
from app.services.workflow_errors import AuthExpired, WorkflowGuardError
from app.settings import settings

OUTCOME_CHANGED = "changed"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"


@dataclass
class SyncCycleReport:
    started_at: datetime
    finished_at: datetime | None = None
    accounts: int = 0
    reconciled: int = 0
    changed: int = 0
    skipped: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    def add(self, workflow_id: UUID, outcome: str, reason: str | None = None) -> None:
        if outcome in (OUTCOME_CHANGED, OUTCOME_UNCHANGED):
            self.reconciled += 1
            if outcome == OUTCOME_CHANGED:
                self.changed += 1
        elif outcome == OUTCOME_SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failures[str(workflow_id)] = reason or "unknown error"

    def as_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "accounts": self.accounts,
            "reconciled": self.reconciled,
            "changed": self.changed,
            "skipped": self.skipped,
            "failed": self.failed,
            "failures": dict(self.failures),
        }


def is_due(workflow: Workflow, now: datetime) -> bool:
    """A protected, auto-synced workflow is due when its own interval (if any) has elapsed."""
    if not workflow.is_protected or not workflow.auto_sync:
        return False
    interval = workflow.sync_interval_minutes
    if not interval or workflow.last_synced_at is None:
        return True
    return workflow.last_synced_at + timedelta(minutes=int(interval)) <= now


class SyncScheduler:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        snapshot_service: SnapshotService,
        credential_provider: CredentialProvider,
        *,
        concurrency: int | None = None,
        reconcile_timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._snapshot_service = snapshot_service
        self._credential_provider = credential_provider
        self._concurrency = max(1, int(concurrency or settings.workflow_sync_concurrency))
        self._reconcile_timeout = float(reconcile_timeout or settings.workflow_reconcile_timeout_seconds)

    def _due_workflow_ids(self, account_id: UUID, now: datetime) -> list[UUID]:
        with self._session_factory() as db:
            workflows = list_workflows_for_owner(db, owner_id=account_id, protected_only=True)
            return [wf.id for wf in workflows if is_due(wf, now)]

    async def _reconcile_one(
        self,
        workflow_id: UUID,
        credential: Credential,
        semaphore: asyncio.Semaphore,
    ) -> tuple[UUID, str, str | None]:
        async with semaphore:
            with self._session_factory() as db:
                try:
                    version = await asyncio.wait_for(
                        self._snapshot_service.reconcile(
                            db,
                            workflow_id,
                            actor_id=SYSTEM_ACTOR,
                            credential=credential,
                            snapshot_type=SnapshotType.AUTOMATIC,
                        ),
                        timeout=self._reconcile_timeout,
                    )
                except AuthExpired as exc:
                    logger.warning("Skipping workflow %s: credential rejected (%s)", workflow_id, exc.message)
                    return workflow_id, OUTCOME_SKIPPED, exc.code
                except TimeoutError:
                    reason = f"reconcile timed out after {self._reconcile_timeout:.0f}s"
                    logger.warning("Workflow %s: %s", workflow_id, reason)
                    self._snapshot_service.mark_sync_failure(db, workflow_id, reason=reason)
                    return workflow_id, OUTCOME_FAILED, reason
                except WorkflowGuardError as exc:
                    logger.warning("Workflow %s failed to reconcile: %s (%s)", workflow_id, exc.message, exc.code)
                    return workflow_id, OUTCOME_FAILED, exc.code
                except Exception as exc:
                    logger.exception("Unexpected error while reconciling workflow %s", workflow_id)
                    db.rollback()
                    return workflow_id, OUTCOME_FAILED, repr(exc)
        return workflow_id, (OUTCOME_CHANGED if version is not None else OUTCOME_UNCHANGED), None

    async def _sync_account(
        self,
        account_id: UUID,
        semaphore: asyncio.Semaphore,
        now: datetime,
    ) -> list[tuple[UUID, str, str | None]]:
        try:
            workflow_ids = self._due_workflow_ids(account_id, now)
        except Exception:
            logger.exception("Could not list workflows for account %s", account_id)
            return []
        if not workflow_ids:
            return []

        try:
            credential = await self._credential_provider.get_valid_credential(account_id)
        except WorkflowGuardError as exc:
            logger.warning(
                "Skipping %s workflow(s) of account %s: no usable credential (%s)",
                len(workflow_ids),
                account_id,
                exc.code,
            )
            return [(workflow_id, OUTCOME_SKIPPED, exc.code) for workflow_id in workflow_ids]
        except Exception as exc:
            logger.exception("Credential lookup failed for account %s", account_id)
            return [(workflow_id, OUTCOME_FAILED, repr(exc)) for workflow_id in workflow_ids]

        return list(
            await asyncio.gather(
                *(self._reconcile_one(workflow_id, credential, semaphore) for workflow_id in workflow_ids)
            )
        )

    async def run_cycle(
        self,
        *,
        account_ids: Iterable[UUID] | None = None,
        now: datetime | None = None,
    ) -> SyncCycleReport:
        now = now or datetime.now(UTC)
        report = SyncCycleReport(started_at=now)

        if account_ids is None:
            with self._session_factory() as db:
                accounts = list_credentialed_account_ids(db)
        else:
            accounts = list(account_ids)
        report.accounts = len(accounts)

        semaphore = asyncio.Semaphore(self._concurrency)
        per_account = await asyncio.gather(
            *(self._sync_account(account_id, semaphore, now) for account_id in accounts),
            return_exceptions=True,
        )
        for account_id, outcomes in zip(accounts, per_account):
            if isinstance(outcomes, asyncio.CancelledError):
                raise outcomes
            if isinstance(outcomes, BaseException):
                logger.error("Sync of account %s aborted: %r", account_id, outcomes, exc_info=outcomes)
                # Failures are keyed by account when no workflow could be attributed.
                report.add(account_id, OUTCOME_FAILED, repr(outcomes))
                continue
            for workflow_id, outcome, reason in outcomes:
                report.add(workflow_id, outcome, reason)

        report.finished_at = datetime.now(UTC)
        logger.info(
            "Sync cycle finished: accounts=%s reconciled=%s changed=%s skipped=%s failed=%s",
            report.accounts,
            report.reconciled,
            report.changed,
            report.skipped,
            report.failed,
        )
        return report


__all__ = ["SyncCycleReport", "SyncScheduler", "is_due"]
