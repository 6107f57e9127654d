"""
Celery task: periodic snapshot cycle over every protected workflow.

Each run reconciles all due workflows of all credentialed accounts; the
per-workflow outcome is logged and summarised in the returned report.
"""

from __future__ import annotations

import asyncio
from typing import Any

from celery import shared_task

from app.celery_app import celery_app
from app.db import SessionLocal
from app.deps import build_credential_provider, build_snapshot_service
from app.logging_config import logger
from app.services.sync_scheduler import SyncScheduler
from app.settings import settings


async def _run_cycle() -> dict[str, Any]:
    credential_provider = build_credential_provider(SessionLocal)
    scheduler = SyncScheduler(
        SessionLocal,
        build_snapshot_service(SessionLocal, credential_provider=credential_provider),
        credential_provider,
    )
    report = await scheduler.run_cycle()
    return report.as_dict()


@shared_task(name="tasks.workflow_sync.run_cycle")
def run_workflow_sync_cycle_task() -> dict[str, Any]:
    """
    Celery entry point: reconcile every due protected workflow once.
    """
    report = asyncio.run(_run_cycle())
    if report["failed"]:
        logger.warning("Workflow sync cycle had %s failure(s): %s", report["failed"], report["failures"])
    return report


celery_app.conf.beat_schedule = getattr(celery_app.conf, "beat_schedule", {}) or {}
celery_app.conf.beat_schedule.update(
    {
        "workflow-sync-cycle": {
            "task": "tasks.workflow_sync.run_cycle",
            "schedule": settings.workflow_sync_interval_seconds,
        },
    }
)


__all__ = ["run_workflow_sync_cycle_task"]
