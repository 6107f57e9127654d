"""
Celery application shared by the worker and beat processes.

Task modules register themselves (and their beat entries) on import; the
`include` list below is what the worker imports at start-up.
"""

from __future__ import annotations

from celery import Celery

from app.settings import settings

celery_app = Celery(
    "workflow_guard",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.workflow_sync"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)


__all__ = ["celery_app"]
