"""
Shared logging setup.

Every module logs through the single `logger` exported here so that the API
process, Celery workers and the maintenance scripts share one format.
"""

from __future__ import annotations

import logging
import sys

from app.settings import settings

LOGGER_NAME = "workflow_guard"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _configure_logger() -> logging.Logger:
    log = logging.getLogger(LOGGER_NAME)
    if log.handlers:
        return log

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(handler)
    log.setLevel(getattr(logging, str(settings.log_level).upper(), logging.INFO))
    # Celery and uvicorn install their own root handlers; avoid duplicate lines.
    log.propagate = False
    return log


logger = _configure_logger()


__all__ = ["logger"]
