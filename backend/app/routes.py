"""
FastAPI application factory.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.v1.workflow_routes import router as workflow_router
from app.errors import workflow_guard_error_handler
from app.logging_config import logger
from app.services.workflow_errors import WorkflowGuardError
from app.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("%s starting (env=%s)", settings.app_name, settings.environment)
    yield
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(WorkflowGuardError, workflow_guard_error_handler)
    app.include_router(workflow_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


__all__ = ["app", "create_app"]
