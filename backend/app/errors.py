from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.logging_config import logger
from app.services.workflow_errors import WorkflowGuardError

_STATUS_BY_CODE: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "auth_expired": status.HTTP_401_UNAUTHORIZED,
    "workflow_not_found": status.HTTP_404_NOT_FOUND,
    "remote_not_found": status.HTTP_404_NOT_FOUND,
    "version_conflict": status.HTTP_409_CONFLICT,
    "rollback_failed": status.HTTP_502_BAD_GATEWAY,
    "remote_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _error_body(code: str, message: str, details: dict[str, Any] | None) -> dict[str, Any]:
    return {"error": code, "message": message, "details": details or {}}


def http_error(
    status_code: int,
    *,
    error: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> HTTPException:
    return HTTPException(status_code=status_code, detail=_error_body(error, message, details))


def status_for_error(exc: WorkflowGuardError) -> int:
    return _STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def workflow_guard_error_handler(request: Request, exc: WorkflowGuardError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.warning("%s %s failed with %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": _error_body(exc.code, exc.message, exc.details)},
    )


__all__ = [
    "http_error",
    "status_for_error",
    "workflow_guard_error_handler",
]
