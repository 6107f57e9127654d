"""
Error taxonomy for snapshot / rollback operations.

Every error carries a stable `code` so that the HTTP layer can report the
failure kind to the operator instead of a generic 500.
"""

from __future__ import annotations

from typing import Any


class WorkflowGuardError(RuntimeError):
    """Base class; `code` identifies the failure kind."""

    code = "workflow_guard_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AuthExpired(WorkflowGuardError):
    """The remote platform rejected the credential."""

    code = "auth_expired"


class RemoteNotFound(WorkflowGuardError):
    """The tracked entity no longer exists upstream."""

    code = "remote_not_found"


class RemoteUnavailable(WorkflowGuardError):
    """Transient failure: network error, timeout, rate limit or 5xx."""

    code = "remote_unavailable"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
        self.retry_after = retry_after


class VersionConflict(WorkflowGuardError):
    """Version number race that outlived the append retry budget."""

    code = "version_conflict"


class ValidationError(WorkflowGuardError):
    """Request rejected before any side effect (e.g. cross-workflow rollback target)."""

    code = "validation_error"


class WorkflowNotFoundError(WorkflowGuardError):
    """Unknown internal workflow or version id."""

    code = "workflow_not_found"


class RollbackFailed(WorkflowGuardError):
    """Write-back to the remote platform failed; no version was recorded."""

    code = "rollback_failed"

    def __init__(
        self,
        message: str,
        *,
        state: str,
        cause: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        merged.setdefault("state", state)
        if cause is not None:
            merged.setdefault("upstream_error", str(cause))
            upstream_code = getattr(cause, "code", None)
            if upstream_code:
                merged.setdefault("upstream_code", upstream_code)
        super().__init__(message, details=merged)
        self.state = state
        self.cause = cause


__all__ = [
    "AuthExpired",
    "RemoteNotFound",
    "RemoteUnavailable",
    "RollbackFailed",
    "ValidationError",
    "VersionConflict",
    "WorkflowGuardError",
    "WorkflowNotFoundError",
]
