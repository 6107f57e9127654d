from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from app.services.credential_provider import Credential
from app.services.workflow_errors import AuthExpired, RemoteNotFound, RemoteUnavailable
from app.settings import settings

WORKFLOWS_PATH = "/automation/v3/workflows"

# Server-assigned fields that must not be sent when creating a new workflow.
_SERVER_MANAGED_FIELDS = frozenset(
    {
        "id",
        "portalId",
        "insertedAt",
        "updatedAt",
        "migrationStatus",
        "creationSource",
        "updateSource",
        "originalAuthorUserId",
        "lastUpdatedBy",
    }
)


@dataclass(frozen=True)
class RemoteDefinition:
    """Full remote representation plus the metadata HubSpot exposes about it."""

    remote_id: str
    data: dict[str, Any]
    enabled: bool | None = None
    updated_at: datetime | None = None

    @property
    def status(self) -> str:
        if self.enabled is None:
            return "unknown"
        return "active" if self.enabled else "inactive"

    @property
    def name(self) -> str | None:
        value = self.data.get("name")
        return value if isinstance(value, str) and value.strip() else None


class RemoteWorkflowClient(Protocol):
    async def list_workflows(self, credential: Credential) -> list[RemoteDefinition]: ...

    async def fetch(self, credential: Credential, remote_workflow_id: str) -> RemoteDefinition: ...

    async def update(
        self, credential: Credential, remote_workflow_id: str, data: dict[str, Any]
    ) -> RemoteDefinition: ...

    async def create_inactive(self, credential: Credential, data: dict[str, Any]) -> RemoteDefinition: ...


def _parse_millis(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _to_definition(payload: dict[str, Any], *, fallback_id: str | None = None) -> RemoteDefinition:
    remote_id = payload.get("id", fallback_id)
    enabled = payload.get("enabled")
    return RemoteDefinition(
        remote_id=str(remote_id) if remote_id is not None else "",
        data=payload,
        enabled=enabled if isinstance(enabled, bool) else None,
        updated_at=_parse_millis(payload.get("updatedAt")),
    )


def _retry_after(resp: httpx.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def build_inactive_copy(data: dict[str, Any], *, name_suffix: str | None = None) -> dict[str, Any]:
    """Seed payload for a new, disabled workflow created from a stored definition."""
    body = {key: value for key, value in data.items() if key not in _SERVER_MANAGED_FIELDS}
    body["enabled"] = False
    if name_suffix and isinstance(body.get("name"), str):
        body["name"] = f"{body['name']} {name_suffix}".strip()
    return body


class HubSpotWorkflowClient:
    """
    Remote fetcher/writer for HubSpot Automation v3 workflows.

    Every call is bounded by `timeout`; a timeout is reported exactly like
    any other transient failure (RemoteUnavailable).
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.hubspot_api_base_url).rstrip("/")
        self._timeout = float(timeout or settings.remote_timeout_seconds)
        self._transport = transport

    def _headers(self, credential: Credential) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential.access_token}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        credential: Credential,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, path, headers=self._headers(credential), json=json_body)
        except httpx.TimeoutException as exc:
            raise RemoteUnavailable(f"HubSpot {method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"HubSpot {method} {path} failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthExpired(
                "HubSpot rejected the access token",
                details={"status_code": resp.status_code, "path": path},
            )
        if resp.status_code == 404:
            raise RemoteNotFound(f"HubSpot resource {path} not found", details={"path": path})
        if resp.status_code == 429 or resp.status_code >= 500:
            raise RemoteUnavailable(
                f"HubSpot {method} {path} returned {resp.status_code}",
                status_code=resp.status_code,
                retry_after=_retry_after(resp),
            )
        if resp.status_code >= 400:
            # Remaining 4xx are not retryable; surface them as unavailable with the body for the operator.
            raise RemoteUnavailable(
                f"HubSpot {method} {path} returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"HubSpot {method} {path} returned invalid JSON") from exc

    async def list_workflows(self, credential: Credential) -> list[RemoteDefinition]:
        payload = await self._request("GET", WORKFLOWS_PATH, credential)
        items = payload.get("workflows") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        return [_to_definition(item) for item in items if isinstance(item, dict) and item.get("id") is not None]

    async def fetch(self, credential: Credential, remote_workflow_id: str) -> RemoteDefinition:
        payload = await self._request("GET", f"{WORKFLOWS_PATH}/{remote_workflow_id}", credential)
        if not isinstance(payload, dict):
            raise RemoteUnavailable(f"Unexpected HubSpot payload for workflow {remote_workflow_id}")
        return _to_definition(payload, fallback_id=str(remote_workflow_id))

    async def update(
        self, credential: Credential, remote_workflow_id: str, data: dict[str, Any]
    ) -> RemoteDefinition:
        payload = await self._request(
            "PUT",
            f"{WORKFLOWS_PATH}/{remote_workflow_id}",
            credential,
            json_body=data,
        )
        if not isinstance(payload, dict) or not payload:
            payload = dict(data)
        return _to_definition(payload, fallback_id=str(remote_workflow_id))

    async def create_inactive(self, credential: Credential, data: dict[str, Any]) -> RemoteDefinition:
        body = dict(data)
        body["enabled"] = False
        payload = await self._request("POST", WORKFLOWS_PATH, credential, json_body=body)
        if not isinstance(payload, dict) or payload.get("id") is None:
            raise RemoteUnavailable("HubSpot did not return the id of the created workflow")
        return _to_definition(payload)


__all__ = [
    "HubSpotWorkflowClient",
    "RemoteDefinition",
    "RemoteWorkflowClient",
    "build_inactive_copy",
]
