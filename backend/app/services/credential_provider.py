"""
HubSpot OAuth credentials for an account.

Snapshot and rollback paths never refresh tokens themselves; they ask this
provider for a valid credential, and for a forced refresh after the remote
platform answered with AuthExpired.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

import httpx
from sqlalchemy.orm import Session, sessionmaker

from app.logging_config import logger
from app.repositories.user_repository import get_user_by_id, store_hubspot_tokens
from app.services.workflow_errors import AuthExpired, RemoteUnavailable
from app.settings import settings


@dataclass(frozen=True)
class Credential:
    account_id: UUID
    access_token: str
    expires_at: datetime | None = None


class CredentialProvider(Protocol):
    async def get_valid_credential(self, account_id: UUID, *, force_refresh: bool = False) -> Credential: ...


class StoredCredentialProvider:
    """
    Reads the token stored on the account and rotates it through the OAuth
    refresh grant when it is expired, about to expire, or explicitly rejected.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        token_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._token_url = token_url or settings.hubspot_oauth_token_url
        self._client_id = client_id if client_id is not None else settings.hubspot_client_id
        self._client_secret = client_secret if client_secret is not None else settings.hubspot_client_secret
        self._timeout = float(timeout or settings.remote_timeout_seconds)
        self._transport = transport

    def _needs_refresh(self, expires_at: datetime | None, *, now: datetime) -> bool:
        if expires_at is None:
            return False
        margin = timedelta(seconds=settings.hubspot_token_refresh_margin_seconds)
        return expires_at <= now + margin

    async def get_valid_credential(self, account_id: UUID, *, force_refresh: bool = False) -> Credential:
        with self._session_factory() as db:
            user = get_user_by_id(db, user_id=account_id)
            if user is None or not user.is_active:
                raise AuthExpired(f"Account {account_id} is not available", details={"account_id": str(account_id)})

            now = datetime.now(UTC)
            access_token = user.hubspot_access_token
            if access_token and not force_refresh and not self._needs_refresh(user.hubspot_token_expires_at, now=now):
                return Credential(account_id=user.id, access_token=access_token, expires_at=user.hubspot_token_expires_at)

            if not user.hubspot_refresh_token:
                raise AuthExpired(
                    "HubSpot credential expired and no refresh token is stored",
                    details={"account_id": str(account_id)},
                )

            token_data = await self._refresh(user.hubspot_refresh_token)
            expires_in = token_data.get("expires_in")
            expires_at = now + timedelta(seconds=int(expires_in)) if expires_in else None
            user = store_hubspot_tokens(
                db,
                user=user,
                access_token=str(token_data["access_token"]),
                refresh_token=token_data.get("refresh_token"),
                expires_at=expires_at,
            )
            logger.info("Refreshed HubSpot credential for account %s", account_id)
            return Credential(account_id=user.id, access_token=user.hubspot_access_token, expires_at=expires_at)

    async def _refresh(self, refresh_token: str) -> dict:
        form = {
            "grant_type": "refresh_token",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._token_url, data=form)
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"HubSpot token refresh failed: {exc}") from exc

        if resp.status_code in (400, 401, 403):
            raise AuthExpired("HubSpot rejected the refresh token", details={"status_code": resp.status_code})
        if resp.status_code >= 400:
            raise RemoteUnavailable("HubSpot token refresh failed", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise RemoteUnavailable(
                "HubSpot token refresh returned a malformed body", status_code=resp.status_code
            ) from exc
        if not isinstance(data, dict) or not data.get("access_token"):
            raise RemoteUnavailable("HubSpot token refresh returned no access token", status_code=resp.status_code)
        return data


__all__ = ["Credential", "CredentialProvider", "StoredCredentialProvider"]
