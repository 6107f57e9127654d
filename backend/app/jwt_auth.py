"""
Bearer JWT authentication for the HTTP API.

Tokens are HS256 (configurable) with `sub=<user id>`; the user must exist
and be active.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Depends, Header, status
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from app.deps import get_db
from app.errors import http_error
from app.repositories.user_repository import get_user_by_id
from app.settings import settings

_ISSUER = "workflow-guard"
_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class AuthenticatedUser:
    id: UUID
    email: str
    display_name: str | None
    plan_id: str | None
    is_active: bool


def _require_secret_key() -> str:
    secret = (settings.secret_key or "").strip()
    if not secret:
        raise RuntimeError("missing SECRET_KEY")
    return secret


def create_access_token(
    user_id: UUID | str,
    *,
    expires_in_seconds: int = 3600,
    issued_at: datetime.datetime | None = None,
) -> str:
    now = issued_at or datetime.datetime.now(datetime.UTC)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "type": _TOKEN_TYPE,
        "iss": _ISSUER,
        "iat": int(now.timestamp()),
        "exp": int((now + datetime.timedelta(seconds=int(expires_in_seconds))).timestamp()),
    }
    return jwt.encode(claims, _require_secret_key(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Raises ValueError for expired, malformed or foreign tokens."""
    try:
        claims = jwt.decode(
            token,
            _require_secret_key(),
            algorithms=[settings.jwt_algorithm],
            issuer=_ISSUER,
        )
    except ExpiredSignatureError as exc:
        raise ValueError("token expired") from exc
    except JWTError as exc:
        raise ValueError("invalid token") from exc
    if claims.get("type") != _TOKEN_TYPE or not claims.get("sub"):
        raise ValueError("invalid token type")
    return claims


def _unauthorized(message: str):
    exc = http_error(status.HTTP_401_UNAUTHORIZED, error="unauthorized", message=message)
    exc.headers = {"WWW-Authenticate": "Bearer"}
    return exc


async def require_jwt_token(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    if not authorization:
        raise _unauthorized("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Authorization header must be 'Bearer <token>'")

    try:
        claims = decode_access_token(token.strip())
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc

    user = get_user_by_id(db, user_id=claims["sub"])
    if user is None or not user.is_active:
        raise _unauthorized("User not found or inactive")

    return AuthenticatedUser(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        plan_id=user.plan_id,
        is_active=user.is_active,
    )


__all__ = ["AuthenticatedUser", "create_access_token", "decode_access_token", "require_jwt_token"]
