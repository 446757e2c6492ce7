from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from checklist_scheduler.errors import ApiError, PermissionDenied
from checklist_scheduler.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_EMPLOYEE = "employee"
ROLE_SYSTEM = "system"
KNOWN_ROLES = {ROLE_ADMIN, ROLE_MANAGER, ROLE_EMPLOYEE, ROLE_SYSTEM}


@dataclass(frozen=True, slots=True)
class Actor:
    id: str
    name: str | None
    role: str
    org: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def ensure_admin(actor: Actor | None, *, action: str) -> Actor:
    if actor is None or not actor.is_admin:
        raise PermissionDenied(f"Only administrators can {action}.")
    return actor


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    *,
    sub: str,
    role: str,
    name: str | None = None,
    org: str | None = None,
) -> tuple[str, int, dict[str, Any]]:
    settings = get_settings()
    now = _utcnow()
    exp = now + timedelta(minutes=settings.access_token_minutes)
    claims = {
        "sub": sub,
        "name": name,
        "role": role,
        "org": org,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60, claims


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")

    if payload.get("role") not in KNOWN_ROLES:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Unknown role.")

    return payload


def require_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    payload = decode_token(credentials.credentials)
    actor = Actor(
        id=str(payload["sub"]),
        name=payload.get("name"),
        role=str(payload["role"]),
        org=payload.get("org"),
    )

    # Tokens scoped to one organization may not address another.
    path_org = request.path_params.get("org")
    if actor.org and path_org and actor.org != path_org:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Token is not valid for this organization.")

    request.state.actor = actor.role
    request.state.actor_id = actor.id
    return actor


def ensure_self_or_privileged(actor: Actor, employee_id: str) -> None:
    if actor.role in {ROLE_ADMIN, ROLE_SYSTEM}:
        return
    if actor.id != employee_id:
        raise PermissionDenied("Employees can only act on their own assignments.")
