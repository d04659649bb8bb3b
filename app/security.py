from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.errors import ApiError
from app.models import AuditActorType
from app.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"
SUPERVISOR_ROLE = "supervisor"
STAFF_ROLE = "staff"
KNOWN_ROLES = frozenset({ADMIN_ROLE, SUPERVISOR_ROLE, STAFF_ROLE})


@dataclass(frozen=True)
class ActorContext:
    """Identity of the caller, taken from already-issued token claims."""

    subject: str
    role: str
    employee_id: int | None = None
    is_super_admin: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def actor_id(self) -> str:
        return self.subject

    @property
    def audit_actor_type(self) -> AuditActorType:
        return AuditActorType.ADMIN if self.is_admin else AuditActorType.STAFF

    def owns(self, employee_id: int) -> bool:
        return self.employee_id is not None and self.employee_id == employee_id


SYSTEM_ACTOR = ActorContext(subject="system", role=ADMIN_ROLE, is_super_admin=False)


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.")
    if payload.get("role") not in KNOWN_ROLES:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    return payload


def actor_from_claims(claims: dict[str, Any]) -> ActorContext:
    raw_employee_id = claims.get("employee_id")
    employee_id: int | None = None
    if raw_employee_id is not None:
        try:
            employee_id = int(raw_employee_id)
        except (TypeError, ValueError) as exc:
            raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token employee is invalid.") from exc

    role = str(claims.get("role"))
    return ActorContext(
        subject=str(claims.get("sub")),
        role=role,
        employee_id=employee_id,
        is_super_admin=role == ADMIN_ROLE and bool(claims.get("is_super_admin")),
    )


def require_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> ActorContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    actor = actor_from_claims(decode_token(credentials.credentials))
    request.state.actor = actor.role
    request.state.actor_id = actor.actor_id
    request.state.employee_id = actor.employee_id
    return actor


def require_admin(actor: ActorContext = Depends(require_actor)) -> ActorContext:
    if not actor.is_admin:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    return actor


def require_super_admin(actor: ActorContext = Depends(require_admin)) -> ActorContext:
    if not actor.is_super_admin:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Super admin privileges required.")
    return actor


def require_staff(actor: ActorContext = Depends(require_actor)) -> ActorContext:
    if actor.role not in {STAFF_ROLE, SUPERVISOR_ROLE}:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    if actor.employee_id is None:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Token is not linked to an employee.")
    return actor
