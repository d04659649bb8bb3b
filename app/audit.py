from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import AuditActorType, AuditLog

if TYPE_CHECKING:
    from app.security import ActorContext

logger = logging.getLogger("app.audit")

SUMMARY_ENTITY = "monthly_summary"


@dataclass(frozen=True)
class RequestMeta:
    ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


NO_REQUEST = RequestMeta()


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    db.add(
        AuditLog(
            ts_utc=datetime.now(timezone.utc),
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip=ip,
            user_agent=user_agent,
            success=success,
            details=details or {},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        # The workflow write has already committed; a lost audit row is logged, not raised.
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_type": actor_type.value,
                "actor_id": actor_id,
                "entity_id": entity_id,
                "success": success,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "ip": ip,
            "success": success,
            "details": details or {},
        },
    )


def audit_summary_action(
    db: Session,
    *,
    actor: ActorContext,
    action: str,
    summary_id: int | None,
    success: bool = True,
    details: dict[str, Any] | None = None,
    meta: RequestMeta = NO_REQUEST,
) -> None:
    actor_type = AuditActorType.SYSTEM if actor.subject == "system" else actor.audit_actor_type
    log_audit(
        db,
        actor_type=actor_type,
        actor_id=actor.actor_id,
        action=action,
        success=success,
        entity_type=SUMMARY_ENTITY,
        entity_id=str(summary_id) if summary_id is not None else None,
        ip=meta.ip,
        user_agent=meta.user_agent,
        details=details,
        request_id=meta.request_id,
    )
