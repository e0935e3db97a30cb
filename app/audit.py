from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.models import AuditActorType, AuditLog

logger = logging.getLogger("app.audit")


def attendance_entity_id(employee_id: int, work_date: date) -> str:
    return f"{employee_id}:{work_date.isoformat()}"


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
    payload = dict(details or {})
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
            details=payload,
        )
    )
    log_extra = {
        "request_id": request_id,
        "action": action,
        "actor_type": actor_type.value,
        "actor_id": actor_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "success": success,
    }
    try:
        db.commit()
    except Exception:
        # The audited change is already committed; losing the trail entry must not undo it.
        db.rollback()
        logger.exception("audit_log_write_failed", extra=log_extra)
        return

    logger.info("audit_event", extra={**log_extra, "ip": ip, "user_agent": user_agent, "details": payload})
