from __future__ import annotations

from fastapi import Request
from sqlalchemy.orm import Session

from wecare_portal.models.audit_log import AuditEntityType, AuditLog
from wecare_portal.models.user import User


def client_ip(request: Request | None) -> str | None:
    if request is None or request.client is None:
        return None
    return request.client.host


def log_event(
    db: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: AuditEntityType,
    entity_id: int | str,
    patient_user_id: int | None = None,
    before_data: dict | None = None,
    after_data: dict | None = None,
    request: Request | None = None,
    request_id: str | None = None,
) -> AuditLog:
    """Stage an audit row on ``db``; the caller commits it with its own change."""
    entry = AuditLog(
        actor_user_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        patient_user_id=patient_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        request_id=request_id,
        ip_address=client_ip(request),
        before_data=before_data,
        after_data=after_data,
    )
    db.add(entry)
    return entry
