import json
import logging
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scoreboard.models.audit import AuditLog

logger = logging.getLogger(__name__)


def to_audit_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


def create_audit_entry(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    event_id: Optional[int] = None,
    user_id: Optional[int] = None,
    old_value: Any = None,
    new_value: Any = None,
    ip_address: Optional[str] = None,
) -> Optional[AuditLog]:
    """
    Appends one audit entry in its own commit.

    Audit writes are best effort: a failure is logged and the entry is
    dropped, the caller's already committed work is never undone.
    """
    entry = AuditLog(
        event_id=event_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_value=to_audit_json(old_value),
        new_value=to_audit_json(new_value),
        ip_address=ip_address,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write audit entry %s for %s %s", action, entity_type, entity_id)
        return None
    return entry


def list_audit_entries(
    db: Session,
    event_id: int,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuditLog]:
    query = db.query(AuditLog).filter(AuditLog.event_id == event_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()


def list_entity_history(db: Session, entity_type: str, entity_id: int) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
