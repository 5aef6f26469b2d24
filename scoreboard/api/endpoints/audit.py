from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from scoreboard.api.dependencies import get_current_admin, get_db
from scoreboard.models.user import User
from scoreboard.schemas import audit_schemas
from scoreboard.services import audit_service

router = APIRouter()

@router.get("/event/{event_id}", response_model=List[audit_schemas.AuditLogRead])
async def list_event_audit_endpoint(
    event_id: int,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return audit_service.list_audit_entries(
        db=db, event_id=event_id, action=action, entity_type=entity_type, limit=limit, offset=offset,
    )

@router.get("/entity/{entity_type}/{entity_id}", response_model=List[audit_schemas.AuditLogRead])
async def entity_history_endpoint(
    entity_type: str,
    entity_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return audit_service.list_entity_history(db=db, entity_type=entity_type, entity_id=entity_id)
