from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from scoreboard.api.dependencies import get_current_admin, get_db
from scoreboard.models.user import User
from scoreboard.schemas import queue_schemas
from scoreboard.services import queue_service

router = APIRouter()

@router.get("/event/{event_id}", response_model=List[queue_schemas.QueueItemRead])
async def list_queue_endpoint(
    event_id: int,
    status: Optional[str] = None,
    queue_type: Optional[str] = None,
    sync: Optional[str] = None, # "seeding", "bracket" or "all"
    db: Session = Depends(get_db),
):
    return queue_service.list_queue(db=db, event_id=event_id, status=status, queue_type=queue_type, sync=sync)

@router.post("/", response_model=queue_schemas.QueueItemRead, status_code=status.HTTP_201_CREATED)
async def enqueue_endpoint(
    item_in: queue_schemas.QueueItemCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return queue_service.enqueue(
        db=db,
        event_id=item_in.event_id,
        queue_type=item_in.queue_type.value,
        bracket_game_id=item_in.bracket_game_id,
        seeding_team_id=item_in.seeding_team_id,
        seeding_round=item_in.seeding_round,
        queue_position=item_in.queue_position,
    )

@router.patch("/reorder")
async def reorder_endpoint(
    reorder_in: queue_schemas.ReorderRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    updated = queue_service.reorder(db=db, positions=[(item.id, item.queue_position) for item in reorder_in.items])
    return {"success": True, "updated": updated}

@router.post("/populate-from-bracket", response_model=List[queue_schemas.QueueItemRead], status_code=status.HTTP_201_CREATED)
async def populate_from_bracket_endpoint(
    populate_in: queue_schemas.PopulateFromBracket,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return queue_service.populate_from_bracket(db=db, event_id=populate_in.event_id, bracket_id=populate_in.bracket_id)

@router.post("/populate-from-seeding", response_model=List[queue_schemas.QueueItemRead], status_code=status.HTTP_201_CREATED)
async def populate_from_seeding_endpoint(
    populate_in: queue_schemas.PopulateFromSeeding,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return queue_service.populate_from_seeding(db=db, event_id=populate_in.event_id)

@router.patch("/{item_id}", response_model=queue_schemas.QueueItemRead)
async def update_queue_item_endpoint(
    item_id: int,
    item_in: queue_schemas.QueueItemUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    new_status = item_in.status.value if item_in.status else None
    return queue_service.update_item(db=db, item_id=item_id, status=new_status, table_number=item_in.table_number)

@router.post("/{item_id}/call", response_model=queue_schemas.QueueItemRead)
async def call_queue_item_endpoint(
    item_id: int,
    call_in: queue_schemas.QueueCall = queue_schemas.QueueCall(),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return queue_service.call_item(db=db, item_id=item_id, table_number=call_in.table_number)

@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_queue_item_endpoint(
    item_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    queue_service.remove_item(db=db, item_id=item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
