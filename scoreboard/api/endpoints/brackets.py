from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from scoreboard.api.dependencies import get_current_admin, get_db
from scoreboard.models.user import User
from scoreboard.schemas import bracket_schemas
from scoreboard.services import bracket_service

router = APIRouter()

@router.get("/templates/{bracket_size}", response_model=List[bracket_schemas.GameTemplate])
async def get_template_endpoint(bracket_size: int):
    return bracket_service.get_template(bracket_size)

@router.get("/event/{event_id}", response_model=List[bracket_schemas.BracketRead])
async def list_event_brackets_endpoint(event_id: int, db: Session = Depends(get_db)):
    return bracket_service.list_brackets(db=db, event_id=event_id)

@router.post("/", response_model=bracket_schemas.BracketRead, status_code=status.HTTP_201_CREATED)
async def create_bracket_endpoint(
    bracket_in: bracket_schemas.BracketCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return bracket_service.create_bracket(
        db=db, event_id=bracket_in.event_id, name=bracket_in.name, bracket_size=bracket_in.bracket_size,
    )

@router.get("/{bracket_id}", response_model=bracket_schemas.BracketRead)
async def get_bracket_endpoint(bracket_id: int, db: Session = Depends(get_db)):
    return bracket_service.get_bracket(db=db, bracket_id=bracket_id)

@router.post("/{bracket_id}/entries", response_model=bracket_schemas.BracketEntryRead, status_code=status.HTTP_201_CREATED)
async def add_entry_endpoint(
    bracket_id: int,
    entry_in: bracket_schemas.BracketEntryCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return bracket_service.add_entry(
        db=db, bracket_id=bracket_id, seed_position=entry_in.seed_position, team_id=entry_in.team_id,
    )

@router.post("/{bracket_id}/entries/from-rankings", response_model=List[bracket_schemas.BracketEntryRead])
async def seed_entries_endpoint(
    bracket_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return bracket_service.seed_entries_from_rankings(db=db, bracket_id=bracket_id)

@router.delete("/{bracket_id}/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_entry_endpoint(
    bracket_id: int,
    entry_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    bracket_service.remove_entry(db=db, entry_id=entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post("/{bracket_id}/generate", response_model=List[bracket_schemas.BracketGameRead], status_code=status.HTTP_201_CREATED)
async def generate_games_endpoint(
    bracket_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return bracket_service.generate_games(db=db, bracket_id=bracket_id)

@router.get("/{bracket_id}/games", response_model=List[bracket_schemas.BracketGameRead])
async def list_games_endpoint(bracket_id: int, db: Session = Depends(get_db)):
    return bracket_service.list_games(db=db, bracket_id=bracket_id)

@router.post("/{bracket_id}/resolve-byes", response_model=bracket_schemas.ByeResolution)
async def resolve_byes_endpoint(
    bracket_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    bracket_service.get_bracket(db=db, bracket_id=bracket_id)
    return bracket_service.resolve_bracket_byes(db=db, bracket_id=bracket_id)
