from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from scoreboard.api.dependencies import get_current_admin, get_db
from scoreboard.models.user import User
from scoreboard.schemas import seeding_schemas
from scoreboard.services import seeding_service

router = APIRouter()

@router.get("/scores/event/{event_id}", response_model=List[seeding_schemas.SeedingScoreRead])
async def list_seeding_scores_endpoint(event_id: int, team_id: Optional[int] = None, db: Session = Depends(get_db)):
    return seeding_service.list_seeding_scores(db=db, event_id=event_id, team_id=team_id)

@router.post("/scores", response_model=seeding_schemas.SeedingScoreRead)
async def save_seeding_score_endpoint(
    score_in: seeding_schemas.SeedingScoreUpsert,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return seeding_service.save_seeding_score(
        db=db, team_id=score_in.team_id, round_number=score_in.round_number,
        score=score_in.score, submission_id=score_in.score_submission_id,
    )

@router.delete("/scores/{score_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_seeding_score_endpoint(
    score_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    seeding_service.delete_seeding_score(db=db, score_id=score_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/rankings/event/{event_id}", response_model=List[seeding_schemas.SeedingRankingRead])
async def list_rankings_endpoint(event_id: int, db: Session = Depends(get_db)):
    return seeding_service.list_rankings(db=db, event_id=event_id)

@router.post("/rankings/event/{event_id}/recalculate", response_model=seeding_schemas.RecalculateResult)
async def recalculate_rankings_endpoint(
    event_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return seeding_service.recalculate_seeding_rankings(db=db, event_id=event_id)
