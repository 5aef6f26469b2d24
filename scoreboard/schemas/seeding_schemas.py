from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class SeedingScoreUpsert(BaseModel):
    team_id: int
    round_number: int = Field(..., gt=0)
    score: Optional[float] = None
    score_submission_id: Optional[int] = None

class SeedingScoreRead(BaseModel):
    id: int
    team_id: int
    round_number: int
    score: Optional[float] = None
    score_submission_id: Optional[int] = None
    scored_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ComputedRanking(BaseModel):
    team_id: int
    seed_average: Optional[float] = None
    tiebreaker_value: Optional[float] = None
    seed_rank: Optional[int] = None
    raw_seed_score: Optional[float] = None

class SeedingRankingRead(ComputedRanking):
    id: int

    class Config:
        from_attributes = True

class RecalculateResult(BaseModel):
    teams_ranked: int
    teams_unranked: int
