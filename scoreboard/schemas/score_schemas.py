from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from scoreboard.models.status import ScoreType
from scoreboard.schemas.bracket_schemas import AffectedGame, ByeResolution

class ScoreSubmissionCreate(BaseModel):
    event_id: int
    score_type: ScoreType
    bracket_game_id: Optional[int] = None
    participant_name: Optional[str] = None
    # Field name -> {"value": ...}, e.g. {"team_id": {"value": 3}, "round": {"value": 1}}
    score_data: Dict[str, Any] = Field(default_factory=dict)

class ScoreSubmissionRead(BaseModel):
    id: int
    event_id: Optional[int] = None
    score_type: Optional[str] = None
    bracket_game_id: Optional[int] = None
    seeding_score_id: Optional[int] = None
    participant_name: Optional[str] = None
    score_data: Dict[str, Any]
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AcceptRequest(BaseModel):
    force: bool = False

class AdvancedSlot(BaseModel):
    game_id: int
    slot: str
    team_id: int

class AcceptResult(BaseModel):
    submission_id: int
    score_type: ScoreType
    seeding_score_id: Optional[int] = None
    bracket_game_id: Optional[int] = None
    winner_id: Optional[int] = None
    loser_id: Optional[int] = None
    advanced: List[AdvancedSlot] = Field(default_factory=list)
    # Downstream games cleared because a forced result changed the winner
    invalidated_games: List[AffectedGame] = Field(default_factory=list)
    bye_resolution: Optional[ByeResolution] = None

class SubmitResult(BaseModel):
    submission: ScoreSubmissionRead
    acceptance: Optional[AcceptResult] = None
    # Why auto-acceptance did not go through; the submission stays pending
    acceptance_error: Optional[Any] = None

class RevertRequest(BaseModel):
    dry_run: bool = False
    confirm: bool = False

class RevertResult(BaseModel):
    submission_id: int
    score_type: ScoreType
    reverted: bool = False
    dry_run: bool = False
    requires_confirmation: bool = False
    message: Optional[str] = None
    seeding_score_id: Optional[int] = None
    bracket_game_id: Optional[int] = None
    reverted_winner_id: Optional[int] = None
    reverted_loser_id: Optional[int] = None
    affected_games: List[AffectedGame] = Field(default_factory=list)

class BulkAcceptRequest(BaseModel):
    event_id: int
    score_ids: List[int] = Field(..., min_length=1)

class SkippedScore(BaseModel):
    id: int
    reason: Any

class BulkAcceptResult(BaseModel):
    accepted: List[int] = Field(default_factory=list)
    skipped: List[SkippedScore] = Field(default_factory=list)

class ResyncResult(BaseModel):
    teams_ranked: int
    teams_unranked: int
    bye_resolution: Dict[int, ByeResolution] = Field(default_factory=dict)
    seeding_queue: Dict[str, int] = Field(default_factory=dict)
    bracket_queue: Dict[str, int] = Field(default_factory=dict)
