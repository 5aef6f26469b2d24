from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class GameTemplate(BaseModel):
    game_number: int
    round_name: str
    round_number: int
    bracket_side: str
    team1_source: str # e.g. "seed:1", "winner:5", "loser:3"
    team2_source: str
    winner_advances_to: Optional[int] = None # game_number
    winner_slot: Optional[str] = None
    loser_advances_to: Optional[int] = None
    loser_slot: Optional[str] = None

class BracketCreate(BaseModel):
    event_id: int
    name: str
    bracket_size: int = Field(..., description="Number of seed positions, 4 or 8")

class BracketRead(BaseModel):
    id: int
    event_id: int
    name: str
    bracket_size: int
    actual_team_count: Optional[int] = None
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BracketEntryCreate(BaseModel):
    seed_position: int = Field(..., gt=0)
    team_id: Optional[int] = None # None makes the position a bye

class BracketEntryRead(BaseModel):
    id: int
    bracket_id: int
    team_id: Optional[int] = None
    seed_position: int
    is_bye: bool

    class Config:
        from_attributes = True

class BracketGameRead(BaseModel):
    id: int
    bracket_id: int
    game_number: int
    round_name: Optional[str] = None
    round_number: Optional[int] = None
    bracket_side: Optional[str] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    team1_source: Optional[str] = None
    team2_source: Optional[str] = None
    status: str
    winner_id: Optional[int] = None
    loser_id: Optional[int] = None
    winner_advances_to_id: Optional[int] = None
    loser_advances_to_id: Optional[int] = None
    winner_slot: Optional[str] = None
    loser_slot: Optional[str] = None
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    score_submission_id: Optional[int] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ByeResolution(BaseModel):
    bye_games_resolved: int = 0
    slots_filled: int = 0
    ready_games_updated: int = 0

class AffectedGame(BaseModel):
    id: int
    game_number: int
    round_name: Optional[str] = None
    affected_slots: List[str] # any of "team1", "team2", "winner"
