from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from scoreboard.models.status import QueueStatus, QueueType

class QueueItemCreate(BaseModel):
    event_id: int
    queue_type: QueueType
    bracket_game_id: Optional[int] = None
    seeding_team_id: Optional[int] = None
    seeding_round: Optional[int] = None
    queue_position: Optional[int] = None # Defaults to the end of the queue

class QueueItemRead(BaseModel):
    id: int
    event_id: int
    queue_type: str
    bracket_game_id: Optional[int] = None
    seeding_team_id: Optional[int] = None
    seeding_round: Optional[int] = None
    queue_position: int
    status: str
    called_at: Optional[datetime] = None
    table_number: Optional[int] = None

    class Config:
        from_attributes = True

class QueueItemUpdate(BaseModel):
    # Only operator-owned fields may be edited directly
    status: Optional[QueueStatus] = None
    table_number: Optional[int] = None

class QueueCall(BaseModel):
    table_number: Optional[int] = None

class QueuePosition(BaseModel):
    id: int
    queue_position: int

class ReorderRequest(BaseModel):
    items: List[QueuePosition] = Field(default_factory=list)

class PopulateFromBracket(BaseModel):
    event_id: int
    bracket_id: int

class PopulateFromSeeding(BaseModel):
    event_id: int
