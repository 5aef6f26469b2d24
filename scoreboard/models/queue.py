from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from scoreboard.core.database import Base, utcnow
from scoreboard.models.status import QueueStatus

class GameQueueItem(Base):
    __tablename__ = "game_queue"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    queue_type = Column(String, nullable=False) # "seeding" or "bracket"
    # Exactly one of bracket_game_id or (seeding_team_id, seeding_round) is set
    bracket_game_id = Column(Integer, ForeignKey("bracket_games.id", ondelete="CASCADE"), nullable=True)
    seeding_team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True)
    seeding_round = Column(Integer, nullable=True)
    queue_position = Column(Integer, nullable=False)
    status = Column(String, default=QueueStatus.QUEUED.value, nullable=False)
    called_at = Column(DateTime, nullable=True)
    table_number = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)
