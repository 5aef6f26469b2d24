from scoreboard.core.database import Base, engine

# Import all models here to ensure they are registered with Base
from .user import User
from .event import Event, Team
from .scoring import ScoreSubmission, SeedingScore, SeedingRanking
from .bracket import Bracket, BracketEntry, BracketGame
from .queue import GameQueueItem
from .audit import AuditLog

# Create all tables in the database.
# Ensure this is called after all model definitions.
Base.metadata.create_all(bind=engine)
