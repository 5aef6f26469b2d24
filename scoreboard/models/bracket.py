from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from scoreboard.core.database import Base, utcnow
from scoreboard.models.status import BracketStatus, GameStatus

class Bracket(Base):
    __tablename__ = "brackets"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    bracket_size = Column(Integer, nullable=False)
    actual_team_count = Column(Integer, nullable=True)
    status = Column(String, default=BracketStatus.SETUP.value, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    event = relationship("Event", back_populates="brackets")
    entries = relationship("BracketEntry", back_populates="bracket", cascade="all, delete-orphan")
    games = relationship(
        "BracketGame", back_populates="bracket", cascade="all, delete-orphan",
        order_by="BracketGame.game_number",
    )


class BracketEntry(Base):
    __tablename__ = "bracket_entries"
    __table_args__ = (UniqueConstraint("bracket_id", "seed_position", name="uq_entry_seed"),)

    id = Column(Integer, primary_key=True, index=True)
    bracket_id = Column(Integer, ForeignKey("brackets.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True)
    seed_position = Column(Integer, nullable=False)
    is_bye = Column(Boolean, default=False, nullable=False)

    bracket = relationship("Bracket", back_populates="entries")


class BracketGame(Base):
    __tablename__ = "bracket_games"
    __table_args__ = (UniqueConstraint("bracket_id", "game_number", name="uq_game_number"),)

    id = Column(Integer, primary_key=True, index=True)
    bracket_id = Column(Integer, ForeignKey("brackets.id", ondelete="CASCADE"), nullable=False, index=True)
    game_number = Column(Integer, nullable=False)
    round_name = Column(String, nullable=True)   # e.g. "Winners R1", "Grand Final"
    round_number = Column(Integer, nullable=True)
    bracket_side = Column(String, nullable=True) # winners, losers or finals

    team1_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    team2_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    # Where each slot is filled from: "seed:N", "winner:G" or "loser:G" (G is a game_number)
    team1_source = Column(String, nullable=True)
    team2_source = Column(String, nullable=True)

    status = Column(String, default=GameStatus.PENDING.value, nullable=False)
    winner_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    loser_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)

    winner_advances_to_id = Column(Integer, ForeignKey("bracket_games.id", ondelete="SET NULL"), nullable=True)
    loser_advances_to_id = Column(Integer, ForeignKey("bracket_games.id", ondelete="SET NULL"), nullable=True)
    winner_slot = Column(String, nullable=True) # "team1" or "team2"
    loser_slot = Column(String, nullable=True)

    team1_score = Column(Integer, nullable=True)
    team2_score = Column(Integer, nullable=True)
    # Plain column: submissions reference games, a second FK would make the tables cyclic
    score_submission_id = Column(Integer, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    bracket = relationship("Bracket", back_populates="games")

    @property
    def is_grand_final(self) -> bool:
        # Grand final: winner and loser both feed the championship reset game
        return (
            self.winner_advances_to_id is not None
            and self.winner_advances_to_id == self.loser_advances_to_id
        )
