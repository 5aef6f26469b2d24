from sqlalchemy import (
    JSON, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from scoreboard.core.database import Base, utcnow
from scoreboard.models.status import SubmissionStatus

class ScoreSubmission(Base):
    __tablename__ = "score_submissions"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=True, index=True) # Null for legacy submissions
    bracket_game_id = Column(Integer, ForeignKey("bracket_games.id", ondelete="SET NULL"), nullable=True)
    seeding_score_id = Column(Integer, ForeignKey("seeding_scores.id", ondelete="SET NULL"), nullable=True)
    score_type = Column(String, nullable=True) # "seeding" or "bracket"
    # Judge payload, shaped as {field_name: {"value": ...}}
    score_data = Column(JSON, nullable=False, default=dict)
    status = Column(String, default=SubmissionStatus.PENDING.value, nullable=False, index=True)
    participant_name = Column(String, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    reviewer = relationship("User", foreign_keys=[reviewed_by])


class SeedingScore(Base):
    __tablename__ = "seeding_scores"
    __table_args__ = (
        UniqueConstraint("team_id", "round_number", name="uq_seeding_team_round"),
        CheckConstraint("round_number > 0", name="ck_seeding_round_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    score = Column(Float, nullable=True)
    # Plain column: the submission already points here, a second FK would make the tables cyclic
    score_submission_id = Column(Integer, nullable=True)
    scored_at = Column(DateTime, nullable=True)

    team = relationship("Team", back_populates="seeding_scores")


class SeedingRanking(Base):
    __tablename__ = "seeding_rankings"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, unique=True)
    seed_average = Column(Float, nullable=True)
    seed_rank = Column(Integer, nullable=True)
    raw_seed_score = Column(Float, nullable=True)
    tiebreaker_value = Column(Float, nullable=True)

    team = relationship("Team", back_populates="ranking")
