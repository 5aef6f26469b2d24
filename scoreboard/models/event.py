from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from scoreboard.core.database import Base, utcnow
from scoreboard.models.status import TeamStatus

class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    seeding_rounds = Column(Integer, nullable=True)  # Falls back to settings.DEFAULT_SEEDING_ROUNDS
    created_at = Column(DateTime, default=utcnow)

    teams = relationship("Team", back_populates="event", cascade="all, delete-orphan")
    brackets = relationship("Bracket", back_populates="event", cascade="all, delete-orphan")


class Team(Base):
    __tablename__ = "teams"
    __table_args__ = (UniqueConstraint("event_id", "team_number", name="uq_team_event_number"),)

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    team_number = Column(Integer, nullable=False)
    team_name = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    status = Column(String, default=TeamStatus.REGISTERED.value, nullable=False)

    event = relationship("Event", back_populates="teams")
    seeding_scores = relationship("SeedingScore", back_populates="team", cascade="all, delete-orphan")
    ranking = relationship("SeedingRanking", back_populates="team", uselist=False, cascade="all, delete-orphan")
