import os

# Keep the module level engine off the filesystem during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scoreboard.core.database import Base
from scoreboard.models import Event, ScoreSubmission, Team, User
from scoreboard.services import bracket_service


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def admin(db):
    user = User(name="Head Judge", email="admin@example.com", is_admin=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def event(db):
    event = Event(name="Spring Regional", seeding_rounds=3)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


@pytest.fixture
def make_team(db, event):
    def _make(team_number: int, event_id: int = None) -> Team:
        team = Team(
            event_id=event_id or event.id,
            team_number=team_number,
            team_name=f"Team {team_number}",
        )
        db.add(team)
        db.commit()
        db.refresh(team)
        return team
    return _make


@pytest.fixture
def make_submission(db, event):
    def _make(score_type: str, score_data: dict, bracket_game_id: int = None, event_id=-1) -> ScoreSubmission:
        submission = ScoreSubmission(
            event_id=event.id if event_id == -1 else event_id,
            score_type=score_type,
            bracket_game_id=bracket_game_id,
            score_data=score_data,
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)
        return submission
    return _make


@pytest.fixture
def bracket4(db, event, make_team):
    """A generated 4 team double elimination bracket, seed N held by team number N."""
    teams = [make_team(number) for number in range(1, 5)]
    bracket = bracket_service.create_bracket(db, event.id, "Double Elimination", 4)
    for position, team in enumerate(teams, start=1):
        bracket_service.add_entry(db, bracket.id, position, team.id)
    games = bracket_service.generate_games(db, bracket.id)
    return bracket, teams, {game.game_number: game for game in games}
