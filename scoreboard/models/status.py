from enum import Enum
from typing import Dict, List

from scoreboard.core.errors import InvalidTransitionError


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class GameStatus(str, Enum):
    PENDING = "pending"         # Waiting for one or both teams
    READY = "ready"             # Both teams known, not yet played
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BYE = "bye"                 # Auto-advanced, no opponent


class QueueStatus(str, Enum):
    QUEUED = "queued"
    CALLED = "called"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TeamStatus(str, Enum):
    REGISTERED = "registered"
    CHECKED_IN = "checked_in"
    NO_SHOW = "no_show"
    WITHDRAWN = "withdrawn"


class ScoreType(str, Enum):
    SEEDING = "seeding"
    BRACKET = "bracket"


class QueueType(str, Enum):
    SEEDING = "seeding"
    BRACKET = "bracket"


class BracketSide(str, Enum):
    WINNERS = "winners"
    LOSERS = "losers"
    FINALS = "finals"


class BracketStatus(str, Enum):
    SETUP = "setup"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


SUBMISSION_TRANSITIONS: Dict[SubmissionStatus, List[SubmissionStatus]] = {
    SubmissionStatus.PENDING: [SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED],
    SubmissionStatus.REJECTED: [SubmissionStatus.ACCEPTED, SubmissionStatus.PENDING],
    SubmissionStatus.ACCEPTED: [SubmissionStatus.PENDING],
}

GAME_TRANSITIONS: Dict[GameStatus, List[GameStatus]] = {
    GameStatus.PENDING: [GameStatus.READY, GameStatus.BYE, GameStatus.COMPLETED],
    GameStatus.READY: [GameStatus.IN_PROGRESS, GameStatus.COMPLETED, GameStatus.PENDING],
    GameStatus.IN_PROGRESS: [GameStatus.COMPLETED, GameStatus.READY, GameStatus.PENDING],
    GameStatus.COMPLETED: [GameStatus.READY, GameStatus.PENDING],
    GameStatus.BYE: [GameStatus.PENDING],
}

QUEUE_TRANSITIONS: Dict[QueueStatus, List[QueueStatus]] = {
    QueueStatus.QUEUED: [QueueStatus.CALLED, QueueStatus.IN_PROGRESS, QueueStatus.COMPLETED],
    QueueStatus.CALLED: [QueueStatus.IN_PROGRESS, QueueStatus.COMPLETED, QueueStatus.QUEUED],
    QueueStatus.IN_PROGRESS: [QueueStatus.COMPLETED, QueueStatus.QUEUED],
    QueueStatus.COMPLETED: [QueueStatus.QUEUED],
}

TEAM_TRANSITIONS: Dict[TeamStatus, List[TeamStatus]] = {
    TeamStatus.REGISTERED: [TeamStatus.CHECKED_IN, TeamStatus.NO_SHOW, TeamStatus.WITHDRAWN],
    TeamStatus.CHECKED_IN: [TeamStatus.NO_SHOW, TeamStatus.WITHDRAWN],
    TeamStatus.NO_SHOW: [],
    TeamStatus.WITHDRAWN: [],
}

_TABLES = {
    "submission": (SubmissionStatus, SUBMISSION_TRANSITIONS),
    "game": (GameStatus, GAME_TRANSITIONS),
    "queue": (QueueStatus, QUEUE_TRANSITIONS),
    "team": (TeamStatus, TEAM_TRANSITIONS),
}


def can_transition(kind: str, current, new) -> bool:
    enum_cls, table = _TABLES[kind]
    current = enum_cls(current)
    new = enum_cls(new)
    if current == new:
        return True
    return new in table[current]


def check_transition(kind: str, current, new):
    """Raises InvalidTransitionError unless `current -> new` is allowed for this entity kind."""
    enum_cls, _ = _TABLES[kind]
    try:
        allowed = can_transition(kind, current, new)
    except ValueError:
        raise InvalidTransitionError(kind, str(current), str(new))
    if not allowed:
        raise InvalidTransitionError(kind, enum_cls(current).value, enum_cls(new).value)
