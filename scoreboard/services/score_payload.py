from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session

from scoreboard.models.event import Team
from scoreboard.models.scoring import ScoreSubmission


def field_value(score_data: Optional[dict], *names: str) -> Any:
    """
    Returns the first present value among the named payload fields.
    Judge payloads store each field as {"value": ...}; bare values are accepted too.
    """
    if not score_data:
        return None
    for name in names:
        field = score_data.get(name)
        if isinstance(field, dict):
            field = field.get("value")
        if field is not None and field != "":
            return field
    return None


def to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def seeding_target(db: Session, submission: ScoreSubmission) -> Tuple[Optional[int], Optional[int], Optional[float]]:
    """Extracts (team_id, round_number, score) from a seeding submission payload."""
    data = submission.score_data or {}
    team_id = to_int(field_value(data, "team_id"))
    if team_id is None and submission.event_id is not None:
        team_number = to_int(field_value(data, "team_number"))
        if team_number is not None:
            team = (
                db.query(Team)
                .filter(Team.event_id == submission.event_id, Team.team_number == team_number)
                .first()
            )
            team_id = team.id if team else None
    round_number = to_int(field_value(data, "round", "round_number"))
    score = to_float(field_value(data, "grand_total", "score"))
    return team_id, round_number, score


def bracket_result(submission: ScoreSubmission) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """Extracts (winner_team_id, team1_score, team2_score) from a bracket submission payload."""
    data = submission.score_data or {}
    winner_id = to_int(field_value(data, "winner_team_id", "winner_id"))
    team1_score = to_int(field_value(data, "team1_score"))
    team2_score = to_int(field_value(data, "team2_score"))
    return winner_id, team1_score, team2_score
