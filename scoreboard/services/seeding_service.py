import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from scoreboard.core.database import atomic, utcnow
from scoreboard.core.errors import BadRequestError, NotFoundError
from scoreboard.models.event import Team
from scoreboard.models.scoring import ScoreSubmission, SeedingRanking, SeedingScore
from scoreboard.schemas.seeding_schemas import ComputedRanking
from scoreboard.services import queue_service

logger = logging.getLogger(__name__)


def compute_seed_rankings(team_scores: Dict[int, List[Optional[float]]]) -> List[ComputedRanking]:
    """
    Derives the ranking table from each team's seeding scores.

    seed_average is the mean of the two best scores (or the only score).
    tiebreaker_value is the third best score when there are three or more,
    otherwise the sum of what is there. Teams without scores stay unranked
    and sort last. raw_seed_score blends rank (75%) and relative average (25%).
    """
    rankings: List[ComputedRanking] = []
    for team_id, scores in team_scores.items():
        values = sorted((s for s in scores if s is not None), reverse=True)
        if len(values) >= 2:
            average = (values[0] + values[1]) / 2
            tiebreaker = values[2] if len(values) >= 3 else sum(values)
        elif len(values) == 1:
            average = values[0]
            tiebreaker = values[0]
        else:
            average = None
            tiebreaker = None
        rankings.append(ComputedRanking(team_id=team_id, seed_average=average, tiebreaker_value=tiebreaker))

    ranked = [r for r in rankings if r.seed_average is not None]
    unranked = [r for r in rankings if r.seed_average is None]
    ranked.sort(key=lambda r: (r.seed_average, r.tiebreaker_value), reverse=True)

    n = len(ranked)
    max_average = ranked[0].seed_average if ranked else None
    if not max_average:
        max_average = 1 # Avoid dividing by zero when the best average is 0
    for index, ranking in enumerate(ranked):
        ranking.seed_rank = index + 1
        ranking.raw_seed_score = 0.75 * ((n - ranking.seed_rank + 1) / n) + 0.25 * (ranking.seed_average / max_average)

    return ranked + unranked


def recalculate_seeding_rankings(db: Session, event_id: int) -> Dict[str, int]:
    """Recomputes and upserts the ranking row of every team in the event."""
    teams = db.query(Team).filter(Team.event_id == event_id).all()
    if not teams:
        return {"teams_ranked": 0, "teams_unranked": 0}

    team_ids = [team.id for team in teams]
    team_scores: Dict[int, List[Optional[float]]] = {team_id: [] for team_id in team_ids}
    for score in db.query(SeedingScore).filter(SeedingScore.team_id.in_(team_ids)).all():
        team_scores[score.team_id].append(score.score)

    computed = compute_seed_rankings(team_scores)
    with atomic(db):
        existing = {
            row.team_id: row
            for row in db.query(SeedingRanking).filter(SeedingRanking.team_id.in_(team_ids)).with_for_update().all()
        }
        for ranking in computed:
            row = existing.get(ranking.team_id)
            if row is None:
                row = SeedingRanking(team_id=ranking.team_id)
                db.add(row)
            row.seed_average = ranking.seed_average
            row.seed_rank = ranking.seed_rank
            row.raw_seed_score = ranking.raw_seed_score
            row.tiebreaker_value = ranking.tiebreaker_value

    teams_ranked = sum(1 for r in computed if r.seed_rank is not None)
    return {"teams_ranked": teams_ranked, "teams_unranked": len(computed) - teams_ranked}


def list_rankings(db: Session, event_id: int) -> List[SeedingRanking]:
    rows = (
        db.query(SeedingRanking)
        .join(Team, Team.id == SeedingRanking.team_id)
        .filter(Team.event_id == event_id)
        .all()
    )
    # Ranked first by rank, unranked last
    return sorted(rows, key=lambda r: (r.seed_rank is None, r.seed_rank or 0))


def list_seeding_scores(db: Session, event_id: int, team_id: Optional[int] = None) -> List[SeedingScore]:
    query = db.query(SeedingScore).join(Team, Team.id == SeedingScore.team_id).filter(Team.event_id == event_id)
    if team_id is not None:
        query = query.filter(SeedingScore.team_id == team_id)
    return query.order_by(Team.team_number, SeedingScore.round_number).all()


def get_seeding_score(db: Session, team_id: int, round_number: int) -> Optional[SeedingScore]:
    return (
        db.query(SeedingScore)
        .filter(SeedingScore.team_id == team_id, SeedingScore.round_number == round_number)
        .with_for_update()
        .first()
    )


def upsert_seeding_score_row(
    db: Session, team_id: int, round_number: int, score: Optional[float], submission_id: Optional[int] = None,
) -> SeedingScore:
    """
    Inserts or overwrites the ledger row for (team, round) in the caller's
    transaction. Does not commit.
    """
    if round_number is None or round_number < 1:
        raise BadRequestError("round_number must be a positive integer")
    row = get_seeding_score(db, team_id, round_number)
    if row is None:
        row = SeedingScore(team_id=team_id, round_number=round_number)
        db.add(row)
    row.score = score
    row.score_submission_id = submission_id
    row.scored_at = utcnow()
    db.flush()
    return row


def save_seeding_score(
    db: Session, team_id: int, round_number: int, score: Optional[float], submission_id: Optional[int] = None,
) -> SeedingScore:
    """Manual ledger write by an admin, followed by the queue and ranking follow-ups."""
    with atomic(db):
        team = db.query(Team).filter(Team.id == team_id).first()
        if not team:
            raise NotFoundError("Team not found")
        row = upsert_seeding_score_row(db, team_id, round_number, score, submission_id)
    db.refresh(row)
    queue_service.update_seeding_queue_item(db, team.event_id, team_id, round_number, completed=score is not None)
    recalculate_seeding_rankings(db, team.event_id)
    return row


def delete_seeding_score(db: Session, score_id: int) -> bool:
    """
    Removes a ledger row. Idempotent: deleting a missing row is not an error.
    The pair's queue item is re-queued and rankings are recomputed.
    """
    with atomic(db):
        row = db.query(SeedingScore).filter(SeedingScore.id == score_id).first()
        if row is None:
            return False
        team = db.query(Team).filter(Team.id == row.team_id).first()
        event_id = team.event_id if team else None
        team_id, round_number = row.team_id, row.round_number
        db.query(ScoreSubmission).filter(ScoreSubmission.seeding_score_id == score_id).update(
            {ScoreSubmission.seeding_score_id: None}, synchronize_session=False
        )
        db.delete(row)

    if event_id is not None:
        queue_service.sync_seeding_queue(db, event_id)
        recalculate_seeding_rankings(db, event_id)
    logger.info("Deleted seeding score %s (team %s, round %s)", score_id, team_id, round_number)
    return True
