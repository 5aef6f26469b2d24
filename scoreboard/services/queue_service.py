import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from scoreboard.core.config import settings
from scoreboard.core.database import atomic, utcnow
from scoreboard.core.errors import BadRequestError, ConflictError, NotFoundError
from scoreboard.models.bracket import Bracket, BracketGame
from scoreboard.models.event import Event, Team
from scoreboard.models.queue import GameQueueItem
from scoreboard.models.scoring import ScoreSubmission, SeedingScore
from scoreboard.models.status import (
    GameStatus, QueueStatus, QueueType, ScoreType, SubmissionStatus, TeamStatus, check_transition,
)
from scoreboard.services.score_payload import seeding_target

logger = logging.getLogger(__name__)

INACTIVE_TEAM_STATUSES = (TeamStatus.NO_SHOW.value, TeamStatus.WITHDRAWN.value)


def _next_position(db: Session, event_id: int) -> int:
    current = db.query(func.max(GameQueueItem.queue_position)).filter(GameQueueItem.event_id == event_id).scalar()
    return (current or 0) + 1


def _set_status(item: GameQueueItem, new_status: QueueStatus):
    check_transition("queue", item.status, new_status)
    item.status = new_status.value


def _requeue(item: GameQueueItem):
    _set_status(item, QueueStatus.QUEUED)
    item.called_at = None
    item.table_number = None


def _get_event(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFoundError("Event not found")
    return event


def _seeding_item(db: Session, event_id: int, team_id: int, round_number: int) -> Optional[GameQueueItem]:
    return (
        db.query(GameQueueItem)
        .filter(
            GameQueueItem.event_id == event_id,
            GameQueueItem.queue_type == QueueType.SEEDING.value,
            GameQueueItem.seeding_team_id == team_id,
            GameQueueItem.seeding_round == round_number,
        )
        .with_for_update()
        .first()
    )


def _bracket_item(db: Session, event_id: int, bracket_game_id: int) -> Optional[GameQueueItem]:
    return (
        db.query(GameQueueItem)
        .filter(
            GameQueueItem.event_id == event_id,
            GameQueueItem.queue_type == QueueType.BRACKET.value,
            GameQueueItem.bracket_game_id == bracket_game_id,
        )
        .with_for_update()
        .first()
    )


def _apply_completion(item: GameQueueItem, completed: bool):
    _set_status(item, QueueStatus.COMPLETED if completed else QueueStatus.QUEUED)
    item.called_at = None
    item.table_number = None


def update_seeding_queue_item(db: Session, event_id: int, team_id: int, round_number: int, completed: bool) -> GameQueueItem:
    """Marks the queue row for a seeding (team, round) pair completed or queued, creating it if missing."""
    with atomic(db):
        item = _seeding_item(db, event_id, team_id, round_number)
        if item:
            _apply_completion(item, completed)
        else:
            item = GameQueueItem(
                event_id=event_id,
                queue_type=QueueType.SEEDING.value,
                seeding_team_id=team_id,
                seeding_round=round_number,
                queue_position=_next_position(db, event_id),
                status=(QueueStatus.COMPLETED if completed else QueueStatus.QUEUED).value,
            )
            db.add(item)
    return item


def update_bracket_queue_item(db: Session, event_id: int, bracket_game_id: int, completed: bool) -> GameQueueItem:
    """Marks the queue row for a bracket game completed or queued, creating it if missing."""
    with atomic(db):
        item = _bracket_item(db, event_id, bracket_game_id)
        if item:
            _apply_completion(item, completed)
        else:
            item = GameQueueItem(
                event_id=event_id,
                queue_type=QueueType.BRACKET.value,
                bracket_game_id=bracket_game_id,
                queue_position=_next_position(db, event_id),
                status=(QueueStatus.COMPLETED if completed else QueueStatus.QUEUED).value,
            )
            db.add(item)
    return item


def _scored_seeding_pairs(db: Session, event_id: int) -> set:
    rows = (
        db.query(SeedingScore.team_id, SeedingScore.round_number)
        .join(Team, Team.id == SeedingScore.team_id)
        .filter(Team.event_id == event_id, SeedingScore.score.isnot(None))
        .all()
    )
    scored = {(team_id, round_number) for team_id, round_number in rows}
    # Pending submissions count as scored until they are accepted or rejected
    pending = (
        db.query(ScoreSubmission)
        .filter(
            ScoreSubmission.event_id == event_id,
            ScoreSubmission.score_type == ScoreType.SEEDING.value,
            ScoreSubmission.status == SubmissionStatus.PENDING.value,
        )
        .all()
    )
    for submission in pending:
        team_id, round_number, _ = seeding_target(db, submission)
        if team_id is not None and round_number is not None:
            scored.add((team_id, round_number))
    return scored


def sync_seeding_queue(db: Session, event_id: int) -> Dict[str, int]:
    """
    Projects seeding ledger state onto the queue.

    Every (team, round) pair up to the event's round count gets exactly one row.
    Scored pairs are forced completed; completed rows that lost their score are
    put back in the queue. Existing positions are never reassigned.
    """
    result = {"added": 0, "completed": 0, "requeued": 0}
    with atomic(db):
        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            return result
        rounds = event.seeding_rounds or settings.DEFAULT_SEEDING_ROUNDS
        teams = db.query(Team).filter(Team.event_id == event_id).order_by(Team.team_number).all()
        scored = _scored_seeding_pairs(db, event_id)
        existing: Dict[Tuple[int, int], GameQueueItem] = {
            (item.seeding_team_id, item.seeding_round): item
            for item in db.query(GameQueueItem)
            .filter(GameQueueItem.event_id == event_id, GameQueueItem.queue_type == QueueType.SEEDING.value)
            .with_for_update()
            .all()
        }
        next_position = _next_position(db, event_id)

        for team in teams:
            for round_number in range(1, rounds + 1):
                key = (team.id, round_number)
                item = existing.get(key)
                is_scored = key in scored
                if item is None:
                    if team.status in INACTIVE_TEAM_STATUSES and not is_scored:
                        continue
                    db.add(GameQueueItem(
                        event_id=event_id,
                        queue_type=QueueType.SEEDING.value,
                        seeding_team_id=team.id,
                        seeding_round=round_number,
                        queue_position=next_position,
                        status=(QueueStatus.COMPLETED if is_scored else QueueStatus.QUEUED).value,
                    ))
                    next_position += 1
                    result["added"] += 1
                elif is_scored and item.status != QueueStatus.COMPLETED.value:
                    _set_status(item, QueueStatus.COMPLETED)
                    result["completed"] += 1
                elif not is_scored and item.status == QueueStatus.COMPLETED.value:
                    _requeue(item)
                    result["requeued"] += 1

    if any(result.values()):
        logger.info("Seeding queue sync for event %s: %s", event_id, result)
    return result


def _is_playable(game: BracketGame) -> bool:
    if game.status in (GameStatus.READY.value, GameStatus.IN_PROGRESS.value):
        return True
    return game.status == GameStatus.PENDING.value and game.team1_id is not None and game.team2_id is not None


def sync_bracket_queue(db: Session, event_id: int) -> Dict[str, int]:
    """
    Projects bracket state onto the queue.

    Playable games get a row, completed and bye games have an open row forced
    completed, and a completed row whose game became playable again is
    re-queued. Rows for games that regressed to pending are left in place.
    """
    result = {"added": 0, "completed": 0, "requeued": 0}
    with atomic(db):
        games = (
            db.query(BracketGame)
            .join(Bracket, Bracket.id == BracketGame.bracket_id)
            .filter(Bracket.event_id == event_id)
            .order_by(BracketGame.bracket_id, BracketGame.game_number)
            .all()
        )
        if not games:
            return result
        existing: Dict[int, GameQueueItem] = {
            item.bracket_game_id: item
            for item in db.query(GameQueueItem)
            .filter(GameQueueItem.event_id == event_id, GameQueueItem.queue_type == QueueType.BRACKET.value)
            .with_for_update()
            .all()
        }
        next_position = _next_position(db, event_id)

        for game in games:
            item = existing.get(game.id)
            if game.status in (GameStatus.COMPLETED.value, GameStatus.BYE.value):
                if item and item.status != QueueStatus.COMPLETED.value:
                    _set_status(item, QueueStatus.COMPLETED)
                    result["completed"] += 1
            elif _is_playable(game):
                if item is None:
                    db.add(GameQueueItem(
                        event_id=event_id,
                        queue_type=QueueType.BRACKET.value,
                        bracket_game_id=game.id,
                        queue_position=next_position,
                        status=QueueStatus.QUEUED.value,
                    ))
                    next_position += 1
                    result["added"] += 1
                elif item.status == QueueStatus.COMPLETED.value:
                    _requeue(item)
                    result["requeued"] += 1

    if any(result.values()):
        logger.info("Bracket queue sync for event %s: %s", event_id, result)
    return result


def list_queue(
    db: Session,
    event_id: int,
    status: Optional[str] = None,
    queue_type: Optional[str] = None,
    sync: Optional[str] = None,
) -> List[GameQueueItem]:
    """Lists an event's queue in position order. `sync` may be "seeding", "bracket" or "all"."""
    if sync in ("seeding", "all"):
        sync_seeding_queue(db, event_id)
    if sync in ("bracket", "all"):
        sync_bracket_queue(db, event_id)

    query = db.query(GameQueueItem).filter(GameQueueItem.event_id == event_id)
    if status:
        query = query.filter(GameQueueItem.status == status)
    if queue_type:
        query = query.filter(GameQueueItem.queue_type == queue_type)
    return query.order_by(GameQueueItem.queue_position.asc(), GameQueueItem.id.asc()).all()


def get_queue_item(db: Session, item_id: int) -> GameQueueItem:
    item = db.query(GameQueueItem).filter(GameQueueItem.id == item_id).first()
    if not item:
        raise NotFoundError("Queue item not found")
    return item


def enqueue(
    db: Session,
    event_id: int,
    queue_type: str,
    bracket_game_id: Optional[int] = None,
    seeding_team_id: Optional[int] = None,
    seeding_round: Optional[int] = None,
    queue_position: Optional[int] = None,
) -> GameQueueItem:
    if queue_type == QueueType.BRACKET.value:
        if bracket_game_id is None:
            raise BadRequestError("bracket_game_id is required for bracket queue items")
        seeding_team_id = seeding_round = None
    elif queue_type == QueueType.SEEDING.value:
        if seeding_team_id is None or seeding_round is None:
            raise BadRequestError("seeding_team_id and seeding_round are required for seeding queue items")
        bracket_game_id = None
    else:
        raise BadRequestError(f"Unknown queue type: {queue_type}")

    with atomic(db):
        _get_event(db, event_id)
        if queue_type == QueueType.BRACKET.value:
            if _bracket_item(db, event_id, bracket_game_id):
                raise ConflictError("This game is already in the queue")
        elif _seeding_item(db, event_id, seeding_team_id, seeding_round):
            raise ConflictError("This seeding round is already in the queue")

        item = GameQueueItem(
            event_id=event_id,
            queue_type=queue_type,
            bracket_game_id=bracket_game_id,
            seeding_team_id=seeding_team_id,
            seeding_round=seeding_round,
            queue_position=queue_position if queue_position is not None else _next_position(db, event_id),
            status=QueueStatus.QUEUED.value,
        )
        db.add(item)
    db.refresh(item)
    return item


def reorder(db: Session, positions: List[Tuple[int, int]]) -> int:
    """Applies (item_id, queue_position) pairs in one transaction."""
    if not positions:
        raise BadRequestError("items array is required")
    with atomic(db):
        for item_id, queue_position in positions:
            item = db.query(GameQueueItem).filter(GameQueueItem.id == item_id).with_for_update().first()
            if not item:
                raise NotFoundError(f"Queue item {item_id} not found")
            item.queue_position = queue_position
    return len(positions)


def update_item(db: Session, item_id: int, status: Optional[str] = None, table_number: Optional[int] = None) -> GameQueueItem:
    if status is None and table_number is None:
        raise BadRequestError("No valid fields to update")
    with atomic(db):
        item = get_queue_item(db, item_id)
        if status is not None:
            _set_status(item, QueueStatus(status))
        if table_number is not None:
            item.table_number = table_number
    db.refresh(item)
    return item


def call_item(db: Session, item_id: int, table_number: Optional[int] = None) -> GameQueueItem:
    with atomic(db):
        item = get_queue_item(db, item_id)
        _set_status(item, QueueStatus.CALLED)
        item.called_at = utcnow()
        if table_number is not None:
            item.table_number = table_number
    db.refresh(item)
    return item


def remove_item(db: Session, item_id: int):
    with atomic(db):
        db.query(GameQueueItem).filter(GameQueueItem.id == item_id).delete()


def populate_from_bracket(db: Session, event_id: int, bracket_id: int) -> List[GameQueueItem]:
    """Replaces the event's whole queue with the bracket's playable games. Setup only."""
    with atomic(db):
        bracket = db.query(Bracket).filter(Bracket.id == bracket_id).first()
        if not bracket:
            raise NotFoundError("Bracket not found")
        if bracket.event_id != event_id:
            raise BadRequestError("Bracket does not belong to this event")

        games = (
            db.query(BracketGame)
            .filter(
                BracketGame.bracket_id == bracket_id,
                BracketGame.status.in_([GameStatus.READY.value, GameStatus.PENDING.value]),
                BracketGame.team1_id.isnot(None),
                BracketGame.team2_id.isnot(None),
            )
            .order_by(BracketGame.game_number)
            .all()
        )
        db.query(GameQueueItem).filter(GameQueueItem.event_id == event_id).delete()
        items = [
            GameQueueItem(
                event_id=event_id,
                queue_type=QueueType.BRACKET.value,
                bracket_game_id=game.id,
                queue_position=position,
                status=QueueStatus.QUEUED.value,
            )
            for position, game in enumerate(games, start=1)
        ]
        db.add_all(items)
    logger.info("Populated queue for event %s from bracket %s with %d games", event_id, bracket_id, len(items))
    return items


def populate_from_seeding(db: Session, event_id: int) -> List[GameQueueItem]:
    """Replaces the event's whole queue with every unplayed seeding round. Setup only."""
    with atomic(db):
        event = _get_event(db, event_id)
        rounds = event.seeding_rounds or settings.DEFAULT_SEEDING_ROUNDS
        teams = db.query(Team).filter(Team.event_id == event_id).order_by(Team.team_number).all()
        if not teams:
            raise BadRequestError("No teams found for this event")

        scored = _scored_seeding_pairs(db, event_id)
        db.query(GameQueueItem).filter(GameQueueItem.event_id == event_id).delete()
        items = []
        for team in teams:
            for round_number in range(1, rounds + 1):
                if (team.id, round_number) in scored:
                    continue
                items.append(GameQueueItem(
                    event_id=event_id,
                    queue_type=QueueType.SEEDING.value,
                    seeding_team_id=team.id,
                    seeding_round=round_number,
                    queue_position=len(items) + 1,
                    status=QueueStatus.QUEUED.value,
                ))
        db.add_all(items)
    logger.info("Populated queue for event %s with %d seeding rounds", event_id, len(items))
    return items
