import logging
import re
from collections import deque
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from scoreboard.core.config import settings
from scoreboard.core.database import atomic, utcnow
from scoreboard.core.errors import BadRequestError, ConflictError, NotFoundError
from scoreboard.models.bracket import Bracket, BracketEntry, BracketGame
from scoreboard.models.event import Event, Team
from scoreboard.models.scoring import SeedingRanking
from scoreboard.models.status import BracketStatus, GameStatus, check_transition
from scoreboard.schemas.bracket_schemas import AffectedGame, ByeResolution, GameTemplate

logger = logging.getLogger(__name__)

SLOT_COLUMNS = {"team1": "team1_id", "team2": "team2_id"}
_SOURCE_RE = re.compile(r"^(seed|winner|loser):(\d+)$")

# Source resolution outcomes
_TEAM = "team"       # slot resolves to a concrete team
_EMPTY = "empty"     # slot can never be filled
_UNKNOWN = "unknown" # not decided yet


def _t(game_number, round_name, round_number, side, team1_source, team2_source,
       winner_to=None, loser_to=None) -> GameTemplate:
    winner_to = winner_to or (None, None)
    loser_to = loser_to or (None, None)
    return GameTemplate(
        game_number=game_number,
        round_name=round_name,
        round_number=round_number,
        bracket_side=side,
        team1_source=team1_source,
        team2_source=team2_source,
        winner_advances_to=winner_to[0],
        winner_slot=winner_to[1],
        loser_advances_to=loser_to[0],
        loser_slot=loser_to[1],
    )


# Double elimination layouts. The grand final sends both teams to the reset
# game, which is only played when the losers bracket side wins the final.
DE_TEMPLATES: Dict[int, List[GameTemplate]] = {
    4: [
        _t(1, "Winners R1", 1, "winners", "seed:1", "seed:4", (3, "team1"), (4, "team1")),
        _t(2, "Winners R1", 1, "winners", "seed:2", "seed:3", (3, "team2"), (4, "team2")),
        _t(3, "Winners Final", 2, "winners", "winner:1", "winner:2", (6, "team1"), (5, "team2")),
        _t(4, "Losers R1", 2, "losers", "loser:1", "loser:2", (5, "team1")),
        _t(5, "Losers Final", 3, "losers", "winner:4", "loser:3", (6, "team2")),
        _t(6, "Grand Final", 4, "finals", "winner:3", "winner:5", (7, "team2"), (7, "team1")),
        _t(7, "Championship Reset", 5, "finals", "loser:6", "winner:6"),
    ],
    8: [
        _t(1, "Winners R1", 1, "winners", "seed:1", "seed:8", (5, "team1"), (7, "team1")),
        _t(2, "Winners R1", 1, "winners", "seed:4", "seed:5", (5, "team2"), (7, "team2")),
        _t(3, "Winners R1", 1, "winners", "seed:2", "seed:7", (6, "team1"), (8, "team1")),
        _t(4, "Winners R1", 1, "winners", "seed:3", "seed:6", (6, "team2"), (8, "team2")),
        _t(5, "Winners R2", 2, "winners", "winner:1", "winner:2", (13, "team1"), (9, "team2")),
        _t(6, "Winners R2", 2, "winners", "winner:3", "winner:4", (13, "team2"), (10, "team2")),
        _t(7, "Losers R1", 2, "losers", "loser:1", "loser:2", (9, "team1")),
        _t(8, "Losers R1", 2, "losers", "loser:3", "loser:4", (10, "team1")),
        _t(9, "Losers R2", 3, "losers", "winner:7", "loser:5", (11, "team1")),
        _t(10, "Losers R2", 3, "losers", "winner:8", "loser:6", (11, "team2")),
        _t(11, "Losers Semi", 4, "losers", "winner:9", "winner:10", (12, "team1")),
        _t(12, "Losers Final", 5, "losers", "winner:11", "loser:13", (14, "team2")),
        _t(13, "Winners Final", 3, "winners", "winner:5", "winner:6", (14, "team1"), (12, "team2")),
        _t(14, "Grand Final", 6, "finals", "winner:13", "winner:12", (15, "team2"), (15, "team1")),
        _t(15, "Championship Reset", 7, "finals", "loser:14", "winner:14"),
    ],
}


def get_template(bracket_size: int) -> List[GameTemplate]:
    template = DE_TEMPLATES.get(bracket_size)
    if template is None:
        supported = ", ".join(str(size) for size in sorted(DE_TEMPLATES))
        raise BadRequestError(f"Unsupported bracket size: {bracket_size}. Supported sizes: {supported}")
    return template


def get_bracket(db: Session, bracket_id: int) -> Bracket:
    bracket = db.query(Bracket).filter(Bracket.id == bracket_id).first()
    if not bracket:
        raise NotFoundError("Bracket not found")
    return bracket


def list_brackets(db: Session, event_id: int) -> List[Bracket]:
    return db.query(Bracket).filter(Bracket.event_id == event_id).order_by(Bracket.id).all()


def get_game(db: Session, game_id: int, lock: bool = False) -> BracketGame:
    query = db.query(BracketGame).filter(BracketGame.id == game_id)
    if lock:
        query = query.with_for_update()
    game = query.first()
    if not game:
        raise NotFoundError("Bracket game not found")
    return game


def list_games(db: Session, bracket_id: int) -> List[BracketGame]:
    return (
        db.query(BracketGame)
        .filter(BracketGame.bracket_id == bracket_id)
        .order_by(BracketGame.game_number)
        .all()
    )


def create_bracket(db: Session, event_id: int, name: str, bracket_size: int) -> Bracket:
    get_template(bracket_size)
    with atomic(db):
        if not db.query(Event).filter(Event.id == event_id).first():
            raise NotFoundError("Event not found")
        bracket = Bracket(event_id=event_id, name=name, bracket_size=bracket_size)
        db.add(bracket)
    db.refresh(bracket)
    return bracket


def add_entry(db: Session, bracket_id: int, seed_position: int, team_id: Optional[int] = None) -> BracketEntry:
    """Places a team (or a bye when team_id is None) at a seed position."""
    with atomic(db):
        bracket = get_bracket(db, bracket_id)
        if seed_position < 1 or seed_position > bracket.bracket_size:
            raise BadRequestError(f"seed_position must be between 1 and {bracket.bracket_size}")
        if team_id is not None:
            team = db.query(Team).filter(Team.id == team_id).first()
            if not team:
                raise BadRequestError("Team not found")
            if team.event_id != bracket.event_id:
                raise BadRequestError("Team must belong to the same event as the bracket")
        duplicate = db.query(BracketEntry).filter(BracketEntry.bracket_id == bracket_id)
        if team_id is not None:
            duplicate = duplicate.filter(
                (BracketEntry.seed_position == seed_position) | (BracketEntry.team_id == team_id)
            )
        else:
            duplicate = duplicate.filter(BracketEntry.seed_position == seed_position)
        if duplicate.first():
            raise ConflictError("Team or seed position already exists in this bracket")

        entry = BracketEntry(
            bracket_id=bracket_id, team_id=team_id, seed_position=seed_position, is_bye=team_id is None,
        )
        db.add(entry)
    db.refresh(entry)
    return entry


def remove_entry(db: Session, entry_id: int):
    with atomic(db):
        db.query(BracketEntry).filter(BracketEntry.id == entry_id).delete()


def seed_entries_from_rankings(db: Session, bracket_id: int) -> List[BracketEntry]:
    """
    Replaces the bracket's entries with the top ranked teams of its event,
    seed position following seed rank. Positions left over become byes.
    """
    with atomic(db):
        bracket = get_bracket(db, bracket_id)
        if bracket.games:
            raise BadRequestError("Bracket games already generated")
        ranked = (
            db.query(SeedingRanking)
            .join(Team, Team.id == SeedingRanking.team_id)
            .filter(Team.event_id == bracket.event_id, SeedingRanking.seed_rank.isnot(None))
            .order_by(SeedingRanking.seed_rank)
            .limit(bracket.bracket_size)
            .all()
        )
        db.query(BracketEntry).filter(BracketEntry.bracket_id == bracket_id).delete()
        entries = []
        for position in range(1, bracket.bracket_size + 1):
            team_id = ranked[position - 1].team_id if position <= len(ranked) else None
            entries.append(BracketEntry(
                bracket_id=bracket_id, team_id=team_id, seed_position=position, is_bye=team_id is None,
            ))
        db.add_all(entries)
        bracket.actual_team_count = len(ranked)
    return entries


def generate_games(db: Session, bracket_id: int) -> List[BracketGame]:
    """
    Lays out the bracket's games from its double elimination template, wires
    the advancement edges and then lets the bye resolver seed the first round.
    """
    with atomic(db):
        bracket = get_bracket(db, bracket_id)
        if bracket.games:
            raise BadRequestError("Bracket games already generated")
        template = get_template(bracket.bracket_size)

        by_number: Dict[int, BracketGame] = {}
        for t in template:
            game = BracketGame(
                bracket_id=bracket_id,
                game_number=t.game_number,
                round_name=t.round_name,
                round_number=t.round_number,
                bracket_side=t.bracket_side,
                team1_source=t.team1_source,
                team2_source=t.team2_source,
                winner_slot=t.winner_slot,
                loser_slot=t.loser_slot,
                status=GameStatus.PENDING.value,
            )
            db.add(game)
            by_number[t.game_number] = game
        db.flush()

        for t in template:
            game = by_number[t.game_number]
            if t.winner_advances_to:
                game.winner_advances_to_id = by_number[t.winner_advances_to].id
            if t.loser_advances_to:
                game.loser_advances_to_id = by_number[t.loser_advances_to].id

        if bracket.actual_team_count is None:
            bracket.actual_team_count = (
                db.query(BracketEntry)
                .filter(BracketEntry.bracket_id == bracket_id, BracketEntry.team_id.isnot(None))
                .count()
            )
        bracket.status = BracketStatus.IN_PROGRESS.value

    resolve_bracket_byes(db, bracket_id)
    return list_games(db, bracket_id)


def write_slot(game: BracketGame, slot: str, team_id: Optional[int]):
    column = SLOT_COLUMNS.get(slot)
    if column is None:
        raise BadRequestError(f"Invalid slot: {slot}")
    setattr(game, column, team_id)


def _resolve_source(
    game: BracketGame,
    slot: str,
    entries: Dict[int, BracketEntry],
    by_number: Dict[int, BracketGame],
) -> Tuple[str, Optional[int]]:
    source = game.team1_source if slot == "team1" else game.team2_source
    match = _SOURCE_RE.match(source or "")
    if not match:
        return _UNKNOWN, None
    kind, number = match.group(1), int(match.group(2))

    if kind == "seed":
        entry = entries.get(number)
        if entry is None or entry.is_bye or entry.team_id is None:
            return _EMPTY, None
        return _TEAM, entry.team_id

    source_game = by_number.get(number)
    if source_game is None:
        return _EMPTY, None
    if source_game.status not in (GameStatus.COMPLETED.value, GameStatus.BYE.value):
        return _UNKNOWN, None
    if kind == "loser" and source_game.is_grand_final and source_game.winner_id == source_game.team1_id:
        # Winners bracket side took the grand final, no reset is played
        return _EMPTY, None
    team_id = source_game.winner_id if kind == "winner" else source_game.loser_id
    if team_id is None:
        return _EMPTY, None
    return _TEAM, team_id


def _mark_bye(game: BracketGame, winner_id: Optional[int], by_id: Dict[int, BracketGame]) -> int:
    """Auto-advances the sole occupant. Returns the number of downstream slots filled."""
    check_transition("game", game.status, GameStatus.BYE)
    game.status = GameStatus.BYE.value
    game.winner_id = winner_id
    game.loser_id = None
    game.completed_at = utcnow()
    if winner_id is None or not game.winner_advances_to_id or not game.winner_slot:
        return 0
    target = by_id.get(game.winner_advances_to_id)
    if target is None or getattr(target, SLOT_COLUMNS[game.winner_slot]) is not None:
        return 0
    write_slot(target, game.winner_slot, winner_id)
    return 1


def resolve_bracket_byes(db: Session, bracket_id: int) -> ByeResolution:
    """
    Fills every slot whose source is decided, auto-advances teams that can
    never get an opponent and flips fully seeded pending games to ready.
    Repeats until nothing changes, so it is safe to call at any time.
    """
    result = ByeResolution()
    max_iterations = settings.BYE_RESOLUTION_MAX_ITERATIONS
    with atomic(db):
        entries = {
            entry.seed_position: entry
            for entry in db.query(BracketEntry).filter(BracketEntry.bracket_id == bracket_id).all()
        }
        games = (
            db.query(BracketGame)
            .filter(BracketGame.bracket_id == bracket_id)
            .order_by(BracketGame.game_number)
            .with_for_update()
            .all()
        )
        by_number = {game.game_number: game for game in games}
        by_id = {game.id: game for game in games}

        iteration = 0
        changed = True
        while changed and iteration < max_iterations:
            changed = False
            iteration += 1
            for game in games:
                if game.status in (GameStatus.COMPLETED.value, GameStatus.BYE.value):
                    continue
                state1, team1 = _resolve_source(game, "team1", entries, by_number)
                state2, team2 = _resolve_source(game, "team2", entries, by_number)

                if game.team1_id is None and state1 == _TEAM:
                    game.team1_id = team1
                    result.slots_filled += 1
                    changed = True
                if game.team2_id is None and state2 == _TEAM:
                    game.team2_id = team2
                    result.slots_filled += 1
                    changed = True

                team1_missing = game.team1_id is None and state1 == _EMPTY
                team2_missing = game.team2_id is None and state2 == _EMPTY
                if game.team1_id is not None and team2_missing:
                    result.slots_filled += _mark_bye(game, game.team1_id, by_id)
                    result.bye_games_resolved += 1
                    changed = True
                elif game.team2_id is not None and team1_missing:
                    result.slots_filled += _mark_bye(game, game.team2_id, by_id)
                    result.bye_games_resolved += 1
                    changed = True
                elif team1_missing and team2_missing:
                    _mark_bye(game, None, by_id)
                    result.bye_games_resolved += 1
                    changed = True
                elif (
                    game.status == GameStatus.PENDING.value
                    and game.team1_id is not None
                    and game.team2_id is not None
                ):
                    game.status = GameStatus.READY.value
                    result.ready_games_updated += 1
                    changed = True

        if changed:
            logger.warning(
                "Bye resolution for bracket %s stopped after %d iterations without settling",
                bracket_id, max_iterations,
            )

    if result.bye_games_resolved or result.slots_filled or result.ready_games_updated:
        logger.info("Resolved byes for bracket %s: %s", bracket_id, result.model_dump())
    return result


def parse_game_source(source: Optional[str]) -> Optional[int]:
    """Returns the game number referenced by a "winner:G" / "loser:G" source."""
    match = _SOURCE_RE.match(source or "")
    if not match or match.group(1) == "seed":
        return None
    return int(match.group(2))


def find_affected_games(db: Session, game: BracketGame) -> List[AffectedGame]:
    """
    Walks the bracket forward from `game` and reports every downstream game
    whose participants depend on it, directly or through other dependent
    games. A dependent game that already has a result has that result
    invalidated as well ("winner" slot).
    """
    games = db.query(BracketGame).filter(BracketGame.bracket_id == game.bracket_id).all()
    by_id = {g.id: g for g in games}

    # Reverse lookup of advancement edges: target id -> {slot: {source ids}}
    feeders: Dict[int, Dict[str, set]] = {}
    for g in games:
        for target_id, slot in ((g.winner_advances_to_id, g.winner_slot), (g.loser_advances_to_id, g.loser_slot)):
            if target_id and slot in SLOT_COLUMNS:
                feeders.setdefault(target_id, {"team1": set(), "team2": set()})[slot].add(g.id)

    corrupted_ids = {game.id}
    corrupted_numbers = {game.game_number}
    visited = set()
    affected: List[AffectedGame] = []
    pending = deque(t for t in (game.winner_advances_to_id, game.loser_advances_to_id) if t)

    while pending:
        game_id = pending.popleft()
        if game_id in visited:
            continue
        visited.add(game_id)
        current = by_id.get(game_id)
        if current is None:
            continue

        slots = []
        for slot, source in (("team1", current.team1_source), ("team2", current.team2_source)):
            source_number = parse_game_source(source)
            fed_by = feeders.get(current.id, {}).get(slot, set())
            if source_number in corrupted_numbers or fed_by & corrupted_ids:
                slots.append(slot)
        if slots and current.winner_id is not None:
            slots.append("winner")

        if slots:
            affected.append(AffectedGame(
                id=current.id,
                game_number=current.game_number,
                round_name=current.round_name or f"Round {current.round_number}",
                affected_slots=slots,
            ))
            corrupted_ids.add(current.id)
            corrupted_numbers.add(current.game_number)

        # Keep walking: another branch further down may still depend on us
        for target_id in (current.winner_advances_to_id, current.loser_advances_to_id):
            if target_id and target_id not in visited:
                pending.append(target_id)

    return affected


def clear_game_result(game: BracketGame):
    """Drops a recorded result; the game goes back to ready or pending. Does not commit."""
    new_status = GameStatus.READY if game.team1_id is not None and game.team2_id is not None else GameStatus.PENDING
    check_transition("game", game.status, new_status)
    game.winner_id = None
    game.loser_id = None
    game.team1_score = None
    game.team2_score = None
    game.completed_at = None
    game.score_submission_id = None
    game.status = new_status.value


def clear_affected_games(db: Session, affected: List[AffectedGame]):
    """Clears the dependent slots and results found by find_affected_games. Does not commit."""
    for item in affected:
        current = db.query(BracketGame).filter(BracketGame.id == item.id).with_for_update().first()
        if current is None:
            continue
        for slot in ("team1", "team2"):
            if slot in item.affected_slots:
                write_slot(current, slot, None)
        if "winner" in item.affected_slots:
            current.winner_id = None
            current.loser_id = None
            current.team1_score = None
            current.team2_score = None
            current.completed_at = None
        check_transition("game", current.status, GameStatus.PENDING)
        current.status = GameStatus.PENDING.value
