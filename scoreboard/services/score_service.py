import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from scoreboard.core.database import atomic, utcnow
from scoreboard.core.errors import BadRequestError, ConflictError, NotFoundError
from scoreboard.models.bracket import Bracket, BracketGame
from scoreboard.models.event import Event, Team
from scoreboard.models.scoring import ScoreSubmission, SeedingScore
from scoreboard.models.status import GameStatus, ScoreType, SubmissionStatus, check_transition
from scoreboard.schemas import score_schemas
from scoreboard.schemas.score_schemas import AcceptResult, AdvancedSlot, RevertResult
from scoreboard.services import audit_service, bracket_service, queue_service, seeding_service
from scoreboard.services.score_payload import bracket_result, seeding_target

logger = logging.getLogger(__name__)

ACCEPT_ERRORS = (NotFoundError, BadRequestError, ConflictError)


def get_submission(db: Session, submission_id: int, lock: bool = False) -> ScoreSubmission:
    query = db.query(ScoreSubmission).filter(ScoreSubmission.id == submission_id)
    if lock:
        query = query.with_for_update()
    submission = query.first()
    if not submission:
        raise NotFoundError("Score submission not found")
    return submission


def list_submissions(
    db: Session, event_id: int, status: Optional[str] = None, score_type: Optional[str] = None,
) -> List[ScoreSubmission]:
    query = db.query(ScoreSubmission).filter(ScoreSubmission.event_id == event_id)
    if status:
        query = query.filter(ScoreSubmission.status == status)
    if score_type:
        query = query.filter(ScoreSubmission.score_type == score_type)
    return query.order_by(ScoreSubmission.created_at.desc(), ScoreSubmission.id.desc()).all()


def _snapshot(submission: ScoreSubmission) -> dict:
    return {
        "status": submission.status,
        "reviewed_by": submission.reviewed_by,
        "reviewed_at": submission.reviewed_at,
        "seeding_score_id": submission.seeding_score_id,
        "bracket_game_id": submission.bracket_game_id,
    }


def _game_snapshot(game: BracketGame) -> dict:
    return {
        "status": game.status,
        "team1_id": game.team1_id,
        "team2_id": game.team2_id,
        "winner_id": game.winner_id,
        "loser_id": game.loser_id,
        "team1_score": game.team1_score,
        "team2_score": game.team2_score,
    }


def _mark_accepted(db: Session, submission: ScoreSubmission, reviewer_id: Optional[int], **extra):
    """
    Moves the submission to accepted with a guarded update. If another
    transaction accepted it first no row matches and the caller's whole
    transaction is rolled back.
    """
    check_transition("submission", submission.status, SubmissionStatus.ACCEPTED)
    values = {
        ScoreSubmission.status: SubmissionStatus.ACCEPTED.value,
        ScoreSubmission.reviewed_by: reviewer_id,
        ScoreSubmission.reviewed_at: utcnow(),
    }
    for name, value in extra.items():
        values[getattr(ScoreSubmission, name)] = value
    updated = (
        db.query(ScoreSubmission)
        .filter(ScoreSubmission.id == submission.id, ScoreSubmission.status != SubmissionStatus.ACCEPTED.value)
        .update(values, synchronize_session="fetch")
    )
    if updated == 0:
        raise BadRequestError("Score is already accepted")


def _reset_to_pending(submission: ScoreSubmission):
    check_transition("submission", submission.status, SubmissionStatus.PENDING)
    submission.status = SubmissionStatus.PENDING.value
    submission.reviewed_by = None
    submission.reviewed_at = None
    submission.seeding_score_id = None


def accept_score(
    db: Session,
    submission_id: int,
    force: bool = False,
    reviewer_id: Optional[int] = None,
    ip_address: Optional[str] = None,
) -> AcceptResult:
    """
    Commits a pending event-scoped submission into the seeding ledger or the
    bracket graph. `reviewer_id` is None for judge auto-acceptance.

    Raises NotFoundError, BadRequestError or ConflictError before anything is
    written; `force` overwrites a contending ledger value or game winner.
    """
    submission = get_submission(db, submission_id)
    if submission.event_id is None:
        raise BadRequestError("This score is not event-scoped. Use the legacy accept path.")
    if submission.status == SubmissionStatus.ACCEPTED.value:
        raise BadRequestError("Score is already accepted")

    if submission.score_type == ScoreType.SEEDING.value:
        return _accept_seeding(db, submission, force, reviewer_id, ip_address)
    if submission.score_type == ScoreType.BRACKET.value:
        return _accept_bracket(db, submission, force, reviewer_id, ip_address)
    raise BadRequestError(f"Unknown score_type: {submission.score_type}. Expected 'seeding' or 'bracket'.")


def _accept_action(reviewer_id: Optional[int]) -> str:
    return "score_auto_accepted" if reviewer_id is None else "score_accepted"


def _accept_seeding(
    db: Session, submission: ScoreSubmission, force: bool, reviewer_id: Optional[int], ip_address: Optional[str],
) -> AcceptResult:
    team_id, round_number, score = seeding_target(db, submission)
    if team_id is None or round_number is None:
        raise BadRequestError("Seeding score must have team_id and round_number")
    event_id = submission.event_id
    old_value = _snapshot(submission)

    with atomic(db):
        team = db.query(Team).filter(Team.id == team_id, Team.event_id == event_id).first()
        if not team:
            raise NotFoundError("Team not found")
        existing = seeding_service.get_seeding_score(db, team_id, round_number)
        if existing is not None and existing.score is not None and not force:
            raise ConflictError(
                "A score already exists for this team and round",
                existing={"existing_score": existing.score},
                candidate={"new_score": score},
            )
        row = seeding_service.upsert_seeding_score_row(db, team_id, round_number, score, submission.id)
        seeding_score_id = row.id
        _mark_accepted(db, submission, reviewer_id, seeding_score_id=seeding_score_id)

    logger.info(
        "Accepted seeding score %s: team %s round %s = %s (reviewer %s)",
        submission.id, team_id, round_number, score, reviewer_id,
    )
    db.refresh(submission)
    audit_service.create_audit_entry(
        db,
        action=_accept_action(reviewer_id),
        entity_type="score_submission",
        entity_id=submission.id,
        event_id=event_id,
        user_id=reviewer_id,
        old_value=old_value,
        new_value={**_snapshot(submission), "team_id": team_id, "round_number": round_number, "score": score},
        ip_address=ip_address,
    )

    queue_service.update_seeding_queue_item(db, event_id, team_id, round_number, completed=True)
    seeding_service.recalculate_seeding_rankings(db, event_id)

    return AcceptResult(
        submission_id=submission.id, score_type=ScoreType.SEEDING, seeding_score_id=seeding_score_id,
    )


def _accept_bracket(
    db: Session, submission: ScoreSubmission, force: bool, reviewer_id: Optional[int], ip_address: Optional[str],
) -> AcceptResult:
    game_id = submission.bracket_game_id
    if game_id is None:
        raise BadRequestError("Bracket score must be linked to a bracket game")
    winner_id, team1_score, team2_score = bracket_result(submission)
    if winner_id is None:
        raise BadRequestError("Bracket score must have a winner_team_id")
    event_id = submission.event_id
    old_value = _snapshot(submission)

    with atomic(db):
        game = bracket_service.get_game(db, game_id, lock=True)
        if winner_id not in (game.team1_id, game.team2_id):
            raise BadRequestError("Winner must be one of the teams in this game")
        loser_id = game.team2_id if winner_id == game.team1_id else game.team1_id
        if loser_id is None:
            raise BadRequestError("Both teams must be set before a result can be recorded")
        if game.winner_id is not None and game.winner_id != winner_id and not force:
            raise ConflictError(
                "This game already has a different winner",
                existing={"existing_winner_id": game.winner_id},
                candidate={"new_winner_id": winner_id},
            )
        old_game = _game_snapshot(game)

        invalidated = []
        if game.winner_id is not None and game.winner_id != winner_id:
            # Slots, results and byes written from the previous result no longer hold
            invalidated = bracket_service.find_affected_games(db, game)
            bracket_service.clear_affected_games(db, invalidated)

        check_transition("game", game.status, GameStatus.COMPLETED)
        game.winner_id = winner_id
        game.loser_id = loser_id
        game.team1_score = team1_score
        game.team2_score = team2_score
        game.status = GameStatus.COMPLETED.value
        game.completed_at = utcnow()
        game.score_submission_id = submission.id

        edges = []
        if game.winner_advances_to_id and game.winner_slot:
            edges.append((game.winner_advances_to_id, game.winner_slot, winner_id))
        # A grand final won by the winners bracket side ends the event, the loser is not sent on
        drop_loser = game.is_grand_final and winner_id == game.team1_id
        if game.loser_advances_to_id and game.loser_slot and not drop_loser:
            edges.append((game.loser_advances_to_id, game.loser_slot, loser_id))

        advanced = []
        for target_id, slot, team_id in edges:
            target = bracket_service.get_game(db, target_id, lock=True)
            bracket_service.write_slot(target, slot, team_id)
            advanced.append(AdvancedSlot(game_id=target_id, slot=slot, team_id=team_id))

        _mark_accepted(db, submission, reviewer_id)
        bracket_id = game.bracket_id
        new_game = _game_snapshot(game)

    logger.info(
        "Accepted bracket score %s: game %s won by %s over %s (reviewer %s)",
        submission.id, game_id, winner_id, loser_id, reviewer_id,
    )
    if invalidated:
        logger.info("Winner change on game %s cleared %d downstream game(s)", game_id, len(invalidated))

    with atomic(db):
        for item in advanced:
            target = bracket_service.get_game(db, item.game_id, lock=True)
            if (
                target.status == GameStatus.PENDING.value
                and target.team1_id is not None
                and target.team2_id is not None
            ):
                target.status = GameStatus.READY.value
    bye_resolution = bracket_service.resolve_bracket_byes(db, bracket_id)

    db.refresh(submission)
    audit_service.create_audit_entry(
        db,
        action=_accept_action(reviewer_id),
        entity_type="score_submission",
        entity_id=submission.id,
        event_id=event_id,
        user_id=reviewer_id,
        old_value=old_value,
        new_value=_snapshot(submission),
        ip_address=ip_address,
    )
    audit_service.create_audit_entry(
        db,
        action="bracket_game_completed",
        entity_type="bracket_game",
        entity_id=game_id,
        event_id=event_id,
        user_id=reviewer_id,
        old_value=old_game,
        new_value=new_game,
        ip_address=ip_address,
    )

    queue_service.update_bracket_queue_item(db, event_id, game_id, completed=True)
    queue_service.sync_bracket_queue(db, event_id)

    return AcceptResult(
        submission_id=submission.id,
        score_type=ScoreType.BRACKET,
        bracket_game_id=game_id,
        winner_id=winner_id,
        loser_id=loser_id,
        advanced=advanced,
        invalidated_games=invalidated,
        bye_resolution=bye_resolution,
    )


def submit_score(
    db: Session, data: score_schemas.ScoreSubmissionCreate, auto_accept: bool = False,
) -> score_schemas.SubmitResult:
    """
    Records a judge submission as pending. With `auto_accept` the submission is
    accepted straight away as a system action; if that fails the submission
    stays pending for admin review and the reason is returned.
    """
    with atomic(db):
        if not db.query(Event).filter(Event.id == data.event_id).first():
            raise NotFoundError("Event not found")
        if data.score_type == ScoreType.BRACKET:
            if data.bracket_game_id is None:
                raise BadRequestError("bracket_game_id is required for bracket scores")
            game = (
                db.query(BracketGame)
                .join(Bracket, Bracket.id == BracketGame.bracket_id)
                .filter(BracketGame.id == data.bracket_game_id, Bracket.event_id == data.event_id)
                .first()
            )
            if not game:
                raise BadRequestError("Bracket game does not belong to this event")
        submission = ScoreSubmission(
            event_id=data.event_id,
            score_type=data.score_type.value,
            bracket_game_id=data.bracket_game_id if data.score_type == ScoreType.BRACKET else None,
            participant_name=data.participant_name,
            score_data=data.score_data,
            status=SubmissionStatus.PENDING.value,
        )
        db.add(submission)
    db.refresh(submission)

    acceptance = None
    acceptance_error = None
    if auto_accept:
        try:
            acceptance = accept_score(db, submission.id, reviewer_id=None)
        except ACCEPT_ERRORS as exc:
            logger.info("Auto-accept of score %s left pending: %s", submission.id, exc.detail)
            acceptance_error = exc.detail
        db.refresh(submission)

    return score_schemas.SubmitResult(
        submission=score_schemas.ScoreSubmissionRead.model_validate(submission),
        acceptance=acceptance,
        acceptance_error=acceptance_error,
    )


def _requeue_for(db: Session, submission: ScoreSubmission):
    if submission.event_id is None:
        return
    if submission.score_type == ScoreType.SEEDING.value:
        team_id, round_number, _ = seeding_target(db, submission)
        if team_id is not None and round_number is not None:
            queue_service.update_seeding_queue_item(db, submission.event_id, team_id, round_number, completed=False)
    elif submission.score_type == ScoreType.BRACKET.value and submission.bracket_game_id is not None:
        queue_service.update_bracket_queue_item(db, submission.event_id, submission.bracket_game_id, completed=False)


def reject_score(
    db: Session, submission_id: int, reviewer_id: Optional[int], ip_address: Optional[str] = None,
) -> ScoreSubmission:
    with atomic(db):
        submission = get_submission(db, submission_id, lock=True)
        if submission.status == SubmissionStatus.ACCEPTED.value:
            raise BadRequestError("Accepted scores must be reverted before they can be rejected")
        old_value = _snapshot(submission)
        check_transition("submission", submission.status, SubmissionStatus.REJECTED)
        submission.status = SubmissionStatus.REJECTED.value
        submission.reviewed_by = reviewer_id
        submission.reviewed_at = utcnow()

    db.refresh(submission)
    _requeue_for(db, submission)
    audit_service.create_audit_entry(
        db,
        action="score_rejected",
        entity_type="score_submission",
        entity_id=submission.id,
        event_id=submission.event_id,
        user_id=reviewer_id,
        old_value=old_value,
        new_value=_snapshot(submission),
        ip_address=ip_address,
    )
    return submission


def revert_score(
    db: Session,
    submission_id: int,
    reviewer_id: Optional[int],
    dry_run: bool = False,
    confirm: bool = False,
    ip_address: Optional[str] = None,
) -> RevertResult:
    """
    Undoes an accepted submission and puts it back to pending.

    Seeding: the ledger row is deleted. Bracket: the game result is cleared
    along with every downstream slot and result that depended on it; when
    that cascade is not empty the caller has to confirm it first.
    """
    submission = get_submission(db, submission_id)
    if submission.event_id is None:
        raise BadRequestError("This score is not event-scoped. Use the legacy revert path.")
    if submission.status != SubmissionStatus.ACCEPTED.value:
        raise BadRequestError("Only accepted scores can be reverted")

    if submission.score_type == ScoreType.SEEDING.value:
        return _revert_seeding(db, submission, reviewer_id, dry_run, ip_address)
    if submission.score_type == ScoreType.BRACKET.value:
        return _revert_bracket(db, submission, reviewer_id, dry_run, confirm, ip_address)
    raise BadRequestError(f"Unknown score_type: {submission.score_type}. Expected 'seeding' or 'bracket'.")


def _audit_revert(db: Session, submission: ScoreSubmission, old_value: dict, reviewer_id, ip_address):
    audit_service.create_audit_entry(
        db,
        action="score_reverted",
        entity_type="score_submission",
        entity_id=submission.id,
        event_id=submission.event_id,
        user_id=reviewer_id,
        old_value=old_value,
        new_value=_snapshot(submission),
        ip_address=ip_address,
    )


def _revert_seeding(
    db: Session, submission: ScoreSubmission, reviewer_id: Optional[int], dry_run: bool, ip_address: Optional[str],
) -> RevertResult:
    seeding_score_id = submission.seeding_score_id
    result = RevertResult(
        submission_id=submission.id, score_type=ScoreType.SEEDING, seeding_score_id=seeding_score_id,
    )
    if dry_run:
        result.dry_run = True
        result.message = "Reverting this score will clear its seeding score and re-queue the round."
        return result

    event_id = submission.event_id
    old_value = _snapshot(submission)
    cleared = None
    with atomic(db):
        submission = get_submission(db, submission.id, lock=True)
        row = None
        if seeding_score_id is not None:
            row = db.query(SeedingScore).filter(SeedingScore.id == seeding_score_id).with_for_update().first()
        _reset_to_pending(submission)
        if row is not None:
            cleared = {"team_id": row.team_id, "round_number": row.round_number, "score": row.score}
            db.delete(row)

    db.refresh(submission)
    logger.info("Reverted seeding score %s (ledger row %s)", submission.id, seeding_score_id)
    _audit_revert(db, submission, old_value, reviewer_id, ip_address)
    if cleared is not None:
        audit_service.create_audit_entry(
            db,
            action="seeding_score_cleared",
            entity_type="seeding_score",
            entity_id=seeding_score_id,
            event_id=event_id,
            user_id=reviewer_id,
            old_value=cleared,
            new_value=None,
            ip_address=ip_address,
        )

    _requeue_for(db, submission)
    seeding_service.recalculate_seeding_rankings(db, event_id)
    result.reverted = True
    return result


def _revert_bracket(
    db: Session,
    submission: ScoreSubmission,
    reviewer_id: Optional[int],
    dry_run: bool,
    confirm: bool,
    ip_address: Optional[str],
) -> RevertResult:
    game_id = submission.bracket_game_id
    result = RevertResult(submission_id=submission.id, score_type=ScoreType.BRACKET, bracket_game_id=game_id)
    old_value = _snapshot(submission)

    game = bracket_service.get_game(db, game_id) if game_id is not None else None
    if game is None or game.winner_id is None:
        # Nothing was propagated, only the submission goes back to pending
        if dry_run:
            result.dry_run = True
            return result
        with atomic(db):
            submission = get_submission(db, submission.id, lock=True)
            _reset_to_pending(submission)
        db.refresh(submission)
        _audit_revert(db, submission, old_value, reviewer_id, ip_address)
        _requeue_for(db, submission)
        result.reverted = True
        return result

    affected = bracket_service.find_affected_games(db, game)
    result.affected_games = affected
    if affected and (dry_run or not confirm):
        result.requires_confirmation = True
        result.dry_run = dry_run
        result.message = (
            f"Reverting this score will affect {len(affected)} downstream game(s). "
            "Set confirm=true to proceed."
        )
        return result
    if dry_run:
        result.dry_run = True
        return result

    result.reverted_winner_id = game.winner_id
    result.reverted_loser_id = game.loser_id
    bracket_id = game.bracket_id
    with atomic(db):
        game = bracket_service.get_game(db, game_id, lock=True)
        bracket_service.clear_game_result(game)
        bracket_service.clear_affected_games(db, affected)
        submission = get_submission(db, submission.id, lock=True)
        _reset_to_pending(submission)

    db.refresh(submission)
    logger.info("Reverted bracket score %s on game %s, %d downstream game(s) cleared", submission.id, game_id, len(affected))
    _audit_revert(db, submission, old_value, reviewer_id, ip_address)
    _requeue_for(db, submission)
    bracket_service.resolve_bracket_byes(db, bracket_id)
    result.reverted = True
    return result


def bulk_accept(
    db: Session, event_id: int, submission_ids: List[int], reviewer_id: Optional[int], ip_address: Optional[str] = None,
) -> score_schemas.BulkAcceptResult:
    """Accepts each submission on its own; failures are reported per id and never forced."""
    result = score_schemas.BulkAcceptResult()
    for submission_id in submission_ids:
        try:
            submission = get_submission(db, submission_id)
            if submission.event_id != event_id:
                raise BadRequestError("Score does not belong to this event")
            accept_score(db, submission_id, force=False, reviewer_id=reviewer_id, ip_address=ip_address)
        except ACCEPT_ERRORS as exc:
            result.skipped.append(score_schemas.SkippedScore(id=submission_id, reason=exc.detail))
            continue
        result.accepted.append(submission_id)

    audit_service.create_audit_entry(
        db,
        action="scores_bulk_accepted",
        entity_type="event",
        entity_id=event_id,
        event_id=event_id,
        user_id=reviewer_id,
        new_value=result.model_dump(),
        ip_address=ip_address,
    )
    return result


def resync_event(db: Session, event_id: int) -> score_schemas.ResyncResult:
    """
    Re-runs every idempotent follow-up step for an event: rankings, bye
    resolution for each bracket, then both queue projections.
    """
    if not db.query(Event).filter(Event.id == event_id).first():
        raise NotFoundError("Event not found")
    rankings = seeding_service.recalculate_seeding_rankings(db, event_id)
    byes = {
        bracket.id: bracket_service.resolve_bracket_byes(db, bracket.id)
        for bracket in bracket_service.list_brackets(db, event_id)
    }
    seeding_queue = queue_service.sync_seeding_queue(db, event_id)
    bracket_queue = queue_service.sync_bracket_queue(db, event_id)
    logger.info("Resynced event %s", event_id)
    return score_schemas.ResyncResult(
        teams_ranked=rankings["teams_ranked"],
        teams_unranked=rankings["teams_unranked"],
        bye_resolution=byes,
        seeding_queue=seeding_queue,
        bracket_queue=bracket_queue,
    )
