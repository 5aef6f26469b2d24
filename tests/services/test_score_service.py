import pytest
from unittest.mock import patch

from scoreboard.core.errors import BadRequestError, ConflictError, NotFoundError
from scoreboard.models import AuditLog, BracketGame, GameQueueItem, ScoreSubmission, SeedingRanking, SeedingScore
from scoreboard.schemas.score_schemas import ScoreSubmissionCreate
from scoreboard.services import score_service
from tests.helpers import bracket_payload, seeding_payload


def _accept_winner(db, make_submission, game: BracketGame, winner_id: int, reviewer_id=None):
    submission = make_submission("bracket", bracket_payload(winner_id), bracket_game_id=game.id)
    return score_service.accept_score(db, submission.id, reviewer_id=reviewer_id), submission


def _games(db, bracket_id):
    games = db.query(BracketGame).filter(BracketGame.bracket_id == bracket_id).all()
    return {game.game_number: game for game in games}


def _pending_copy(submission: ScoreSubmission) -> ScoreSubmission:
    """A detached copy that still reads pending, as a second reviewer loaded it before the first accept."""
    return ScoreSubmission(
        id=submission.id,
        event_id=submission.event_id,
        score_type=submission.score_type,
        score_data=submission.score_data,
        bracket_game_id=submission.bracket_game_id,
        status="pending",
    )


class TestAcceptSeedingScore:

    def test_accept_writes_ledger_queue_rankings_and_audit(self, db, event, admin, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 150))

        result = score_service.accept_score(db, submission.id, reviewer_id=admin.id)

        row = db.query(SeedingScore).one()
        assert (row.team_id, row.round_number, row.score) == (team.id, 1, 150)
        assert row.score_submission_id == submission.id
        assert result.seeding_score_id == row.id

        db.refresh(submission)
        assert submission.status == "accepted"
        assert submission.reviewed_by == admin.id
        assert submission.reviewed_at is not None
        assert submission.seeding_score_id == row.id

        item = db.query(GameQueueItem).one()
        assert item.status == "completed"
        assert db.query(SeedingRanking).filter(SeedingRanking.team_id == team.id).one().seed_rank == 1

        actions = [entry.action for entry in db.query(AuditLog).all()]
        assert actions == ["score_accepted"]

    def test_auto_accept_is_audited_as_system_action(self, db, event, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 99))

        score_service.accept_score(db, submission.id, reviewer_id=None)

        entry = db.query(AuditLog).one()
        assert entry.action == "score_auto_accepted"
        assert entry.user_id is None

    def test_resolves_team_by_number(self, db, event, make_team, make_submission):
        team = make_team(42)
        submission = make_submission("seeding", {
            "team_number": {"value": "42"}, "round_number": {"value": 2}, "score": {"value": 61.5},
        })

        score_service.accept_score(db, submission.id)

        row = db.query(SeedingScore).one()
        assert (row.team_id, row.round_number, row.score) == (team.id, 2, 61.5)

    def test_second_accept_is_rejected(self, db, event, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 150))

        score_service.accept_score(db, submission.id)
        with pytest.raises(BadRequestError):
            score_service.accept_score(db, submission.id)

        assert db.query(SeedingScore).count() == 1
        assert db.query(AuditLog).count() == 1

    def test_racing_acceptance_fails_at_guarded_update(self, db, event, admin, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 150))
        stale = _pending_copy(submission)
        score_service.accept_score(db, submission.id, reviewer_id=admin.id)

        # force gets past the ledger conflict check, so only the guarded update can stop it
        with patch("scoreboard.services.score_service.get_submission", return_value=stale):
            with pytest.raises(BadRequestError) as exc_info:
                score_service.accept_score(db, submission.id, force=True)
        assert exc_info.value.detail == "Score is already accepted"

        row = db.query(SeedingScore).one()
        assert (row.score, row.score_submission_id) == (150, submission.id)
        db.refresh(submission)
        assert submission.status == "accepted"
        assert submission.reviewed_by == admin.id
        assert db.query(AuditLog).count() == 1

    def test_existing_score_conflicts_without_force(self, db, event, make_team, make_submission):
        team = make_team(1)
        first = make_submission("seeding", seeding_payload(team.id, 1, 150))
        second = make_submission("seeding", seeding_payload(team.id, 1, 99))
        score_service.accept_score(db, first.id)

        with pytest.raises(ConflictError) as exc_info:
            score_service.accept_score(db, second.id)
        assert exc_info.value.detail["existing_score"] == 150
        assert exc_info.value.detail["new_score"] == 99
        db.refresh(second)
        assert second.status == "pending"

        score_service.accept_score(db, second.id, force=True)
        row = db.query(SeedingScore).one()
        assert row.score == 99
        assert row.score_submission_id == second.id

    def test_missing_team_or_round(self, db, event, make_team, make_submission):
        submission = make_submission("seeding", {"grand_total": {"value": 10}})
        with pytest.raises(BadRequestError):
            score_service.accept_score(db, submission.id)

    def test_team_outside_event(self, db, event, make_submission):
        submission = make_submission("seeding", seeding_payload(777, 1, 10))
        with pytest.raises(NotFoundError):
            score_service.accept_score(db, submission.id)
        assert db.query(SeedingScore).count() == 0

    def test_preconditions(self, db, event, make_submission):
        with pytest.raises(NotFoundError):
            score_service.accept_score(db, 999)
        legacy = make_submission("seeding", {}, event_id=None)
        with pytest.raises(BadRequestError):
            score_service.accept_score(db, legacy.id)
        unknown = make_submission("freestyle", {})
        with pytest.raises(BadRequestError):
            score_service.accept_score(db, unknown.id)

    def test_audit_failure_does_not_undo_acceptance(self, db, event, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 150))

        with patch("scoreboard.services.score_service.audit_service.create_audit_entry", return_value=None):
            score_service.accept_score(db, submission.id)

        db.refresh(submission)
        assert submission.status == "accepted"


class TestAcceptBracketScore:

    def test_winner_must_be_in_game(self, db, event, bracket4, make_team, make_submission):
        bracket, teams, games = bracket4
        outsider = make_team(9)
        submission = make_submission("bracket", bracket_payload(outsider.id), bracket_game_id=games[1].id)

        with pytest.raises(BadRequestError):
            score_service.accept_score(db, submission.id)

        game = _games(db, bracket.id)[1]
        assert game.status == "ready"
        assert game.winner_id is None
        db.refresh(submission)
        assert submission.status == "pending"

    def test_requires_game_and_winner(self, db, event, bracket4, make_submission):
        _, _, games = bracket4
        no_game = make_submission("bracket", bracket_payload(1))
        with pytest.raises(BadRequestError):
            score_service.accept_score(db, no_game.id)
        no_winner = make_submission("bracket", {}, bracket_game_id=games[1].id)
        with pytest.raises(BadRequestError):
            score_service.accept_score(db, no_winner.id)

    def test_propagates_winner_and_loser(self, db, event, admin, bracket4, make_submission):
        bracket, teams, games = bracket4
        submission = make_submission("bracket", bracket_payload(teams[0].id, 3, 1), bracket_game_id=games[1].id)

        result = score_service.accept_score(db, submission.id, reviewer_id=admin.id)

        assert (result.winner_id, result.loser_id) == (teams[0].id, teams[3].id)
        games = _games(db, bracket.id)
        assert games[1].status == "completed"
        assert (games[1].team1_score, games[1].team2_score) == (3, 1)
        assert games[1].score_submission_id == submission.id
        assert games[3].team1_id == teams[0].id
        assert games[4].team1_id == teams[3].id
        assert games[3].status == "pending"

        _accept_winner(db, make_submission, games[2], teams[1].id)

        games = _games(db, bracket.id)
        assert games[3].team2_id == teams[1].id
        assert games[4].team2_id == teams[2].id
        assert games[3].status == "ready"
        assert games[4].status == "ready"

        actions = sorted(entry.action for entry in db.query(AuditLog).all())
        assert actions == ["bracket_game_completed", "bracket_game_completed", "score_accepted", "score_auto_accepted"]
        completed = db.query(GameQueueItem).filter(GameQueueItem.status == "completed").count()
        assert completed == 2
        queued = {item.bracket_game_id for item in db.query(GameQueueItem).filter(GameQueueItem.status == "queued")}
        assert queued == {games[3].id, games[4].id}

    def test_different_winner_conflicts_without_force(self, db, event, bracket4, make_submission):
        bracket, teams, games = bracket4
        _accept_winner(db, make_submission, games[1], teams[0].id)
        challenger = make_submission("bracket", bracket_payload(teams[3].id), bracket_game_id=games[1].id)

        with pytest.raises(ConflictError) as exc_info:
            score_service.accept_score(db, challenger.id)
        assert exc_info.value.detail["existing_winner_id"] == teams[0].id
        assert exc_info.value.detail["new_winner_id"] == teams[3].id

        score_service.accept_score(db, challenger.id, force=True)
        games = _games(db, bracket.id)
        assert games[1].winner_id == teams[3].id
        assert games[3].team1_id == teams[3].id
        assert games[4].team1_id == teams[0].id

    def test_racing_acceptance_leaves_game_untouched(self, db, event, admin, bracket4, make_submission):
        bracket, teams, games = bracket4
        submission = make_submission("bracket", bracket_payload(teams[0].id, 3, 1), bracket_game_id=games[1].id)
        stale = _pending_copy(submission)
        score_service.accept_score(db, submission.id, reviewer_id=admin.id)
        completed_at = _games(db, bracket.id)[1].completed_at
        audit_count = db.query(AuditLog).count()

        with patch("scoreboard.services.score_service.get_submission", return_value=stale):
            with pytest.raises(BadRequestError):
                score_service.accept_score(db, submission.id)

        game = _games(db, bracket.id)[1]
        assert game.completed_at == completed_at
        assert (game.winner_id, game.team1_score, game.team2_score) == (teams[0].id, 3, 1)
        assert game.score_submission_id == submission.id
        assert db.query(AuditLog).count() == audit_count

    def test_forced_grand_final_flip_to_winners_side_turns_reset_into_bye(
        self, db, event, bracket4, make_submission,
    ):
        bracket, teams, _ = bracket4
        games = self._play_to_grand_final(db, make_submission, bracket, teams)
        _accept_winner(db, make_submission, games[6], teams[1].id)
        reset = _games(db, bracket.id)[7]
        assert (reset.team1_id, reset.team2_id, reset.status) == (teams[0].id, teams[1].id, "ready")

        challenger = make_submission("bracket", bracket_payload(teams[0].id), bracket_game_id=games[6].id)
        result = score_service.accept_score(db, challenger.id, force=True)

        assert [game.id for game in result.invalidated_games] == [reset.id]
        games = _games(db, bracket.id)
        assert games[6].winner_id == teams[0].id
        reset = games[7]
        assert reset.team1_id is None
        assert reset.team2_id == teams[0].id
        assert reset.status == "bye"
        assert reset.winner_id == teams[0].id
        item = db.query(GameQueueItem).filter(GameQueueItem.bracket_game_id == reset.id).one()
        assert item.status == "completed"

    def test_forced_grand_final_flip_to_losers_side_reopens_reset(self, db, event, bracket4, make_submission):
        bracket, teams, _ = bracket4
        games = self._play_to_grand_final(db, make_submission, bracket, teams)
        _accept_winner(db, make_submission, games[6], teams[0].id)
        assert _games(db, bracket.id)[7].status == "bye"

        challenger = make_submission("bracket", bracket_payload(teams[1].id), bracket_game_id=games[6].id)
        result = score_service.accept_score(db, challenger.id, force=True)

        assert result.invalidated_games[0].affected_slots == ["team1", "team2", "winner"]
        reset = _games(db, bracket.id)[7]
        assert (reset.team1_id, reset.team2_id) == (teams[0].id, teams[1].id)
        assert reset.status == "ready"
        assert reset.winner_id is None
        assert reset.loser_id is None
        item = db.query(GameQueueItem).filter(GameQueueItem.bracket_game_id == reset.id).one()
        assert item.status == "queued"

    def _play_to_grand_final(self, db, make_submission, bracket, teams):
        t1, t2, t3, t4 = teams
        games = _games(db, bracket.id)
        _accept_winner(db, make_submission, games[1], t1.id)
        _accept_winner(db, make_submission, games[2], t2.id)
        games = _games(db, bracket.id)
        _accept_winner(db, make_submission, games[3], t1.id)
        _accept_winner(db, make_submission, games[4], t4.id)
        games = _games(db, bracket.id)
        _accept_winner(db, make_submission, games[5], t2.id)
        return _games(db, bracket.id)

    def test_grand_final_won_by_winners_side_drops_loser(self, db, event, bracket4, make_submission):
        bracket, teams, _ = bracket4
        games = self._play_to_grand_final(db, make_submission, bracket, teams)
        assert (games[6].team1_id, games[6].team2_id) == (teams[0].id, teams[1].id)
        assert games[6].status == "ready"

        result, _ = _accept_winner(db, make_submission, games[6], teams[0].id)

        assert [(a.game_id, a.slot) for a in result.advanced] == [(games[7].id, "team2")]
        reset = _games(db, bracket.id)[7]
        assert reset.team1_id is None
        assert reset.team2_id == teams[0].id
        assert reset.status == "bye"
        assert reset.winner_id == teams[0].id

    def test_grand_final_won_by_losers_side_fills_reset(self, db, event, bracket4, make_submission):
        bracket, teams, _ = bracket4
        games = self._play_to_grand_final(db, make_submission, bracket, teams)

        result, _ = _accept_winner(db, make_submission, games[6], teams[1].id)

        assert len(result.advanced) == 2
        reset = _games(db, bracket.id)[7]
        assert (reset.team1_id, reset.team2_id) == (teams[0].id, teams[1].id)
        assert reset.status == "ready"


class TestSubmitScore:

    def test_auto_accept(self, db, event, make_team):
        team = make_team(1)
        data = ScoreSubmissionCreate(event_id=event.id, score_type="seeding", score_data=seeding_payload(team.id, 1, 40))

        result = score_service.submit_score(db, data, auto_accept=True)

        assert result.submission.status == "accepted"
        assert result.acceptance.seeding_score_id is not None
        assert result.acceptance_error is None

    def test_conflict_leaves_submission_pending(self, db, event, make_team):
        team = make_team(1)
        first = ScoreSubmissionCreate(event_id=event.id, score_type="seeding", score_data=seeding_payload(team.id, 1, 40))
        second = ScoreSubmissionCreate(event_id=event.id, score_type="seeding", score_data=seeding_payload(team.id, 1, 45))
        score_service.submit_score(db, first, auto_accept=True)

        result = score_service.submit_score(db, second, auto_accept=True)

        assert result.submission.status == "pending"
        assert result.acceptance is None
        assert result.acceptance_error["existing_score"] == 40

    def test_bracket_game_must_belong_to_event(self, db, event):
        data = ScoreSubmissionCreate(event_id=event.id, score_type="bracket", bracket_game_id=123)
        with pytest.raises(BadRequestError):
            score_service.submit_score(db, data)
        with pytest.raises(NotFoundError):
            score_service.submit_score(db, ScoreSubmissionCreate(event_id=999, score_type="seeding"))


class TestRejectScore:

    def test_reject_requeues_round(self, db, event, admin, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 2, 10))

        rejected = score_service.reject_score(db, submission.id, reviewer_id=admin.id)

        assert rejected.status == "rejected"
        assert rejected.reviewed_by == admin.id
        item = db.query(GameQueueItem).one()
        assert (item.seeding_team_id, item.seeding_round, item.status) == (team.id, 2, "queued")
        assert db.query(AuditLog).one().action == "score_rejected"

    def test_rejected_score_can_still_be_accepted(self, db, event, admin, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 10))
        score_service.reject_score(db, submission.id, reviewer_id=admin.id)

        score_service.accept_score(db, submission.id, reviewer_id=admin.id)

        db.refresh(submission)
        assert submission.status == "accepted"

    def test_accepted_score_cannot_be_rejected(self, db, event, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 10))
        score_service.accept_score(db, submission.id)
        with pytest.raises(BadRequestError):
            score_service.reject_score(db, submission.id, reviewer_id=None)


class TestRevertScore:

    def test_revert_seeding(self, db, event, admin, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 150))
        score_service.accept_score(db, submission.id)

        preview = score_service.revert_score(db, submission.id, admin.id, dry_run=True)
        assert preview.dry_run and not preview.reverted
        assert db.query(SeedingScore).count() == 1

        result = score_service.revert_score(db, submission.id, admin.id)

        assert result.reverted
        assert db.query(SeedingScore).count() == 0
        db.refresh(submission)
        assert submission.status == "pending"
        assert submission.seeding_score_id is None
        assert submission.reviewed_by is None
        assert db.query(GameQueueItem).one().status == "queued"
        actions = {entry.action for entry in db.query(AuditLog).all()}
        assert {"score_reverted", "seeding_score_cleared"} <= actions

    def test_only_accepted_scores_revert(self, db, event, make_team, make_submission):
        team = make_team(1)
        submission = make_submission("seeding", seeding_payload(team.id, 1, 150))
        with pytest.raises(BadRequestError):
            score_service.revert_score(db, submission.id, None)

    def test_bracket_revert_needs_confirmation(self, db, event, admin, bracket4, make_submission):
        bracket, teams, games = bracket4
        _, first = _accept_winner(db, make_submission, games[1], teams[0].id)
        _accept_winner(db, make_submission, games[2], teams[1].id)

        preview = score_service.revert_score(db, first.id, admin.id)
        assert preview.requires_confirmation
        assert not preview.reverted
        assert {a.game_number for a in preview.affected_games} >= {3, 4}
        assert _games(db, bracket.id)[1].winner_id == teams[0].id

        result = score_service.revert_score(db, first.id, admin.id, confirm=True)

        assert result.reverted
        assert (result.reverted_winner_id, result.reverted_loser_id) == (teams[0].id, teams[3].id)
        games = _games(db, bracket.id)
        assert games[1].status == "ready"
        assert games[1].winner_id is None
        assert games[3].team1_id is None
        assert games[3].team2_id == teams[1].id
        assert games[3].status == "pending"
        assert games[4].team1_id is None
        db.refresh(first)
        assert first.status == "pending"
        item = db.query(GameQueueItem).filter(GameQueueItem.bracket_game_id == games[1].id).one()
        assert item.status == "queued"


class TestBulkAccept:

    def test_reports_skipped(self, db, event, admin, make_team, make_submission):
        team = make_team(1)
        good = make_submission("seeding", seeding_payload(team.id, 1, 10))
        duplicate = make_submission("seeding", seeding_payload(team.id, 1, 12))
        incomplete = make_submission("seeding", {"grand_total": {"value": 5}})

        result = score_service.bulk_accept(db, event.id, [good.id, duplicate.id, incomplete.id, 999], admin.id)

        assert result.accepted == [good.id]
        assert [s.id for s in result.skipped] == [duplicate.id, incomplete.id, 999]
        assert db.query(AuditLog).filter(AuditLog.action == "scores_bulk_accepted").count() == 1


class TestResyncEvent:

    def test_resync_converges(self, db, event, bracket4, make_team):
        bracket, teams, _ = bracket4
        db.add(SeedingScore(team_id=teams[0].id, round_number=1, score=10))
        db.commit()

        result = score_service.resync_event(db, event.id)

        assert result.teams_ranked == 1
        assert result.teams_unranked == 3
        assert result.seeding_queue["added"] == 12
        assert result.bracket_queue["added"] == 2
        assert bracket.id in result.bye_resolution

        again = score_service.resync_event(db, event.id)
        assert again.seeding_queue == {"added": 0, "completed": 0, "requeued": 0}
        assert again.bracket_queue == {"added": 0, "completed": 0, "requeued": 0}

    def test_unknown_event(self, db):
        with pytest.raises(NotFoundError):
            score_service.resync_event(db, 5)
