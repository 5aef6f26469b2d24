import pytest

from scoreboard.core.errors import BadRequestError, NotFoundError
from scoreboard.models import GameQueueItem, SeedingRanking, SeedingScore
from scoreboard.services import seeding_service
from scoreboard.services.seeding_service import compute_seed_rankings


class TestComputeSeedRankings:

    def test_three_scores_use_top_two_and_third_as_tiebreaker(self):
        [ranking] = compute_seed_rankings({1: [100, 150, 120]})
        assert ranking.seed_average == 135
        assert ranking.tiebreaker_value == 100

    def test_two_scores_tiebreak_on_sum(self):
        [ranking] = compute_seed_rankings({1: [150, 120]})
        assert ranking.seed_average == 135
        assert ranking.tiebreaker_value == 270

    def test_single_score(self):
        [ranking] = compute_seed_rankings({1: [80, None]})
        assert ranking.seed_average == 80
        assert ranking.tiebreaker_value == 80
        assert ranking.seed_rank == 1
        assert ranking.raw_seed_score == pytest.approx(1.0)

    def test_team_without_scores_is_unranked_and_last(self):
        rankings = compute_seed_rankings({1: [], 2: [50], 3: [None, None]})
        assert [r.team_id for r in rankings][0] == 2
        unranked = [r for r in rankings if r.seed_rank is None]
        assert {r.team_id for r in unranked} == {1, 3}
        assert all(r.seed_average is None and r.raw_seed_score is None for r in unranked)

    def test_raw_seed_scores(self):
        rankings = compute_seed_rankings({1: [100], 2: [150], 3: [120]})
        assert [r.team_id for r in rankings] == [2, 3, 1]
        assert [r.seed_rank for r in rankings] == [1, 2, 3]
        assert rankings[0].raw_seed_score == pytest.approx(1.0)
        assert rankings[1].raw_seed_score == pytest.approx(0.7)
        assert rankings[2].raw_seed_score == pytest.approx(0.41667, abs=1e-4)

    def test_tiebreaker_orders_equal_averages(self):
        rankings = compute_seed_rankings({1: [100, 100, 10], 2: [100, 100, 90]})
        assert [r.team_id for r in rankings] == [2, 1]

    def test_zero_best_average_does_not_divide_by_zero(self):
        rankings = compute_seed_rankings({1: [0], 2: [0]})
        assert all(r.raw_seed_score is not None for r in rankings)
        assert rankings[0].raw_seed_score == pytest.approx(0.75)


class TestRecalculateSeedingRankings:

    def test_no_teams(self, db, event):
        assert seeding_service.recalculate_seeding_rankings(db, event.id) == {"teams_ranked": 0, "teams_unranked": 0}

    def test_upserts_one_row_per_team(self, db, event, make_team):
        scored = make_team(1)
        unscored = make_team(2)
        db.add_all([
            SeedingScore(team_id=scored.id, round_number=1, score=150),
            SeedingScore(team_id=scored.id, round_number=2, score=120),
        ])
        db.commit()

        result = seeding_service.recalculate_seeding_rankings(db, event.id)
        assert result == {"teams_ranked": 1, "teams_unranked": 1}

        db.add(SeedingScore(team_id=unscored.id, round_number=1, score=200))
        db.commit()
        result = seeding_service.recalculate_seeding_rankings(db, event.id)
        assert result == {"teams_ranked": 2, "teams_unranked": 0}

        rows = db.query(SeedingRanking).all()
        assert len(rows) == 2
        by_team = {row.team_id: row for row in rows}
        assert by_team[unscored.id].seed_rank == 1
        assert by_team[scored.id].seed_rank == 2
        assert by_team[scored.id].seed_average == 135
        assert by_team[scored.id].tiebreaker_value == 270

    def test_list_rankings_puts_unranked_last(self, db, event, make_team):
        unscored = make_team(1)
        scored = make_team(2)
        db.add(SeedingScore(team_id=scored.id, round_number=1, score=10))
        db.commit()
        seeding_service.recalculate_seeding_rankings(db, event.id)

        rankings = seeding_service.list_rankings(db, event.id)
        assert [r.team_id for r in rankings] == [scored.id, unscored.id]


class TestSeedingScoreLedger:

    def test_save_upserts_and_completes_queue_item(self, db, event, make_team):
        team = make_team(7)
        first = seeding_service.save_seeding_score(db, team.id, 1, 90)
        second = seeding_service.save_seeding_score(db, team.id, 1, 110)

        assert first.id == second.id
        assert db.query(SeedingScore).count() == 1
        assert second.score == 110
        item = db.query(GameQueueItem).one()
        assert (item.seeding_team_id, item.seeding_round, item.status) == (team.id, 1, "completed")
        assert db.query(SeedingRanking).filter(SeedingRanking.team_id == team.id).one().seed_rank == 1

    def test_save_rejects_bad_round_and_unknown_team(self, db, event, make_team):
        team = make_team(1)
        with pytest.raises(BadRequestError):
            seeding_service.save_seeding_score(db, team.id, 0, 10)
        with pytest.raises(NotFoundError):
            seeding_service.save_seeding_score(db, 999, 1, 10)

    def test_delete_requeues_and_clears_table(self, db, event, make_team):
        team = make_team(3)
        row = seeding_service.save_seeding_score(db, team.id, 2, 75)
        item = db.query(GameQueueItem).one()
        item.table_number = 4
        db.commit()

        assert seeding_service.delete_seeding_score(db, row.id) is True

        item = db.query(GameQueueItem).filter(
            GameQueueItem.seeding_team_id == team.id, GameQueueItem.seeding_round == 2
        ).one()
        assert item.status == "queued"
        assert item.called_at is None
        assert item.table_number is None
        ranking = db.query(SeedingRanking).filter(SeedingRanking.team_id == team.id).one()
        assert ranking.seed_rank is None

    def test_delete_missing_score_is_idempotent(self, db):
        assert seeding_service.delete_seeding_score(db, 12345) is False

    def test_list_scores_by_event_and_team(self, db, event, make_team):
        a = make_team(1)
        b = make_team(2)
        seeding_service.save_seeding_score(db, b.id, 1, 20)
        seeding_service.save_seeding_score(db, a.id, 2, 30)
        seeding_service.save_seeding_score(db, a.id, 1, 10)

        scores = seeding_service.list_seeding_scores(db, event.id)
        assert [(s.team_id, s.round_number) for s in scores] == [(a.id, 1), (a.id, 2), (b.id, 1)]
        assert len(seeding_service.list_seeding_scores(db, event.id, team_id=b.id)) == 1
