"""Tests for Prediction: odds capture, switching, upgrades, deletes and copies."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import minutes_ago, nominee_named

from awards_pool import db
from awards_pool.models import Prediction


def _setup(make):
    owner, _ = make.user("alice")
    category = make.category()
    pool = make.pool(owner)
    return owner, category, pool


class TestCreateOrUpdate:
    def test_new_prediction_captures_current_odds(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 30)

        prediction, message = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        assert message == "Prediction created successfully"
        assert prediction.odds_percentage == 30
        assert prediction.original_odds_percentage == 30

    def test_new_prediction_without_odds(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")

        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)

        assert prediction.odds_percentage is None
        assert prediction.original_odds_percentage is None

    def test_resave_keeps_original_and_takes_best_odds(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 20, at=minutes_ago(30))
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        make.snapshot(category, anora, 35)
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        assert prediction.original_odds_percentage == 20
        assert prediction.odds_percentage == 20

    def test_resave_after_odds_fall_uses_current(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 20, at=minutes_ago(30))
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        make.snapshot(category, anora, 10)
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)

        assert prediction.original_odds_percentage == 20
        assert prediction.odds_percentage == 10

    def test_switch_resets_original(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        wicked = nominee_named(category, "Wicked")
        make.snapshot(category, anora, 20, at=minutes_ago(30))
        make.snapshot(category, wicked, 50, at=minutes_ago(30))
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        prediction, message = Prediction.create_or_update(pool, owner.id, category, wicked.id)
        db.session.commit()

        assert "original odds reset" in message
        assert prediction.nominee_id == wicked.id
        assert prediction.odds_percentage == 50
        assert prediction.original_odds_percentage == 50

    def test_switching_back_captures_fresh_odds(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        wicked = nominee_named(category, "Wicked")
        make.snapshot(category, anora, 10, at=minutes_ago(60))
        make.snapshot(category, wicked, 50, at=minutes_ago(60))
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        Prediction.create_or_update(pool, owner.id, category, wicked.id)
        db.session.commit()

        make.snapshot(category, anora, 40)
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)

        assert prediction.original_odds_percentage == 40
        assert prediction.odds_percentage == 40

    def test_one_prediction_per_category(self, make):
        owner, category, pool = _setup(make)
        for name in ("Anora", "Conclave", "Wicked"):
            Prediction.create_or_update(
                pool, owner.id, category, nominee_named(category, name).id
            )
        db.session.commit()

        assert len(Prediction.get_user_predictions(pool.id, owner.id)) == 1

    def test_rejects_non_member(self, make):
        _, category, pool = _setup(make)
        stranger, _ = make.user("mallory")

        prediction, message = Prediction.create_or_update(
            pool, stranger.id, category, category.nominees[0].id
        )

        assert prediction is None
        assert message == "Not a member of this pool"

    def test_rejects_nominee_from_other_category(self, make):
        owner, category, pool = _setup(make)
        other = make.category("directing", nominees=("Baker",))

        prediction, message = Prediction.create_or_update(
            pool, owner.id, category, other.nominees[0].id
        )

        assert prediction is None
        assert "does not belong" in message

    def test_rejects_category_from_other_year(self, make):
        owner, _, pool = _setup(make)
        old = make.category("directing", nominees=("Nolan",), year=2024)

        prediction, message = Prediction.create_or_update(
            pool, owner.id, old, old.nominees[0].id
        )

        assert prediction is None
        assert "year" in message

    def test_rejects_announced_category(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.winner(category, anora)

        prediction, message = Prediction.create_or_update(pool, owner.id, category, anora.id)

        assert prediction is None
        assert "already been announced" in message

    def test_rejects_after_ballot_lock(self, make, ctx):
        owner, category, pool = _setup(make)
        ctx.config["BALLOT_LOCK_AT"] = datetime.now(timezone.utc) - timedelta(minutes=1)

        prediction, message = Prediction.create_or_update(
            pool, owner.id, category, category.nominees[0].id
        )

        assert prediction is None
        assert message.startswith("Ballot submissions are locked")

    def test_allows_before_ballot_lock(self, make, ctx):
        owner, category, pool = _setup(make)
        ctx.config["BALLOT_LOCK_AT"] = datetime.now(timezone.utc) + timedelta(days=1)

        prediction, _ = Prediction.create_or_update(
            pool, owner.id, category, category.nominees[0].id
        )

        assert prediction is not None


class TestUpgradeOdds:
    def test_upgrade_when_odds_fall(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 30, at=minutes_ago(30))
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        make.snapshot(category, anora, 12)
        upgraded, odds = prediction.upgrade_odds()

        assert upgraded is True
        assert odds == 12
        assert prediction.original_odds_percentage == 30

    def test_no_upgrade_when_odds_rise(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 30, at=minutes_ago(30))
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        make.snapshot(category, anora, 45)
        upgraded, odds = prediction.upgrade_odds()

        assert upgraded is False
        assert odds == 30

    def test_tiny_changes_ignored(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 30, at=minutes_ago(30))
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        make.snapshot(category, anora, 29.995)
        upgraded, _ = prediction.upgrade_odds()

        assert upgraded is False

    def test_no_snapshot_no_upgrade(self, make):
        owner, category, pool = _setup(make)
        prediction, _ = Prediction.create_or_update(
            pool, owner.id, category, category.nominees[0].id
        )

        assert prediction.upgrade_odds() == (False, None)

    def test_upgrade_all_for_category(self, make):
        owner, category, pool = _setup(make)
        bob, _ = make.user("bob")
        pool.add_member(bob)
        anora = nominee_named(category, "Anora")
        wicked = nominee_named(category, "Wicked")
        make.snapshot(category, anora, 30, at=minutes_ago(30))
        make.snapshot(category, wicked, 60, at=minutes_ago(30))
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        Prediction.create_or_update(pool, bob.id, category, wicked.id)
        db.session.commit()

        make.snapshot(category, anora, 15)
        make.snapshot(category, wicked, 70)

        assert Prediction.upgrade_all_for_category(category) == (1, 2)

    def test_announced_category_is_frozen(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 30, at=minutes_ago(30))
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()
        make.winner(category, anora)
        make.snapshot(category, anora, 5)

        assert Prediction.upgrade_all_for_category(category) == (0, 0)
        assert prediction.odds_percentage == 30


class TestDeleteAndCopy:
    def test_delete_prediction(self, make):
        owner, category, pool = _setup(make)
        Prediction.create_or_update(pool, owner.id, category, category.nominees[0].id)
        db.session.commit()

        success, _ = Prediction.delete_prediction(pool, owner.id, category)
        db.session.commit()

        assert success
        assert Prediction.get_for(pool.id, owner.id, category.id) is None

    def test_delete_missing_prediction(self, make):
        owner, category, pool = _setup(make)
        assert Prediction.delete_prediction(pool, owner.id, category) == (
            False,
            "Prediction not found",
        )

    def test_delete_all_skips_announced(self, make):
        owner, category, pool = _setup(make)
        directing = make.category("directing", nominees=("Baker", "Corbet"))
        Prediction.create_or_update(pool, owner.id, category, category.nominees[0].id)
        Prediction.create_or_update(pool, owner.id, directing, directing.nominees[0].id)
        db.session.commit()
        make.winner(directing, directing.nominees[0])

        result, _ = Prediction.delete_all_for_user(pool, owner.id)
        db.session.commit()

        assert result == {"deleted": 1, "skipped_categories": 1}
        remaining = Prediction.get_user_predictions(pool.id, owner.id)
        assert [p.category_id for p in remaining] == [directing.id]

    def test_copy_from_pool_recaptures_odds(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 25, at=minutes_ago(60))
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        make.snapshot(category, anora, 40)
        target = make.pool(owner, name="Family Pool")
        result, _ = Prediction.copy_from_pool(pool, target, owner.id)
        db.session.commit()

        assert result == {"copied": 1, "skipped": 0}
        copied = Prediction.get_for(target.id, owner.id, category.id)
        assert copied.nominee_id == anora.id
        assert copied.original_odds_percentage == 40

    def test_copy_requires_same_year(self, make):
        owner, _, pool = _setup(make)
        old_pool = make.pool(owner, year=2025, name="Last Year")

        result, message = Prediction.copy_from_pool(old_pool, pool, owner.id)

        assert result is None
        assert "different years" in message

    def test_copy_requires_membership_in_source(self, make):
        owner, _, pool = _setup(make)
        bob, _ = make.user("bob")
        bobs_pool = make.pool(bob, name="Bob's Pool")

        result, message = Prediction.copy_from_pool(bobs_pool, pool, owner.id)

        assert result is None
        assert message == "Not a member of source pool"


class TestPreviewAndSummary:
    def test_preview_for_new_pick(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 25)
        pool.settings.apply_update(formula="inverse")
        db.session.commit()

        preview = Prediction.scoring_preview(pool, owner.id, category, anora.id)

        assert preview["base_points"] == 10
        assert preview["multiplier"] == 4.0
        assert preview["total_points"] == 40.0
        assert preview["original_odds_will_reset"] is False

    def test_preview_warns_about_switch(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        wicked = nominee_named(category, "Wicked")
        make.snapshot(category, anora, 25)
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()

        preview = Prediction.scoring_preview(pool, owner.id, category, wicked.id)

        assert preview["original_odds_will_reset"] is True
        assert preview["is_selected"] is False

    def test_preview_for_held_pick_uses_best_odds(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 20, at=minutes_ago(30))
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()
        make.snapshot(category, anora, 50)

        preview = Prediction.scoring_preview(pool, owner.id, category, anora.id)

        assert preview["odds_used"] == 20
        assert preview["original_odds_percentage"] == 20

    def test_ballot_summary(self, make):
        owner, category, pool = _setup(make)
        make.category("directing", nominees=("Baker", "Corbet"))
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 50)
        Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()
        make.winner(category, anora)

        summary = Prediction.ballot_summary(pool, owner.id)

        assert summary["total_categories"] == 2
        assert summary["predictions_made"] == 1
        assert summary["is_complete"] is False
        assert summary["earned_points"] == 15.0
        assert summary["percent_correct"] == 100


    def test_summary_matches_leaderboard_after_settled_market(self, make):
        owner, category, pool = _setup(make)
        anora = nominee_named(category, "Anora")
        make.snapshot(category, anora, 30, at=minutes_ago(60))
        prediction, _ = Prediction.create_or_update(pool, owner.id, category, anora.id)
        db.session.commit()
        make.snapshot(category, anora, 10, at=minutes_ago(30))
        Prediction.upgrade_all_for_category(category)
        db.session.commit()
        make.winner(category, anora)
        # settled market keeps quoting the winner after the ceremony
        make.snapshot(category, anora, 100)

        summary = Prediction.ballot_summary(pool, owner.id)
        board = pool.get_user_score(owner.id)

        # 10 * (2 - 0.10)
        assert summary["earned_points"] == pytest.approx(19.0)
        assert board["total_score"] == pytest.approx(19.0)
