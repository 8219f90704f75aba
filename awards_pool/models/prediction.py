import logging
from datetime import datetime, timezone

from awards_pool import db
from awards_pool.utils.ballot_lock import is_ballot_locked, lock_message
from awards_pool.utils.scoring import (
    aggregate,
    compute_score,
    is_valid_odds,
    resolve_scoring_odds,
)

logger = logging.getLogger(__name__)

# Stored odds closer than this to the recomputed value are left alone
ODDS_UPGRADE_TOLERANCE = 0.01


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    # Prediction identification
    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)

    # Pick details
    nominee_id = db.Column(db.Integer, db.ForeignKey("nominees.id"), nullable=False)

    # Odds used for scoring (current at last write, or upgraded since)
    odds_percentage = db.Column(db.Float)
    # Odds captured when this nominee was first selected
    original_odds_percentage = db.Column(db.Float)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    pool = db.relationship("Pool", foreign_keys=[pool_id])
    user = db.relationship("User", foreign_keys=[user_id])
    category = db.relationship("Category", foreign_keys=[category_id])
    nominee = db.relationship("Nominee", foreign_keys=[nominee_id])

    __table_args__ = (
        db.UniqueConstraint(
            "pool_id", "user_id", "category_id", name="unique_pool_user_category_prediction"
        ),
        db.Index("idx_prediction_pool_user", "pool_id", "user_id"),
        db.Index("idx_prediction_category", "category_id"),
    )

    def __repr__(self):
        return (
            f"<Prediction pool_id={self.pool_id} user_id={self.user_id} "
            f"category_id={self.category_id} nominee_id={self.nominee_id}>"
        )

    @staticmethod
    def get_for(pool_id, user_id, category_id):
        return Prediction.query.filter_by(
            pool_id=pool_id, user_id=user_id, category_id=category_id
        ).first()

    @staticmethod
    def get_user_predictions(pool_id, user_id):
        return Prediction.query.filter_by(pool_id=pool_id, user_id=user_id).all()

    @staticmethod
    def _check_editable(pool, user_id, category):
        """Shared refusals for any write to a ballot; returns (ok, message)"""
        from .actual_winner import ActualWinner

        if pool is None:
            return False, "Pool not found"

        if not pool.is_user_member(user_id):
            return False, "Not a member of this pool"

        if category is None:
            return False, "Category not found"

        if category.year != pool.year:
            return False, "Category is not part of this pool's year"

        if ActualWinner.is_announced(category.id):
            return (
                False,
                "Cannot change prediction: winner has already been announced for this category",
            )

        if is_ballot_locked():
            return False, lock_message()

        return True, "Editable"

    @staticmethod
    def create_or_update(pool, user_id, category, nominee_id):
        """
        Create or update a user's pick for a category, capturing current odds.

        Re-saving the same nominee keeps the original odds snapshot. Switching
        nominees replaces both snapshots with the odds at the time of the
        switch, so switching back later captures fresh odds.

        Returns:
            tuple: (prediction or None, message)
        """
        from .odds_snapshot import OddsSnapshot

        editable, message = Prediction._check_editable(pool, user_id, category)
        if not editable:
            return None, message

        if not category.has_nominee(nominee_id):
            return None, "Nominee does not belong to this category"

        current_odds = OddsSnapshot.get_current_odds(category.id, nominee_id)
        prediction = Prediction.get_for(pool.id, user_id, category.id)

        if prediction is None:
            prediction = Prediction(
                pool_id=pool.id,
                user_id=user_id,
                category_id=category.id,
                nominee_id=nominee_id,
                odds_percentage=current_odds,
                original_odds_percentage=current_odds,
            )
            db.session.add(prediction)
            return prediction, "Prediction created successfully"

        if prediction.nominee_id == nominee_id:
            if prediction.original_odds_percentage is None:
                prediction.original_odds_percentage = current_odds
            prediction.odds_percentage = resolve_scoring_odds(
                current_odds,
                prediction.odds_percentage,
                prediction.original_odds_percentage,
            )
            return prediction, "Prediction updated successfully"

        had_original = prediction.original_odds_percentage is not None
        prediction.nominee_id = nominee_id
        prediction.odds_percentage = current_odds
        prediction.original_odds_percentage = current_odds

        if had_original:
            return prediction, "Prediction updated; original odds reset for the new nominee"
        return prediction, "Prediction updated successfully"

    @staticmethod
    def delete_prediction(pool, user_id, category):
        """Remove a user's pick for one category; returns (success, message)"""
        editable, message = Prediction._check_editable(pool, user_id, category)
        if not editable:
            return False, message

        prediction = Prediction.get_for(pool.id, user_id, category.id)
        if prediction is None:
            return False, "Prediction not found"

        db.session.delete(prediction)
        return True, "Prediction deleted"

    @staticmethod
    def delete_all_for_user(pool, user_id):
        """
        Clear a user's ballot, keeping picks in announced categories.

        Returns:
            tuple: (result dict or None, message)
        """
        from .actual_winner import ActualWinner

        if pool is None:
            return None, "Pool not found"

        if not pool.is_user_member(user_id):
            return None, "Not a member of this pool"

        if is_ballot_locked():
            return None, lock_message()

        announced = set(ActualWinner.get_winner_map(pool.year))
        deleted = 0
        skipped = 0
        for prediction in Prediction.get_user_predictions(pool.id, user_id):
            if prediction.category_id in announced:
                skipped += 1
                continue
            db.session.delete(prediction)
            deleted += 1

        return {"deleted": deleted, "skipped_categories": skipped}, "Predictions deleted"

    @staticmethod
    def copy_from_pool(source_pool, target_pool, user_id):
        """
        Copy a user's picks from another pool of the same year.

        Each copied pick captures odds as if it had just been made.
        Announced categories are skipped.

        Returns:
            tuple: (result dict or None, message)
        """
        if source_pool is None or target_pool is None:
            return None, "Pool not found"

        if not target_pool.is_user_member(user_id):
            return None, "Not a member of target pool"

        if not source_pool.is_user_member(user_id):
            return None, "Not a member of source pool"

        if source_pool.id == target_pool.id:
            return None, "Source and target pool are the same"

        if source_pool.year != target_pool.year:
            return None, "Cannot copy predictions between pools from different years"

        source_predictions = Prediction.get_user_predictions(source_pool.id, user_id)
        if not source_predictions:
            return None, "No predictions found in source pool"

        copied = 0
        skipped = 0
        for source in source_predictions:
            prediction, message = Prediction.create_or_update(
                target_pool, user_id, source.category, source.nominee_id
            )
            if prediction is None:
                logger.debug(f"Skipped copying category {source.category_id}: {message}")
                skipped += 1
            else:
                copied += 1

        return {"copied": copied, "skipped": skipped}, f"Copied {copied} predictions"

    def upgrade_odds(self):
        """
        Re-apply the best-odds rule against the latest snapshot.

        Returns:
            tuple: (upgraded, odds_percentage)
        """
        from .odds_snapshot import OddsSnapshot

        current_odds = OddsSnapshot.get_current_odds(self.category_id, self.nominee_id)
        if not is_valid_odds(current_odds):
            return False, self.odds_percentage

        odds_to_use = resolve_scoring_odds(
            current_odds, None, self.original_odds_percentage
        )
        stored = self.odds_percentage

        if stored is None or abs(stored - odds_to_use) > ODDS_UPGRADE_TOLERANCE:
            self.odds_percentage = odds_to_use
            return True, odds_to_use

        return False, stored

    @staticmethod
    def upgrade_all_for_category(category):
        """
        Upgrade stored odds for every pick in a category.

        Announced categories are frozen and left alone.

        Returns:
            tuple: (upgraded, checked)
        """
        from .actual_winner import ActualWinner

        if ActualWinner.is_announced(category.id):
            return 0, 0

        upgraded = 0
        checked = 0
        for prediction in Prediction.query.filter_by(category_id=category.id).all():
            checked += 1
            changed, _ = prediction.upgrade_odds()
            if changed:
                upgraded += 1

        return upgraded, checked

    @staticmethod
    def scoring_preview(pool, user_id, category, nominee_id):
        """
        Points a nominee would be worth on this user's ballot.

        Returns:
            dict including original_odds_will_reset, which is True when picking
            this nominee would discard an original odds snapshot held for a
            different nominee
        """
        from .odds_snapshot import OddsSnapshot

        settings = pool.settings
        current_odds = OddsSnapshot.get_current_odds(category.id, nominee_id)
        prediction = Prediction.get_for(pool.id, user_id, category.id)

        same_nominee = prediction is not None and prediction.nominee_id == nominee_id
        odds = resolve_scoring_odds(
            current_odds,
            prediction.odds_percentage if same_nominee else None,
            prediction.original_odds_percentage if same_nominee else None,
            same_nominee=same_nominee,
        )
        scoring = compute_score(
            odds,
            settings.base_points_for(category),
            settings.multiplier_enabled,
            settings.formula,
        )

        will_reset = (
            prediction is not None
            and not same_nominee
            and prediction.original_odds_percentage is not None
        )

        return {
            "category_id": category.id,
            "nominee_id": nominee_id,
            "base_points": scoring.base_points,
            "multiplier": scoring.multiplier,
            "total_points": scoring.total_points,
            "odds_used": odds,
            "current_odds": current_odds,
            "original_odds_percentage": (
                prediction.original_odds_percentage if same_nominee else None
            ),
            "is_selected": same_nominee,
            "original_odds_will_reset": will_reset,
        }

    @staticmethod
    def ballot_summary(pool, user_id):
        """Possible and earned points for a user's ballot using live odds"""
        from .actual_winner import ActualWinner
        from .odds_snapshot import OddsSnapshot

        settings = pool.settings
        categories = pool.get_categories()
        predictions = Prediction.get_user_predictions(pool.id, user_id)
        winners = ActualWinner.get_winner_map(pool.year)

        summary = aggregate(
            predictions,
            settings.base_points_map(categories),
            winners,
            settings.multiplier_enabled,
            settings.formula,
            current_odds=OddsSnapshot.get_current_odds,
        )

        decided = summary.correct_count + summary.incorrect_count
        return {
            "pool_id": pool.id,
            "user_id": user_id,
            "total_categories": len(categories),
            "predictions_made": len(predictions),
            "is_complete": len(predictions) == len(categories),
            "possible_points": summary.possible,
            "earned_points": summary.earned,
            "correct_count": summary.correct_count,
            "incorrect_count": summary.incorrect_count,
            "percent_correct": (
                round(summary.correct_count / decided * 100) if decided else 0
            ),
            "has_winners": bool(winners),
        }

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "pool_id": self.pool_id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "nominee_id": self.nominee_id,
            "odds_percentage": self.odds_percentage,
            "original_odds_percentage": self.original_odds_percentage,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
