from collections import defaultdict
from datetime import datetime, timezone

from awards_pool import db
from awards_pool.utils.scoring import aggregate, is_correct, score_prediction
from awards_pool.utils.submission_name import (
    build_fallback_name_map,
    resolve_submission_name,
)


class Pool(db.Model):
    __tablename__ = "pools"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    year = db.Column(db.Integer, nullable=False, index=True)

    is_public = db.Column(db.Boolean, default=False)
    ceremony_date = db.Column(db.DateTime)

    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    members = db.relationship(
        "PoolMember", backref="pool", lazy="dynamic", cascade="all, delete-orphan"
    )
    settings = db.relationship(
        "PoolSettings",
        backref="pool",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("idx_pool_owner", "owner_id"),
        db.Index("idx_pool_year_public", "year", "is_public"),
    )

    def __repr__(self):
        return f"<Pool {self.name} ({self.year})>"

    def __init__(self, **kwargs):
        super(Pool, self).__init__(**kwargs)
        if self.settings is None:
            from .pool_settings import PoolSettings

            self.settings = PoolSettings(category_points={})

    def get_active_members(self):
        """Get all active members of the pool"""
        from sqlalchemy.orm import joinedload

        from .pool_member import PoolMember

        return (
            self.members.filter_by(is_active=True)
            .options(joinedload(PoolMember.user))
            .order_by(PoolMember.joined_at, PoolMember.user_id)
            .all()
        )

    def is_user_member(self, user_id):
        """Check if user is an active member"""
        return (
            self.members.filter_by(user_id=user_id, is_active=True).first() is not None
        )

    def is_owner(self, user_id):
        return self.owner_id == user_id

    def can_manage(self, user):
        """Pool owner or superuser"""
        return bool(user) and (self.is_owner(user.id) or user.is_superuser)

    def add_member(self, user, submission_name=None):
        """Add a user to the pool"""
        from .pool_member import PoolMember

        existing = self.members.filter_by(user_id=user.id).first()
        if existing:
            if existing.is_active:
                return False, "User is already a member"
            existing.is_active = True
            existing.left_at = None
            existing.joined_at = datetime.now(timezone.utc)
            return True, "Membership reactivated"

        membership = PoolMember(
            user_id=user.id, pool_id=self.id, submission_name=submission_name
        )
        db.session.add(membership)
        return True, "User added successfully"

    def has_winners(self):
        """Whether any real winner has been announced for the pool's year"""
        from .actual_winner import ActualWinner

        return ActualWinner.query.filter_by(year=self.year).first() is not None

    def get_categories(self):
        from .category import Category

        return Category.get_for_year(self.year)

    def get_leaderboard(self):
        """
        Score every active member against the announced winners.

        Odds are the ones stored on each prediction; announced categories are
        frozen because upgrades stop once a winner exists.

        Returns:
            list of dicts sorted by total_score, then correct_count, then name
        """
        from .actual_winner import ActualWinner
        from .prediction import Prediction

        settings = self.settings
        categories = self.get_categories()
        base_points = settings.base_points_map(categories)
        category_names = {category.id: category.name for category in categories}
        winners = ActualWinner.get_winner_map(self.year)

        predictions_by_user = defaultdict(list)
        for prediction in Prediction.query.filter_by(pool_id=self.id).all():
            predictions_by_user[prediction.user_id].append(prediction)

        members = self.get_active_members()
        fallback_names = build_fallback_name_map(members)

        leaderboard = []
        for member in members:
            predictions = predictions_by_user.get(member.user_id, [])
            summary = aggregate(
                predictions,
                base_points,
                winners,
                settings.multiplier_enabled,
                settings.formula,
            )

            breakdown = []
            for prediction in predictions:
                category_id = prediction.category_id
                if category_id not in winners or category_id not in base_points:
                    continue

                scoring = score_prediction(
                    prediction,
                    base_points[category_id],
                    settings.multiplier_enabled,
                    settings.formula,
                )
                correct = is_correct(prediction.nominee_id, winners[category_id])
                breakdown.append(
                    {
                        "category_id": category_id,
                        "category_name": category_names.get(category_id, ""),
                        "nominee_id": prediction.nominee_id,
                        "points": scoring.base_points,
                        "multiplier": scoring.multiplier,
                        "adjusted_points": scoring.total_points if correct else 0.0,
                        "odds": prediction.odds_percentage,
                        "correct": correct,
                    }
                )

            leaderboard.append(
                {
                    "user_id": member.user_id,
                    "user": member.user,
                    "submission_name": resolve_submission_name(
                        member.submission_name,
                        fallback_names.get(member.user_id, "Ballot"),
                    ),
                    "total_score": summary.earned,
                    "possible_score": summary.possible,
                    "correct_count": summary.correct_count,
                    "incorrect_count": summary.incorrect_count,
                    "picks_made": len(predictions),
                    "breakdown": breakdown,
                }
            )

        leaderboard.sort(
            key=lambda entry: (
                -entry["total_score"],
                -entry["correct_count"],
                entry["submission_name"].lower(),
            )
        )
        return leaderboard

    def get_user_score(self, user_id):
        """Leaderboard entry for one member, or None"""
        for entry in self.get_leaderboard():
            if entry["user_id"] == user_id:
                return entry
        return None

    def to_dict(self):
        """Convert pool to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.name,
            "year": self.year,
            "is_public": self.is_public,
            "owner_id": self.owner_id,
            "ceremony_date": (
                self.ceremony_date.isoformat() if self.ceremony_date else None
            ),
            "member_count": self.members.filter_by(is_active=True).count(),
        }
