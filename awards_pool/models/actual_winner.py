"""Actual Winner Model - the real result of an award category"""

from datetime import datetime, timezone

from awards_pool import db


class ActualWinner(db.Model):
    """Announced winner for a category; its presence freezes the category"""

    __tablename__ = "actual_winners"

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    nominee_id = db.Column(db.Integer, db.ForeignKey("nominees.id"), nullable=False)

    # Null when detected from a resolved market
    entered_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    is_auto_detected = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    category = db.relationship("Category")
    nominee = db.relationship("Nominee")

    __table_args__ = (
        db.UniqueConstraint("year", "category_id", name="unique_year_category_winner"),
        db.Index("idx_winner_year", "year"),
    )

    def __repr__(self):
        source = "auto" if self.is_auto_detected else "manual"
        return f"<ActualWinner category_id={self.category_id} nominee_id={self.nominee_id} ({source})>"

    @staticmethod
    def get_for_category(category_id):
        return ActualWinner.query.filter_by(category_id=category_id).first()

    @staticmethod
    def is_announced(category_id):
        return ActualWinner.get_for_category(category_id) is not None

    @staticmethod
    def get_winner_map(year):
        """category_id -> winning nominee_id for a year"""
        winners = ActualWinner.query.filter_by(year=year).all()
        return {winner.category_id: winner.nominee_id for winner in winners}

    @staticmethod
    def set_winner(category, nominee_id, entered_by=None, auto_detected=False):
        """
        Create or replace the winner for a category.

        Auto-detected results never overwrite a manually entered winner.

        Returns:
            tuple: (winner or None, message)
        """
        if not category.has_nominee(nominee_id):
            return None, "Nominee does not belong to this category"

        winner = ActualWinner.get_for_category(category.id)

        if winner and auto_detected and not winner.is_auto_detected:
            return None, "Manual winner already entered"

        if winner is None:
            winner = ActualWinner(year=category.year, category_id=category.id)
            db.session.add(winner)
            message = "Winner announced"
        else:
            message = "Winner updated"

        winner.nominee_id = nominee_id
        winner.entered_by = entered_by
        winner.is_auto_detected = auto_detected
        return winner, message

    def to_dict(self):
        """Convert winner to dictionary for API responses"""
        return {
            "id": self.id,
            "year": self.year,
            "category_id": self.category_id,
            "category_slug": self.category.slug if self.category else None,
            "nominee_id": self.nominee_id,
            "nominee_name": self.nominee.name if self.nominee else None,
            "entered_by": self.entered_by,
            "is_auto_detected": self.is_auto_detected,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
