from datetime import datetime, timezone

from awards_pool import db


class OddsSnapshot(db.Model):
    """One sampled win probability for a nominee; rows are never updated"""

    __tablename__ = "odds_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    nominee_id = db.Column(db.Integer, db.ForeignKey("nominees.id"), nullable=False)

    odds_percentage = db.Column(db.Float, nullable=False)
    snapshot_time = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    # Names as matched against the market, kept for auditing odd matches
    nominee_name = db.Column(db.String(200))
    nominee_film = db.Column(db.String(200))

    __table_args__ = (
        db.Index("idx_odds_nominee_time", "category_id", "nominee_id", "snapshot_time"),
    )

    def __repr__(self):
        return f"<OddsSnapshot nominee_id={self.nominee_id} odds={self.odds_percentage}>"

    @staticmethod
    def _for_nominee(category_id, nominee_id):
        return OddsSnapshot.query.filter_by(category_id=category_id, nominee_id=nominee_id)

    @staticmethod
    def get_current_odds(category_id, nominee_id):
        """Most recent odds for a nominee, or None"""
        snapshot = (
            OddsSnapshot._for_nominee(category_id, nominee_id)
            .order_by(OddsSnapshot.snapshot_time.desc(), OddsSnapshot.id.desc())
            .first()
        )
        return snapshot.odds_percentage if snapshot else None

    @staticmethod
    def get_current_odds_for_category(category_id):
        """nominee_id -> latest odds for every nominee with a snapshot"""
        snapshots = (
            OddsSnapshot.query.filter_by(category_id=category_id)
            .order_by(OddsSnapshot.snapshot_time.asc(), OddsSnapshot.id.asc())
            .all()
        )
        # Later rows overwrite earlier ones
        return {snapshot.nominee_id: snapshot.odds_percentage for snapshot in snapshots}

    @staticmethod
    def get_odds_at_time(category_id, nominee_id, timestamp):
        """Closest odds at or before timestamp, or None"""
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)

        snapshot = (
            OddsSnapshot._for_nominee(category_id, nominee_id)
            .filter(OddsSnapshot.snapshot_time <= timestamp)
            .order_by(OddsSnapshot.snapshot_time.desc(), OddsSnapshot.id.desc())
            .first()
        )
        return snapshot.odds_percentage if snapshot else None

    @staticmethod
    def get_history(category_id, nominee_id, by_day=False):
        """
        Odds history for a nominee, oldest first.

        Args:
            by_day: Keep only the first snapshot of each calendar day (in the
                application timezone) plus the latest snapshot

        Returns:
            list of OddsSnapshot
        """
        history = (
            OddsSnapshot._for_nominee(category_id, nominee_id)
            .order_by(OddsSnapshot.snapshot_time.asc(), OddsSnapshot.id.asc())
            .all()
        )
        if not by_day or not history:
            return history

        from awards_pool.utils.timezone_utils import convert_to_app_timezone

        filtered = []
        seen_days = set()
        for snapshot in history:
            day = convert_to_app_timezone(snapshot.snapshot_time).date()
            if day not in seen_days:
                seen_days.add(day)
                filtered.append(snapshot)

        if filtered[-1] is not history[-1]:
            filtered.append(history[-1])

        return filtered

    def to_dict(self):
        return {
            "category_id": self.category_id,
            "nominee_id": self.nominee_id,
            "odds_percentage": self.odds_percentage,
            "snapshot_time": (
                self.snapshot_time.isoformat() if self.snapshot_time else None
            ),
        }
