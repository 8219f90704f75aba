from datetime import datetime, timezone

from awards_pool import db


class PoolMember(db.Model):
    __tablename__ = "pool_members"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    pool_id = db.Column(db.Integer, db.ForeignKey("pools.id"), nullable=False)

    # Optional label shown on leaderboards instead of "Ballot #n"
    submission_name = db.Column(db.String(100))

    is_active = db.Column(db.Boolean, default=True)

    # Timestamps
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    left_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("user_id", "pool_id", name="unique_user_pool"),
        db.Index("idx_pool_members_active", "pool_id", "is_active"),
        db.Index("idx_user_pool_memberships", "user_id", "is_active"),
    )

    def __repr__(self):
        return f"<PoolMember user_id={self.user_id} pool_id={self.pool_id}>"

    def to_dict(self):
        """Convert membership to dictionary for API responses"""
        return {
            "user_id": self.user_id,
            "pool_id": self.pool_id,
            "username": self.user.username if self.user else None,
            "submission_name": self.submission_name,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }
