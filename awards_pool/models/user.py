import hashlib
import secrets
from datetime import datetime, timezone

from flask_login import UserMixin

from awards_pool import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(100))

    # API access; only the SHA-256 of the bearer token is stored
    api_token_hash = db.Column(db.String(64), unique=True, index=True)

    # Account status
    is_active = db.Column(db.Boolean, default=True)
    is_superuser = db.Column(db.Boolean, default=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    pool_memberships = db.relationship(
        "PoolMember", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    owned_pools = db.relationship("Pool", backref="owner", lazy="dynamic")

    __table_args__ = (db.Index("idx_user_active_status", "is_active"),)

    def __repr__(self):
        return f"<User {self.username}>"

    @staticmethod
    def hash_token(token):
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    def generate_api_token(self):
        """Issue a new bearer token, replacing any previous one"""
        token = secrets.token_urlsafe(32)
        self.api_token_hash = self.hash_token(token)
        return token

    @staticmethod
    def get_by_api_token(token):
        """Look up an active user by bearer token"""
        if not token:
            return None
        return User.query.filter_by(
            api_token_hash=User.hash_token(token), is_active=True
        ).first()

    @property
    def full_name(self):
        return self.display_name or self.username

    def to_dict(self):
        """Convert user to dictionary for API responses"""
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.full_name,
            "is_superuser": self.is_superuser,
        }
