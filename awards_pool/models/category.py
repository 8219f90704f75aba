from datetime import datetime, timezone

from awards_pool import db

MAJOR = "major"
TECHNICAL = "technical"
FILM = "film"

# UI grouping of award categories; also drives the default point values
CATEGORY_TIERS = {
    MAJOR: (
        "best-picture",
        "directing",
        "writing-original",
        "writing-adapted",
        "actor-leading",
        "actress-leading",
        "actor-supporting",
        "actress-supporting",
    ),
    TECHNICAL: (
        "cinematography",
        "film-editing",
        "sound",
        "visual-effects",
        "production-design",
        "costume-design",
        "makeup-hairstyling",
        "music-score",
        "music-song",
        "casting",
    ),
    FILM: (
        "international-feature",
        "animated-feature",
        "documentary-feature",
        "animated-short",
        "documentary-short",
        "live-action-short",
    ),
}

TIER_DEFAULT_POINTS = {MAJOR: 10, TECHNICAL: 3, FILM: 5}
FALLBACK_DEFAULT_POINTS = 10


def tier_for_slug(slug):
    for tier, slugs in CATEGORY_TIERS.items():
        if slug in slugs:
            return tier
    return None


def default_points_for_slug(slug):
    """Default base points for a category slug (10 / 3 / 5 by tier)"""
    return TIER_DEFAULT_POINTS.get(tier_for_slug(slug), FALLBACK_DEFAULT_POINTS)


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(64), nullable=False)  # e.g. "best-picture"
    year = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    default_points = db.Column(db.Integer, nullable=False, default=FALLBACK_DEFAULT_POINTS)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    nominees = db.relationship(
        "Nominee",
        backref="category",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="Nominee.name",
    )

    __table_args__ = (
        db.UniqueConstraint("slug", "year", name="unique_category_slug_year"),
        db.Index("idx_category_year", "year"),
    )

    def __repr__(self):
        return f"<Category {self.slug} ({self.year})>"

    @property
    def tier(self):
        return tier_for_slug(self.slug)

    @staticmethod
    def get_for_year(year):
        return Category.query.filter_by(year=year).order_by(Category.name).all()

    @staticmethod
    def get_by_slug(slug, year):
        return Category.query.filter_by(slug=slug, year=year).first()

    def has_nominee(self, nominee_id):
        return any(nominee.id == nominee_id for nominee in self.nominees)

    def to_dict(self, include_nominees=False):
        """Convert category to dictionary for API responses"""
        data = {
            "id": self.id,
            "slug": self.slug,
            "year": self.year,
            "name": self.name,
            "default_points": self.default_points,
            "tier": self.tier,
        }

        if include_nominees:
            data["nominees"] = [nominee.to_dict() for nominee in self.nominees]

        return data
