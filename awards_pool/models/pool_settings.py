from datetime import datetime, timezone

from awards_pool import db
from awards_pool.utils.scoring import DEFAULT_FORMULA, MULTIPLIER_FORMULAS


class PoolSettings(db.Model):
    """Per-pool scoring configuration"""

    __tablename__ = "pool_settings"

    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(
        db.Integer, db.ForeignKey("pools.id"), nullable=False, unique=True
    )

    # {"category-slug": points} overrides of Category.default_points
    category_points = db.Column(db.JSON, nullable=False, default=dict)
    odds_multiplier_enabled = db.Column(db.Boolean, nullable=False, default=True)
    odds_multiplier_formula = db.Column(
        db.String(20), nullable=False, default=DEFAULT_FORMULA
    )

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<PoolSettings pool_id={self.pool_id} formula={self.odds_multiplier_formula}>"

    @property
    def formula(self):
        return self.odds_multiplier_formula or DEFAULT_FORMULA

    @property
    def multiplier_enabled(self):
        # Unset means enabled, matching the column default
        return self.odds_multiplier_enabled is not False

    def base_points_for(self, category):
        """Pool override for the category when positive, else its default"""
        override = (self.category_points or {}).get(category.slug)
        if isinstance(override, (int, float)) and not isinstance(override, bool):
            if override > 0:
                return override
        return category.default_points

    def base_points_map(self, categories):
        """category_id -> base points for the given categories"""
        return {category.id: self.base_points_for(category) for category in categories}

    @staticmethod
    def validate_category_points(category_points):
        """Check an override map; returns (is_valid, message)"""
        if not isinstance(category_points, dict):
            return False, "category_points must be an object"

        for slug, points in category_points.items():
            if isinstance(points, bool) or not isinstance(points, (int, float)):
                return False, f"Points for {slug} must be a number"
            if points <= 0:
                return False, f"Points for {slug} must be positive"

        return True, "Valid category points"

    def apply_update(self, category_points=None, multiplier_enabled=None, formula=None):
        """
        Apply a partial settings update, leaving unspecified values untouched.

        Returns:
            tuple: (success, message)
        """
        if formula is not None and formula not in MULTIPLIER_FORMULAS:
            return False, (
                f"Unknown multiplier formula '{formula}'. "
                f"Choose one of: {', '.join(MULTIPLIER_FORMULAS)}"
            )

        if category_points is not None:
            is_valid, message = self.validate_category_points(category_points)
            if not is_valid:
                return False, message
            self.category_points = dict(category_points)

        if multiplier_enabled is not None:
            self.odds_multiplier_enabled = bool(multiplier_enabled)

        if formula is not None:
            self.odds_multiplier_formula = formula

        return True, "Settings updated successfully"

    def to_dict(self):
        """Convert settings to dictionary for API responses"""
        return {
            "pool_id": self.pool_id,
            "category_points": self.category_points or {},
            "odds_multiplier_enabled": self.multiplier_enabled,
            "odds_multiplier_formula": self.formula,
            "available_formulas": list(MULTIPLIER_FORMULAS),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
