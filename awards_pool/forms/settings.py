from wtforms import BooleanField, Field, SelectField
from wtforms.validators import Optional, ValidationError

from awards_pool.utils.scoring import MULTIPLIER_FORMULAS

from .base import JSONForm


class JSONObjectField(Field):
    """Accepts a JSON object value as-is"""

    def process_formdata(self, valuelist):
        if valuelist:
            self.data = valuelist[0]

    def pre_validate(self, form):
        if self.raw_data and not isinstance(self.data, dict):
            raise ValidationError("Must be an object of category slug to points")


class PoolSettingsForm(JSONForm):
    category_points = JSONObjectField("Category Points")
    odds_multiplier_enabled = BooleanField("Odds Multiplier Enabled")
    odds_multiplier_formula = SelectField(
        "Odds Multiplier Formula",
        choices=[(formula, formula.title()) for formula in MULTIPLIER_FORMULAS],
        validators=[Optional()],
        validate_choice=False,
    )
