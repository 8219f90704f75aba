from wtforms import IntegerField
from wtforms.validators import DataRequired, NumberRange

from .base import JSONForm


class WinnerForm(JSONForm):
    year = IntegerField(
        "Year",
        validators=[
            DataRequired(message="year is required"),
            NumberRange(min=1929, max=2100, message="Year out of range"),
        ],
    )
    category_id = IntegerField(
        "Category",
        validators=[DataRequired(message="category_id is required"), NumberRange(min=1)],
    )
    nominee_id = IntegerField(
        "Nominee",
        validators=[DataRequired(message="nominee_id is required"), NumberRange(min=1)],
    )
