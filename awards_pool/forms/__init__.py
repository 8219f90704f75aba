from .base import JSONForm
from .predictions import PredictionForm
from .settings import PoolSettingsForm
from .winners import WinnerForm

__all__ = ["JSONForm", "PredictionForm", "PoolSettingsForm", "WinnerForm"]
