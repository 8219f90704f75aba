"""
Scoring Engine for the Awards Pool application

Pure functions that turn a prediction's odds into points. Nothing in here
touches the database, the request or the network: callers hand in plain
values (or any object carrying the prediction attributes) and get plain
values back. Invalid input never raises, it degrades to "no multiplier" or
"no winner yet".

For per-pool leaderboards see Pool.get_leaderboard() in
awards_pool/models/pool.py.
"""

import math
from collections import namedtuple
from collections.abc import Mapping

LINEAR = "linear"
SQRT = "sqrt"
LOG = "log"
INVERSE = "inverse"

MULTIPLIER_FORMULAS = (LINEAR, SQRT, LOG, INVERSE)
DEFAULT_FORMULA = LINEAR

ScoringPreview = namedtuple(
    "ScoringPreview", ["base_points", "multiplier", "total_points"]
)

BallotSummary = namedtuple(
    "BallotSummary", ["possible", "earned", "correct_count", "incorrect_count"]
)


def _as_odds(value):
    """Return value as a float percentage in (0, 100], or None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        odds = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(odds) or odds <= 0 or odds > 100:
        return None
    return odds


def _as_points(value):
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)) and math.isfinite(value):
        return value
    try:
        points = float(value)
    except (TypeError, ValueError):
        return 0
    return points if math.isfinite(points) else 0


def is_valid_odds(odds):
    """True when odds is a usable win probability percentage in (0, 100]"""
    return _as_odds(odds) is not None


def calculate_odds_multiplier(odds, formula=DEFAULT_FORMULA):
    """
    Map a nominee's win probability to a scoring multiplier.

    Every formula is non-increasing in odds and returns 1.0 at 100%, so the
    bigger the underdog the bigger the reward.

    Args:
        odds: Win probability as a percentage in (0, 100]
        formula: One of MULTIPLIER_FORMULAS; anything else scores as linear

    Returns:
        float: multiplier >= 1.0, exactly 1.0 for invalid odds
    """
    odds = _as_odds(odds)
    if odds is None:
        return 1.0

    odds_decimal = odds / 100

    if formula == INVERSE:
        return max(1.0, 100 / odds)
    if formula == SQRT:
        return 1 + math.sqrt(1 - odds_decimal)
    if formula == LOG:
        return 1 + math.log(100 / odds)

    # linear, and the fallback for unknown formulas
    return 2 - odds_decimal


def compute_score(odds, base_points, multiplier_enabled=True, formula=DEFAULT_FORMULA):
    """
    Compute the point value of a single pick.

    Args:
        odds: Odds used for scoring (see resolve_scoring_odds)
        base_points: Category point value (pool override or category default)
        multiplier_enabled: When False the multiplier is always 1.0
        formula: Multiplier formula name

    Returns:
        ScoringPreview(base_points, multiplier, total_points)
    """
    base_points = _as_points(base_points)

    multiplier = 1.0
    if multiplier_enabled and is_valid_odds(odds):
        multiplier = calculate_odds_multiplier(odds, formula)

    return ScoringPreview(
        base_points=base_points,
        multiplier=multiplier,
        total_points=base_points * multiplier,
    )


def resolve_scoring_odds(
    current_odds, odds_percentage=None, original_odds_percentage=None, same_nominee=True
):
    """
    Pick the odds value most favourable to the user.

    Only two snapshots are ever compared: the odds captured when the nominee
    was first selected and the latest live odds. A lower percentage means a
    bigger multiplier, so the lower of the two wins. Values outside (0, 100]
    count as missing.

    Args:
        current_odds: Latest live odds for the nominee being scored
        odds_percentage: Odds stored on the prediction at its last write
        original_odds_percentage: Odds captured at first selection
        same_nominee: Whether the nominee being scored is the one the stored
            prediction holds; when False the stored snapshots do not apply

    Returns:
        float or None
    """
    current = _as_odds(current_odds)
    if not same_nominee:
        return current

    stored = _as_odds(odds_percentage)
    original = _as_odds(original_odds_percentage)

    if original is not None:
        if current is not None:
            return min(current, original)
        return stored if stored is not None else original

    if stored is not None:
        return stored

    return current


def is_correct(nominee_id, winner_nominee_id):
    """
    Check a pick against the announced winner.

    Returns:
        True / False, or None while no winner is known for the category
    """
    if winner_nominee_id is None:
        return None
    if nominee_id is None:
        return False
    return nominee_id == winner_nominee_id


def _field(record, name):
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _lookup_current_odds(current_odds, category_id, nominee_id):
    if current_odds is None:
        return None
    if callable(current_odds):
        return current_odds(category_id, nominee_id)
    return current_odds.get((category_id, nominee_id))


def score_prediction(
    prediction, base_points, multiplier_enabled=True, formula=DEFAULT_FORMULA, current_odds=None
):
    """Score a stored prediction, resolving its odds with the best-odds rule"""
    odds = resolve_scoring_odds(
        current_odds,
        _field(prediction, "odds_percentage"),
        _field(prediction, "original_odds_percentage"),
    )
    return compute_score(odds, base_points, multiplier_enabled, formula)


def aggregate(
    predictions,
    base_points,
    winners,
    multiplier_enabled=True,
    formula=DEFAULT_FORMULA,
    current_odds=None,
):
    """
    Total up a ballot.

    Args:
        predictions: Iterable of predictions (objects or dicts) carrying
            category_id, nominee_id, odds_percentage, original_odds_percentage
        base_points: Mapping of category_id -> base points; predictions for
            categories missing from it are skipped
        winners: Mapping of category_id -> winning nominee_id
        multiplier_enabled: Pool multiplier flag
        formula: Pool multiplier formula
        current_odds: Optional live odds, either a mapping keyed by
            (category_id, nominee_id) or a callable taking those two values;
            ignored for categories in winners, which score their stored odds

    Returns:
        BallotSummary(possible, earned, correct_count, incorrect_count)
    """
    possible = 0.0
    earned = 0.0
    correct_count = 0
    incorrect_count = 0
    winners = winners or {}
    base_points = base_points or {}

    for prediction in predictions or ():
        category_id = _field(prediction, "category_id")
        if category_id not in base_points:
            continue

        nominee_id = _field(prediction, "nominee_id")
        live = None
        if category_id not in winners:
            live = _lookup_current_odds(current_odds, category_id, nominee_id)
        scoring = score_prediction(
            prediction, base_points[category_id], multiplier_enabled, formula, live
        )
        possible += scoring.total_points

        result = is_correct(nominee_id, winners.get(category_id))
        if result is True:
            earned += scoring.total_points
            correct_count += 1
        elif result is False:
            incorrect_count += 1

    return BallotSummary(
        possible=possible,
        earned=earned,
        correct_count=correct_count,
        incorrect_count=incorrect_count,
    )
