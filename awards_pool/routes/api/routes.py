import logging
from functools import wraps

from flask import jsonify, request
from flask_login import current_user, login_required

from awards_pool import db, limiter
from awards_pool.forms import PoolSettingsForm, PredictionForm, WinnerForm
from awards_pool.models import (
    ActualWinner,
    Category,
    Nominee,
    OddsSnapshot,
    Pool,
    Prediction,
)
from awards_pool.routes.api import bp
from awards_pool.utils.auth import superuser_required
from awards_pool.utils.cache_utils import cached_route, invalidate_odds_cache
from awards_pool.utils.timezone_utils import parse_timestamp

logger = logging.getLogger(__name__)


def add_security_headers(f):
    """Add security headers to API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if isinstance(response, tuple):
            body, status = response[0], response[1]
        else:
            body, status = response, 200
        if not hasattr(body, "headers"):
            body = jsonify(body)
        body.headers["X-Content-Type-Options"] = "nosniff"
        body.headers["X-Frame-Options"] = "DENY"
        body.headers["X-XSS-Protection"] = "1; mode=block"
        body.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return body, status

    return decorated_function


def member_pool(pool_id):
    """Load a pool the current user belongs to; returns (pool, error_response)"""
    pool = db.session.get(Pool, pool_id)
    if pool is None:
        return None, (jsonify({"error": "Pool not found"}), 404)
    if not pool.is_user_member(current_user.id):
        return None, (jsonify({"error": "Not a member of this pool"}), 403)
    return pool, None


def get_category_for_pool(pool, category_id):
    category = db.session.get(Category, category_id)
    if category is None or category.year != pool.year:
        return None
    return category


def _odds_filter_args():
    return request.args.get("by_day", "").lower() in ("1", "true", "yes")


# Catalog and odds


@bp.route("/categories/<int:year>")
@cached_route(timeout=300, key_prefix="categories")
def categories(year):
    """Categories of a ceremony year with their nominees"""
    return [
        category.to_dict(include_nominees=True)
        for category in Category.get_for_year(year)
    ]


@bp.route("/odds/category/<int:category_id>")
@cached_route(key_prefix="odds_category")
def category_odds(category_id):
    """Latest odds for every nominee of a category"""
    category = db.session.get(Category, category_id)
    if category is None:
        return {"error": "Category not found"}, 404

    current = OddsSnapshot.get_current_odds_for_category(category_id)
    return {
        "category_id": category_id,
        "odds": [
            {
                "nominee_id": nominee.id,
                "nominee_name": nominee.name,
                "odds_percentage": current.get(nominee.id),
            }
            for nominee in category.nominees
        ],
    }


@bp.route("/odds/<int:category_id>/<int:nominee_id>")
@cached_route(key_prefix="odds_current")
def nominee_odds(category_id, nominee_id):
    """Latest odds for one nominee"""
    return {
        "category_id": category_id,
        "nominee_id": nominee_id,
        "odds_percentage": OddsSnapshot.get_current_odds(category_id, nominee_id),
    }


@bp.route("/odds/<int:category_id>/<int:nominee_id>/at-time")
@cached_route(key_prefix="odds_at_time")
def nominee_odds_at_time(category_id, nominee_id):
    """Odds for a nominee as of a past instant"""
    raw = request.args.get("timestamp")
    if not raw:
        return {"error": "timestamp is required"}, 400

    timestamp = parse_timestamp(raw)
    if timestamp is None:
        return {"error": "timestamp must be ISO-8601"}, 400

    return {
        "category_id": category_id,
        "nominee_id": nominee_id,
        "timestamp": timestamp.isoformat(),
        "odds_percentage": OddsSnapshot.get_odds_at_time(
            category_id, nominee_id, timestamp
        ),
    }


@bp.route("/odds/<int:category_id>/<int:nominee_id>/history")
@cached_route(key_prefix="odds_history")
def nominee_odds_history(category_id, nominee_id):
    """Odds history for a nominee, optionally one point per day"""
    history = OddsSnapshot.get_history(
        category_id, nominee_id, by_day=_odds_filter_args()
    )
    return {
        "category_id": category_id,
        "nominee_id": nominee_id,
        "history": [snapshot.to_dict() for snapshot in history],
    }


# Predictions


@bp.route("/pools/<int:pool_id>/predictions")
@login_required
@add_security_headers
def my_predictions(pool_id):
    pool, error = member_pool(pool_id)
    if error:
        return error

    predictions = Prediction.get_user_predictions(pool.id, current_user.id)
    return jsonify([prediction.to_dict() for prediction in predictions])


@bp.route("/pools/<int:pool_id>/predictions/all")
@login_required
@add_security_headers
def all_predictions(pool_id):
    """Every member's predictions in the pool"""
    pool, error = member_pool(pool_id)
    if error:
        return error

    predictions = Prediction.query.filter_by(pool_id=pool.id).all()
    return jsonify([prediction.to_dict() for prediction in predictions])


@bp.route("/pools/<int:pool_id>/predictions", methods=["POST"])
@login_required
@limiter.limit("60 per minute")
@add_security_headers
def save_prediction(pool_id):
    """Create or update the current user's pick for a category"""
    pool, error = member_pool(pool_id)
    if error:
        return error

    form = PredictionForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    category = db.session.get(Category, form.category_id.data)

    prediction, message = Prediction.create_or_update(
        pool, current_user.id, category, form.nominee_id.data
    )
    if prediction is None:
        return jsonify({"error": message}), 400

    db.session.commit()
    logger.info(
        f"User {current_user.id} picked nominee {prediction.nominee_id} "
        f"for category {prediction.category_id} in pool {pool_id}"
    )
    return jsonify({"success": True, "message": message, "prediction": prediction.to_dict()})


@bp.route("/pools/<int:pool_id>/predictions/<int:category_id>", methods=["DELETE"])
@login_required
@add_security_headers
def delete_prediction(pool_id, category_id):
    pool, error = member_pool(pool_id)
    if error:
        return error

    category = db.session.get(Category, category_id)

    success, message = Prediction.delete_prediction(pool, current_user.id, category)
    if not success:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "message": message})


@bp.route("/pools/<int:pool_id>/predictions", methods=["DELETE"])
@login_required
@add_security_headers
def delete_all_predictions(pool_id):
    """Clear the current user's ballot except announced categories"""
    pool, error = member_pool(pool_id)
    if error:
        return error

    result, message = Prediction.delete_all_for_user(pool, current_user.id)
    if result is None:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "message": message, **result})


@bp.route(
    "/pools/<int:pool_id>/predictions/<int:category_id>/upgrade-odds",
    methods=["PATCH"],
)
@login_required
@add_security_headers
def upgrade_prediction_odds(pool_id, category_id):
    pool, error = member_pool(pool_id)
    if error:
        return error

    prediction = Prediction.get_for(pool.id, current_user.id, category_id)
    if prediction is None:
        return jsonify({"error": "Prediction not found"}), 404

    if ActualWinner.is_announced(category_id):
        return jsonify(
            {"error": "Winner has already been announced for this category"}
        ), 400

    upgraded, odds = prediction.upgrade_odds()
    if upgraded:
        db.session.commit()

    return jsonify({"upgraded": upgraded, "odds_percentage": odds})


@bp.route(
    "/pools/<int:pool_id>/predictions/copy-from/<int:source_pool_id>",
    methods=["POST"],
)
@login_required
@add_security_headers
def copy_predictions(pool_id, source_pool_id):
    """Copy the current user's picks from another pool of the same year"""
    target, error = member_pool(pool_id)
    if error:
        return error

    source = db.session.get(Pool, source_pool_id)

    result, message = Prediction.copy_from_pool(source, target, current_user.id)
    if result is None:
        return jsonify({"error": message}), 400

    db.session.commit()
    return jsonify({"success": True, "message": message, **result})


@bp.route("/pools/<int:pool_id>/preview/<int:category_id>/<int:nominee_id>")
@login_required
@add_security_headers
def scoring_preview(pool_id, category_id, nominee_id):
    """Points a nominee is worth on the current user's ballot right now"""
    pool, error = member_pool(pool_id)
    if error:
        return error

    category = get_category_for_pool(pool, category_id)
    if category is None:
        return jsonify({"error": "Category not found"}), 404

    if not category.has_nominee(nominee_id):
        return jsonify({"error": "Nominee does not belong to this category"}), 404

    return jsonify(
        Prediction.scoring_preview(pool, current_user.id, category, nominee_id)
    )


@bp.route("/pools/<int:pool_id>/summary")
@login_required
@add_security_headers
def ballot_summary(pool_id):
    pool, error = member_pool(pool_id)
    if error:
        return error

    return jsonify(Prediction.ballot_summary(pool, current_user.id))


# Scores


def _serialize_entry(entry):
    data = dict(entry)
    data["user"] = entry["user"].to_dict() if entry["user"] else None
    return data


@bp.route("/pools/<int:pool_id>/scores")
@login_required
@add_security_headers
def pool_scores(pool_id):
    """Leaderboard for the pool"""
    pool, error = member_pool(pool_id)
    if error:
        return error

    leaderboard = pool.get_leaderboard()
    return jsonify(
        {
            "pool": pool.to_dict(),
            "has_winners": pool.has_winners(),
            "leaderboard": [_serialize_entry(entry) for entry in leaderboard],
        }
    )


@bp.route("/pools/<int:pool_id>/scores/<int:user_id>")
@login_required
@add_security_headers
def user_score(pool_id, user_id):
    pool = db.session.get(Pool, pool_id)
    if pool is None:
        return jsonify({"error": "Pool not found"}), 404

    if user_id != current_user.id and not pool.can_manage(current_user):
        return jsonify({"error": "Not authorized to view this score"}), 403

    entry = pool.get_user_score(user_id)
    if entry is None:
        return jsonify({"error": "User is not a member of this pool"}), 404

    return jsonify(_serialize_entry(entry))


# Settings


@bp.route("/pools/<int:pool_id>/settings")
@login_required
@add_security_headers
def get_settings(pool_id):
    pool, error = member_pool(pool_id)
    if error:
        return error

    return jsonify(pool.settings.to_dict())


@bp.route("/pools/<int:pool_id>/settings", methods=["PUT"])
@login_required
@add_security_headers
def update_settings(pool_id):
    """Update scoring settings; owner or superuser, before any winner exists"""
    pool = db.session.get(Pool, pool_id)
    if pool is None:
        return jsonify({"error": "Pool not found"}), 404

    if not pool.can_manage(current_user):
        return jsonify(
            {"error": "Only pool owner or superuser can update settings"}
        ), 403

    if pool.has_winners():
        return jsonify(
            {"error": "Cannot update pool settings after winners have been announced"}
        ), 403

    form = PoolSettingsForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    success, message = pool.settings.apply_update(
        category_points=form.submitted("category_points"),
        multiplier_enabled=form.submitted("odds_multiplier_enabled"),
        formula=form.submitted("odds_multiplier_formula"),
    )
    if not success:
        return jsonify({"error": message}), 400

    db.session.commit()
    logger.info(f"Settings for pool {pool_id} updated by user {current_user.id}")
    return jsonify({"success": True, "message": message, "settings": pool.settings.to_dict()})


# Winners


@bp.route("/winners/<int:year>")
@login_required
@add_security_headers
def winners(year):
    winners = ActualWinner.query.filter_by(year=year).all()
    return jsonify([winner.to_dict() for winner in winners])


@bp.route("/winners", methods=["POST"])
@login_required
@superuser_required
@add_security_headers
def set_winner():
    """Enter or replace the real winner of a category"""
    form = WinnerForm()
    if not form.validate_on_submit():
        return jsonify({"error": form.first_error()}), 400

    category = db.session.get(Category, form.category_id.data)
    if category is None or category.year != form.year.data:
        return jsonify({"error": "Category not found for that year"}), 404

    if db.session.get(Nominee, form.nominee_id.data) is None:
        return jsonify({"error": "Nominee not found"}), 404

    winner, message = ActualWinner.set_winner(
        category, form.nominee_id.data, entered_by=current_user.id
    )
    if winner is None:
        return jsonify({"error": message}), 400

    db.session.commit()
    invalidate_odds_cache()
    logger.info(
        f"Winner for {category.slug} ({category.year}) set to nominee "
        f"{winner.nominee_id} by user {current_user.id}"
    )
    return jsonify({"success": True, "message": message, "winner": winner.to_dict()})


@bp.route("/winners/<int:year>/<int:category_id>", methods=["DELETE"])
@login_required
@superuser_required
@add_security_headers
def delete_winner(year, category_id):
    winner = ActualWinner.query.filter_by(year=year, category_id=category_id).first()
    if winner is None:
        return jsonify({"error": "Winner not found"}), 404

    db.session.delete(winner)
    db.session.commit()
    invalidate_odds_cache()
    logger.info(f"Winner for category {category_id} ({year}) removed by user {current_user.id}")
    return jsonify({"success": True, "message": "Winner removed"})


@bp.route("/me")
@login_required
def me():
    """The authenticated user"""
    return jsonify(current_user.to_dict())
