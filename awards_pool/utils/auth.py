"""
Authentication helpers for the JSON API

Clients send ``Authorization: Bearer <token>``; tokens are issued with
``manage.py user create`` and stored hashed on the user.
"""

from functools import wraps

from flask import jsonify, request
from flask_login import current_user

from awards_pool import db


def _bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def register_user_loaders(login_manager):
    """Wire Flask-Login to session ids and bearer tokens"""
    from awards_pool.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(req):
        return User.get_by_api_token(_bearer_token())

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401


def superuser_required(f):
    """Reject non-superusers with 403; use after login_required"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_superuser:
            return jsonify({"error": "Superuser access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
