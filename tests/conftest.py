"""Shared test fixtures for the Awards Pool.

The ``app`` fixture builds a fresh application on an in-memory database for
every test. Model-level tests use ``ctx`` to run inside an application
context; API tests call the client with no context pushed so each request
loads its own user from the bearer token.
"""

from datetime import datetime, timedelta, timezone

import pytest

from awards_pool import create_app, db
from awards_pool.models import (
    ActualWinner,
    Category,
    Nominee,
    OddsSnapshot,
    Pool,
    User,
)
from awards_pool.models.category import default_points_for_slug

YEAR = 2026


@pytest.fixture
def app():
    app = create_app("testing")
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Application context for model-level tests."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


class Builder:
    """Creates and commits test records; needs an active app context."""

    def __init__(self):
        self._counter = 0

    def _next(self):
        self._counter += 1
        return self._counter

    def user(self, username=None, superuser=False, display_name=None):
        """Returns (user, api_token)."""
        username = username or f"user{self._next()}"
        user = User(
            username=username,
            email=f"{username}@example.com",
            display_name=display_name,
            is_superuser=superuser,
        )
        token = user.generate_api_token()
        db.session.add(user)
        db.session.commit()
        return user, token

    def category(self, slug="best-picture", nominees=("Anora", "Conclave", "Wicked"),
                 year=YEAR, default_points=None):
        category = Category(
            slug=slug,
            year=year,
            name=slug.replace("-", " ").title(),
            default_points=(
                default_points if default_points is not None else default_points_for_slug(slug)
            ),
        )
        db.session.add(category)
        db.session.flush()
        for name in nominees:
            db.session.add(Nominee(category_id=category.id, name=name, film=name))
        db.session.commit()
        return category

    def pool(self, owner, members=(), year=YEAR, name="Office Pool"):
        pool = Pool(name=name, year=year, owner_id=owner.id)
        db.session.add(pool)
        db.session.flush()
        pool.add_member(owner)
        for member in members:
            pool.add_member(member)
        db.session.commit()
        return pool

    def snapshot(self, category, nominee, odds, at=None):
        snapshot = OddsSnapshot(
            category_id=category.id,
            nominee_id=nominee.id,
            odds_percentage=odds,
            snapshot_time=at or datetime.now(timezone.utc),
            nominee_name=nominee.name,
            nominee_film=nominee.film,
        )
        db.session.add(snapshot)
        db.session.commit()
        return snapshot

    def winner(self, category, nominee, auto_detected=False):
        winner, _ = ActualWinner.set_winner(
            category, nominee.id, auto_detected=auto_detected
        )
        db.session.commit()
        return winner


@pytest.fixture
def make(ctx):
    return Builder()


def nominee_named(category, name):
    return next(nominee for nominee in category.nominees if nominee.name == name)


def minutes_ago(minutes):
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


def auth(token):
    return {"Authorization": f"Bearer {token}"}
