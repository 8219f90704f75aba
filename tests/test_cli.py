"""Tests for the management CLI."""

import json

import pytest

from awards_pool import db
from awards_pool.models import Category, Pool, User
from manage import cli

SEED = {
    "year": 2026,
    "categories": [
        {
            "slug": "best-picture",
            "name": "Best Picture",
            "nominees": [{"name": "Anora", "film": "Anora"}, {"name": "Wicked", "film": "Wicked"}],
        },
        {
            "slug": "music-song",
            "name": "Original Song",
            "default_points": 4,
            "nominees": [{"name": "El Mal", "film": "Emilia Pérez", "song": "El Mal"}],
        },
    ],
}


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def seed_file(tmp_path):
    path = tmp_path / "nominees.json"
    path.write_text(json.dumps(SEED), encoding="utf-8")
    return str(path)


def test_seed_is_idempotent(app, runner, seed_file):
    first = runner.invoke(cli, ["seed", seed_file])
    second = runner.invoke(cli, ["seed", seed_file])

    assert first.exit_code == 0
    assert "2 categories, 3 nominees added" in first.output
    assert "0 categories, 0 nominees added" in second.output

    with app.app_context():
        song = Category.get_by_slug("music-song", 2026)
        assert song.default_points == 4
        assert Category.get_by_slug("best-picture", 2026).default_points == 10


def test_create_user_prints_working_token(app, runner):
    result = runner.invoke(cli, ["user", "create", "alice", "alice@example.com", "--superuser"])

    assert result.exit_code == 0
    token = result.output.strip().rsplit(" ", 1)[-1]
    with app.app_context():
        user = User.get_by_api_token(token)
        assert user.username == "alice"
        assert user.is_superuser


def test_duplicate_user_fails(runner):
    runner.invoke(cli, ["user", "create", "alice", "alice@example.com"])
    result = runner.invoke(cli, ["user", "create", "alice", "other@example.com"])
    assert result.exit_code == 1


def test_pool_create_and_add_member(app, runner):
    runner.invoke(cli, ["user", "create", "alice", "alice@example.com"])
    runner.invoke(cli, ["user", "create", "bob", "bob@example.com"])

    created = runner.invoke(cli, ["pool", "create", "Office Pool", "--owner", "alice"])
    assert created.exit_code == 0

    with app.app_context():
        pool_id = Pool.query.filter_by(name="Office Pool").one().id

    added = runner.invoke(
        cli, ["pool", "add-member", str(pool_id), "bob", "--submission-name", "Bob's Ballot"]
    )
    assert added.exit_code == 0

    with app.app_context():
        pool = db.session.get(Pool, pool_id)
        assert pool.year == 2026
        assert len(pool.get_active_members()) == 2


def test_winner_set(app, runner, seed_file):
    runner.invoke(cli, ["seed", seed_file])
    with app.app_context():
        category = Category.get_by_slug("best-picture", 2026)
        nominee_id = category.nominees[0].id

    result = runner.invoke(cli, ["winner", "set", "2026", "best-picture", str(nominee_id)])

    assert result.exit_code == 0
    assert "Winner announced" in result.output


def test_winner_set_unknown_category(runner):
    result = runner.invoke(cli, ["winner", "set", "2026", "best-stunts", "1"])
    assert result.exit_code == 1


def test_status(runner, seed_file):
    runner.invoke(cli, ["seed", seed_file])

    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0
    assert "Categories (2026): 2" in result.output
    assert "Ballot lock: not set" in result.output
