"""Tests for configuration loading."""

from datetime import datetime, timezone

import pytest

from config import config, parse_json_mapping, parse_lock_time


def test_testing_config():
    cfg = config["testing"]()

    assert cfg.TESTING is True
    assert cfg.SQLALCHEMY_DATABASE_URI == "sqlite:///:memory:"
    assert cfg.SCHEDULER_ENABLED is False
    assert cfg.BALLOT_LOCK_AT is None


def test_database_url_wins(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://u:p@db/awards")
    assert config["production"]().SQLALCHEMY_DATABASE_URI.endswith("@db/awards")


def test_postgres_from_parts(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_TYPE", "postgresql")
    monkeypatch.setenv("DB_HOST", "pg")
    monkeypatch.delenv("DB_PORT", raising=False)
    monkeypatch.setenv("DB_NAME", "pool")

    uri = config["production"]().SQLALCHEMY_DATABASE_URI

    assert uri.startswith("postgresql+psycopg://")
    assert uri.endswith("@pg:5432/pool")


class TestParseLockTime:
    def test_empty(self):
        assert parse_lock_time("") is None
        assert parse_lock_time(None) is None

    def test_zulu(self):
        assert parse_lock_time("2026-03-15T23:00:00Z") == datetime(
            2026, 3, 15, 23, tzinfo=timezone.utc
        )

    def test_offset_converted_to_utc(self):
        assert parse_lock_time("2026-03-15T19:00:00-04:00") == datetime(
            2026, 3, 15, 23, tzinfo=timezone.utc
        )

    def test_naive_is_utc(self):
        assert parse_lock_time("2026-03-15 23:00").tzinfo == timezone.utc

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_lock_time("next sunday")


class TestParseJsonMapping:
    def test_mapping(self):
        assert parse_json_mapping('{"best-picture": "KXOSCARPIC-26"}') == {
            "best-picture": "KXOSCARPIC-26"
        }

    def test_empty(self):
        assert parse_json_mapping(None) is None

    def test_not_an_object(self):
        with pytest.raises(ValueError):
            parse_json_mapping('["best-picture"]')
