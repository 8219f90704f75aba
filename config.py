import json
import os
import secrets
import warnings
from datetime import datetime, timezone

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def parse_lock_time(value):
    """Parse an ISO-8601 ballot lock timestamp; naive values are taken as UTC"""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_json_mapping(value):
    """Parse an optional JSON object from the environment"""
    if not value:
        return None
    data = json.loads(value)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


class Config:
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "SECRET_KEY not set! Using auto-generated key. "
            "This will cause sessions to reset on app restart.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "awards_pool_db"
            db_user = os.environ.get("DB_USER") or "awards_user"
            db_password = os.environ.get("DB_PASSWORD") or "awards_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "app.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Odds feed
    KALSHI_API_BASE_URL = (
        os.environ.get("KALSHI_API_BASE_URL")
        or "https://api.elections.kalshi.com/trade-api/v2"
    )
    # Optional {"category-slug": "EVENT-TICKER"} overrides
    KALSHI_EVENT_TICKERS = parse_json_mapping(os.environ.get("KALSHI_EVENT_TICKERS"))

    # Pool settings
    POOL_YEAR = int(os.environ.get("POOL_YEAR") or datetime.now(timezone.utc).year)
    BALLOT_LOCK_AT = parse_lock_time(os.environ.get("BALLOT_LOCK_AT"))
    TIMEZONE = os.environ.get("TIMEZONE", "America/New_York")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get("CACHE_DEFAULT_TIMEOUT", 300))
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "awards_pool:"
    ODDS_CACHE_TIMEOUT = int(os.environ.get("ODDS_CACHE_TIMEOUT", 60))

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    ODDS_SNAPSHOT_INTERVAL_MINUTES = int(
        os.environ.get("ODDS_SNAPSHOT_INTERVAL_MINUTES", 10)
    )
    WINNER_CHECK_INTERVAL_MINUTES = int(
        os.environ.get("WINNER_CHECK_INTERVAL_MINUTES", 5)
    )

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        if self.CACHE_TYPE == "RedisCache":
            try:
                redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
                redis_client.ping()
            except redis.exceptions.RedisError:
                self.CACHE_TYPE = "SimpleCache"
                warnings.warn(
                    "Redis not available, falling back to SimpleCache for development.",
                    UserWarning,
                )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SECRET_KEY not explicitly set! "
                "Using auto-generated key is not recommended for production.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    CACHE_TYPE = "NullCache"
    SCHEDULER_ENABLED = False
    RATELIMIT_ENABLED = False
    LOG_TO_CONSOLE = False
    LOG_TO_FILE = False
    BALLOT_LOCK_AT = None
    POOL_YEAR = 2026

    def _build_database_uri(self):
        return "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
