"""
TeamHub configuration classes for the Flask app factory.

Every setting is read from the environment once, at import time. Product
rules that the lifecycle services consult at runtime (decline reason length,
application message length) live here so operators can tune them without a
release.

Usage:
    app.config.from_object(config[os.getenv("APP_ENV", "development")])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'teamhub_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random per-process key for development only
_DEV_SECRET = secrets.token_hex(32)


def _env_int(name, default):
    return int(os.getenv(name, str(default)))


def _env_float(name, default):
    return float(os.getenv(name, str(default)))


def _database_url(default=None):
    # Hosting providers hand out postgres://, SQLAlchemy 2.x wants postgresql://
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Settings shared by every environment."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # ── Bearer tokens (issued by the identity service) ──
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY") or SECRET_KEY
    JWT_ISSUER = os.getenv("JWT_ISSUER", "")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 900)

    # ── Database ──
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # ── HTTP edge ──
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    REDIS_URL = os.getenv("REDIS_URL", "")
    RATELIMIT_STORAGE_URI = REDIS_URL or "memory://"

    # ── User directory (display snapshots) ──
    USER_DIRECTORY_URL = os.getenv("USER_DIRECTORY_URL", "")
    USER_DIRECTORY_TIMEOUT = _env_float("USER_DIRECTORY_TIMEOUT", 2.0)
    USER_DIRECTORY_CACHE_TTL = _env_int("USER_DIRECTORY_CACHE_TTL", 300)
    USER_DIRECTORY_CACHE_MAX_ENTRIES = _env_int("USER_DIRECTORY_CACHE_MAX_ENTRIES", 10000)

    # ── Lifecycle product rules ──
    DECLINE_REASON_MIN_LENGTH = _env_int("DECLINE_REASON_MIN_LENGTH", 10)
    DECLINE_REASON_MAX_LENGTH = _env_int("DECLINE_REASON_MAX_LENGTH", 1000)
    APPLICATION_MESSAGE_MAX_LENGTH = _env_int("APPLICATION_MESSAGE_MAX_LENGTH", 500)

    # ── Bound-chat reconciliation thread; 0 means run it via `flask reconcile-chats` only ──
    RECONCILE_INTERVAL_SECONDS = _env_int("RECONCILE_INTERVAL_SECONDS", 0)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret"
    JWT_ISSUER = ""
    RATELIMIT_ENABLED = False
    USER_DIRECTORY_URL = ""
    RECONCILE_INTERVAL_SECONDS = 0


class ProductionConfig(Config):
    """PostgreSQL with a bounded pool and a 30 s statement timeout."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
