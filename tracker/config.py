"""
Fire-Proofing Tracker
Configuration classes, selected by name in ``create_app``.

    app.config.from_object(config[os.getenv("APP_ENV", "development")])

Environment variables:
    DATABASE_URL         SQLAlchemy URL (required in production)
    TEST_DATABASE_URL    overrides the in-memory SQLite used by tests
    SECRET_KEY           required in production
    REDIS_URL            rate-limit storage and group cache (memory when unset)
    CORS_ORIGINS         comma-separated origins, "*" in development
    GROUP_CACHE_TTL      seconds a materialized group stays cached
    MAX_BULK_ELEMENTS    cap on element ids per bulk workflow assignment
    REMOTE_TRACKER_URL   serve the engines from another deployment's /api/v1
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'tracker_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _env_int(name, default):
    raw = os.getenv(name, "")
    return int(raw) if raw.strip() else default


def _database_url():
    # SQLAlchemy 2 only accepts the postgresql:// scheme
    raw = os.getenv("DATABASE_URL", "")
    if raw.startswith("postgres://"):
        return "postgresql://" + raw[len("postgres://"):]
    return raw


class Config:
    ENV_NAME = "base"
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    REDIS_URL = os.getenv("REDIS_URL", "")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Blueprint name -> Flask-Limiter limit string; merged over the defaults
    RATE_LIMITS = {}

    GROUP_CACHE_TTL = _env_int("GROUP_CACHE_TTL", 120)
    MAX_BULK_ELEMENTS = _env_int("MAX_BULK_ELEMENTS", 5000)

    # Zero-argument callable returning a DataAccess; None = own database
    DATA_ACCESS_FACTORY = None
    REMOTE_TRACKER_URL = os.getenv("REMOTE_TRACKER_URL", "")
    REMOTE_TRACKER_TIMEOUT = _env_int("REMOTE_TRACKER_TIMEOUT", 30)


class DevelopmentConfig(Config):
    ENV_NAME = "development"
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url() or _SQLITE_DEV


class TestingConfig(Config):
    ENV_NAME = "testing"
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    MAX_BULK_ELEMENTS = 50
    REMOTE_TRACKER_URL = ""


class ProductionConfig(Config):
    ENV_NAME = "production"
    SQLALCHEMY_DATABASE_URI = _database_url() or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
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
