"""
Production Workflow Service
Configuration classes for the Flask app factory.

Selected by APP_ENV (development | testing | production):

    app.config.from_object(config[os.getenv("APP_ENV", "development")])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'prodflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Per-process key for development only; production refuses to start without SECRET_KEY
_DEV_SECRET = secrets.token_hex(32)

_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


def _database_url(env_var="DATABASE_URL", fallback=None):
    """Read a DB URL from the environment; SQLAlchemy 2 wants postgresql://, not postgres://."""
    raw = os.getenv(env_var, "")
    if not raw:
        return fallback
    return raw.replace("postgres://", "postgresql://", 1)


def _env_int(name, default):
    return int(os.getenv(name, str(default)))


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL_OPTIONS)

    # Rate limiter storage
    REDIS_URL = os.getenv("REDIS_URL", "memory://")

    # Read-side cache backend: memory:// or redis://host:port/db
    CACHE_URL = os.getenv("CACHE_URL", "memory://")

    # Cache TTLs per read path (milliseconds)
    CACHE_TTL_DEPARTMENT_MS = _env_int("CACHE_TTL_DEPARTMENT_MS", 5000)
    CACHE_TTL_COMPLETED_MS = _env_int("CACHE_TTL_COMPLETED_MS", 10000)
    CACHE_TTL_NOTIFICATIONS_MS = _env_int("CACHE_TTL_NOTIFICATIONS_MS", 2000)
    CACHE_TTL_STATS_MS = _env_int("CACHE_TTL_STATS_MS", 5000)

    # Fixed production line, in order
    WORKFLOW_DEPARTMENTS = os.getenv(
        "WORKFLOW_DEPARTMENTS", "gabarito,impressao,batida,costura,embalagem",
    )

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(fallback=_SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL", fallback=_SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    CACHE_URL = "memory://"
    REDIS_URL = "memory://"
    RATELIMIT_ENABLED = False
    WORKFLOW_DEPARTMENTS = "gabarito,impressao,batida,costura,embalagem"


class ProductionConfig(Config):
    """PostgreSQL + Redis; DATABASE_URL and SECRET_KEY are mandatory."""

    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # must be set explicitly
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},  # 30s
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
