import os
from dotenv import load_dotenv

from tracker.db_config import ENVIRONMENT_ALIASES

load_dotenv()


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration class with common settings."""
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE", "logs/app.log")

    # System update feed
    EVENT_LOG_DEFAULT_LIMIT = int(os.environ.get("EVENT_LOG_DEFAULT_LIMIT", 100))
    EVENT_LOG_MAX_LIMIT = int(os.environ.get("EVENT_LOG_MAX_LIMIT", 500))
    UPDATES_DEFAULT_LOOKBACK_HOURS = int(os.environ.get("UPDATES_DEFAULT_LOOKBACK_HOURS", 24))

    # Legacy terminals update steps the factory never created; keep accepting them
    # until those clients are retired.
    ALLOW_IMPLICIT_STEP_CREATION = _env_bool("ALLOW_IMPLICIT_STEP_CREATION", True)


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


class TestingConfig(Config):
    """Configuration for the test suite (in-memory SQLite, no log file)."""
    ENV = "testing"
    DEBUG = False
    TESTING = True
    SECRET_KEY = "test-secret-key"
    LOG_FILE = None
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"


CONFIG_BY_ENVIRONMENT = {
    "local": LocalConfig,
    "sandbox": SandboxConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "test": TestingConfig,
}


def get_config():
    """
    Config class for FLASK_ENV (or ENVIRONMENT).

    Accepts the same spellings as tracker.db_config (dev, staging, prod, ...) plus
    'testing'/'test'; anything unrecognized falls back to LocalConfig.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()
    env = ENVIRONMENT_ALIASES.get(env, env)
    return CONFIG_BY_ENVIRONMENT.get(env, LocalConfig)
