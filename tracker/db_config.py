"""Database URI and engine options for each deployment environment."""
import os

LOCAL_SQLITE_URI = "sqlite:///production.sqlite"

# environment -> env vars checked in order for the database URL
DATABASE_URL_VARS = {
    "local": ("LOCAL_DATABASE_URL",),
    "sandbox": ("SANDBOX_DATABASE_URL",),
    "production": ("PRODUCTION_DATABASE_URL", "DATABASE_URL"),
}

ENVIRONMENT_ALIASES = {
    "development": "local",
    "dev": "local",
    "staging": "sandbox",
    "stage": "sandbox",
    "prod": "production",
}


def get_database_engine_options(application_name="production_tracker"):
    """Pool settings for the PostgreSQL deployments."""
    from sqlalchemy.pool import QueuePool

    return {
        "pool_pre_ping": True,
        "pool_recycle": 280,
        "pool_size": 5,
        "max_overflow": 10,           # terminals poll /updates in bursts at shift change
        "pool_timeout": 30,
        "pool_reset_on_return": "commit",
        "poolclass": QueuePool,
        "connect_args": {
            "sslmode": "require",
            "connect_timeout": 10,
            "application_name": application_name,
            "options": "-c statement_timeout=30000",
        },
    }


def normalize_environment(environment=None):
    """Map FLASK_ENV/ENVIRONMENT spellings onto local, sandbox or production."""
    if environment is None:
        environment = os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")
    environment = environment.lower()
    environment = ENVIRONMENT_ALIASES.get(environment, environment)
    return environment if environment in DATABASE_URL_VARS else "local"


def get_database_config(environment=None):
    """
    Returns:
        tuple: (database_uri, engine_options); engine_options is None for SQLite

    Raises:
        ValueError: sandbox/production without a configured database URL
    """
    environment = normalize_environment(environment)
    url_vars = DATABASE_URL_VARS[environment]
    database_uri = next((os.environ[name] for name in url_vars if os.environ.get(name)), None)

    if environment == "local":
        return database_uri or LOCAL_SQLITE_URI, None

    if not database_uri:
        raise ValueError(f"{' or '.join(url_vars)} must be set for the {environment} environment")
    return database_uri, get_database_engine_options()


def configure_database(app):
    """
    Set SQLALCHEMY_* keys on the app config.

    A URI already present on the config class (the test configuration) is kept.
    """
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config.setdefault("SQLALCHEMY_ECHO", False)

    if app.config.get("SQLALCHEMY_DATABASE_URI"):
        return

    database_uri, engine_options = get_database_config(app.config.get("ENV"))
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    if engine_options:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options
