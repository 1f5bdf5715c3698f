"""Application configuration module.

Settings are read from environment variables so the same code runs locally,
in tests and on a hosted Postgres. When a ``DATABASE_URL`` is provided with the
legacy ``postgres://`` scheme it is rewritten to ``postgresql://`` because
SQLAlchemy no longer accepts the short form. A local ``.env`` file is loaded
when present.
"""

import os
from dotenv import load_dotenv


class Config:
    """Base configuration class.

    Flask and Flask-SQLAlchemy read their settings from the attributes of this
    class via ``app.config.from_object``. Without a database URL the service
    falls back to a SQLite file next to the code.
    """

    # Pick up variables from a .env file during local development.
    load_dotenv()

    # Signs the session cookie that carries the logged-in user id.
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-this-secret-in-prod')

    _db_url = os.environ.get('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # Only the scheme is rewritten; the rest of the URL is left alone.
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _db_url or 'sqlite:///attendance.db'

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.environ.get('SESSION_COOKIE_SAMESITE', 'Lax')

    # Signup rejects shorter passwords.
    MIN_PASSWORD_LENGTH = int(os.environ.get('MIN_PASSWORD_LENGTH', '6'))

    # Create missing tables when the application factory runs.
    CREATE_TABLES_ON_STARTUP = os.environ.get('CREATE_TABLES_ON_STARTUP', '1') != '0'

    # Longest date range, in days, a range report may cover.
    MAX_REPORT_DAYS = int(os.environ.get('MAX_REPORT_DAYS', '731'))


class TestingConfig(Config):
    """Configuration used by the test-suite: in-memory SQLite, testing mode."""

    TESTING = True
    SECRET_KEY = 'testing-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
