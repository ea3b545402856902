"""Testing configuration."""
from datetime import timedelta

from .base import BaseConfig


class TestingConfig(BaseConfig):
    """Testing configuration class."""

    # Basic Flask config
    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret-with-enough-length-for-hs256'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False

    # Attendance sessions
    ROTATION_INTERVAL_SECONDS = 5
    SESSION_WINDOW_SECONDS = 30
    STREAM_HEARTBEAT_SECONDS = 1
    LEDGER_BACKEND = 'sqlalchemy'

    # Logging
    LOG_LEVEL = 'WARNING'
