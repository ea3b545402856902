"""Base configuration shared by every environment."""
import os
from datetime import timedelta


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'
    # Only the credential stream also reads ?jwt=, since EventSource cannot send headers
    JWT_TOKEN_LOCATION = ['headers']

    # CORS
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:5173').split(',')

    # Rate Limiting
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI') or 'memory://'
    VERIFY_RATE_LIMIT = os.getenv('VERIFY_RATE_LIMIT', '60 per minute')

    # Redis
    REDIS_URL = os.getenv('REDIS_URL') or 'redis://localhost:6379/0'

    # Attendance sessions
    ROTATION_INTERVAL_SECONDS = float(os.getenv('ROTATION_INTERVAL_SECONDS', 5))
    SESSION_WINDOW_SECONDS = float(os.getenv('SESSION_WINDOW_SECONDS', 30))
    SUBSCRIBER_QUEUE_SIZE = 8
    STREAM_HEARTBEAT_SECONDS = 15
    REQUIRE_KNOWN_SUBJECT = True

    # Attendance ledger: sqlalchemy, redis or memory
    LEDGER_BACKEND = os.getenv('LEDGER_BACKEND', 'sqlalchemy')
    LEDGER_RETENTION_SECONDS = 7 * 24 * 3600

    # QR rendering
    QR_IMAGE_ENABLED = True
    QR_BOX_SIZE = 10

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
