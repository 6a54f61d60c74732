"""
Configuration settings for different environments
"""
import logging
import os
import secrets

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _require_in_production(var_name, default):
    """Return env var value. Outside development, warn loudly if still using default."""
    value = os.environ.get(var_name, "")
    if value:
        return value
    env = os.environ.get("FLASK_ENV", "development")
    if env not in ("development", "testing") and default:
        logger.warning(
            "%s is using an insecure default. Set it via environment variable!", var_name
        )
    return default


def _database_url():
    url = os.environ.get("DATABASE_URL", "")
    if not url:
        return "sqlite:///fieldops.db"
    # SQLAlchemy 2.x only understands the postgresql:// scheme
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    """Base configuration"""
    SECRET_KEY = _require_in_production("SECRET_KEY", "dev-only-" + secrets.token_hex(16))

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }

    # Auth: agent/admin bearer tokens and collaborator API key
    JWT_SECRET = _require_in_production("JWT_SECRET", "dev-only-" + secrets.token_hex(32))
    COLLABORATOR_API_KEY = _require_in_production(
        "COLLABORATOR_API_KEY", "dev-only-" + secrets.token_hex(16)
    )

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

    # Rate limiting
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL") or "memory://"
    RATELIMIT_DEFAULT = os.environ.get("RATELIMIT_DEFAULT", "100 per minute")

    # Dispatch rules
    CHECKIN_RADIUS_METERS = float(os.environ.get("CHECKIN_RADIUS_METERS", "100"))
    OFFER_WINDOW_MINUTES = int(os.environ.get("OFFER_WINDOW_MINUTES", "10"))
    HIGH_RATING_THRESHOLD = float(os.environ.get("HIGH_RATING_THRESHOLD", "4.5"))
    DEFAULT_SERVICE_AREA_MILES = float(os.environ.get("DEFAULT_SERVICE_AREA_MILES", "25"))
    EARNINGS_HOLD_HOURS = int(os.environ.get("EARNINGS_HOLD_HOURS", "2"))

    # Background offer sweep
    ENABLE_SCHEDULER = os.environ.get("ENABLE_SCHEDULER", "").lower() == "true"
    OFFER_SWEEP_SECONDS = int(os.environ.get("OFFER_SWEEP_SECONDS", "60"))

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": 20,
        "max_overflow": 40,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


class TestingConfig(Config):
    """Testing configuration with isolated database and safe defaults"""
    TESTING = True
    DEBUG = False

    # Use in-memory SQLite for fast tests
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}

    JWT_SECRET = "test-jwt-secret"
    COLLABORATOR_API_KEY = "test-collaborator-key"

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False

    ENABLE_SCHEDULER = False
    LOG_LEVEL = "WARNING"


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
