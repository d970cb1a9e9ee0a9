"""
Application configuration — environment-aware settings.

All environment variables are read here. A local .env file is loaded when present.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")


# Game types tracked by the progress ledger. Order is the display order of
# the per-game breakdowns.
GAME_TYPES: tuple[str, ...] = ("ortografia", "reglas", "ahorcado", "titanic")


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    DATABASE = os.environ.get("DATABASE_URL", str(BASE_DIR / "spelling.db"))
    PORT = int(os.environ.get("PORT", "3001"))

    # Bearer tokens (same lifetime the mobile client was built around)
    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", str(30 * 24 * 3600)))

    # Request bodies from the mobile client
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10 MB

    # Classrooms
    DEFAULT_MAX_STUDENTS = int(os.environ.get("DEFAULT_MAX_STUDENTS", "40"))

    # Dashboards
    RECENT_ACTIVITY_DAYS = int(os.environ.get("RECENT_ACTIVITY_DAYS", "7"))

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Rate limiting (defaults to in-memory; set REDIS_URL for Redis-backed)
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "") or "memory://"

    GAME_TYPES = GAME_TYPES


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")

        if cls.DEFAULT_MAX_STUDENTS < 1:
            errors.append("DEFAULT_MAX_STUDENTS must be a positive integer.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    RATELIMIT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
