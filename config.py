"""
Settings for the progress dashboard, one class per FLASK_ENV value.

Every environment variable the app reads is listed here. A .env file next
to this module is loaded first, so local overrides need no exporting.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent
INSECURE_SECRET = "dev-key-change-in-production"

load_dotenv(BASE_DIR / ".env")


def _csv_env(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", INSECURE_SECRET)
    DATABASE = os.environ.get("DATABASE_PATH", str(BASE_DIR / "progress.db"))

    # Cookies
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    PERMANENT_SESSION_LIFETIME = 60 * 60 * 24
    REMEMBER_COOKIE_HTTPONLY = True

    # "json" or "text"
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Flask-Limiter backend, e.g. redis://localhost:6379
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    # Size of the at-risk list on the admin dashboard
    AT_RISK_LIMIT = int(os.environ.get("AT_RISK_LIMIT", "5"))

    # Registrations with these emails get the admin role
    ADMIN_EMAILS = _csv_env("ADMIN_EMAILS")


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True

    @classmethod
    def validate(cls):
        """Refuse to start with settings that are unsafe outside development."""
        problems: list[str] = []
        if not cls.SECRET_KEY or cls.SECRET_KEY == INSECURE_SECRET:
            problems.append("SECRET_KEY must be set to a secure value in production.")
        if cls.AT_RISK_LIMIT < 1:
            problems.append("AT_RISK_LIMIT must be at least 1.")
        if problems:
            raise RuntimeError("Invalid production configuration:\n" + "\n".join(f"  - {p}" for p in problems))


class TestingConfig(BaseConfig):
    TESTING = True
    RATELIMIT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
