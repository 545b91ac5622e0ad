"""
Application configuration.
This module defines the configuration settings for the AMC Manager API, including database connection, token
signing, password hashing, mail delivery and list defaults. It uses environment variables for sensitive information
and defaults for development. In production, make sure to set the appropriate environment variables and secure the
secret keys.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class Config:
    """Base configuration shared by all environments."""

    ENV = os.environ.get("ENV", "development")

    # IMPORTANT: change these in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-jwt-change-me-please")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_MINUTES = _env_int("JWT_EXPIRES_MINUTES", 60 * 8)

    # bcrypt cost factor (4 is the minimum bcrypt accepts, used by tests)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'amc.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JSON API: bearer tokens are not sent ambiently, forms are validated without CSRF tokens
    WTF_CSRF_ENABLED = False

    # Outgoing mail (password reset). Empty MAIL_SERVER disables delivery.
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD", "")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "no-reply@amc-manager.local")

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
    PASSWORD_RESET_EXPIRES_MINUTES = _env_int("PASSWORD_RESET_EXPIRES_MINUTES", 60)

    # Contracts ending within this many days are flagged as expiring
    CONTRACT_EXPIRY_WARNING_DAYS = _env_int("CONTRACT_EXPIRY_WARNING_DAYS", 30)

    # List pagination
    DEFAULT_PER_PAGE = _env_int("DEFAULT_PER_PAGE", 20)
    MAX_PER_PAGE = _env_int("MAX_PER_PAGE", 100)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # App name (used in exports and mail)
    APP_NAME = "AMC Manager"
