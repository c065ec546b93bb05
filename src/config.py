# config.py
# Flask application configuration

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Flask configuration class."""

    # Secret key for session security
    _secret_key = os.environ.get("FLASK_SECRET_KEY")
    if not _secret_key:
        warnings.warn(
            "FLASK_SECRET_KEY not set. Using default key which is insecure for production!",
            UserWarning,
            stacklevel=2
        )
        _secret_key = "change-me-in-production"
    SECRET_KEY = _secret_key

    # Root directory for the database file and logs
    ALTERNATIVE_PATH = os.environ.get("HOME", ".") + "/shelfwiki-data"

    WIKI_DATA_ROOT = Path(os.environ.get("WIKI_DATA_ROOT") or ALTERNATIVE_PATH).resolve()

    DATABASE_URL = os.environ.get("DATABASE_URL") or f"sqlite:///{WIKI_DATA_ROOT / 'shelfwiki.db'}"

    # Maximum content length (50MB)
    MAX_CONTENT_LENGTH = _env_int("MAX_CONTENT_LENGTH", 50 * 1024 * 1024)

    # Maximum length of book, chapter, page and user names
    MAX_NAME_LENGTH = 255

    APP_NAME = os.environ.get("APP_NAME", "ShelfWiki")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "0") == "1"

    # WTF CSRF protection
    WTF_CSRF_ENABLED = True

    # Session cookies
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)
    PERMANENT_SESSION_LIFETIME = 30 * 24 * 60 * 60

    RATELIMIT_ENABLED = True

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Blocks user updates and deletions on public demo instances
    DEMO_MODE = _env_bool("APP_DEMO", False)

    # Disables calls to third-party services such as gravatar
    DISABLE_SERVICES = _env_bool("DISABLE_EXTERNAL_SERVICES", False)

    # Outgoing mail. With no MAIL_HOST, mail is written to the log instead.
    MAIL_HOST = os.environ.get("MAIL_HOST", "")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD", "")
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_FROM = os.environ.get("MAIL_FROM", "shelfwiki@example.com")

    EMAIL_CONFIRMATION_EXPIRY_HOURS = _env_int("EMAIL_CONFIRMATION_EXPIRY_HOURS", 24)

    SEARCH_PAGE_SIZE = 20

    # Seed account created by `flask init-db`
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@admin.com")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "password")


class DevelopmentConfig(Config):
    """Configuration for local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False


class TestingConfig(Config):
    """Configuration for the test suite."""

    TESTING = True
    DEBUG = True
    WTF_CSRF_ENABLED = False
    SESSION_COOKIE_SECURE = False
    RATELIMIT_ENABLED = False
    BCRYPT_ROUNDS = 4
    DISABLE_SERVICES = True
    MAIL_HOST = ""
    WIKI_DATA_ROOT = Path(os.environ.get("TMPDIR", "/tmp")).resolve() / "shelfwiki-test"
    DATABASE_URL = "sqlite://"


class ProductionConfig(Config):
    """Configuration for production deployments."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
