"""
Configuration for the portfolio application.
Everything is read once from the environment at process start; the data service
is only wired up when both its endpoint and access key are present.
"""
import os
from pathlib import Path

from sqlalchemy.engine import make_url

# Base directory
BASE_DIR = Path(__file__).parent


def _env(name, default=None):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_float(name, default):
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def data_service_uri(url, key):
    """
    Build the SQLAlchemy URI for the hosted data service.

    Returns None when either the endpoint or the access key is missing, which
    leaves the service handle unset. For network databases the access key is
    used as the connection password; SQLite files ignore it.
    """
    if not url or not key:
        return None

    # Render and some platforms use 'postgres://' but SQLAlchemy needs 'postgresql://'
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)

    parsed = make_url(url)
    if parsed.get_backend_name() == 'sqlite' or parsed.password:
        return url
    return parsed.set(password=key).render_as_string(hide_password=False)


class Config:
    """Base configuration."""

    # Flask
    SECRET_KEY = os.environ.get('FLASK_SECRET_KEY') or 'dev-secret-key-change-in-production'
    LOG_LEVEL = _env('LOG_LEVEL', 'INFO')

    # Hosted data service
    DATA_SERVICE_URL = _env('PORTFOLIO_DATA_URL') or _env('DATABASE_URL')
    DATA_SERVICE_KEY = _env('PORTFOLIO_DATA_KEY')
    APP_ID = _env('PORTFOLIO_APP_ID', 'default-app-id')
    OWNER_ID = _env('PORTFOLIO_OWNER_ID')

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,  # Verify connections before using
        'pool_recycle': 300,    # Recycle connections after 5 minutes
    }

    # Identity
    IDENTITY_COOKIE = 'portfolio_user_id'
    IDENTITY_MAX_AGE = 10 * 365 * 24 * 60 * 60

    # Projects
    CREATE_DEBOUNCE_SECONDS = 0.3
    SEED_ENABLED = True
    SEED_DELAY_SECONDS = 1.5
    MAX_LIVE_REPOSITORIES = 128

    # Description drafting (Gemini)
    GEMINI_API_KEY = _env('GEMINI_API_KEY')
    GEMINI_MODEL = _env('GEMINI_MODEL', 'gemini-2.5-flash-preview-09-2025')
    GEMINI_API_BASE = _env('GEMINI_API_BASE', 'https://generativelanguage.googleapis.com/v1beta')
    DRAFT_MAX_ATTEMPTS = 3
    DRAFT_INITIAL_DELAY = _env_float('DRAFT_INITIAL_DELAY', 1.0)
    DRAFT_TIMEOUT = 30

    # Default profile shown until the owner edits it for the session
    PROFILE_NAME = _env('PROFILE_NAME', 'Portfolio Owner')
    PROFILE_TAGLINE = 'Full-Stack Developer specializing in scalable, dynamic digital experiences.'
    PROFILE_ABOUT = (
        "Hi, I'm a Full-Stack Developer passionate about crafting clean, secure, and dynamic "
        "digital experiences. I work across Python and JavaScript stacks, from Flask and "
        "SQL backends to responsive front-ends, and enjoy building tools that solve "
        "real-world problems."
    )
    PROFILE_EMAIL = _env('PROFILE_EMAIL', 'hello@example.com')
    PROFILE_GITHUB = _env('PROFILE_GITHUB', 'https://github.com/')
    PROFILE_LINKEDIN = _env('PROFILE_LINKEDIN', 'https://linkedin.com/')
    PROFILE_AVATAR_URL = 'https://placehold.co/128x128/06b6d4/ffffff?text=REPLACE+WITH+YOUR+PHOTO+URL'


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    AUTO_CREATE_TABLES = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


class TestingConfig(Config):
    """Test configuration: no seeding, no drafting credentials, no network."""
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    DATA_SERVICE_URL = None
    DATA_SERVICE_KEY = None
    OWNER_ID = None
    GEMINI_API_KEY = None
    SEED_ENABLED = False
    DRAFT_INITIAL_DELAY = 0.0


# Config mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
