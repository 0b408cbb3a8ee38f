"""Django settings for the youlists project."""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR.parent / ".env")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-youlists-dev-key")
DEBUG = _env_flag("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [host for host in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if host]

INSTALLED_APPS = [
    "django.contrib.sessions",
    "django.contrib.staticfiles",
    "curator",
    "spotify_auth",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
]

ROOT_URLCONF = "youlists.urls"
ASGI_APPLICATION = "youlists.asgi.application"

# Playlists are never persisted; sessions live in the cache.
DATABASES = {}
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "youlists",
    }
}
SESSION_ENGINE = "django.contrib.sessions.backends.cache"

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "UTC")

# Completion service
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_API_BASE = os.getenv("OPENAI_API_BASE", "")
OPENAI_ORGANIZATION = os.getenv("OPENAI_ORGANIZATION", "")

# Catalog service
SPOTIFY_HTTP_TIMEOUT = int(os.getenv("SPOTIFY_HTTP_TIMEOUT", "15"))

# Playlist curation
CURATOR_TEXT_MODEL = os.getenv("CURATOR_TEXT_MODEL", "gpt-4")
CURATOR_VISION_MODEL = os.getenv("CURATOR_VISION_MODEL", "gpt-4o")
CURATOR_DEFAULT_PLAYLIST_LENGTH = int(os.getenv("CURATOR_DEFAULT_PLAYLIST_LENGTH", "15"))
CURATOR_MIN_PLAYLIST_LENGTH = 1
CURATOR_MAX_PLAYLIST_LENGTH = int(os.getenv("CURATOR_MAX_PLAYLIST_LENGTH", "50"))
CURATOR_ENHANCE_BATCH_SIZE = int(os.getenv("CURATOR_ENHANCE_BATCH_SIZE", "5"))
CURATOR_ENHANCE_BATCH_DELAY_SECONDS = float(os.getenv("CURATOR_ENHANCE_BATCH_DELAY_SECONDS", "0.25"))
CURATOR_SEARCH_LIMIT = int(os.getenv("CURATOR_SEARCH_LIMIT", "20"))
CURATOR_DEFAULT_EXPORT_NAME = "YouLists AI Playlist"
CURATOR_DEFAULT_EXPORT_DESCRIPTION = "Generated by YouLists AI"
CURATOR_PLAYLIST_PUBLIC = _env_flag("CURATOR_PLAYLIST_PUBLIC", False)
CURATOR_DEBUG_VIEW_ENABLED = _env_flag("CURATOR_DEBUG_VIEW_ENABLED", DEBUG)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "curator": {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "spotify_auth": {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
