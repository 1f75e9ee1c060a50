import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

INSTALLED_APPS = [
    "rest_framework",
    "flights",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"
APPEND_SLASH = False

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "flights",
    }
}

USE_TZ = True
TIME_ZONE = "UTC"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "UNAUTHENTICATED_USER": None,
}

# --- Scraping ---

SCRAPING_PROVIDER = os.getenv("SCRAPING_PROVIDER", "scrapingbee")

SCRAPINGBEE_API_KEY = os.getenv("SCRAPINGBEE_API_KEY")
SCRAPINGBEE_BASE_URL = os.getenv("SCRAPINGBEE_BASE_URL", "https://app.scrapingbee.com/api/v1/")
SCRAPINGBEE_TIMEOUT = _env_int("SCRAPINGBEE_TIMEOUT", 60)

BRIGHTDATA_PROXY_HOST = os.getenv("BRIGHTDATA_PROXY_HOST", "brd.superproxy.io")
BRIGHTDATA_PROXY_PORT = _env_int("BRIGHTDATA_PROXY_PORT", 33335)
BRIGHTDATA_PROXY_USER = os.getenv("BRIGHTDATA_PROXY_USER")
BRIGHTDATA_PROXY_PASS = os.getenv("BRIGHTDATA_PROXY_PASS")
BRIGHTDATA_TIMEOUT = _env_int("BRIGHTDATA_TIMEOUT", 60)

KAYAK_BASE_URL = os.getenv("KAYAK_BASE_URL", "https://www.kayak.com/flights")
KAYAK_DEFAULT_PARAMS = {"ucs": "n8pldp", "sort": "bestflight_a"}

# --- Flight cache ---

FLIGHTS_CACHE_TTL = _env_int("FLIGHTS_CACHE_TTL", 3600)
FLIGHTS_CACHE_PREFIX = os.getenv("FLIGHTS_CACHE_PREFIX", "flights_")
FLIGHTS_CACHE_ALIAS = os.getenv("FLIGHTS_CACHE_ALIAS", "default")
FLIGHTS_FETCH_TIMEOUT = None

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "flights": {
            "handlers": ["console"],
            "level": os.getenv("FLIGHTS_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
