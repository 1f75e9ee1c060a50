import threading

from django.conf import settings
from django.core.cache import caches

from flights.providers import get_page_fetcher
from flights.services.cache_store import ResilientCacheStore
from flights.services.flight_service import KAYAK_BASE_URL, KAYAK_DEFAULT_PARAMS, FlightService

_service = None
_service_lock = threading.Lock()


def build_flight_service() -> FlightService:
    """Build a FlightService wired from settings."""

    alias = getattr(settings, "FLIGHTS_CACHE_ALIAS", "default")
    store = ResilientCacheStore(
        caches[alias],
        ttl=getattr(settings, "FLIGHTS_CACHE_TTL", 3600),
        prefix=getattr(settings, "FLIGHTS_CACHE_PREFIX", "flights_"),
    )
    return FlightService(
        fetcher=get_page_fetcher(),
        store=store,
        base_url=getattr(settings, "KAYAK_BASE_URL", KAYAK_BASE_URL),
        default_params=getattr(settings, "KAYAK_DEFAULT_PARAMS", KAYAK_DEFAULT_PARAMS),
        fetch_timeout=getattr(settings, "FLIGHTS_FETCH_TIMEOUT", None),
    )


def get_flight_service() -> FlightService:
    """Return the process-wide FlightService, creating it on first use."""
    global _service
    with _service_lock:
        if _service is None:
            _service = build_flight_service()
        return _service


def reset_flight_service() -> None:
    global _service
    with _service_lock:
        _service = None
