import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from flights.offers import STRATEGY_SYNTHETIC, FlightOffer, RouteQuery
from flights.providers.base import FetchError
from flights.services.cache_store import CacheEntry, ResilientCacheStore
from flights.services.extract import extract_offers
from flights.services.single_flight import SingleFlight

logger = logging.getLogger(__name__)

KAYAK_BASE_URL = "https://www.kayak.com/flights"
KAYAK_DEFAULT_PARAMS = {"ucs": "n8pldp", "sort": "bestflight_a"}

SOURCE_LIVE = "live"
SOURCE_CACHE = "cache"
SOURCE_STALE = "stale"


@dataclass(frozen=True)
class FlightSearchResult:
    offers: tuple[FlightOffer, ...]
    source: str
    strategy: str
    written_at: float

    @property
    def synthetic(self) -> bool:
        return self.strategy == STRATEGY_SYNTHETIC

    @classmethod
    def from_entry(cls, entry: CacheEntry, source: str) -> "FlightSearchResult":
        return cls(offers=entry.offers, source=source, strategy=entry.strategy, written_at=entry.written_at)


class FlightService:
    """Cached, coalesced, stale-tolerant flight search for one route at a time."""

    def __init__(
        self,
        fetcher,
        store: ResilientCacheStore,
        extractor=extract_offers,
        base_url: str = KAYAK_BASE_URL,
        default_params: dict | None = None,
        fetch_timeout: float | None = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.extractor = extractor
        self.base_url = base_url.rstrip("/")
        self.default_params = dict(KAYAK_DEFAULT_PARAMS if default_params is None else default_params)
        self.fetch_timeout = fetch_timeout
        self._single_flight = SingleFlight()

    def build_search_url(self, query: RouteQuery) -> str:
        url = (
            f"{self.base_url}/{query.origin}-{query.destination}/"
            f"{query.departure_date.isoformat()}/{query.return_date.isoformat()}"
        )
        if self.default_params:
            url = f"{url}?{urlencode(self.default_params)}"
        return url

    def get_flights(self, query: RouteQuery, timeout: float | None = None) -> FlightSearchResult:
        """
        Fresh cache, else one live fetch per key, else the stale shadow.

        Raises FetchError only when the fetch fails and no stale entry exists.
        """
        key = self.store.make_key(query)

        cached = self.store.get_fresh(key)
        if cached is not None:
            logger.info("Returning cached flights", extra={"cache_key": key})
            return FlightSearchResult.from_entry(cached, SOURCE_CACHE)

        logger.info("Cache miss, fetching flights", extra={"cache_key": key})
        return self._single_flight.do(key, lambda: self._refresh(key, query, timeout))

    def _refresh(self, key: str, query: RouteQuery, timeout: float | None) -> FlightSearchResult:
        # A call that finished between our cache check and taking the flight already wrote it.
        cached = self.store.get_fresh(key)
        if cached is not None:
            return FlightSearchResult.from_entry(cached, SOURCE_CACHE)

        url = self.build_search_url(query)
        try:
            markup = self.fetcher.fetch(url, timeout=timeout if timeout is not None else self.fetch_timeout)
            extraction = self.extractor(
                markup,
                query.origin,
                query.destination,
                departure_date=query.departure_date,
            )
        except Exception as exc:
            # Anything that is not already a FetchError is reported as a bad gateway.
            error = exc if isinstance(exc, FetchError) else FetchError(
                str(exc) or exc.__class__.__name__,
                status_code=502,
                details={"error": repr(exc)},
            )
            log_extra = {
                "cache_key": key,
                "error": str(error),
                "status_code": error.status_code,
                "retryable": error.retryable,
            }
            stale = self.store.get_stale(key)
            if stale is not None:
                logger.warning("Fetch failed, returning stale cache", extra=log_extra, exc_info=error is not exc)
                return FlightSearchResult.from_entry(stale, SOURCE_STALE)
            logger.error("Fetch failed and no stale cache is available", extra=log_extra, exc_info=error is not exc)
            if error is exc:
                raise
            raise error from exc

        if extraction.synthetic:
            logger.warning("No offers recovered from page, serving synthetic offers", extra={"cache_key": key})

        # Even an empty or synthetic result replaces the previous stale baseline.
        entry = self.store.make_entry(key, extraction.offers, extraction.strategy)
        self.store.put(key, entry)
        return FlightSearchResult.from_entry(entry, SOURCE_LIVE)

    def get_last_write_timestamp(self) -> int | None:
        return self.store.get_last_write_timestamp()

    def get_configured_ttl(self) -> int:
        return self.store.ttl
