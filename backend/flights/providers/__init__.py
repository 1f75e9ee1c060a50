from django.conf import settings

from flights.providers.base import FetchError
from flights.providers.brightdata import BrightDataFetcher
from flights.providers.scrapingbee import ScrapingBeeFetcher


def get_page_fetcher():
    """Return the configured page fetcher instance."""

    raw_name = getattr(settings, "SCRAPING_PROVIDER", None) or "scrapingbee"
    provider_name = str(raw_name).strip().lower()

    aliases = {
        "scrapingbee": "scrapingbee",
        "scraping-bee": "scrapingbee",
        "bee": "scrapingbee",
        "brightdata": "brightdata",
        "bright-data": "brightdata",
        "bright_data": "brightdata",
    }

    provider_name = aliases.get(provider_name, provider_name)

    if provider_name == "scrapingbee":
        return ScrapingBeeFetcher()

    if provider_name == "brightdata":
        return BrightDataFetcher()

    raise FetchError(f"Unknown scraping provider: {provider_name}", status_code=500)
