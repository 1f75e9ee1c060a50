import logging

from django.conf import settings

from flights.providers.base import FetchError, PageFetcher
from flights.providers.http import request_html

logger = logging.getLogger(__name__)

SCRAPINGBEE_BASE_URL = "https://app.scrapingbee.com/api/v1/"


class ScrapingBeeFetcher(PageFetcher):
    """Fetches JS-rendered pages through the ScrapingBee HTML API."""

    name = "scrapingbee"

    def fetch(self, url, timeout=None):
        api_key = getattr(settings, "SCRAPINGBEE_API_KEY", None)
        if not api_key:
            raise FetchError("ScrapingBee API key is not configured.", status_code=500)

        base_url = getattr(settings, "SCRAPINGBEE_BASE_URL", None) or SCRAPINGBEE_BASE_URL
        if timeout is None:
            timeout = getattr(settings, "SCRAPINGBEE_TIMEOUT", 60)

        logger.info("ScrapingBee: fetching URL", extra={"url": url})
        return request_html(
            base_url,
            label="ScrapingBee",
            timeout=timeout,
            params={
                "api_key": api_key,
                "url": url,
                "render_js": "true",
                "premium_proxy": "true",
                "country_code": "us",
            },
        )
