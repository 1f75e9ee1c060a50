import hashlib
import logging
from urllib.parse import quote

from django.conf import settings

from flights.providers.base import FetchError, PageFetcher
from flights.providers.http import BROWSER_HEADERS, request_html

logger = logging.getLogger(__name__)


def _proxy_url(user: str, password: str, host: str, port: int, session_id: str) -> str:
    """Residential proxy URL pinned to one session and to US exit nodes.

    Format: username-session-{id}-country-us:password@host:port
    """
    proxy_user = f"{user}-session-{session_id}-country-us"
    return f"http://{quote(proxy_user, safe='')}:{quote(password, safe='')}@{host}:{int(port)}"


class BrightDataFetcher(PageFetcher):
    name = "brightdata"

    def fetch(self, url, timeout=None):
        user = getattr(settings, "BRIGHTDATA_PROXY_USER", None)
        password = getattr(settings, "BRIGHTDATA_PROXY_PASS", None)
        if not user or not password:
            raise FetchError("Bright Data proxy credentials are not configured.", status_code=500)

        host = getattr(settings, "BRIGHTDATA_PROXY_HOST", "brd.superproxy.io")
        port = getattr(settings, "BRIGHTDATA_PROXY_PORT", 33335)
        if timeout is None:
            timeout = getattr(settings, "BRIGHTDATA_TIMEOUT", 60)

        # Same URL -> same session, keeps cookies and avoids repeated CAPTCHAs.
        session_id = hashlib.md5(url.encode("utf-8")).hexdigest()
        proxy = _proxy_url(user, password, host, port, session_id)

        logger.info("BrightData: fetching URL", extra={"url": url, "session_id": session_id})
        return request_html(
            url,
            label="BrightData",
            timeout=timeout,
            headers=BROWSER_HEADERS,
            proxies={"http": proxy, "https": proxy},
            verify=False,
        )
