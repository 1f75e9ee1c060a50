import logging

import requests

from flights.providers.base import FetchError

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
}


def request_html(
    url: str,
    *,
    label: str,
    timeout: float,
    params: dict | None = None,
    headers: dict | None = None,
    proxies: dict | None = None,
    verify: bool = True,
) -> str:
    try:
        response = requests.get(
            url,
            params=params,
            headers=headers,
            proxies=proxies,
            timeout=timeout,
            verify=verify,
            allow_redirects=True,
        )
    except requests.Timeout as exc:
        logger.exception("%s connection timeout.", label)
        raise FetchError(
            f"{label} connection timeout.",
            status_code=504,
            details={"error": str(exc)},
        )
    except requests.RequestException as exc:
        logger.exception("%s request failed.", label)
        raise FetchError(
            f"{label} request failed.",
            status_code=502,
            details={"error": str(exc)},
        )

    if response.status_code >= 400:
        body = response.text or ""
        logger.warning(
            "%s error response",
            label,
            extra={"status_code": response.status_code, "body": body[:500]},
        )
        raise FetchError(
            f"{label} request failed with status {response.status_code}.",
            status_code=response.status_code,
            details={"body": body[:500]},
        )

    html = response.text
    logger.info("%s fetched content", label, extra={"content_length": len(html)})
    return html
