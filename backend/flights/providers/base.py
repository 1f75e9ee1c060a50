RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


class FetchError(Exception):
    """
    The results page could not be fetched.

    `status_code` is 504 for a timeout, 502 for any other transport failure,
    500 for missing provider credentials and the upstream status when the
    provider answered with an error.
    """

    def __init__(self, message, status_code=502, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        """Whether the same request may succeed later without any config change."""
        return self.status_code in RETRYABLE_STATUS_CODES


class PageFetcher:
    name = "base"

    def fetch(self, url, timeout=None):
        """
        Returns the raw markup of `url`, raising FetchError on any transport failure.
        """
        raise NotImplementedError
