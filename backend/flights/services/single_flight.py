import logging
import threading
from concurrent.futures import Future

logger = logging.getLogger(__name__)


class SingleFlight:
    """Coalesces concurrent calls that share a key into one execution.

    The first caller for a key runs `fn`; callers arriving while it runs block
    on the same Future and get its value or its exception. The key is released
    as soon as the call completes, so a later call runs `fn` again.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: dict[str, Future] = {}

    def do(self, key: str, fn):
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if not leader:
            logger.info("Waiting for in-flight call", extra={"key": key})
            return future.result()

        try:
            result = fn()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                if self._calls.get(key) is future:
                    del self._calls[key]

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls
