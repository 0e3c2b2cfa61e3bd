# realtrack/services/throttle.py

"""Per-host randomized request spacing shared by crawls and sweeps."""

import logging
import random
import threading
import time
from urllib.parse import urlparse

from realtrack.config.settings import Settings

logger = logging.getLogger("realtrack.throttle")


def domain_of(url: str) -> str:
    """Lower-cased host name of *url*."""
    return urlparse(url).netloc.lower()


class RequestThrottle:
    """Enforce a randomized minimum delay between requests to one key.

    Keys are usually host names.  The first request to a key goes out
    immediately; later ones wait until ``min_delay + U(0, jitter)``
    seconds have passed since the previous request.  Keys idle for
    longer than ``ttl`` seconds are forgotten.

    Safe to share between threads: the wait slot is reserved under
    the lock and the sleep happens outside it.
    """

    def __init__(
        self,
        min_delay: float | None = None,
        jitter: float | None = None,
        ttl: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._min_delay = (
            Settings.REQUEST_DELAY if min_delay is None else min_delay
        )
        self._jitter = Settings.REQUEST_JITTER if jitter is None else jitter
        self._ttl = Settings.THROTTLE_TTL if ttl is None else ttl
        self._rng = rng or random.Random()
        self._last_request: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, key: str) -> float:
        """Block until a request to *key* may be sent.

        Returns the number of seconds slept.
        """
        with self._lock:
            now = time.monotonic()
            self._evict_expired(now)
            last = self._last_request.get(key)
            delay = 0.0
            if last is not None:
                spacing = self._min_delay + self._rng.uniform(
                    0, self._jitter
                )
                delay = max(0.0, spacing - (now - last))
            self._last_request[key] = now + delay

        if delay > 0:
            logger.debug("Throttling %s for %.2fs", key, delay)
            time.sleep(delay)
        return delay

    def reset(self, key: str | None = None) -> int:
        """Forget one key, or every key when *key* is ``None``.

        Returns the number of keys removed.
        """
        with self._lock:
            if key is None:
                count = len(self._last_request)
                self._last_request.clear()
                return count
            return 1 if self._last_request.pop(key, None) is not None else 0

    def tracked_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._last_request)

    def _evict_expired(self, now: float) -> None:
        """Remove keys whose last request is older than the TTL."""
        before = len(self._last_request)
        self._last_request = {
            k: ts
            for k, ts in self._last_request.items()
            if now - ts < self._ttl
        }
        evicted = before - len(self._last_request)
        if evicted:
            logger.debug("Evicted %d idle throttle keys", evicted)
