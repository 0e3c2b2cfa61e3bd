# realtrack/scrapers/fetcher.py

"""Single-attempt HTTP fetcher with rotating browser identities."""

import logging
import random

from curl_cffi import CurlECode
from curl_cffi import requests as curl_requests

from realtrack.config.settings import Settings
from realtrack.models.fetch_result import (
    FetchHttpError,
    FetchNetworkError,
    FetchOk,
    FetchResult,
    FetchTimeout,
)

logger = logging.getLogger("realtrack.fetcher")


def _is_timeout(exc: BaseException) -> bool:
    """Return True if *exc* represents a request timeout."""
    if isinstance(exc, TimeoutError):
        return True
    code = getattr(exc, "code", None)
    if code == CurlECode.OPERATION_TIMEDOUT:
        return True
    return "timed out" in str(exc).lower()


class Fetcher:
    """Fetch one URL per call and report the outcome as a FetchResult.

    The fetcher never retries and never raises for network problems:
    timeouts, transport failures and non-2xx answers all come back as
    tagged results so the caller decides what a failure means.  Each
    call picks a random identity (User-Agent and related headers) from
    ``Settings.IDENTITY_POOL``.
    """

    def __init__(
        self,
        timeout: int | None = None,
        identity_pool: list[dict[str, str]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._timeout: int = (
            timeout or self.settings.REQUEST_TIMEOUT
        )
        self._identities: list[dict[str, str]] = (
            identity_pool or self.settings.IDENTITY_POOL
        )
        self._rng = rng or random.Random()

    def build_headers(
        self, referer: str | None = None,
    ) -> dict[str, str]:
        """Merge the default headers with one random identity."""
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            **self._rng.choice(self._identities),
        }
        if referer:
            headers["Referer"] = referer
        return headers

    def fetch(
        self,
        url: str,
        timeout: int | None = None,
        referer: str | None = None,
    ) -> FetchResult:
        """GET *url* once and classify the outcome."""
        headers = self.build_headers(referer)
        effective_timeout = timeout or self._timeout
        try:
            resp = self.session.get(
                url,
                headers=headers,
                timeout=effective_timeout,
            )
        except Exception as exc:
            if _is_timeout(exc):
                logger.warning(
                    "Timeout after %ss fetching %s",
                    effective_timeout,
                    url,
                )
                return FetchTimeout(url=url, message=str(exc)[:200])
            logger.warning(
                "Network error fetching %s: %s",
                url,
                exc,
                exc_info=True,
            )
            return FetchNetworkError(url=url, message=str(exc)[:200])

        status = int(resp.status_code)
        if 200 <= status < 300:
            body = resp.text
            logger.debug(
                "Fetched %s (HTTP %d, %d bytes)",
                url,
                status,
                len(body),
            )
            return FetchOk(url=url, body=body, status=status)

        logger.warning("HTTP %d for %s", status, url)
        return FetchHttpError(url=url, status=status)
