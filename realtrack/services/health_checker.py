# realtrack/services/health_checker.py

"""Re-fetch a known listing and classify whether it is still on offer."""

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from realtrack.config.settings import Settings
from realtrack.filters.location_resolver import LocationResolver
from realtrack.models.fetch_result import (
    FetchHttpError,
    FetchOk,
    describe_failure,
)
from realtrack.scrapers.base_scraper import BaseScraper
from realtrack.scrapers.fetcher import Fetcher
from realtrack.scrapers.registry import build_scraper

logger = logging.getLogger("realtrack.health")

REASON_SOLD = "sold"
REASON_UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Outcome of one listing health check.

    ``error`` is set for transient failures (timeouts, network errors,
    non-404 HTTP errors); such results never mean the listing is gone.
    """

    url: str
    is_active: bool
    removal_reason: str | None = None
    current_price: int | None = None
    price_changed: bool = False
    error: str | None = None
    http_status: int | None = None


def find_removal_phrase(html: str) -> str | None:
    """Return the first configured sold/removed phrase found in *html*.

    A best-effort lexical check over the visible page text.
    """
    text = BeautifulSoup(html, "lxml").get_text(" ", strip=True).lower()
    for phrase in Settings.REMOVAL_PHRASES:
        pattern = r"(?<!\w)" + re.escape(phrase.lower()) + r"(?!\w)"
        if re.search(pattern, text):
            return phrase
    return None


class HealthChecker:
    """Classify listings as active, price-changed or removed.

    Stateless apart from its fetcher and the per-source scrapers used
    to read the detail price.  Request spacing is the caller's job.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        scrapers: dict[str, BaseScraper] | None = None,
        resolver: LocationResolver | None = None,
    ) -> None:
        self._fetcher = fetcher or Fetcher()
        self._scrapers: dict[str, BaseScraper] = dict(scrapers or {})
        self._resolver = resolver

    def _scraper_for(self, source: str) -> BaseScraper | None:
        if source not in self._scrapers:
            try:
                self._scrapers[source] = build_scraper(
                    source, self._resolver
                )
            except KeyError:
                logger.warning(
                    "No scraper registered for source %s", source
                )
                return None
        return self._scrapers[source]

    def check(
        self,
        url: str,
        expected_price: int,
        source: str,
    ) -> HealthCheckResult:
        """Fetch *url* once and classify the listing behind it."""
        result = self._fetcher.fetch(url)

        if isinstance(result, FetchHttpError) and result.is_not_found:
            logger.info("Listing gone (HTTP 404): %s", url)
            return HealthCheckResult(
                url=url,
                is_active=False,
                removal_reason=REASON_UNKNOWN,
                http_status=result.status,
            )

        if not isinstance(result, FetchOk):
            return HealthCheckResult(
                url=url,
                is_active=True,
                error=describe_failure(result),
                http_status=(
                    result.status
                    if isinstance(result, FetchHttpError)
                    else None
                ),
            )

        phrase = find_removal_phrase(result.body)
        if phrase is not None:
            logger.info(
                "Listing marked as sold (%r found): %s", phrase, url,
            )
            return HealthCheckResult(
                url=url,
                is_active=False,
                removal_reason=REASON_SOLD,
                http_status=result.status,
            )

        scraper = self._scraper_for(source)
        current_price = (
            scraper.extract_detail_price(result.body)
            if scraper is not None
            else None
        )
        price_changed = (
            current_price is not None and current_price != expected_price
        )
        if price_changed:
            logger.info(
                "Price changed %d -> %s for %s",
                expected_price,
                current_price,
                url,
            )
        return HealthCheckResult(
            url=url,
            is_active=True,
            current_price=current_price,
            price_changed=price_changed,
            http_status=result.status,
        )
