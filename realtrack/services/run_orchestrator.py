# realtrack/services/run_orchestrator.py

"""Drives crawl runs across a source's paginated categories."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from realtrack.config.settings import Settings
from realtrack.filters.listing_validator import ListingValidator
from realtrack.filters.location_resolver import LocationResolver
from realtrack.models.fetch_result import FetchOk, describe_failure
from realtrack.models.listing import ScrapedListing
from realtrack.models.run_report import RunReport, RunStatus
from realtrack.scrapers.base_scraper import BaseScraper
from realtrack.scrapers.fetcher import Fetcher
from realtrack.scrapers.registry import build_scraper
from realtrack.services.ingestion_writer import IngestionWriter
from realtrack.services.throttle import RequestThrottle
from realtrack.storage.listing_repository import ListingRepository

logger = logging.getLogger("realtrack.orchestrator")


@dataclass
class CrawlResult:
    """Raw output of walking one source's categories."""

    listings: list[ScrapedListing] = field(
        default_factory=lambda: list[ScrapedListing]()
    )
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )
    pages_fetched: int = 0
    pages_failed: int = 0


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RunOrchestrator:
    """Crawl sources, store what was found and record a RunReport.

    Each run walks a source's categories page by page through the
    shared throttle.  Several sources can run at once via
    :meth:`run_sources`.
    """

    def __init__(
        self,
        repository: ListingRepository | None = None,
        fetcher_factory: Callable[[], Fetcher] = Fetcher,
        throttle: RequestThrottle | None = None,
        writer: IngestionWriter | None = None,
        resolver: LocationResolver | None = None,
    ) -> None:
        self.settings = Settings()
        self._repo = repository or ListingRepository()
        self._fetcher_factory = fetcher_factory
        self._throttle = throttle or RequestThrottle()
        self._writer = writer or IngestionWriter(self._repo)
        self._resolver = resolver

    # ── Private helpers ──────────────────────────────────

    def _crawl(
        self,
        scraper: BaseScraper,
        max_pages: int,
    ) -> CrawlResult:
        """Fetch and extract every category of *scraper*.

        A category ends early when a page yields fewer than
        ``EARLY_STOP_RATIO`` of the expected listings.
        """
        fetcher = self._fetcher_factory()
        crawl = CrawlResult()
        seen_urls: set[str] = set()
        min_listings = (
            self.settings.EARLY_STOP_RATIO * scraper.EXPECTED_PER_PAGE
        )

        for category in scraper.CATEGORIES:
            for page in range(1, max_pages + 1):
                url = scraper.build_page_url(category, page)
                self._throttle.wait(scraper.domain)
                result = fetcher.fetch(url, referer=scraper.BASE_URL)
                if not isinstance(result, FetchOk):
                    crawl.pages_failed += 1
                    crawl.errors.append(describe_failure(result))
                    continue

                crawl.pages_fetched += 1
                extraction = scraper.extract_listings(
                    result.body, category
                )
                crawl.errors.extend(
                    f"{url}: {err}" for err in extraction.errors
                )
                for listing in extraction.listings:
                    if listing.url not in seen_urls:
                        seen_urls.add(listing.url)
                        crawl.listings.append(listing)

                if len(extraction.listings) < min_listings:
                    logger.debug(
                        "[%s] %s: page %d yielded %d listings, "
                        "stopping category",
                        scraper.source_name,
                        category.name,
                        page,
                        len(extraction.listings),
                    )
                    break

        return crawl

    def _execute(
        self,
        source_id: str,
        max_pages: int,
        started_at: datetime,
        start: float,
    ) -> RunReport:
        scraper = build_scraper(source_id, self._resolver)
        crawl = self._crawl(scraper, max_pages)

        valid, invalid = ListingValidator.validate(crawl.listings)
        stats = self._writer.ingest(valid)
        errors = crawl.errors + stats.errors

        if crawl.pages_fetched == 0:
            status = RunStatus.ERROR
        elif errors:
            status = RunStatus.PARTIAL
        else:
            status = RunStatus.SUCCESS

        return RunReport(
            source=source_id,
            status=status,
            records_count=stats.stored,
            duration_ms=_elapsed_ms(start),
            started_at=started_at,
            found=len(crawl.listings),
            new=stats.new,
            updated=stats.updated,
            invalid=invalid,
            errors_count=len(errors),
            error_sample=tuple(errors[: self.settings.REPORT_ERROR_SAMPLE]),
        )

    # ── Public API ───────────────────────────────────────

    def run(
        self,
        source_id: str,
        max_pages: int | None = None,
    ) -> RunReport:
        """Crawl one source and persist its RunReport.

        Unexpected failures are logged and reported as an ``error``
        run instead of propagating.
        """
        pages = self.settings.MAX_PAGES if max_pages is None else max_pages
        started_at = datetime.now()
        start = time.monotonic()
        logger.info("Starting %s crawl (%d pages)", source_id, pages)

        try:
            report = self._execute(source_id, pages, started_at, start)
        except Exception as exc:
            logger.error(
                "Crawl of %s failed: %s", source_id, exc, exc_info=True,
            )
            report = RunReport(
                source=source_id,
                status=RunStatus.ERROR,
                records_count=0,
                duration_ms=_elapsed_ms(start),
                started_at=started_at,
                errors_count=1,
                error_sample=(f"{type(exc).__name__}: {exc}",),
            )

        logger.info(
            "Finished %s crawl: %s, %d found, %d new, %d updated, "
            "%d invalid, %d errors in %dms",
            source_id,
            report.status.value,
            report.found,
            report.new,
            report.updated,
            report.invalid,
            report.errors_count,
            report.duration_ms,
        )
        return self._repo.save_run_report(report)

    async def run_sources(
        self,
        source_ids: list[str],
        max_pages: int | None = None,
    ) -> list[RunReport]:
        """Crawl several sources concurrently, one thread per source."""
        tasks = [
            asyncio.to_thread(self.run, source_id, max_pages)
            for source_id in source_ids
        ]
        reports: list[RunReport] = list(await asyncio.gather(*tasks))
        return reports
