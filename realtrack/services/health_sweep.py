# realtrack/services/health_sweep.py

"""Scheduled batch of health checks over the due set."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from realtrack.config.settings import Settings
from realtrack.models.listing import Listing
from realtrack.services.health_checker import HealthChecker
from realtrack.services.ingestion_writer import CheckOutcome, IngestionWriter
from realtrack.services.priority_scheduler import PriorityScheduler
from realtrack.services.throttle import RequestThrottle, domain_of
from realtrack.storage.listing_repository import ListingRepository

logger = logging.getLogger("realtrack.sweep")


@dataclass
class SweepReport:
    """Counters of one health sweep."""

    selected: int = 0
    checked: int = 0
    still_active: int = 0
    price_changed: int = 0
    removed: int = 0
    errors: int = 0
    domains: int = 0
    duration_ms: int = 0
    error_sample: list[str] = field(
        default_factory=lambda: list[str]()
    )

    def add(self, outcome: CheckOutcome) -> None:
        self.checked += 1
        if outcome is CheckOutcome.ACTIVE:
            self.still_active += 1
        elif outcome is CheckOutcome.PRICE_CHANGED:
            self.price_changed += 1
        elif outcome is CheckOutcome.REMOVED:
            self.removed += 1
        else:
            self.errors += 1


def group_by_domain(listings: list[Listing]) -> dict[str, list[Listing]]:
    """Bucket listings by URL host, preserving their order."""
    groups: dict[str, list[Listing]] = {}
    for listing in listings:
        groups.setdefault(domain_of(listing.url), []).append(listing)
    return groups


class HealthSweep:
    """Refresh priorities, pick the due set and health-check it.

    Domains are checked concurrently; listings of one domain are
    checked one after another through the shared throttle.
    """

    def __init__(
        self,
        repository: ListingRepository,
        checker_factory: Callable[[], HealthChecker] = HealthChecker,
        writer: IngestionWriter | None = None,
        scheduler: PriorityScheduler | None = None,
        throttle: RequestThrottle | None = None,
    ) -> None:
        self._repo = repository
        self._checker_factory = checker_factory
        self._writer = writer or IngestionWriter(repository)
        self._scheduler = scheduler or PriorityScheduler(repository)
        self._throttle = throttle or RequestThrottle()

    def _check_domain(
        self,
        domain: str,
        listings: list[Listing],
        now: datetime | None,
    ) -> list[tuple[CheckOutcome, str | None]]:
        """Check one domain's listings sequentially."""
        checker = self._checker_factory()
        outcomes: list[tuple[CheckOutcome, str | None]] = []
        for listing in listings:
            self._throttle.wait(domain)
            result = checker.check(listing.url, listing.price, listing.source)
            outcome = self._writer.apply_health_check(listing, result, now)
            outcomes.append((outcome, result.error))
        logger.info(
            "Checked %d listings on %s", len(outcomes), domain,
        )
        return outcomes

    async def run(
        self,
        batch_size: int | None = None,
        now: datetime | None = None,
    ) -> SweepReport:
        """Run one sweep and return its counters."""
        start = time.monotonic()
        size = Settings.SWEEP_BATCH_SIZE if batch_size is None else batch_size
        report = SweepReport()

        await asyncio.to_thread(self._scheduler.refresh_scores, now)
        due = await asyncio.to_thread(self._scheduler.select_due, size, now)
        report.selected = len(due)

        groups = group_by_domain(due)
        report.domains = len(groups)
        domains = list(groups)
        tasks = [
            asyncio.to_thread(self._check_domain, d, groups[d], now)
            for d in domains
        ]
        batches = await asyncio.gather(*tasks, return_exceptions=True)

        for domain, batch in zip(domains, batches):
            if isinstance(batch, BaseException):
                logger.error(
                    "Sweep of %s aborted: %s",
                    domain,
                    batch,
                    exc_info=batch,
                )
                report.errors += 1
                report.error_sample.append(f"{domain}: {batch}")
                continue
            for outcome, error in batch:
                report.add(outcome)
                if error is not None:
                    report.error_sample.append(error)

        del report.error_sample[Settings.REPORT_ERROR_SAMPLE:]
        report.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Sweep done: %d selected, %d checked, %d price changes, "
            "%d removed, %d errors in %dms",
            report.selected,
            report.checked,
            report.price_changed,
            report.removed,
            report.errors,
            report.duration_ms,
        )
        return report
