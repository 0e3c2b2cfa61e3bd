# realtrack/services/ingestion_writer.py

"""Persist scraped listings and health-check outcomes."""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from realtrack.matching.identity_resolver import IdentityResolver
from realtrack.models.listing import Listing, ListingStatus, ScrapedListing
from realtrack.services.health_checker import (
    REASON_SOLD,
    HealthCheckResult,
)
from realtrack.storage.listing_repository import ListingRepository

logger = logging.getLogger("realtrack.writer")

# Fields whose change alters a listing's fingerprint
_IDENTITY_FIELDS = ("city", "district", "street", "area_m2", "rooms")

_TRACKED_FIELDS = _IDENTITY_FIELDS + (
    "title", "description", "price", "kind", "photo_count",
)


class CheckOutcome(str, Enum):
    """What a health check changed on a stored listing."""

    ACTIVE = "active"
    PRICE_CHANGED = "price_changed"
    REMOVED = "removed"
    ERROR = "error"


@dataclass
class IngestionStats:
    """Counters of one ingestion batch."""

    found: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    relisted: int = 0
    price_changes: int = 0
    matches_created: int = 0
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )

    @property
    def stored(self) -> int:
        return self.new + self.updated + self.unchanged


def _changed_fields(
    before: Listing, after: Listing, names: tuple[str, ...],
) -> list[str]:
    return [
        name for name in names
        if getattr(before, name) != getattr(after, name)
    ]


class IngestionWriter:
    """Upsert listings, append price history and link duplicates.

    Re-ingesting an unchanged listing is a no-op apart from its
    ``last_seen_at`` timestamp.
    """

    def __init__(
        self,
        repository: ListingRepository,
        resolver: IdentityResolver | None = None,
    ) -> None:
        self._repo = repository
        self._resolver = resolver or IdentityResolver(repository)

    # ── Crawl ingestion ──────────────────────────────────

    def ingest(
        self,
        listings: list[ScrapedListing],
        seen_at: datetime | None = None,
    ) -> IngestionStats:
        """Store a batch of validated listings.

        A storage failure for one listing is logged and counted; the
        rest of the batch is still written.
        """
        ts = seen_at or datetime.now()
        stats = IngestionStats()
        for scraped in listings:
            stats.found += 1
            try:
                self._ingest_one(scraped, ts, stats)
            except sqlite3.Error as exc:
                logger.error(
                    "Failed to store %s listing %s: %s",
                    scraped.source,
                    scraped.url,
                    exc,
                    exc_info=True,
                )
                stats.errors.append(f"store {scraped.url}: {exc}")

        logger.info(
            "Ingested %d listings: %d new, %d updated, %d unchanged, "
            "%d relisted, %d price changes, %d matches",
            stats.found,
            stats.new,
            stats.updated,
            stats.unchanged,
            stats.relisted,
            stats.price_changes,
            stats.matches_created,
        )
        return stats

    def _ingest_one(
        self,
        scraped: ScrapedListing,
        ts: datetime,
        stats: IngestionStats,
    ) -> None:
        outcome = self._repo.upsert_listing(scraped, ts)
        listing = outcome.listing
        previous = outcome.previous

        if previous is None:
            stats.new += 1
            self._repo.add_price_entry(
                listing.id, listing.price, listing.price_per_m2, ts,
            )
            resolve = True
        else:
            relisted = not previous.is_active
            if relisted:
                stats.relisted += 1
                logger.info(
                    "Listing %d re-listed on %s", listing.id, listing.source,
                )
            if previous.price != listing.price:
                stats.price_changes += 1
                self._repo.add_price_entry(
                    listing.id, listing.price, listing.price_per_m2, ts,
                )
            changed = _changed_fields(previous, listing, _TRACKED_FIELDS)
            if changed or relisted:
                stats.updated += 1
            else:
                stats.unchanged += 1
            resolve = bool(
                _changed_fields(previous, listing, _IDENTITY_FIELDS)
            ) or self._repo.get_fingerprint(listing.id) is None

        if resolve:
            resolution = self._resolver.resolve(listing, ts)
            stats.matches_created += len(resolution.created)

    # ── Health checks ────────────────────────────────────

    def apply_health_check(
        self,
        listing: Listing,
        result: HealthCheckResult,
        checked_at: datetime | None = None,
    ) -> CheckOutcome:
        """Write one health-check outcome back to *listing*.

        Only a definitive removal signal changes the status; transient
        errors bump ``consecutive_failures`` and leave it active.
        """
        ts = checked_at or datetime.now()

        if result.error is not None:
            self._repo.record_check(
                listing.id,
                ts,
                listing.status,
                listing.removal_reason,
                listing.consecutive_failures + 1,
            )
            logger.warning(
                "Health check error for listing %d (%d in a row): %s",
                listing.id,
                listing.consecutive_failures + 1,
                result.error,
            )
            return CheckOutcome.ERROR

        if not result.is_active:
            status = (
                ListingStatus.SOLD
                if result.removal_reason == REASON_SOLD
                else ListingStatus.REMOVED
            )
            self._repo.record_check(
                listing.id, ts, status, result.removal_reason, 0,
            )
            logger.info(
                "Listing %d is now %s (%s)",
                listing.id,
                status.value,
                result.removal_reason,
            )
            return CheckOutcome.REMOVED

        outcome = CheckOutcome.ACTIVE
        new_price = result.current_price
        if new_price is not None and new_price != listing.price:
            price_per_m2 = (
                round(new_price / listing.area_m2)
                if listing.area_m2 > 0
                else None
            )
            self._repo.update_price(listing.id, new_price, price_per_m2)
            self._repo.add_price_entry(
                listing.id, new_price, price_per_m2, ts,
            )
            outcome = CheckOutcome.PRICE_CHANGED

        self._repo.record_check(
            listing.id, ts, ListingStatus.ACTIVE, None, 0,
        )
        return outcome
