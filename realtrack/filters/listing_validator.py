# realtrack/filters/listing_validator.py

"""Listing validation: drop implausible records before ingestion."""

import logging

from realtrack.config.settings import Settings
from realtrack.models.listing import ListingKind, ScrapedListing

logger = logging.getLogger("realtrack.filters")


class ListingValidator:
    """Validate scraped listings and drop those with garbage values."""

    @staticmethod
    def rejection_reason(listing: ScrapedListing) -> str | None:
        """Return why *listing* is implausible, or ``None`` if it is fine."""
        if len(listing.title.strip()) < 3:
            return "missing title"
        if not listing.url.startswith("http"):
            return f"invalid url {listing.url!r}"

        low, high = (
            Settings.RENT_PRICE_BOUNDS
            if listing.kind is ListingKind.RENT
            else Settings.SALE_PRICE_BOUNDS
        )
        if not low <= listing.price <= high:
            return (
                f"{listing.kind.value} price {listing.price} "
                f"outside [{low}, {high}]"
            )

        min_area, max_area = Settings.AREA_BOUNDS
        if not min_area <= listing.area_m2 <= max_area:
            return (
                f"area {listing.area_m2} outside "
                f"[{min_area}, {max_area}]"
            )

        if not listing.city.strip():
            return "missing city"
        return None

    @staticmethod
    def validate(
        listings: list[ScrapedListing],
    ) -> tuple[list[ScrapedListing], int]:
        """Drop listings with implausible price, area or identity fields.

        Returns the valid listings and the count of dropped items.
        """
        valid: list[ScrapedListing] = []
        dropped = 0

        for listing in listings:
            reason = ListingValidator.rejection_reason(listing)
            if reason is not None:
                logger.debug(
                    "Dropped listing (source=%s, url=%s): %s",
                    listing.source,
                    listing.url,
                    reason,
                )
                dropped += 1
                continue
            valid.append(listing)

        if dropped:
            logger.info(
                "Validation dropped %d invalid listings",
                dropped,
            )

        return valid, dropped
