# realtrack/models/listing.py

"""Listing data models shared by scrapers, matcher, scheduler and storage."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class ListingKind(str, Enum):
    """Whether a listing offers the property for sale or for rent."""

    SALE = "sale"
    RENT = "rent"


class ListingStatus(str, Enum):
    """Lifecycle status of a tracked listing."""

    ACTIVE = "active"
    REMOVED = "removed"
    SOLD = "sold"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


@dataclass
class ScrapedListing:
    """Canonical record produced by a source scraper before persistence.

    Optional fields are ``None`` when the source did not provide them.
    """

    source: str
    url: str
    title: str
    price: int
    area_m2: float
    city: str
    kind: ListingKind
    external_id: str | None = None
    description: str | None = None
    district: str | None = None
    street: str | None = None
    rooms: int | None = None
    image_urls: list[str] = field(
        default_factory=lambda: list[str]()
    )

    @property
    def price_per_m2(self) -> int | None:
        """Price divided by area, rounded; ``None`` without an area."""
        if self.area_m2 <= 0:
            return None
        return round(self.price / self.area_m2)


@dataclass
class Listing:
    """A tracked listing as stored by the repository."""

    id: int
    source: str
    url: str
    title: str
    price: int
    area_m2: float
    city: str
    kind: ListingKind
    first_seen_at: datetime
    last_seen_at: datetime
    external_id: str | None = None
    description: str | None = None
    price_per_m2: int | None = None
    district: str | None = None
    street: str | None = None
    rooms: int | None = None
    photo_count: int = 0
    status: ListingStatus = ListingStatus.ACTIVE
    removal_reason: str | None = None
    consecutive_failures: int = 0
    priority_score: int = 50
    checks_today: int = 0
    check_day: date | None = None
    last_checked_at: datetime | None = None
    saved_by_count: int = 0
    is_distressed: bool = False

    @property
    def is_active(self) -> bool:
        """True while the listing has not been removed or sold."""
        return self.status is ListingStatus.ACTIVE

    def checks_on(self, day: date) -> int:
        """Number of health checks already made on *day*."""
        if self.check_day != day:
            return 0
        return self.checks_today


@dataclass
class PriceHistoryEntry:
    """A single immutable price observation for a listing."""

    listing_id: int
    price: int
    price_per_m2: int | None
    recorded_at: datetime
    id: int | None = None


@dataclass
class Fingerprint:
    """Coarse identity key used to shortlist duplicate candidates."""

    listing_id: int
    address_normalized: str
    city_district: str
    area_range: str
    rooms_key: str
    fingerprint_hash: str


@dataclass
class Match:
    """Scored, reviewable edge between two listings.

    ``primary_id`` is always the smaller listing id.
    """

    primary_id: int
    matched_id: int
    score: int
    reasons: list[str] = field(
        default_factory=lambda: list[str]()
    )
    confirmed: bool = False
    created_at: datetime | None = None
