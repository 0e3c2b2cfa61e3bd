# realtrack/scrapers/base_scraper.py

"""Abstract base class for all listing-portal scrapers.

A scraper knows one portal's categories, pagination scheme and HTML
structure.  It never performs network I/O itself: the run orchestrator
and the health checker fetch pages through :class:`Fetcher` and hand
the raw HTML to :meth:`BaseScraper.extract_listings` or
:meth:`BaseScraper.extract_detail_price`.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import (
    parse_qs,
    urlencode,
    urljoin,
    urlparse,
    urlunparse,
)

from bs4 import BeautifulSoup, Tag

from realtrack.config.settings import Settings
from realtrack.filters.location_resolver import (
    LocationResolver,
    normalize_text,
)
from realtrack.models.listing import ListingKind, ScrapedListing

_PRICE_NUMBER_RE = re.compile(r"\d[\d\s .,]*")
_PRICE_IN_TEXT_RE = re.compile(
    r"(\d[\d\s .,]*?)\s*(?:€|eur\b)", re.IGNORECASE
)
_CENTS_RE = re.compile(r"[.,]\d{1,2}$")
# Thousands may be grouped with a plain, no-break or narrow no-break space
_AREA_RE = re.compile(
    r"(?<![\d,.])(\d{1,3}(?:[ \u00a0\u202f]\d{3})+|\d{1,5})"
    r"(?:[,.](\d{1,2}))?\s*m(?:²|2)(?!\w)",
    re.IGNORECASE,
)
_ROOMS_RE = re.compile(r"(?<!\d)(\d{1,2})\s*[-–]?\s*izb")
_DIGIT_GROUP_SEPARATORS = str.maketrans("", "", " \u00a0\u202f")

_TRACKING_PARAMS: frozenset[str] = frozenset({
    "utm_source", "utm_medium", "utm_campaign", "utm_term",
    "utm_content", "fbclid", "gclid", "ref", "src",
})

_RENT_WORDS = ("prenajom", "prenajmem", "podnajom")
_SALE_WORDS = ("predaj", "predam")


class ListingParseError(ValueError):
    """A listing card did not have the structure the scraper expects."""


@dataclass(frozen=True)
class Category:
    """One paginated listing index on a portal.

    ``kind`` is ``None`` for mixed categories where the listing kind
    must be inferred per listing.
    """

    name: str
    path: str
    kind: ListingKind | None


@dataclass
class ExtractionResult:
    """Outcome of parsing one listing-index page."""

    listings: list[ScrapedListing] = field(
        default_factory=lambda: list[ScrapedListing]()
    )
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )
    cards_seen: int = 0
    skipped: int = 0


def canonical_url(raw_url: str) -> str:
    """Strip fragments and tracking params to get a stable listing URL."""
    parsed = urlparse(raw_url)
    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in params.items()
        if k.lower() not in _TRACKING_PARAMS
    }
    new_query = urlencode(cleaned, doseq=True) if cleaned else ""
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        new_query,
        "",  # drop fragment
    ))


class BaseScraper(ABC):
    """Abstract base class for all listing-portal scrapers."""

    BASE_URL: str = ""
    CATEGORIES: list[Category] = []
    EXPECTED_PER_PAGE: int = 20

    def __init__(
        self,
        source_name: str,
        resolver: LocationResolver | None = None,
    ) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"realtrack.{source_name}"
        )
        self.settings = Settings()
        self.selectors: dict[str, str] = self._load_selectors()
        self.resolver = resolver or LocationResolver()

    def _load_selectors(self) -> dict[str, str]:
        """Load CSS selectors for this source from selectors.json."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            all_selectors: dict[str, Any] = json.load(f)
        result: dict[str, str] = all_selectors.get(
            self.source_name, {}
        )
        return result

    @property
    def domain(self) -> str:
        """Host name requests for this source go to."""
        return urlparse(self.BASE_URL).netloc

    def absolute_url(self, href: str) -> str:
        """Resolve a (possibly relative) href into a canonical URL."""
        return canonical_url(urljoin(self.BASE_URL + "/", href))

    # ── Text parsing helpers ─────────────────────────────

    @staticmethod
    def parse_price(text: str | None) -> int | None:
        """Parse a price like ``'185 000 €'`` into an integer.

        Thousand separators (spaces, dots, commas) are stripped and a
        trailing cents part is dropped.  Returns ``None`` for "price on
        request" texts and for values outside the plausible bounds.
        """
        if not text:
            return None
        lowered = text.lower()
        for marker in Settings.NEGOTIABLE_PRICE_MARKERS:
            if marker in lowered:
                return None
        match = _PRICE_NUMBER_RE.search(text)
        if not match:
            return None
        number = match.group(0).strip().rstrip(".,").strip()
        number = _CENTS_RE.sub("", number)
        digits = re.sub(r"\D", "", number)
        if not digits:
            return None
        price = int(digits)
        if not (
            Settings.MIN_PLAUSIBLE_PRICE
            <= price
            <= Settings.MAX_PLAUSIBLE_PRICE
        ):
            return None
        return price

    @classmethod
    def find_price_in_text(cls, text: str) -> int | None:
        """Return the first plausible ``<number> €`` amount in *text*."""
        for match in _PRICE_IN_TEXT_RE.finditer(text):
            price = cls.parse_price(match.group(1))
            if price is not None:
                return price
        return None

    @staticmethod
    def parse_area(text: str | None) -> float | None:
        """Parse ``'62,5 m²'`` / ``'1 250 m2'`` into square metres."""
        if not text:
            return None
        match = _AREA_RE.search(text)
        if not match:
            return None
        whole = match.group(1).translate(_DIGIT_GROUP_SEPARATORS)
        return float(f"{whole}.{match.group(2) or 0}")

    @staticmethod
    def parse_rooms(text: str | None) -> int | None:
        """Parse the room count from ``'3-izbový byt'`` style text."""
        if not text:
            return None
        normalized = normalize_text(text)
        match = _ROOMS_RE.search(normalized)
        if match and int(match.group(1)) > 0:
            return int(match.group(1))
        if "garson" in normalized:
            return 1
        return None

    @staticmethod
    def infer_kind(
        category_kind: ListingKind | None,
        price: int,
        title: str,
    ) -> ListingKind:
        """Decide sale vs. rent for a listing.

        An explicit category wins.  In mixed categories the title
        keywords decide, and failing those a price below
        ``Settings.RENT_PRICE_CEILING`` means a rental.
        """
        if category_kind is not None:
            return category_kind
        normalized = normalize_text(title)
        if any(word in normalized for word in _RENT_WORDS):
            return ListingKind.RENT
        if any(word in normalized for word in _SALE_WORDS):
            return ListingKind.SALE
        if price < Settings.RENT_PRICE_CEILING:
            return ListingKind.RENT
        return ListingKind.SALE

    # ── HTML helpers ─────────────────────────────────────

    def _select_text(
        self,
        node: Tag | BeautifulSoup,
        key: str,
        separator: str = " ",
    ) -> str | None:
        """Text of the first element matching selector *key*, if any."""
        selector = self.selectors.get(key, "")
        if not selector:
            return None
        element = node.select_one(selector)
        if element is None:
            return None
        text = element.get_text(separator, strip=True)
        return text or None

    def _image_urls(self, card: Tag) -> list[str]:
        """Absolute image URLs inside a listing card."""
        selector = self.selectors.get("image", "")
        if not selector:
            return []
        urls: list[str] = []
        for img in card.select(selector):
            src = img.get("data-src") or img.get("src")
            if isinstance(src, str) and src and not src.startswith("data:"):
                urls.append(urljoin(self.BASE_URL + "/", src))
        return urls

    # ── Extraction ───────────────────────────────────────

    @abstractmethod
    def build_page_url(self, category: Category, page: int) -> str:
        """Return the URL of 1-based *page* of *category*."""
        ...

    @abstractmethod
    def _external_id(self, url: str, card: Tag) -> str | None:
        """Return the portal-assigned listing id, if one can be found."""
        ...

    def _parse_card(
        self, card: Tag, category: Category,
    ) -> ScrapedListing | None:
        """Parse one listing card; ``None`` means "no usable price"."""
        link = card.select_one(self.selectors.get("link", "a[href]"))
        href = link.get("href") if link is not None else None
        if not isinstance(href, str) or not href.strip():
            raise ListingParseError("listing card without a link")
        url = self.absolute_url(href.strip())

        title = self._select_text(card, "title")
        if not title and link is not None:
            title = link.get_text(" ", strip=True) or None
        if not title:
            raise ListingParseError(f"listing without a title: {url}")

        price = self.parse_price(self._select_text(card, "price"))
        if price is None:
            price = self.find_price_in_text(
                card.get_text(" ", strip=True)
            )
        if price is None:
            self.logger.debug("[%s] No price for %s", self.source_name, url)
            return None

        description = self._select_text(card, "description")
        area = (
            self.parse_area(self._select_text(card, "area"))
            or self.parse_area(title)
            or self.parse_area(description)
            or self.settings.DEFAULT_AREA_M2
        )
        location = self.resolver.resolve(
            address=self._select_text(card, "location", separator=", "),
            url=url,
            title=title,
        )

        return ScrapedListing(
            source=self.source_name,
            url=url,
            title=title[:200],
            price=price,
            area_m2=area,
            city=location.city,
            kind=self.infer_kind(category.kind, price, title),
            external_id=self._external_id(url, card),
            description=description[:1000] if description else None,
            district=location.district,
            street=location.street,
            rooms=(
                self.parse_rooms(title)
                or self.parse_rooms(description)
            ),
            image_urls=self._image_urls(card),
        )

    def extract_listings(
        self, html: str, category: Category,
    ) -> ExtractionResult:
        """Parse a listing-index page into canonical records.

        A card that fails to parse is skipped and recorded in
        ``errors``; it never aborts the rest of the page.
        """
        result = ExtractionResult()
        soup = BeautifulSoup(html, "lxml")
        container = self.selectors.get("listing_container", "")
        cards = soup.select(container) if container else []
        result.cards_seen = len(cards)
        seen_urls: set[str] = set()

        for card in cards:
            try:
                listing = self._parse_card(card, category)
            except Exception as exc:
                self.logger.warning(
                    "[%s] Skipping unparseable card: %s",
                    self.source_name,
                    exc,
                    exc_info=not isinstance(exc, ListingParseError),
                )
                result.errors.append(f"parse: {exc}")
                continue
            if listing is None:
                result.skipped += 1
                continue
            if listing.url in seen_urls:
                continue
            seen_urls.add(listing.url)
            result.listings.append(listing)

        self.logger.info(
            "[%s] %s: %d cards, %d listings, %d errors, %d skipped",
            self.source_name,
            category.name,
            result.cards_seen,
            len(result.listings),
            len(result.errors),
            result.skipped,
        )
        return result

    def extract_detail_price(self, html: str) -> int | None:
        """Parse the current price from a single listing page."""
        soup = BeautifulSoup(html, "lxml")
        selector = self.selectors.get("detail_price", "")
        if selector:
            for element in soup.select(selector):
                price = self.parse_price(
                    element.get_text(" ", strip=True)
                )
                if price is not None:
                    return price
        return self.find_price_in_text(soup.get_text(" ", strip=True))
