# realtrack/scrapers/reality_scraper.py

"""Scraper for reality.sk estate listings."""

import re

from bs4 import Tag

from realtrack.filters.location_resolver import LocationResolver
from realtrack.models.listing import ListingKind
from realtrack.scrapers.base_scraper import BaseScraper, Category

_ID_RE = re.compile(r"/detail/(?:[^/]+/)*?(\d{4,})")


class RealityScraper(BaseScraper):
    """Scraper for reality.sk ``estate-list`` result pages."""

    BASE_URL = "https://www.reality.sk"
    EXPECTED_PER_PAGE = 25
    CATEGORIES = [
        Category("Byty predaj", "/byty/predaj/", ListingKind.SALE),
        Category("Domy predaj", "/domy/predaj/", ListingKind.SALE),
        Category("Byty prenájom", "/byty/prenajom/", ListingKind.RENT),
        Category("Nové reality", "/reality/", None),
    ]

    def __init__(self, resolver: LocationResolver | None = None) -> None:
        super().__init__("reality", resolver)

    def build_page_url(self, category: Category, page: int) -> str:
        url = f"{self.BASE_URL}{category.path}"
        if page > 1:
            url += f"?strana={page}"
        return url

    def _external_id(self, url: str, card: Tag) -> str | None:
        """Use ``data-estate-id`` when present, else the id in the URL."""
        estate_id = card.get("data-estate-id")
        if isinstance(estate_id, str) and estate_id.strip():
            return estate_id.strip()
        match = _ID_RE.search(url)
        return match.group(1) if match else None
