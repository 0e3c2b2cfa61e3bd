# realtrack/scrapers/nehnutelnosti_scraper.py

"""Scraper for nehnutelnosti.sk, the largest Slovak listing portal."""

import re

from bs4 import Tag

from realtrack.filters.location_resolver import LocationResolver
from realtrack.models.listing import ListingKind
from realtrack.scrapers.base_scraper import BaseScraper, Category

_ID_RE = re.compile(r"/detail/([A-Za-z0-9_-]+)")


class NehnutelnostiScraper(BaseScraper):
    """Scraper for nehnutelnosti.sk server-rendered result pages.

    Cards carry ``data-testid`` hooks (with legacy
    ``advertisement-item`` classes as a fallback) and a
    ``/detail/<id>/<slug>`` link.  Location lines look like
    ``"Romanova, Bratislava-Petržalka"``.
    """

    BASE_URL = "https://www.nehnutelnosti.sk"
    EXPECTED_PER_PAGE = 30
    CATEGORIES = [
        Category("Byty predaj", "/byty/predaj/", ListingKind.SALE),
        Category("Domy predaj", "/domy/predaj/", ListingKind.SALE),
        Category("Byty prenájom", "/byty/prenajom/", ListingKind.RENT),
        Category("Domy prenájom", "/domy/prenajom/", ListingKind.RENT),
    ]

    def __init__(self, resolver: LocationResolver | None = None) -> None:
        super().__init__("nehnutelnosti", resolver)

    def build_page_url(self, category: Category, page: int) -> str:
        """Page 1 is the bare category path, later pages use ``p[page]``."""
        url = f"{self.BASE_URL}{category.path}"
        if page > 1:
            url += f"?p[page]={page}"
        return url

    def _external_id(self, url: str, card: Tag) -> str | None:
        """Prefer the card's ``data-id``; fall back to the detail URL."""
        data_id = card.get("data-id")
        if isinstance(data_id, str) and data_id.strip():
            return data_id.strip()
        match = _ID_RE.search(url)
        return match.group(1) if match else None
