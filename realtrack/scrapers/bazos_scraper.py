# realtrack/scrapers/bazos_scraper.py

"""Scraper for reality.bazos.sk classified listings."""

import re

from bs4 import Tag

from realtrack.filters.location_resolver import LocationResolver
from realtrack.models.listing import ListingKind
from realtrack.scrapers.base_scraper import BaseScraper, Category

_ID_RE = re.compile(r"/inzerat/(\d+)")


class BazosScraper(BaseScraper):
    """Scraper for reality.bazos.sk.

    Bazoš paginates by item offset (``/predam/byt/20/``) and renders
    each ad inside ``div.inzeraty``.  The ad id is the number in the
    ``/inzerat/<id>/`` link.  Location is a city line followed by a
    postcode, without street information.
    """

    BASE_URL = "https://reality.bazos.sk"
    EXPECTED_PER_PAGE = 20
    CATEGORIES = [
        Category("Byty predaj", "/predam/byt/", ListingKind.SALE),
        Category("Domy predaj", "/predam/dom/", ListingKind.SALE),
        Category("Byty prenájom", "/prenajmu/byt/", ListingKind.RENT),
        Category("Domy prenájom", "/prenajmu/dom/", ListingKind.RENT),
        Category("Ostatné", "/ostatne/", None),
    ]

    def __init__(self, resolver: LocationResolver | None = None) -> None:
        super().__init__("bazos", resolver)

    def build_page_url(self, category: Category, page: int) -> str:
        """Bazoš pages are offsets of 20 items: page 2 -> ``/20/``."""
        offset = (page - 1) * self.EXPECTED_PER_PAGE
        suffix = f"{offset}/" if offset > 0 else ""
        return f"{self.BASE_URL}{category.path}{suffix}"

    def _external_id(self, url: str, card: Tag) -> str | None:
        """Return the numeric ad id from the ``/inzerat/<id>/`` URL."""
        match = _ID_RE.search(url)
        return match.group(1) if match else None
