# tests/test_identity_resolver.py

"""Tests for candidate shortlisting and match creation."""

import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from realtrack.config.settings import Settings
from realtrack.filters.location_resolver import LocationResolver
from realtrack.matching.identity_resolver import IdentityResolver
from realtrack.matching.scorer import MatchWeights
from realtrack.models.listing import Listing, ListingKind, ScrapedListing
from realtrack.storage.listing_repository import ListingRepository

T0 = datetime(2026, 3, 1, 9, 0)


class TestIdentityResolver(unittest.TestCase):
    """IdentityResolver against a temp-file database."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.repo = ListingRepository(db_path=Path(self.tmp_dir) / "test.db")
        self.resolver = IdentityResolver(self.repo)

    def tearDown(self) -> None:
        self.repo.close()

    def _store(
        self,
        n: int,
        source: str = "reality",
        city: str = "Bratislava",
        district: str | None = "Petržalka",
        street: str | None = "Romanova 12",
        area: float = 68.0,
        rooms: int | None = 3,
    ) -> Listing:
        scraped = ScrapedListing(
            source=source,
            url=f"https://www.{source}.sk/detail/{n}/",
            title="Predaj bytu",
            price=187500,
            area_m2=area,
            city=city,
            kind=ListingKind.SALE,
            external_id=str(n),
            district=district,
            street=street,
            rooms=rooms,
        )
        return self.repo.upsert_listing(scraped, T0).listing

    def test_first_listing_has_no_candidates(self) -> None:
        listing = self._store(1)
        resolution = self.resolver.resolve(listing, T0)

        self.assertEqual(resolution.candidates, 0)
        self.assertEqual(resolution.created, [])
        self.assertIsNotNone(self.repo.get_fingerprint(listing.id))

    def test_cross_source_duplicate_linked(self) -> None:
        first = self._store(1)
        self.resolver.resolve(first, T0)
        second = self._store(2, source="nehnutelnosti", street="Romanova", area=67.0)

        resolution = self.resolver.resolve(second, T0)

        self.assertEqual(len(resolution.created), 1)
        match = resolution.created[0]
        self.assertEqual((match.primary_id, match.matched_id), (first.id, second.id))
        self.assertEqual(match.score, 100)

    def test_resolving_twice_creates_no_duplicate_edge(self) -> None:
        first = self._store(1)
        second = self._store(2, source="nehnutelnosti")
        self.resolver.resolve(first, T0)
        self.resolver.resolve(second, T0)

        again = self.resolver.resolve(first, T0)

        self.assertEqual(again.candidates, 1)
        self.assertEqual(again.created, [])
        self.assertEqual(self.repo.count_matches(), 1)

    def test_area_tolerance_crosses_bucket_boundary(self) -> None:
        """69 m² and 71 m² land in different buckets but still pair up."""
        first = self._store(1, area=69.0)
        self.resolver.resolve(first, T0)
        second = self._store(2, area=71.0)

        resolution = self.resolver.resolve(second, T0)

        self.assertEqual(resolution.candidates, 1)
        self.assertEqual(len(resolution.created), 1)

    def test_other_city_never_candidate(self) -> None:
        first = self._store(1)
        self.resolver.resolve(first, T0)
        other = self._store(2, city="Košice", district="Juh")

        resolution = self.resolver.resolve(other, T0)

        self.assertEqual(resolution.candidates, 0)

    def test_unresolved_villages_never_paired(self) -> None:
        """Listings from two unknown villages share only the placeholder city."""
        resolver = LocationResolver()
        first_loc = resolver.resolve(address="Hlavná 5, Bernolákovo")
        second_loc = resolver.resolve(address="Hlavná 7, Chorvátsky Grob")
        self.assertEqual(first_loc.city, Settings.FALLBACK_CITY)
        self.assertEqual(second_loc.city, Settings.FALLBACK_CITY)

        first = self._store(
            1, city=first_loc.city, district=None, street="Hlavná 5",
        )
        self.resolver.resolve(first, T0)
        second = self._store(
            2,
            source="nehnutelnosti",
            city=second_loc.city,
            district=None,
            street="Hlavná 7",
        )

        resolution = self.resolver.resolve(second, T0)

        self.assertEqual(resolution.candidates, 0)
        self.assertEqual(resolution.created, [])
        self.assertEqual(self.repo.count_matches(), 0)

    def test_custom_placeholder_city(self) -> None:
        resolver = IdentityResolver(self.repo, unknown_city="Neznáme")
        first = self._store(1, city="Neznáme")
        resolver.resolve(first, T0)
        second = self._store(2, source="nehnutelnosti", city="Neznáme")

        resolution = resolver.resolve(second, T0)

        self.assertEqual(resolution.candidates, 0)
        self.assertEqual(self.repo.count_matches(), 0)

    def test_below_threshold_not_stored(self) -> None:
        first = self._store(1, street="Romanova 12", rooms=3)
        self.resolver.resolve(first, T0)
        second = self._store(2, street="Mlynské nivy 5", rooms=4, area=72.0)

        resolution = self.resolver.resolve(second, T0)

        # 20 city + 15 district + 10 area (±10%) = 45
        self.assertEqual(resolution.candidates, 1)
        self.assertEqual(resolution.created, [])

    def test_custom_threshold_and_weights(self) -> None:
        strict = IdentityResolver(
            self.repo, weights=MatchWeights(same_rooms=0), min_score=95,
        )
        first = self._store(1)
        strict.resolve(first, T0)
        second = self._store(2, source="nehnutelnosti")

        resolution = strict.resolve(second, T0)

        # 20 + 15 + 40 + 15 = 90
        self.assertEqual(resolution.created, [])


if __name__ == "__main__":
    unittest.main()
