# tests/test_priority_scheduler.py

"""Tests for priority scoring, check cadence and due selection."""

import tempfile
import unittest
from dataclasses import replace
from datetime import date, datetime, timedelta
from pathlib import Path

from realtrack.models.listing import (
    Listing,
    ListingKind,
    ListingStatus,
    PriceHistoryEntry,
    ScrapedListing,
)
from realtrack.services.priority_scheduler import (
    NEVER_CHECKED_DAYS,
    PriorityFactors,
    PriorityScheduler,
    calculate_priority_score,
    checks_per_day,
    extract_factors,
    is_due,
)
from realtrack.storage.listing_repository import ListingRepository

NOW = datetime(2026, 3, 10, 12, 0)


def _listing(score: int = 50, **overrides: object) -> Listing:
    listing = Listing(
        id=1,
        source="bazos",
        url="https://reality.bazos.sk/inzerat/171234567/byt.php",
        title="3 izbový byt",
        price=185000,
        area_m2=68.0,
        city="Bratislava",
        kind=ListingKind.SALE,
        first_seen_at=NOW - timedelta(days=20),
        last_seen_at=NOW,
        priority_score=score,
    )
    return replace(listing, **overrides)  # type: ignore[arg-type]


class TestCalculatePriorityScore(unittest.TestCase):
    """Score tiers."""

    def test_baseline(self) -> None:
        factors = PriorityFactors(days_on_market=45, days_since_last_check=0.5)
        self.assertEqual(calculate_priority_score(factors), 50)

    def test_fresh_listing_tiers(self) -> None:
        expected = {1: 75, 5: 65, 10: 60, 20: 55, 45: 50, 75: 40, 120: 35}
        for dom, score in expected.items():
            with self.subTest(days_on_market=dom):
                factors = PriorityFactors(
                    days_on_market=dom, days_since_last_check=0,
                )
                self.assertEqual(calculate_priority_score(factors), score)

    def test_monotonic_in_days_since_check(self) -> None:
        scores = [
            calculate_priority_score(
                PriorityFactors(days_on_market=45, days_since_last_check=d)
            )
            for d in (0, 0.5, 1.5, 3, 10, NEVER_CHECKED_DAYS)
        ]
        self.assertEqual(scores, sorted(scores))
        self.assertEqual(scores[-1], 70)

    def test_non_increasing_beyond_ninety_days(self) -> None:
        scores = [
            calculate_priority_score(
                PriorityFactors(days_on_market=d, days_since_last_check=0)
            )
            for d in (60.5, 91, 200, 1000)
        ]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertEqual(scores[1], scores[-1])

    def test_price_and_interest_signals(self) -> None:
        factors = PriorityFactors(
            days_on_market=45,
            days_since_last_check=0,
            price_change_count=2,
            recent_price_drop_percent=6.0,
            saved_by_count=3,
        )
        # 50 + 10 + 5 + 10 + 10
        self.assertEqual(calculate_priority_score(factors), 85)

    def test_clamped_to_hundred(self) -> None:
        factors = PriorityFactors(
            days_on_market=1,
            days_since_last_check=5,
            price_change_count=4,
            recent_price_drop_percent=20,
            saved_by_count=10,
            is_distressed=True,
            has_description=True,
            has_photos=True,
            source="nehnutelnosti",
        )
        self.assertEqual(calculate_priority_score(factors), 100)


class TestCadence(unittest.TestCase):
    """Daily allotment and the due gate."""

    def test_checks_per_day_tiers(self) -> None:
        self.assertEqual(
            [checks_per_day(s) for s in (100, 80, 79, 50, 49, 20, 19, 0)],
            [3, 3, 2, 2, 1, 1, 0, 0],
        )

    def test_high_priority_gets_three_checks(self) -> None:
        today = NOW.date()
        twice = _listing(85, check_day=today, checks_today=2,
                         last_checked_at=NOW - timedelta(hours=2))
        thrice = replace(twice, checks_today=3)

        self.assertTrue(is_due(twice, NOW))
        self.assertFalse(is_due(thrice, NOW))

    def test_yesterdays_checks_do_not_count(self) -> None:
        listing = _listing(85, check_day=date(2026, 3, 9), checks_today=3,
                           last_checked_at=NOW - timedelta(days=1))
        self.assertTrue(is_due(listing, NOW))

    def test_low_priority_waits_between_checks(self) -> None:
        never = _listing(10)
        recent = _listing(10, last_checked_at=NOW - timedelta(days=1),
                          check_day=date(2026, 3, 9), checks_today=1)
        old = _listing(10, last_checked_at=NOW - timedelta(days=3),
                       check_day=date(2026, 3, 7), checks_today=1)
        today = _listing(10, last_checked_at=NOW - timedelta(days=3),
                         check_day=NOW.date(), checks_today=1)

        self.assertTrue(is_due(never, NOW))
        self.assertFalse(is_due(recent, NOW))
        self.assertTrue(is_due(old, NOW))
        self.assertFalse(is_due(today, NOW))

    def test_inactive_never_due(self) -> None:
        self.assertFalse(is_due(_listing(95, status=ListingStatus.SOLD), NOW))


class TestExtractFactors(unittest.TestCase):
    """Factor derivation from stored state."""

    def test_from_listing_and_history(self) -> None:
        listing = _listing(
            last_checked_at=NOW - timedelta(days=3),
            description="x" * 60,
            photo_count=4,
            saved_by_count=2,
        )
        history = [
            PriceHistoryEntry(1, 180000, None, NOW - timedelta(days=1)),
            PriceHistoryEntry(1, 200000, None, NOW - timedelta(days=20)),
        ]

        factors = extract_factors(listing, history, NOW)

        self.assertAlmostEqual(factors.days_on_market, 20.0)
        self.assertAlmostEqual(factors.days_since_last_check, 3.0)
        self.assertEqual(factors.price_change_count, 1)
        self.assertAlmostEqual(factors.recent_price_drop_percent, 10.0)
        self.assertTrue(factors.has_description)
        self.assertTrue(factors.has_photos)
        self.assertEqual(factors.saved_by_count, 2)

    def test_never_checked(self) -> None:
        factors = extract_factors(_listing(), [], NOW)
        self.assertEqual(factors.days_since_last_check, NEVER_CHECKED_DAYS)
        self.assertEqual(factors.price_change_count, 0)
        self.assertEqual(factors.recent_price_drop_percent, 0.0)


class TestPriorityScheduler(unittest.TestCase):
    """Score refresh and due selection against a database."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.repo = ListingRepository(db_path=Path(self.tmp_dir) / "test.db")
        self.scheduler = PriorityScheduler(self.repo)

    def tearDown(self) -> None:
        self.repo.close()

    def _store(self, n: int, first_seen: datetime) -> Listing:
        scraped = ScrapedListing(
            source="bazos",
            url=f"https://reality.bazos.sk/inzerat/{n}/byt.php",
            title="Byt",
            price=150000,
            area_m2=60.0,
            city="Nitra",
            kind=ListingKind.SALE,
            external_id=str(n),
        )
        return self.repo.upsert_listing(scraped, first_seen).listing

    def test_refresh_writes_scores(self) -> None:
        fresh = self._store(1, NOW - timedelta(hours=1))
        stale = self._store(2, NOW - timedelta(days=120))
        self.repo.record_check(stale.id, NOW - timedelta(hours=1),
                               ListingStatus.ACTIVE, None, 0)

        scores = self.scheduler.refresh_scores(NOW)

        # 50 + 25 fresh + 20 never checked
        self.assertEqual(scores[fresh.id], 95)
        # 50 - 15 long listed
        self.assertEqual(scores[stale.id], 35)
        stored = self.repo.get_listing(fresh.id)
        assert stored is not None
        self.assertEqual(stored.priority_score, 95)

    def test_select_due_orders_and_limits(self) -> None:
        fresh = self._store(1, NOW - timedelta(hours=1))
        self._store(2, NOW - timedelta(days=120))
        self.scheduler.refresh_scores(NOW)

        due = self.scheduler.select_due(1, NOW)

        self.assertEqual([lst.id for lst in due], [fresh.id])

    def test_select_due_skips_exhausted_allotment(self) -> None:
        listing = self._store(1, NOW - timedelta(days=45))
        self.repo.update_priority_scores({listing.id: 30})
        self.repo.record_check(listing.id, NOW - timedelta(hours=3),
                               ListingStatus.ACTIVE, None, 0)

        self.assertEqual(self.scheduler.select_due(10, NOW), [])

    def test_spent_listings_do_not_starve_the_batch(self) -> None:
        """High-score listings checked out for today leave room for the rest."""
        hot = [self._store(n, NOW - timedelta(days=1)) for n in range(1, 12)]
        cold = self._store(99, NOW - timedelta(days=20))
        self.repo.update_priority_scores(
            {**{lst.id: 90 for lst in hot}, cold.id: 60},
        )
        for lst in hot:
            for hours in (1, 2, 3):
                self.repo.record_check(lst.id, NOW - timedelta(hours=hours),
                                       ListingStatus.ACTIVE, None, 0)

        due = self.scheduler.select_due(2, NOW)

        self.assertEqual([lst.id for lst in due], [cold.id])


if __name__ == "__main__":
    unittest.main()
