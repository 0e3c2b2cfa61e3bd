# tests/test_listing_repository.py

"""Tests for the SQLite listing repository."""

import tempfile
import unittest
from datetime import date, datetime, timedelta
from pathlib import Path

from realtrack.matching.fingerprint import compute_fingerprint
from realtrack.models.listing import (
    ListingKind,
    ListingStatus,
    ScrapedListing,
)
from realtrack.models.run_report import RunReport, RunStatus
from realtrack.storage.listing_repository import ListingRepository

T0 = datetime(2026, 3, 1, 9, 0)


def _scraped(
    external_id: str | None = "4412907",
    url: str = "https://www.reality.sk/detail/byty/3-izbovy-byt/4412907/",
    price: int = 187500,
    area: float = 68.0,
    source: str = "reality",
    district: str | None = "Petržalka",
) -> ScrapedListing:
    return ScrapedListing(
        source=source,
        url=url,
        title="Predaj 3-izbového bytu",
        price=price,
        area_m2=area,
        city="Bratislava",
        kind=ListingKind.SALE,
        external_id=external_id,
        district=district,
        street="Romanova 12",
        rooms=3,
        image_urls=["https://www.reality.sk/images/1.jpg"],
    )


class TestListingRepository(unittest.TestCase):
    """ListingRepository against a temp-file database."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.repo = ListingRepository(db_path=Path(self.tmp_dir) / "test.db")

    def tearDown(self) -> None:
        self.repo.close()

    # ── Listings ─────────────────────────────────────────

    def test_insert_then_update_same_row(self) -> None:
        first = self.repo.upsert_listing(_scraped(), T0)
        second = self.repo.upsert_listing(
            _scraped(price=179000), T0 + timedelta(days=1),
        )

        self.assertTrue(first.created)
        self.assertFalse(second.created)
        self.assertEqual(first.listing.id, second.listing.id)
        assert second.previous is not None
        self.assertEqual(second.previous.price, 187500)
        self.assertEqual(second.listing.price, 179000)
        self.assertEqual(second.listing.first_seen_at, T0)
        self.assertEqual(second.listing.last_seen_at, T0 + timedelta(days=1))
        self.assertEqual(second.listing.photo_count, 1)

    def test_external_id_wins_over_url(self) -> None:
        """A changed URL with the same portal id is the same listing."""
        first = self.repo.upsert_listing(_scraped(), T0)
        moved = self.repo.upsert_listing(
            _scraped(url="https://www.reality.sk/detail/byty/novy-slug/4412907/"),
            T0,
        )
        self.assertEqual(first.listing.id, moved.listing.id)

    def test_url_identity_without_external_id(self) -> None:
        first = self.repo.upsert_listing(_scraped(external_id=None), T0)
        again = self.repo.upsert_listing(_scraped(external_id=None), T0)
        self.assertEqual(first.listing.id, again.listing.id)
        self.assertEqual(self.repo.count_by_status(), {"active": 1})

    def test_relisting_reactivates(self) -> None:
        listing = self.repo.upsert_listing(_scraped(), T0).listing
        self.repo.record_check(listing.id, T0, ListingStatus.REMOVED, "unknown", 0)

        outcome = self.repo.upsert_listing(_scraped(), T0 + timedelta(days=3))

        assert outcome.previous is not None
        self.assertEqual(outcome.previous.status, ListingStatus.REMOVED)
        self.assertEqual(outcome.listing.status, ListingStatus.ACTIVE)
        self.assertIsNone(outcome.listing.removal_reason)

    def test_record_check_counts_per_day(self) -> None:
        listing = self.repo.upsert_listing(_scraped(), T0).listing
        self.repo.record_check(listing.id, T0, ListingStatus.ACTIVE, None, 0)
        self.repo.record_check(
            listing.id, T0 + timedelta(hours=4), ListingStatus.ACTIVE, None, 0,
        )
        same_day = self.repo.get_listing(listing.id)
        assert same_day is not None
        self.assertEqual(same_day.checks_on(date(2026, 3, 1)), 2)

        self.repo.record_check(
            listing.id, T0 + timedelta(days=1), ListingStatus.ACTIVE, None, 1,
        )
        next_day = self.repo.get_listing(listing.id)
        assert next_day is not None
        self.assertEqual(next_day.checks_on(date(2026, 3, 2)), 1)
        self.assertEqual(next_day.checks_on(date(2026, 3, 1)), 0)
        self.assertEqual(next_day.consecutive_failures, 1)
        self.assertEqual(next_day.last_checked_at, T0 + timedelta(days=1))

    def test_due_candidates_order(self) -> None:
        a = self.repo.upsert_listing(_scraped("1", "https://x.sk/1"), T0).listing
        b = self.repo.upsert_listing(_scraped("2", "https://x.sk/2"), T0).listing
        c = self.repo.upsert_listing(_scraped("3", "https://x.sk/3"), T0).listing
        d = self.repo.upsert_listing(_scraped("4", "https://x.sk/4"), T0).listing
        self.repo.update_priority_scores({a.id: 40, b.id: 90, c.id: 90})
        self.repo.record_check(b.id, T0, ListingStatus.ACTIVE, None, 0)
        self.repo.record_check(d.id, T0, ListingStatus.SOLD, "sold", 0)

        ids = [lst.id for lst in self.repo.due_candidates(
            10, T0 + timedelta(hours=1),
        )]

        # c was never checked, so it precedes b at equal priority
        self.assertEqual(ids, [c.id, b.id, a.id])

    def test_due_candidates_skip_spent_allotments(self) -> None:
        hot = self.repo.upsert_listing(_scraped("1", "https://x.sk/1"), T0).listing
        low = self.repo.upsert_listing(_scraped("2", "https://x.sk/2"), T0).listing
        self.repo.update_priority_scores({hot.id: 90, low.id: 10})
        for hours in (0, 1, 2):
            self.repo.record_check(
                hot.id, T0 + timedelta(hours=hours), ListingStatus.ACTIVE, None, 0,
            )
        self.repo.record_check(low.id, T0, ListingStatus.ACTIVE, None, 0)

        later_today = self.repo.due_candidates(10, T0 + timedelta(hours=5))
        next_day = self.repo.due_candidates(10, T0 + timedelta(days=1))
        two_days_on = self.repo.due_candidates(10, T0 + timedelta(days=2))

        self.assertEqual(later_today, [])
        self.assertEqual([lst.id for lst in next_day], [hot.id])
        self.assertEqual([lst.id for lst in two_days_on], [hot.id, low.id])

    def test_interest_signals(self) -> None:
        listing = self.repo.upsert_listing(_scraped(), T0).listing
        self.assertTrue(self.repo.set_interest_signals(listing.id, 4, True))
        self.assertFalse(self.repo.set_interest_signals(9999, 1, False))
        stored = self.repo.get_listing(listing.id)
        assert stored is not None
        self.assertEqual(stored.saved_by_count, 4)
        self.assertTrue(stored.is_distressed)

    # ── Price history ────────────────────────────────────

    def test_price_history_newest_first(self) -> None:
        listing = self.repo.upsert_listing(_scraped(), T0).listing
        self.repo.add_price_entry(listing.id, 187500, 2757, T0)
        self.repo.add_price_entry(listing.id, 179000, 2632, T0 + timedelta(days=2))

        history = self.repo.get_price_history(listing.id)

        self.assertEqual([h.price for h in history], [179000, 187500])

    def test_price_drops_since(self) -> None:
        listing = self.repo.upsert_listing(_scraped(), T0).listing
        self.repo.add_price_entry(listing.id, 200000, None, T0)
        self.repo.add_price_entry(listing.id, 180000, None, T0 + timedelta(days=2))
        self.repo.add_price_entry(listing.id, 185000, None, T0 + timedelta(days=4))

        drops = self.repo.get_price_drops(T0 + timedelta(days=1))

        self.assertEqual(len(drops), 1)
        self.assertEqual(drops[0]["old_price"], 200000)
        self.assertEqual(drops[0]["new_price"], 180000)
        self.assertEqual(drops[0]["drop_percent"], 10.0)
        self.assertEqual(self.repo.get_price_drops(T0 + timedelta(days=3)), [])

    # ── Fingerprints & matches ───────────────────────────

    def test_fingerprint_upsert_and_lookup(self) -> None:
        a = self.repo.upsert_listing(_scraped("1", "https://x.sk/1", area=67.0), T0).listing
        b = self.repo.upsert_listing(_scraped("2", "https://x.sk/2", area=68.0), T0).listing
        c = self.repo.upsert_listing(_scraped("3", "https://x.sk/3", area=90.0), T0).listing
        for listing in (a, b, c):
            self.repo.save_fingerprint(compute_fingerprint(listing), T0)
        self.repo.save_fingerprint(compute_fingerprint(a), T0)

        fp = self.repo.get_fingerprint(a.id)
        assert fp is not None
        same_hash = self.repo.find_by_fingerprint_hash(fp.fingerprint_hash, exclude_id=a.id)
        in_range = self.repo.find_in_area_range(fp.city_district, 57.0, 77.0, exclude_id=a.id)

        self.assertEqual([lst.id for lst in same_hash], [b.id])
        self.assertEqual([lst.id for lst in in_range], [b.id])

    def test_match_insert_if_absent(self) -> None:
        a = self.repo.upsert_listing(_scraped("1", "https://x.sk/1"), T0).listing
        b = self.repo.upsert_listing(_scraped("2", "https://x.sk/2"), T0).listing

        created = self.repo.insert_match_if_absent(b.id, a.id, 90, ["same city"], T0)
        duplicate = self.repo.insert_match_if_absent(a.id, b.id, 95, ["x"], T0)

        assert created is not None
        self.assertEqual((created.primary_id, created.matched_id), (a.id, b.id))
        self.assertIsNone(duplicate)
        self.assertEqual(self.repo.count_matches(), 1)
        stored = self.repo.get_matches(b.id)
        self.assertEqual(stored[0].reasons, ["same city"])
        self.assertFalse(stored[0].confirmed)

    def test_self_match_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.repo.insert_match_if_absent(1, 1, 100, [], T0)

    # ── Run reports ──────────────────────────────────────

    def test_run_reports_roundtrip_latest_first(self) -> None:
        older = RunReport(
            source="bazos",
            status=RunStatus.SUCCESS,
            records_count=10,
            duration_ms=1200,
            started_at=T0,
            found=12,
            new=10,
            invalid=2,
        )
        newer = RunReport(
            source="reality",
            status=RunStatus.PARTIAL,
            records_count=3,
            duration_ms=800,
            started_at=T0 + timedelta(hours=1),
            errors_count=2,
            error_sample=("HTTP 503 for https://www.reality.sk/byty/predaj/",),
        )
        saved = self.repo.save_run_report(older)
        self.repo.save_run_report(newer)

        self.assertIsNotNone(saved.id)
        reports = self.repo.latest_reports()
        self.assertEqual([r.source for r in reports], ["reality", "bazos"])
        self.assertEqual(reports[0].error_sample, newer.error_sample)
        self.assertEqual(reports[1].invalid, 2)
        self.assertEqual(
            [r.source for r in self.repo.latest_reports(source="bazos")],
            ["bazos"],
        )


if __name__ == "__main__":
    unittest.main()
