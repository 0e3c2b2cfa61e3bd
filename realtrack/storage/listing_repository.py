# realtrack/storage/listing_repository.py

"""SQLite-backed store for listings, price history, fingerprints, matches
and run reports."""

import dataclasses
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from realtrack.config.settings import Settings
from realtrack.models.listing import (
    Fingerprint,
    Listing,
    ListingKind,
    ListingStatus,
    Match,
    PriceHistoryEntry,
    ScrapedListing,
)
from realtrack.models.run_report import RunReport, RunStatus

logger = logging.getLogger("realtrack.repository")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS listings (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    source               TEXT    NOT NULL,
    external_id          TEXT,
    url                  TEXT    NOT NULL,
    title                TEXT    NOT NULL,
    description          TEXT,
    price                INTEGER NOT NULL,
    price_per_m2         INTEGER,
    area_m2              REAL    NOT NULL,
    rooms                INTEGER,
    kind                 TEXT    NOT NULL,
    photo_count          INTEGER NOT NULL DEFAULT 0,
    city                 TEXT    NOT NULL,
    district             TEXT,
    street               TEXT,
    status               TEXT    NOT NULL DEFAULT 'active',
    removal_reason       TEXT,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    priority_score       INTEGER NOT NULL DEFAULT 50,
    checks_today         INTEGER NOT NULL DEFAULT 0,
    check_day            TEXT,
    last_checked_at      TEXT,
    first_seen_at        TEXT    NOT NULL,
    last_seen_at         TEXT    NOT NULL,
    saved_by_count       INTEGER NOT NULL DEFAULT 0,
    is_distressed        INTEGER NOT NULL DEFAULT 0,
    UNIQUE (source, url)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_listings_source_external
    ON listings(source, external_id)
    WHERE external_id IS NOT NULL;

CREATE INDEX IF NOT EXISTS idx_listings_due
    ON listings(status, priority_score, last_checked_at);

CREATE TABLE IF NOT EXISTS price_history (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    listing_id   INTEGER NOT NULL
                 REFERENCES listings(id) ON DELETE CASCADE,
    price        INTEGER NOT NULL,
    price_per_m2 INTEGER,
    recorded_at  TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_listing_date
    ON price_history(listing_id, recorded_at);

CREATE TABLE IF NOT EXISTS fingerprints (
    listing_id         INTEGER PRIMARY KEY
                       REFERENCES listings(id) ON DELETE CASCADE,
    address_normalized TEXT NOT NULL,
    city_district      TEXT NOT NULL,
    area_range         TEXT NOT NULL,
    rooms_key          TEXT NOT NULL,
    fingerprint_hash   TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_fingerprints_hash
    ON fingerprints(fingerprint_hash);

CREATE INDEX IF NOT EXISTS idx_fingerprints_city_district
    ON fingerprints(city_district);

CREATE TABLE IF NOT EXISTS matches (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    primary_id INTEGER NOT NULL
               REFERENCES listings(id) ON DELETE CASCADE,
    matched_id INTEGER NOT NULL
               REFERENCES listings(id) ON DELETE CASCADE,
    score      INTEGER NOT NULL,
    reasons    TEXT    NOT NULL,
    confirmed  INTEGER NOT NULL DEFAULT 0,
    created_at TEXT    NOT NULL,
    UNIQUE (primary_id, matched_id),
    CHECK (primary_id < matched_id)
);

CREATE TABLE IF NOT EXISTS run_reports (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    source        TEXT    NOT NULL,
    status        TEXT    NOT NULL,
    records_count INTEGER NOT NULL,
    found         INTEGER NOT NULL DEFAULT 0,
    new           INTEGER NOT NULL DEFAULT 0,
    updated       INTEGER NOT NULL DEFAULT 0,
    invalid       INTEGER NOT NULL DEFAULT 0,
    errors_count  INTEGER NOT NULL DEFAULT 0,
    error_sample  TEXT    NOT NULL DEFAULT '[]',
    duration_ms   INTEGER NOT NULL,
    started_at    TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_run_reports_started
    ON run_reports(started_at);
"""

_LISTING_COLUMNS = (
    "id, source, external_id, url, title, description, price, "
    "price_per_m2, area_m2, rooms, kind, photo_count, city, district, "
    "street, status, removal_reason, consecutive_failures, "
    "priority_score, checks_today, check_day, last_checked_at, "
    "first_seen_at, last_seen_at, saved_by_count, is_distressed"
)

_REPORT_COLUMNS = (
    "id, source, status, records_count, found, new, updated, invalid, "
    "errors_count, error_sample, duration_ms, started_at"
)


def _prefixed(columns: str, alias: str) -> str:
    return ", ".join(
        f"{alias}.{c.strip()}" for c in columns.split(",")
    )


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_listing(r: tuple[Any, ...]) -> Listing:
    return Listing(
        id=r[0],
        source=r[1],
        external_id=r[2],
        url=r[3],
        title=r[4],
        description=r[5],
        price=r[6],
        price_per_m2=r[7],
        area_m2=r[8],
        rooms=r[9],
        kind=ListingKind(r[10]),
        photo_count=r[11],
        city=r[12],
        district=r[13],
        street=r[14],
        status=ListingStatus(r[15]),
        removal_reason=r[16],
        consecutive_failures=r[17],
        priority_score=r[18],
        checks_today=r[19],
        check_day=date.fromisoformat(r[20]) if r[20] else None,
        last_checked_at=_parse_dt(r[21]),
        first_seen_at=datetime.fromisoformat(r[22]),
        last_seen_at=datetime.fromisoformat(r[23]),
        saved_by_count=r[24],
        is_distressed=bool(r[25]),
    )


def _row_to_report(r: tuple[Any, ...]) -> RunReport:
    return RunReport(
        id=r[0],
        source=r[1],
        status=RunStatus(r[2]),
        records_count=r[3],
        found=r[4],
        new=r[5],
        updated=r[6],
        invalid=r[7],
        errors_count=r[8],
        error_sample=tuple(json.loads(r[9])),
        duration_ms=r[10],
        started_at=datetime.fromisoformat(r[11]),
    )


@dataclass
class UpsertOutcome:
    """Stored state after an upsert, plus the state before it.

    ``previous`` is ``None`` when the listing was inserted.
    """

    listing: Listing
    previous: Listing | None

    @property
    def created(self) -> bool:
        return self.previous is None


class ListingRepository:
    """SQLite-backed store for tracked listings and their history.

    One connection is shared across threads; every statement runs under
    a connection lock.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug(
            "ListingRepository opened at %s", path,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Listings ─────────────────────────────────────────

    def get_listing(self, listing_id: int) -> Listing | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_LISTING_COLUMNS} FROM listings WHERE id = ?",
                (listing_id,),
            ).fetchone()
        return _row_to_listing(row) if row else None

    def find_existing(
        self,
        source: str,
        external_id: str | None,
        url: str,
    ) -> Listing | None:
        """Look a listing up by (source, external id), then (source, url)."""
        with self._lock:
            row = None
            if external_id:
                row = self._conn.execute(
                    f"SELECT {_LISTING_COLUMNS} FROM listings "
                    "WHERE source = ? AND external_id = ?",
                    (source, external_id),
                ).fetchone()
            if row is None:
                row = self._conn.execute(
                    f"SELECT {_LISTING_COLUMNS} FROM listings "
                    "WHERE source = ? AND url = ?",
                    (source, url),
                ).fetchone()
        return _row_to_listing(row) if row else None

    def upsert_listing(
        self,
        scraped: ScrapedListing,
        seen_at: datetime,
    ) -> UpsertOutcome:
        """Insert *scraped* or refresh the listing it identifies.

        A listing that is no longer active is re-activated: being found
        again by a crawl means it was re-listed.
        """
        ts = seen_at.isoformat()
        with self._lock:
            previous = self.find_existing(
                scraped.source, scraped.external_id, scraped.url,
            )
            cur = self._conn.cursor()
            if previous is None:
                cur.execute(
                    "INSERT INTO listings (source, external_id, url, "
                    "title, description, price, price_per_m2, area_m2, "
                    "rooms, kind, photo_count, city, district, street, "
                    "first_seen_at, last_seen_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        scraped.source,
                        scraped.external_id,
                        scraped.url,
                        scraped.title,
                        scraped.description,
                        scraped.price,
                        scraped.price_per_m2,
                        scraped.area_m2,
                        scraped.rooms,
                        scraped.kind.value,
                        len(scraped.image_urls),
                        scraped.city,
                        scraped.district,
                        scraped.street,
                        ts,
                        ts,
                    ),
                )
                listing_id = cur.lastrowid
            else:
                listing_id = previous.id
                cur.execute(
                    "UPDATE listings SET title = ?, description = ?, "
                    "price = ?, price_per_m2 = ?, area_m2 = ?, "
                    "rooms = ?, kind = ?, photo_count = ?, city = ?, "
                    "district = ?, street = ?, last_seen_at = ? "
                    "WHERE id = ?",
                    (
                        scraped.title,
                        scraped.description,
                        scraped.price,
                        scraped.price_per_m2,
                        scraped.area_m2,
                        scraped.rooms,
                        scraped.kind.value,
                        len(scraped.image_urls),
                        scraped.city,
                        scraped.district,
                        scraped.street,
                        ts,
                        listing_id,
                    ),
                )
                if not previous.is_active:
                    cur.execute(
                        "UPDATE listings SET status = ?, "
                        "removal_reason = NULL, "
                        "consecutive_failures = 0 WHERE id = ?",
                        (ListingStatus.ACTIVE.value, listing_id),
                    )
            self._conn.commit()
            current = self.get_listing(listing_id)
        assert current is not None
        return UpsertOutcome(listing=current, previous=previous)

    def update_price(
        self,
        listing_id: int,
        price: int,
        price_per_m2: int | None,
    ) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE listings SET price = ?, price_per_m2 = ? "
                "WHERE id = ?",
                (price, price_per_m2, listing_id),
            )
            self._conn.commit()

    def record_check(
        self,
        listing_id: int,
        checked_at: datetime,
        status: ListingStatus,
        removal_reason: str | None,
        consecutive_failures: int,
    ) -> None:
        """Store a health-check outcome and count it against the day.

        ``checks_today`` restarts at 1 on the first check of a new day.
        """
        day = checked_at.date().isoformat()
        with self._lock:
            self._conn.execute(
                "UPDATE listings SET "
                "checks_today = CASE WHEN check_day = ? "
                "    THEN checks_today + 1 ELSE 1 END, "
                "check_day = ?, last_checked_at = ?, status = ?, "
                "removal_reason = ?, consecutive_failures = ? "
                "WHERE id = ?",
                (
                    day,
                    day,
                    checked_at.isoformat(),
                    status.value,
                    removal_reason,
                    consecutive_failures,
                    listing_id,
                ),
            )
            self._conn.commit()

    def set_interest_signals(
        self,
        listing_id: int,
        saved_by_count: int,
        is_distressed: bool,
    ) -> bool:
        """Update the counters maintained by downstream collaborators.

        Returns ``False`` when the listing does not exist.
        """
        with self._lock:
            cur = self._conn.execute(
                "UPDATE listings SET saved_by_count = ?, "
                "is_distressed = ? WHERE id = ?",
                (saved_by_count, int(is_distressed), listing_id),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def update_priority_scores(
        self, scores: dict[int, int],
    ) -> None:
        if not scores:
            return
        with self._lock:
            self._conn.executemany(
                "UPDATE listings SET priority_score = ? WHERE id = ?",
                [(score, lid) for lid, score in scores.items()],
            )
            self._conn.commit()

    def active_listings(self) -> list[Listing]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_LISTING_COLUMNS} FROM listings "
                "WHERE status = ? ORDER BY id",
                (ListingStatus.ACTIVE.value,),
            ).fetchall()
        return [_row_to_listing(r) for r in rows]

    def due_candidates(self, limit: int, now: datetime) -> list[Listing]:
        """Active listings with checks left at *now*, most urgent first.

        Listings that used up today's allotment (``Settings.CHECK_TIERS``)
        and low-priority listings checked within
        ``Settings.LOW_PRIORITY_MIN_DAYS`` are filtered out here, so they
        never crowd the scan window.  Never-checked listings (NULL
        ``last_checked_at``) sort first within a priority level.
        """
        tiers = Settings.CHECK_TIERS
        allotment = (
            "CASE "
            + " ".join("WHEN priority_score >= ? THEN ?" for _ in tiers)
            + " ELSE 1 END"
        )
        tier_params = [value for tier in tiers for value in tier]
        lowest_tier = min(threshold for threshold, _ in tiers)
        low_priority_cutoff = now - timedelta(
            days=Settings.LOW_PRIORITY_MIN_DAYS
        )
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_LISTING_COLUMNS} FROM listings "
                "WHERE status = ? "
                "AND (check_day IS NULL OR check_day != ? "
                f"     OR checks_today < {allotment}) "
                "AND (priority_score >= ? OR last_checked_at IS NULL "
                "     OR last_checked_at <= ?) "
                "ORDER BY priority_score DESC, last_checked_at ASC "
                "LIMIT ?",
                (
                    ListingStatus.ACTIVE.value,
                    now.date().isoformat(),
                    *tier_params,
                    lowest_tier,
                    low_priority_cutoff.isoformat(),
                    limit,
                ),
            ).fetchall()
        return [_row_to_listing(r) for r in rows]

    def count_by_status(self) -> dict[str, int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT status, COUNT(*) FROM listings GROUP BY status",
            ).fetchall()
        return {r[0]: r[1] for r in rows}

    # ── Price history ────────────────────────────────────

    def add_price_entry(
        self,
        listing_id: int,
        price: int,
        price_per_m2: int | None,
        recorded_at: datetime,
    ) -> PriceHistoryEntry:
        """Append one price observation."""
        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO price_history "
                "(listing_id, price, price_per_m2, recorded_at) "
                "VALUES (?, ?, ?, ?)",
                (listing_id, price, price_per_m2, recorded_at.isoformat()),
            )
            self._conn.commit()
        return PriceHistoryEntry(
            id=cur.lastrowid,
            listing_id=listing_id,
            price=price,
            price_per_m2=price_per_m2,
            recorded_at=recorded_at,
        )

    def get_price_history(
        self, listing_id: int,
    ) -> list[PriceHistoryEntry]:
        """Return all price entries of a listing, newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, listing_id, price, price_per_m2, recorded_at "
                "FROM price_history WHERE listing_id = ? "
                "ORDER BY recorded_at DESC, id DESC",
                (listing_id,),
            ).fetchall()
        return [
            PriceHistoryEntry(
                id=r[0],
                listing_id=r[1],
                price=r[2],
                price_per_m2=r[3],
                recorded_at=datetime.fromisoformat(r[4]),
            )
            for r in rows
        ]

    def get_price_drops(
        self, since: datetime,
    ) -> list[dict[str, object]]:
        """Price decreases recorded at or after *since*, newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT d.listing_id, l.url, l.title, l.source, "
                "       d.prev_price, d.price, d.recorded_at "
                "FROM ("
                "    SELECT h.id, h.listing_id, h.price, h.recorded_at, "
                "           LAG(h.price) OVER ("
                "               PARTITION BY h.listing_id "
                "               ORDER BY h.recorded_at, h.id"
                "           ) AS prev_price "
                "    FROM price_history h"
                ") d "
                "JOIN listings l ON l.id = d.listing_id "
                "WHERE d.recorded_at >= ? "
                "  AND d.prev_price IS NOT NULL "
                "  AND d.price < d.prev_price "
                "ORDER BY d.recorded_at DESC, d.id DESC",
                (since.isoformat(),),
            ).fetchall()
        return [
            {
                "listing_id": r[0],
                "url": r[1],
                "title": r[2],
                "source": r[3],
                "old_price": r[4],
                "new_price": r[5],
                "drop_percent": round((r[4] - r[5]) / r[4] * 100, 1),
                "recorded_at": datetime.fromisoformat(r[6]),
            }
            for r in rows
        ]

    # ── Fingerprints ─────────────────────────────────────

    def save_fingerprint(
        self, fingerprint: Fingerprint, updated_at: datetime,
    ) -> None:
        """Upsert the fingerprint of one listing."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO fingerprints (listing_id, "
                "address_normalized, city_district, area_range, "
                "rooms_key, fingerprint_hash, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(listing_id) DO UPDATE SET "
                "address_normalized = excluded.address_normalized, "
                "city_district = excluded.city_district, "
                "area_range = excluded.area_range, "
                "rooms_key = excluded.rooms_key, "
                "fingerprint_hash = excluded.fingerprint_hash, "
                "updated_at = excluded.updated_at",
                (
                    fingerprint.listing_id,
                    fingerprint.address_normalized,
                    fingerprint.city_district,
                    fingerprint.area_range,
                    fingerprint.rooms_key,
                    fingerprint.fingerprint_hash,
                    updated_at.isoformat(),
                ),
            )
            self._conn.commit()

    def get_fingerprint(self, listing_id: int) -> Fingerprint | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT listing_id, address_normalized, city_district, "
                "area_range, rooms_key, fingerprint_hash "
                "FROM fingerprints WHERE listing_id = ?",
                (listing_id,),
            ).fetchone()
        if row is None:
            return None
        return Fingerprint(
            listing_id=row[0],
            address_normalized=row[1],
            city_district=row[2],
            area_range=row[3],
            rooms_key=row[4],
            fingerprint_hash=row[5],
        )

    def find_by_fingerprint_hash(
        self,
        fingerprint_hash: str,
        exclude_id: int | None = None,
    ) -> list[Listing]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_prefixed(_LISTING_COLUMNS, 'l')} "
                "FROM fingerprints f "
                "JOIN listings l ON l.id = f.listing_id "
                "WHERE f.fingerprint_hash = ? AND l.id != ? "
                "ORDER BY l.id",
                (fingerprint_hash, exclude_id or -1),
            ).fetchall()
        return [_row_to_listing(r) for r in rows]

    def find_in_area_range(
        self,
        city_district: str,
        min_area: float,
        max_area: float,
        exclude_id: int | None = None,
    ) -> list[Listing]:
        """Listings of one city+district whose area is in a closed range."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_prefixed(_LISTING_COLUMNS, 'l')} "
                "FROM fingerprints f "
                "JOIN listings l ON l.id = f.listing_id "
                "WHERE f.city_district = ? "
                "  AND l.area_m2 BETWEEN ? AND ? "
                "  AND l.id != ? "
                "ORDER BY l.id",
                (city_district, min_area, max_area, exclude_id or -1),
            ).fetchall()
        return [_row_to_listing(r) for r in rows]

    # ── Matches ──────────────────────────────────────────

    def insert_match_if_absent(
        self,
        listing_a: int,
        listing_b: int,
        score: int,
        reasons: list[str],
        created_at: datetime,
    ) -> Match | None:
        """Store a match for the unordered pair unless one exists.

        Returns the new match, or ``None`` when the pair was already
        linked.
        """
        if listing_a == listing_b:
            raise ValueError("a listing cannot match itself")
        primary_id, matched_id = sorted((listing_a, listing_b))
        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO matches (primary_id, matched_id, score, "
                "reasons, created_at) VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(primary_id, matched_id) DO NOTHING",
                (
                    primary_id,
                    matched_id,
                    score,
                    json.dumps(reasons, ensure_ascii=False),
                    created_at.isoformat(),
                ),
            )
            self._conn.commit()
        if cur.rowcount == 0:
            return None
        return Match(
            primary_id=primary_id,
            matched_id=matched_id,
            score=score,
            reasons=list(reasons),
            created_at=created_at,
        )

    def get_matches(self, listing_id: int) -> list[Match]:
        """All matches touching *listing_id*, best score first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT primary_id, matched_id, score, reasons, "
                "confirmed, created_at FROM matches "
                "WHERE primary_id = ? OR matched_id = ? "
                "ORDER BY score DESC, id",
                (listing_id, listing_id),
            ).fetchall()
        return [
            Match(
                primary_id=r[0],
                matched_id=r[1],
                score=r[2],
                reasons=list(json.loads(r[3])),
                confirmed=bool(r[4]),
                created_at=datetime.fromisoformat(r[5]),
            )
            for r in rows
        ]

    def count_matches(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM matches",
            ).fetchone()
        return int(row[0])

    # ── Run reports ──────────────────────────────────────

    def save_run_report(self, report: RunReport) -> RunReport:
        """Persist a run report; returns it with its assigned id."""
        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO run_reports (source, status, "
                "records_count, found, new, updated, invalid, "
                "errors_count, error_sample, duration_ms, started_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    report.source,
                    report.status.value,
                    report.records_count,
                    report.found,
                    report.new,
                    report.updated,
                    report.invalid,
                    report.errors_count,
                    json.dumps(list(report.error_sample), ensure_ascii=False),
                    report.duration_ms,
                    report.started_at.isoformat(),
                ),
            )
            self._conn.commit()
        logger.info(
            "Saved %s run report for %s (%d records)",
            report.status.value,
            report.source,
            report.records_count,
        )
        return dataclasses.replace(report, id=cur.lastrowid)

    def latest_reports(
        self,
        limit: int = 20,
        source: str | None = None,
    ) -> list[RunReport]:
        """Most recent run reports first, optionally for one source."""
        with self._lock:
            if source is None:
                rows = self._conn.execute(
                    f"SELECT {_REPORT_COLUMNS} FROM run_reports "
                    "ORDER BY started_at DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    f"SELECT {_REPORT_COLUMNS} FROM run_reports "
                    "WHERE source = ? "
                    "ORDER BY started_at DESC, id DESC LIMIT ?",
                    (source, limit),
                ).fetchall()
        return [_row_to_report(r) for r in rows]
