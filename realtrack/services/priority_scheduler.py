# realtrack/services/priority_scheduler.py

"""Re-check priority scores and the daily check cadence."""

import logging
from dataclasses import dataclass
from datetime import datetime

from realtrack.config.settings import Settings
from realtrack.models.listing import Listing, PriceHistoryEntry
from realtrack.storage.listing_repository import ListingRepository

logger = logging.getLogger("realtrack.scheduler")

NEVER_CHECKED_DAYS = 999.0
_SECONDS_PER_DAY = 86_400


@dataclass
class PriorityFactors:
    """Inputs of the priority score of one listing."""

    days_on_market: float
    days_since_last_check: float
    price_change_count: int = 0
    recent_price_drop_percent: float = 0.0
    saved_by_count: int = 0
    is_distressed: bool = False
    has_description: bool = False
    has_photos: bool = False
    source: str = ""


def _days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / _SECONDS_PER_DAY


def calculate_priority_score(factors: PriorityFactors) -> int:
    """Score how urgently a listing should be re-checked (0-100).

    Fresh listings, stale checks, price movement and user interest
    push the score up; long-listed stock pulls it down.
    """
    score = 50.0

    dom = factors.days_on_market
    if dom < 3:
        score += 25
    elif dom < 7:
        score += 15
    elif dom < 14:
        score += 10
    elif dom < 30:
        score += 5
    elif dom > 90:
        score -= 15
    elif dom > 60:
        score -= 10

    stale = factors.days_since_last_check
    if stale > 2:
        score += 20
    elif stale > 1:
        score += 10

    if factors.price_change_count > 0:
        score += 10
        if factors.price_change_count >= 3:
            score += 10
        elif factors.price_change_count >= 2:
            score += 5

    drop = factors.recent_price_drop_percent
    if drop >= 10:
        score += 15
    elif drop >= 5:
        score += 10
    elif drop > 0:
        score += 5

    saved = factors.saved_by_count
    if saved >= 5:
        score += 15
    elif saved >= 3:
        score += 10
    elif saved >= 1:
        score += 5

    if factors.is_distressed:
        score += 10
    if factors.has_description:
        score += 3
    if factors.has_photos:
        score += 2
    if factors.source in Settings.ACTIVE_SOURCES:
        score += 5

    return max(0, min(100, round(score)))


def checks_per_day(score: int) -> int:
    """Daily check allotment for a score; 0 means "every few days"."""
    for threshold, checks in Settings.CHECK_TIERS:
        if score >= threshold:
            return checks
    return 0


def is_due(listing: Listing, now: datetime | None = None) -> bool:
    """Whether *listing* may be health-checked again at *now*.

    Below the lowest tier a listing gets at most one check, and only
    once ``Settings.LOW_PRIORITY_MIN_DAYS`` have passed since the last.
    """
    ts = now or datetime.now()
    if not listing.is_active:
        return False

    done_today = listing.checks_on(ts.date())
    allotment = checks_per_day(listing.priority_score)
    if allotment > 0:
        return done_today < allotment

    if done_today > 0:
        return False
    if listing.last_checked_at is None:
        return True
    return (
        _days_between(listing.last_checked_at, ts)
        >= Settings.LOW_PRIORITY_MIN_DAYS
    )


def extract_factors(
    listing: Listing,
    history: list[PriceHistoryEntry],
    now: datetime | None = None,
) -> PriorityFactors:
    """Derive score inputs from a listing and its newest-first history."""
    ts = now or datetime.now()
    days_since_check = (
        _days_between(listing.last_checked_at, ts)
        if listing.last_checked_at is not None
        else NEVER_CHECKED_DAYS
    )

    drop_percent = 0.0
    if len(history) >= 2:
        latest, previous = history[0].price, history[1].price
        if previous > 0 and latest < previous:
            drop_percent = (previous - latest) / previous * 100

    return PriorityFactors(
        days_on_market=_days_between(listing.first_seen_at, ts),
        days_since_last_check=days_since_check,
        price_change_count=max(0, len(history) - 1),
        recent_price_drop_percent=drop_percent,
        saved_by_count=listing.saved_by_count,
        is_distressed=listing.is_distressed,
        has_description=len(listing.description or "") > 50,
        has_photos=listing.photo_count > 0,
        source=listing.source,
    )


class PriorityScheduler:
    """Keeps stored priority scores fresh and picks the due set."""

    def __init__(self, repository: ListingRepository) -> None:
        self._repo = repository

    def refresh_scores(self, now: datetime | None = None) -> dict[int, int]:
        """Recompute the score of every active listing.

        Returns the new score per listing id; only changed scores are
        written back.
        """
        ts = now or datetime.now()
        scores: dict[int, int] = {}
        changed: dict[int, int] = {}
        for listing in self._repo.active_listings():
            history = self._repo.get_price_history(listing.id)
            score = calculate_priority_score(
                extract_factors(listing, history, ts)
            )
            scores[listing.id] = score
            if score != listing.priority_score:
                changed[listing.id] = score

        self._repo.update_priority_scores(changed)
        logger.info(
            "Refreshed priorities of %d listings (%d changed)",
            len(scores),
            len(changed),
        )
        return scores

    def select_due(
        self,
        batch_size: int,
        now: datetime | None = None,
    ) -> list[Listing]:
        """Up to *batch_size* due listings, most urgent first."""
        ts = now or datetime.now()
        candidates = self._repo.due_candidates(
            batch_size * Settings.DUE_SCAN_FACTOR, ts,
        )
        due = [c for c in candidates if is_due(c, ts)][:batch_size]
        logger.info(
            "Selected %d due listings from %d candidates",
            len(due),
            len(candidates),
        )
        return due
