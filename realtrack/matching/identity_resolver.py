# realtrack/matching/identity_resolver.py

"""Link listings that describe the same physical property."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from realtrack.config.settings import Settings
from realtrack.filters.location_resolver import is_unknown_city
from realtrack.matching.fingerprint import compute_fingerprint
from realtrack.matching.scorer import MatchWeights, score_pair
from realtrack.models.listing import Fingerprint, Listing, Match
from realtrack.storage.listing_repository import ListingRepository

logger = logging.getLogger("realtrack.matching")


@dataclass
class Resolution:
    """Outcome of resolving one listing against the catalog."""

    fingerprint: Fingerprint
    candidates: int = 0
    created: list[Match] = field(
        default_factory=lambda: list[Match]()
    )


class IdentityResolver:
    """Shortlist candidates by fingerprint, score them, store matches.

    Listings are never merged: every pair scoring at or above the
    threshold becomes a reviewable :class:`Match` edge.
    """

    def __init__(
        self,
        repository: ListingRepository,
        weights: MatchWeights | None = None,
        min_score: int | None = None,
        unknown_city: str | None = None,
    ) -> None:
        self._repo = repository
        self._unknown_city = unknown_city or Settings.FALLBACK_CITY
        self._weights = weights or MatchWeights()
        self._min_score = (
            Settings.MATCH_MIN_SCORE if min_score is None else min_score
        )

    def find_candidates(
        self, listing: Listing, fingerprint: Fingerprint,
    ) -> list[Listing]:
        """Exact-hash matches plus same city+district within ±tolerance area.

        A listing without a resolved city has no candidates, and is
        never one.
        """
        if is_unknown_city(listing.city, self._unknown_city):
            return []
        exact = self._repo.find_by_fingerprint_hash(
            fingerprint.fingerprint_hash, exclude_id=listing.id,
        )
        tolerance = Settings.MATCH_AREA_TOLERANCE
        broad = self._repo.find_in_area_range(
            fingerprint.city_district,
            listing.area_m2 * (1 - tolerance),
            listing.area_m2 * (1 + tolerance),
            exclude_id=listing.id,
        )

        seen: set[int] = set()
        candidates: list[Listing] = []
        for candidate in exact + broad:
            if candidate.id in seen:
                continue
            if is_unknown_city(candidate.city, self._unknown_city):
                continue
            seen.add(candidate.id)
            candidates.append(candidate)
        return candidates

    def resolve(
        self,
        listing: Listing,
        now: datetime | None = None,
    ) -> Resolution:
        """Refresh *listing*'s fingerprint and link it to its duplicates."""
        ts = now or datetime.now()
        fingerprint = compute_fingerprint(listing)
        self._repo.save_fingerprint(fingerprint, ts)

        resolution = Resolution(fingerprint=fingerprint)
        candidates = self.find_candidates(listing, fingerprint)
        resolution.candidates = len(candidates)

        for candidate in candidates:
            result = score_pair(
                listing, candidate, self._weights, self._unknown_city,
            )
            if result.score < self._min_score:
                continue
            match = self._repo.insert_match_if_absent(
                listing.id,
                candidate.id,
                result.score,
                result.reasons,
                ts,
            )
            if match is not None:
                logger.info(
                    "Matched listing %d with %d (score %d: %s)",
                    listing.id,
                    candidate.id,
                    result.score,
                    ", ".join(result.reasons),
                )
                resolution.created.append(match)

        return resolution
