# realtrack/matching/scorer.py

"""Pairwise similarity scoring between two listings."""

from dataclasses import dataclass, field

from realtrack.filters.location_resolver import is_unknown_city, normalize_text
from realtrack.matching.fingerprint import normalize_address
from realtrack.models.listing import Listing


@dataclass(frozen=True)
class MatchWeights:
    """Point weights of the similarity score.

    The defaults are an empirical starting calibration and sum to 100
    when every signal fires.
    """

    same_city: int = 20
    same_district: int = 15
    address_exact: int = 40
    address_contains: int = 25
    address_overlap: int = 15
    area_close: int = 15
    area_near: int = 10
    same_rooms: int = 10
    overlap_ratio: float = 0.5
    area_close_ratio: float = 0.05
    area_near_ratio: float = 0.10


@dataclass
class MatchScore:
    """Score (0-100) plus the human-readable reasons behind it."""

    score: int
    reasons: list[str] = field(
        default_factory=lambda: list[str]()
    )


def _address_points(
    target: str, other: str, weights: MatchWeights,
) -> tuple[int, str | None]:
    """Points and reason for the normalised address comparison."""
    if not target or not other:
        return 0, None
    if target == other:
        return weights.address_exact, "identical address"
    if target in other or other in target:
        return weights.address_contains, "similar address (one contains the other)"

    words_target = target.split()
    words_other = other.split()
    overlap = sum(1 for w in words_target if w in words_other)
    ratio = overlap / max(len(words_target), len(words_other))
    if ratio > weights.overlap_ratio:
        return (
            weights.address_overlap,
            f"partially similar address ({ratio:.0%} shared words)",
        )
    return 0, None


def score_pair(
    target: Listing,
    candidate: Listing,
    weights: MatchWeights | None = None,
    unknown_city: str | None = None,
) -> MatchScore:
    """Score how likely *candidate* describes the same unit as *target*.

    Different cities short-circuit to a score of 0, and so does a
    listing whose city never resolved (*unknown_city*, by default
    ``Settings.FALLBACK_CITY``): two such listings may lie anywhere in
    the country.
    """
    w = weights or MatchWeights()

    if is_unknown_city(target.city, unknown_city) or is_unknown_city(
        candidate.city, unknown_city
    ):
        return MatchScore(score=0, reasons=["unknown city"])

    if normalize_text(target.city) != normalize_text(candidate.city):
        return MatchScore(score=0, reasons=["different city"])

    score = w.same_city
    reasons = ["same city"]

    if (
        target.district
        and candidate.district
        and normalize_text(target.district)
        == normalize_text(candidate.district)
    ):
        score += w.same_district
        reasons.append("same district")

    points, reason = _address_points(
        normalize_address(target.street),
        normalize_address(candidate.street),
        w,
    )
    if reason:
        score += points
        reasons.append(reason)

    if target.area_m2 > 0:
        area_diff = (
            abs(target.area_m2 - candidate.area_m2) / target.area_m2
        )
        if area_diff < w.area_close_ratio:
            score += w.area_close
            reasons.append(f"same area (±{w.area_close_ratio:.0%})")
        elif area_diff < w.area_near_ratio:
            score += w.area_near
            reasons.append(f"similar area (±{w.area_near_ratio:.0%})")

    if (
        target.rooms is not None
        and candidate.rooms is not None
        and target.rooms == candidate.rooms
    ):
        score += w.same_rooms
        reasons.append("same room count")

    return MatchScore(score=max(0, min(100, score)), reasons=reasons)
