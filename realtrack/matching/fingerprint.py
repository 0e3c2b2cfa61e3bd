# realtrack/matching/fingerprint.py

"""Coarse identity fingerprints for shortlisting duplicate listings."""

import hashlib
import re

from realtrack.config.settings import Settings
from realtrack.filters.location_resolver import normalize_text
from realtrack.models.listing import Fingerprint, Listing

_POSTCODE_RE = re.compile(r"\b\d{3}\s?\d{2}\b")
_HOUSE_NUMBER_RE = re.compile(r"\b\d+[a-z]?(?:/\d*[a-z]?)?\b")
_NON_WORD_RE = re.compile(r"[^\w\s]")


def normalize_address(address: str | None) -> str:
    """Normalise street text for comparison.

    Lowercases, strips accents, postcodes, house numbers, punctuation
    and common street-type words (``ulica``, ``nám.``...).
    """
    if not address:
        return ""
    text = normalize_text(address)
    text = _POSTCODE_RE.sub(" ", text)
    text = _HOUSE_NUMBER_RE.sub(" ", text)
    text = _NON_WORD_RE.sub(" ", text)
    stop_words = set(Settings.ADDRESS_STOP_WORDS)
    return " ".join(w for w in text.split() if w not in stop_words)


def city_district_key(city: str, district: str | None) -> str:
    """Composite ``city/district`` key; district is empty when unknown."""
    city_part = normalize_text(city)
    district_part = normalize_text(district) if district else ""
    return f"{city_part}/{district_part}"


def area_range(area_m2: float) -> str:
    """Bucket an area into a 10 m² range, e.g. ``62.4`` -> ``"60-70"``."""
    lower = int(area_m2 // 10) * 10
    return f"{lower}-{lower + 10}"


def rooms_key(rooms: int | None) -> str:
    return str(rooms) if rooms else "any"


def fingerprint_hash(
    address_normalized: str,
    city_district: str,
    area_bucket: str,
    rooms: str,
) -> str:
    """MD5 over the four fingerprint fields."""
    payload = "|".join(
        (address_normalized, city_district, area_bucket, rooms)
    )
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def compute_fingerprint(listing: Listing) -> Fingerprint:
    """Derive the fingerprint of a stored listing."""
    address = normalize_address(listing.street)
    composite = city_district_key(listing.city, listing.district)
    bucket = area_range(listing.area_m2)
    rooms = rooms_key(listing.rooms)
    return Fingerprint(
        listing_id=listing.id,
        address_normalized=address,
        city_district=composite,
        area_range=bucket,
        rooms_key=rooms,
        fingerprint_hash=fingerprint_hash(
            address, composite, bucket, rooms,
        ),
    )
