# realtrack/filters/location_resolver.py

"""Decompose free-form location text into city / district / street."""

import json
import logging
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from realtrack.config.settings import Settings

logger = logging.getLogger("realtrack.location")

_POSTCODE_RE = re.compile(r"\b\d{3}\s?\d{2}\b")
_CITY_DISTRICT_SPLIT_RE = re.compile(r"\s*-\s*")


def strip_diacritics(text: str) -> str:
    """Remove combining accents (``Košice`` -> ``Kosice``)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(
        ch for ch in decomposed if not unicodedata.combining(ch)
    )


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and collapse whitespace."""
    lowered = strip_diacritics(text).lower()
    return " ".join(lowered.split())


def is_unknown_city(city: str, placeholder: str | None = None) -> bool:
    """Whether *city* is empty or the unresolved-location placeholder."""
    unknown = normalize_text(placeholder or Settings.FALLBACK_CITY)
    return normalize_text(city) in ("", unknown)


@dataclass(frozen=True)
class Location:
    """Resolved location of a listing."""

    city: str
    district: str | None = None
    street: str | None = None


class CityTable:
    """Versioned lookup table of known cities and city districts.

    Keys are normalised (lowercase, no accents); values are the
    canonical display names.  The table is loaded from JSON so source
    drift can be handled by editing data rather than code.
    """

    def __init__(
        self,
        cities: dict[str, str],
        districts: dict[str, tuple[str, str]],
        fallback_city: str,
        version: str = "",
    ) -> None:
        self.cities = {normalize_text(k): v for k, v in cities.items()}
        self.districts = {
            normalize_text(k): v for k, v in districts.items()
        }
        self.fallback_city = fallback_city
        self.version = version
        # Longest keys first so "nove mesto nad vahom" wins over "nove mesto"
        self._search_keys: list[str] = sorted(
            set(self.cities) | set(self.districts),
            key=len,
            reverse=True,
        )

    @classmethod
    def load(cls, path: Path | None = None) -> "CityTable":
        """Load a table from *path* (defaults to ``Settings.CITIES_PATH``)."""
        source = path or Settings.CITIES_PATH
        with open(source, encoding="utf-8") as f:
            raw: dict[str, Any] = json.load(f)
        districts: dict[str, tuple[str, str]] = {
            key: (str(entry["city"]), str(entry["district"]))
            for key, entry in raw.get("districts", {}).items()
        }
        table = cls(
            cities=dict(raw.get("cities", {})),
            districts=districts,
            fallback_city=str(
                raw.get("fallback_city", Settings.FALLBACK_CITY)
            ),
            version=str(raw.get("version", "")),
        )
        logger.debug(
            "Loaded city table %s (%d cities, %d districts) from %s",
            table.version,
            len(table.cities),
            len(table.districts),
            source,
        )
        return table

    def lookup_city(self, text: str) -> str | None:
        """Exact lookup of a normalised segment in the city list."""
        return self.cities.get(normalize_text(text))

    def lookup_district(self, text: str) -> tuple[str, str] | None:
        """Exact lookup of a normalised segment in the district list."""
        return self.districts.get(normalize_text(text))

    def search(self, text: str) -> Location | None:
        """Find the longest known city or district mentioned in *text*."""
        haystack = normalize_text(text)
        if not haystack:
            return None
        for key in self._search_keys:
            if re.search(rf"(?<!\w){re.escape(key)}(?!\w)", haystack):
                if key in self.cities:
                    return Location(city=self.cities[key])
                city, district = self.districts[key]
                return Location(city=city, district=district)
        return None


class LocationResolver:
    """Resolve address text, URL and title into a :class:`Location`.

    Sources are consulted in priority order: address segments, URL
    path segments, then the listing title.  When nothing matches the
    table's fallback city is used and district/street stay ``None``.
    """

    def __init__(self, table: CityTable | None = None) -> None:
        self.table = table or CityTable.load()

    def _match_segment(self, segment: str) -> Location | None:
        """Try to read a city, ``City-District`` or district from a segment."""
        cleaned = _POSTCODE_RE.sub("", segment).strip()
        if not cleaned:
            return None

        city = self.table.lookup_city(cleaned)
        if city:
            return Location(city=city)

        parts = [
            p for p in _CITY_DISTRICT_SPLIT_RE.split(cleaned) if p
        ]
        if len(parts) > 1:
            head_city = self.table.lookup_city(parts[0])
            if head_city:
                tail = " ".join(parts[1:])
                known = self.table.lookup_district(tail)
                if known and known[0] == head_city:
                    return Location(city=head_city, district=known[1])
                if not any(ch.isdigit() for ch in tail):
                    return Location(city=head_city, district=tail.strip())
                return Location(city=head_city)

        district = self.table.lookup_district(cleaned)
        if district:
            return Location(city=district[0], district=district[1])
        # e.g. "Bratislava II", "okres Senec"
        return self.table.search(cleaned)

    def _from_address(
        self, address: str,
    ) -> tuple[Location | None, str | None]:
        """Resolve comma-separated address text; returns (location, street)."""
        segments = [s.strip() for s in address.split(",") if s.strip()]
        city: str | None = None
        district: str | None = None
        unused: list[str] = []

        for segment in segments:
            hit = self._match_segment(segment)
            if hit is None:
                unused.append(segment)
                continue
            if city is None:
                city = hit.city
            if district is None and hit.district and hit.city == city:
                district = hit.district

        street: str | None = None
        for segment in unused:
            candidate = _POSTCODE_RE.sub("", segment).strip()
            if any(ch.isalpha() for ch in candidate):
                street = candidate
                break

        if city is None:
            return None, street
        return Location(city=city, district=district), street

    def _from_url(self, url: str) -> Location | None:
        """Search the URL path (slugs turned into words) for a location."""
        path = unquote(urlparse(url).path)
        words = " ".join(
            seg.replace("-", " ").replace("_", " ")
            for seg in path.split("/")
            if seg
        )
        return self.table.search(words)

    def resolve(
        self,
        address: str | None = None,
        url: str | None = None,
        title: str | None = None,
    ) -> Location:
        """Resolve the best location for a listing."""
        street: str | None = None
        found: Location | None = None

        if address:
            found, street = self._from_address(address)
        if found is None and url:
            found = self._from_url(url)
        if found is None and title:
            found = self.table.search(title)

        if found is None:
            logger.debug(
                "No known city in address=%r url=%r title=%r",
                address,
                url,
                title,
            )
            return Location(
                city=self.table.fallback_city, street=street,
            )
        return Location(
            city=found.city, district=found.district, street=street,
        )
