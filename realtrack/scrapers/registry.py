# realtrack/scrapers/registry.py

"""Look up and instantiate source scrapers from ``Settings.AVAILABLE_SOURCES``."""

import importlib
from typing import Any

from realtrack.config.settings import Settings
from realtrack.filters.location_resolver import LocationResolver
from realtrack.scrapers.base_scraper import BaseScraper


def load_scraper_class(dotted_path: str) -> type[Any]:
    """Dynamically import a scraper class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def source_config(source_id: str) -> dict[str, str]:
    """Return the registry entry for *source_id*.

    Raises ``KeyError`` for unknown sources.
    """
    for source in Settings.AVAILABLE_SOURCES:
        if source["id"] == source_id:
            return source
    raise KeyError(f"Unknown source: {source_id}")


def build_scraper(
    source_id: str,
    resolver: LocationResolver | None = None,
) -> BaseScraper:
    """Instantiate the scraper registered for *source_id*."""
    scraper_cls = load_scraper_class(source_config(source_id)["scraper"])
    scraper: BaseScraper = scraper_cls(resolver=resolver)
    return scraper
