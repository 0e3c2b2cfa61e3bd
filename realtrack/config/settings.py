# realtrack/config/settings.py

"""Central configuration for the realtrack listing pipeline."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the realtrack listing pipeline."""

    # --- Scraping ---
    REQUEST_DELAY: float = 1.5          # Seconds between requests to one host
    REQUEST_JITTER: float = 0.5         # Random extra delay (0..jitter)
    REQUEST_TIMEOUT: int = 10           # Seconds before a request times out
    MAX_PAGES: int = 5                  # Default page budget per category
    EARLY_STOP_RATIO: float = 0.5       # Page with fewer than ratio*expected ends a category
    THROTTLE_TTL: float = 900.0         # Forget per-host state after this many idle secs
    REPORT_ERROR_SAMPLE: int = 5        # Errors kept in a RunReport

    # --- Validation ---
    MIN_PLAUSIBLE_PRICE: int = 50
    MAX_PLAUSIBLE_PRICE: int = 100_000_000
    SALE_PRICE_BOUNDS: tuple[int, int] = (5_000, 50_000_000)
    RENT_PRICE_BOUNDS: tuple[int, int] = (50, 50_000)
    AREA_BOUNDS: tuple[float, float] = (5.0, 10_000.0)
    DEFAULT_AREA_M2: float = 50.0
    RENT_PRICE_CEILING: int = 5_000     # Below this a mixed-category listing is a rental
    NEGOTIABLE_PRICE_MARKERS: list[str] = [
        "dohodou",
        "dohoda",
        "na vyžiadanie",
        "info v rk",
        "cena v rk",
    ]

    # --- Identity resolution ---
    MATCH_MIN_SCORE: int = 50
    MATCH_AREA_TOLERANCE: float = 0.15  # Broad candidate scan: +/- 15 % area
    FALLBACK_CITY: str = "Slovensko"    # Placeholder for unresolved locations
    ADDRESS_STOP_WORDS: list[str] = [
        "ulica", "ul", "namestie", "nam", "trieda", "tr", "cesta",
    ]

    # --- Scheduling ---
    ACTIVE_SOURCES: list[str] = ["nehnutelnosti"]  # Republish most often
    CHECK_TIERS: list[tuple[int, int]] = [  # (min score, checks per day)
        (80, 3),
        (50, 2),
        (20, 1),
    ]
    LOW_PRIORITY_MIN_DAYS: float = 2.0
    DUE_SCAN_FACTOR: int = 4            # Candidates read per due slot
    SWEEP_BATCH_SIZE: int = 50          # Listings health-checked per sweep
    REMOVAL_PHRASES: list[str] = [
        "predané",
        "predany",
        "uzavreté",
        "uzavrete",
        "nehnuteľnosť bola predaná",
        "inzerát bol vymazaný",
        "inzerát neexistuje",
        "inzerát už nie je aktívny",
        "sold",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "sk-SK,sk;q=0.9,cs;q=0.8,en-US;q=0.7,en;q=0.6",
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }
    IDENTITY_POOL: list[dict[str, str]] = [
        {
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                "AppleWebKit/537.36 (KHTML, like Gecko) "
                "Chrome/131.0.0.0 Safari/537.36"
            ),
            "sec-ch-ua-platform": '"Windows"',
        },
        {
            "User-Agent": (
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
                "AppleWebKit/537.36 (KHTML, like Gecko) "
                "Chrome/131.0.0.0 Safari/537.36"
            ),
            "sec-ch-ua-platform": '"macOS"',
        },
        {
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) "
                "Gecko/20100101 Firefox/133.0"
            ),
            "Accept-Language": "sk,cs;q=0.9,en;q=0.8",
        },
        {
            "User-Agent": (
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_3_1) "
                "AppleWebKit/605.1.15 (KHTML, like Gecko) "
                "Version/17.3.1 Safari/605.1.15"
            ),
            "Accept-Language": "sk-SK,sk;q=0.9",
        },
    ]

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "realtrack" / "config" / "selectors.json"
    CITIES_PATH: Path = Path(
        os.getenv(
            "REALTRACK_CITIES_PATH",
            str(BASE_DIR / "realtrack" / "config" / "cities.json"),
        )
    )
    DB_PATH: Path = Path(
        os.getenv(
            "REALTRACK_DB_PATH",
            str(BASE_DIR / "data" / "realtrack.db"),
        )
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
    CONSOLE_LOG_LEVEL: str = os.getenv(
        "REALTRACK_CONSOLE_LOG_LEVEL", "WARNING"
    ).upper()

    # --- Sources ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "bazos",
            "label": "Bazoš reality",
            "scraper": "realtrack.scrapers.bazos_scraper.BazosScraper",
        },
        {
            "id": "nehnutelnosti",
            "label": "Nehnutelnosti.sk",
            "scraper": (
                "realtrack.scrapers.nehnutelnosti_scraper"
                ".NehnutelnostiScraper"
            ),
        },
        {
            "id": "reality",
            "label": "Reality.sk",
            "scraper": "realtrack.scrapers.reality_scraper.RealityScraper",
        },
    ]
