# realtrack/models/run_report.py

"""Immutable summary of one crawl run against one source."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RunStatus(str, Enum):
    """Overall outcome of a crawl run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


@dataclass(frozen=True)
class RunReport:
    """Operational record of a single crawl invocation."""

    source: str
    status: RunStatus
    records_count: int
    duration_ms: int
    started_at: datetime
    found: int = 0
    new: int = 0
    updated: int = 0
    invalid: int = 0
    errors_count: int = 0
    error_sample: tuple[str, ...] = field(default_factory=tuple)
    id: int | None = None
