# realtrack/config/logging_config.py

"""Per-command run logging for realtrack.

Every CLI invocation writes one log file inside ``logs/`` named after
the command and its launch time (``logs/crawl_20260214_153045.log``,
``logs/sweep_20260214_160000.log``), so scheduled crawls and sweeps can
be told apart on disk.  Records in the file carry a run id of the same
shape, which keeps lines traceable after files are concatenated or
shipped elsewhere.

Health sweeps run one thread per source domain, so the thread name in
each record identifies which host it came from.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from realtrack.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(run_id)s | %(threadName)s | "
    "%(name)s | %(module)s:%(funcName)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RunContextFilter(logging.Filter):
    """Stamp every record with the id of the current run."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        return True


def _current_log_file(logger: logging.Logger) -> Path | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def setup_logging(command: str | None = None) -> Path:
    """Initialise the ``realtrack`` logger for one CLI run.

    Args:
        command: CLI command being run; names the log file and the run
            id.  Defaults to ``"run"``.

    Returns:
        The path of this run's log file.  When logging is already set
        up, the existing file is returned and nothing is added.
    """
    root_logger = logging.getLogger("realtrack")
    root_logger.setLevel(logging.DEBUG)

    existing = _current_log_file(root_logger)
    if existing is not None:
        return existing

    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_id = f"{command or 'run'}_{timestamp}"
    log_file = logs_dir / f"{run_id}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(RunContextFilter(run_id))
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(Settings.CONSOLE_LOG_LEVEL)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info(
        "Logging initialised for %s, log file: %s", run_id, log_file,
    )

    return log_file
