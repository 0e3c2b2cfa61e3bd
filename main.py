# main.py

"""Entry point for the realtrack listing tracker (headless CLI)."""

import argparse
import asyncio
import logging
import sys

from realtrack.config.logging_config import setup_logging
from realtrack.config.settings import Settings

logger = logging.getLogger("realtrack.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(s["id"] for s in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="realtrack",
        description="Slovak real-estate listing tracker.",
        epilog=f"Available sources: {valid_ids}",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    crawl = commands.add_parser(
        "crawl", help="Crawl listing pages and store what is found.",
    )
    crawl.add_argument(
        "-s",
        "--source",
        default=None,
        help="Comma-separated source IDs (default: all).",
    )
    crawl.add_argument(
        "-p",
        "--pages",
        type=int,
        default=None,
        help=f"Pages per category (default: {Settings.MAX_PAGES}).",
    )

    sweep = commands.add_parser(
        "sweep", help="Health-check the listings that are due.",
    )
    sweep.add_argument(
        "-b",
        "--batch-size",
        type=int,
        default=None,
        dest="batch_size",
        help=(
            "Listings to check "
            f"(default: {Settings.SWEEP_BATCH_SIZE})."
        ),
    )

    commands.add_parser(
        "priorities", help="Recompute re-check priority scores.",
    )

    reports = commands.add_parser(
        "reports", help="List the latest crawl run reports.",
    )
    reports.add_argument(
        "-n",
        "--limit",
        type=int,
        default=20,
        help="Number of reports to show (default: 20).",
    )
    reports.add_argument(
        "-s",
        "--source",
        default=None,
        help="Only show reports of this source.",
    )
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Run a parsed command and return its exit code."""
    from realtrack.cli import runner

    if args.command == "crawl":
        return asyncio.run(runner.cli_crawl(args.source, args.pages))
    if args.command == "sweep":
        return asyncio.run(runner.cli_sweep(args.batch_size))
    if args.command == "priorities":
        return runner.run_priorities()
    return runner.run_reports(limit=args.limit, source=args.source)


def run(argv: list[str] | None = None) -> int:
    """Parse *argv* and dispatch the command it names."""
    return _dispatch(_build_parser().parse_args(argv))


def main() -> None:
    """Parse arguments, set up the command's run log and run it."""
    args = _build_parser().parse_args()
    log_file = setup_logging(args.command)
    logger.info("realtrack %s starting, log file: %s", args.command, log_file)
    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error during %s", args.command, exc_info=True)
        raise
    finally:
        logger.info("realtrack shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
