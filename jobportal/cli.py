# jobportal/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

from jobportal.config import coalesce_database_url, load_settings
from jobportal.crawler.run import DEFAULT_TARGET, run_crawl

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="jobportal-crawl",
        description="Crawl job search results and store new Jobs/Companies",
    )
    ap.add_argument("keyword", help="Search keyword, e.g. 'backend'")
    ap.add_argument("--target", type=_positive_int, default=DEFAULT_TARGET,
                    help=f"Stop after this many new jobs (default {DEFAULT_TARGET})")
    ap.add_argument("--max-pages", type=_positive_int, default=None,
                    help="Stop after this many result pages")
    ap.add_argument("--min-delay", type=float, default=None,
                    help="Minimum seconds between page fetches (env JOBPORTAL_MIN_DELAY)")
    ap.add_argument("--max-delay", type=float, default=None,
                    help="Maximum seconds between page fetches (env JOBPORTAL_MAX_DELAY)")
    ap.add_argument("--database-url", default=None,
                    help="SQLAlchemy URL (env JOBPORTAL_DATABASE_URL / DATABASE_URL)")
    ap.add_argument("--init-db", action="store_true",
                    help="Create missing tables before crawling")
    ap.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, default=None,
                    help="Logging level (env JOBPORTAL_LOG_LEVEL, default INFO)")
    ap.add_argument("--json", action="store_true",
                    help="Print the run summary as JSON on stdout")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings()
    except ValueError as e:
        parser.error(str(e))

    level = args.log_level or settings.log_level
    if level not in LOG_LEVELS:
        parser.error(f"JOBPORTAL_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    log = logging.getLogger("jobportal")

    overrides: dict = {}
    if args.database_url:
        overrides["database_url"] = coalesce_database_url(args.database_url)
    if args.min_delay is not None:
        overrides["min_delay"] = args.min_delay
    if args.max_delay is not None:
        overrides["max_delay"] = args.max_delay
    if overrides:
        settings = replace(settings, **overrides)
    if settings.max_delay < settings.min_delay:
        settings = replace(settings, max_delay=settings.min_delay)

    try:
        summary = run_crawl(
            args.keyword,
            args.target,
            max_pages=args.max_pages,
            settings=settings,
            create_schema=args.init_db,
        )
    except Exception as e:
        log.error("Crawl aborted: %s", e)
        return 1

    if args.json:
        print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    # When executed as `python -m jobportal.cli ...`
    sys.exit(main())
