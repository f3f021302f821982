"""Crawl loop: fetch a page, parse it, store new listings, wait, repeat.

The whole run is one database transaction. Each listing is written in its
own SAVEPOINT inside it, so a bad listing is skipped on its own, while a
fatal error (a page that cannot be fetched, a lost connection) rolls back
everything the run wrote. The outer transaction stays open for the full
run, which can be minutes of network round-trips.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from jobportal.config import Settings, load_settings
from jobportal.core.errors import ListingProcessingError
from jobportal.core.listing import ParsedListing
from jobportal.crawler.fetch import SITE_ROOT, Fetcher, RetryPolicy
from jobportal.crawler.parse import parse_listings
from jobportal.crawler.store import CatalogWriter, SaveResult
from jobportal.db.models import Base
from jobportal.db.session import make_engine, make_session_factory, session_scope

log = logging.getLogger(__name__)

DEFAULT_TARGET = 100


@dataclass
class RandomDelay:
    """Sleeps a uniformly random number of seconds in [low, high]."""
    low: float = 2.0
    high: float = 5.0
    sleep: Callable[[float], None] = time.sleep
    uniform: Callable[[float, float], float] = random.uniform

    def __call__(self) -> float:
        seconds = self.uniform(self.low, self.high)
        log.debug("Waiting %.1fs before the next page", seconds)
        self.sleep(seconds)
        return seconds


@dataclass
class CrawlSummary:
    keyword: str
    target: int
    pages_fetched: int = 0
    new_jobs: int = 0
    duplicates: int = 0
    new_companies: int = 0
    failed_listings: int = 0
    saved_links: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _process_listing(writer: CatalogWriter, listing: ParsedListing, summary: CrawlSummary) -> None:
    try:
        outcome = writer.save(listing)
    except (OperationalError, InterfaceError):
        # the store itself is gone; not a per-listing problem
        raise
    except (ListingProcessingError, SQLAlchemyError) as e:
        summary.failed_listings += 1
        log.warning("Skipping listing %r: %s", listing.title, e)
        return

    if outcome.company_created:
        summary.new_companies += 1
    if outcome.result is SaveResult.CREATED:
        summary.new_jobs += 1
        summary.saved_links.append(listing.link)
        log.info("New job saved: %s", listing.title)
    else:
        summary.duplicates += 1
        log.info("Job already exists: %s", listing.title)


def crawl(
    session: Session,
    fetcher: Fetcher,
    keyword: str,
    target: int = DEFAULT_TARGET,
    *,
    max_pages: Optional[int] = None,
    delay: Optional[Callable[[], object]] = None,
    base_url: str = SITE_ROOT,
) -> CrawlSummary:
    """Crawl search results for `keyword` until `target` new jobs are stored.

    Stops early when a page has no listings or after `max_pages` pages.
    Commits once at the end; any error escaping the loop rolls the whole
    run back and is re-raised.
    """
    if target < 1:
        raise ValueError("target must be positive")
    if max_pages is not None and max_pages < 1:
        raise ValueError("max_pages must be positive")

    delay = delay if delay is not None else RandomDelay()
    writer = CatalogWriter(session)
    summary = CrawlSummary(keyword=keyword, target=target)
    page = 1

    try:
        while summary.new_jobs < target:
            log.info("Crawling page %d for %r", page, keyword)
            html = fetcher.fetch_page(keyword, page)
            summary.pages_fetched += 1

            listings = parse_listings(html, base_url)
            if not listings:
                log.info("No more listings on page %d; stopping", page)
                break

            for listing in listings:
                if summary.new_jobs >= target:
                    break
                _process_listing(writer, listing, summary)

            log.info("Page %d done; %d new jobs so far", page, summary.new_jobs)

            if max_pages is not None and page >= max_pages:
                log.info("Reached page limit (%d)", max_pages)
                break
            page += 1
            if summary.new_jobs < target:
                delay()

        session.commit()
    except Exception:
        session.rollback()
        log.exception(
            "Crawl for %r failed on page %d; rolled back %d new jobs",
            keyword, page, summary.new_jobs,
        )
        raise

    log.info(
        "Crawl finished: %d new jobs, %d duplicates, %d new companies, %d skipped",
        summary.new_jobs, summary.duplicates, summary.new_companies, summary.failed_listings,
    )
    return summary


def run_crawl(
    keyword: str,
    target: int = DEFAULT_TARGET,
    *,
    max_pages: Optional[int] = None,
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    fetcher: Optional[Fetcher] = None,
    create_schema: bool = False,
) -> CrawlSummary:
    """Acquire engine, session and fetcher, run one crawl, release them all.

    An engine or fetcher passed in by the caller is left open.
    """
    settings = settings or load_settings()

    own_engine = engine is None
    if engine is None:
        engine = make_engine(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    own_fetcher = fetcher is None
    if fetcher is None:
        fetcher = Fetcher(
            timeout=settings.http_timeout,
            user_agent=settings.user_agent,
            retry=RetryPolicy(max_retries=settings.max_retries),
        )

    try:
        if create_schema:
            Base.metadata.create_all(bind=engine)
        factory = make_session_factory(engine)
        with session_scope(factory) as session:
            return crawl(
                session,
                fetcher,
                keyword,
                target,
                max_pages=max_pages,
                delay=RandomDelay(settings.min_delay, settings.max_delay),
            )
    finally:
        if own_fetcher:
            fetcher.close()
        if own_engine:
            engine.dispose()
