from .fetch import Fetcher, RetryPolicy, search_url, is_transient_error, linear_backoff
from .parse import parse_listing, parse_listings, iter_listing_blocks
from .store import CatalogWriter, SaveOutcome, SaveResult
from .run import CrawlSummary, RandomDelay, crawl, run_crawl

__all__ = [
    "Fetcher",
    "RetryPolicy",
    "search_url",
    "is_transient_error",
    "linear_backoff",
    "parse_listing",
    "parse_listings",
    "iter_listing_blocks",
    "CatalogWriter",
    "SaveOutcome",
    "SaveResult",
    "CrawlSummary",
    "RandomDelay",
    "crawl",
    "run_crawl",
]
