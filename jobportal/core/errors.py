from __future__ import annotations

from typing import Optional


class CrawlerError(Exception):
    """Base class for errors raised by the crawler and the catalog store."""


class FetchError(CrawlerError):
    """A page request failed for good (non-retryable, or retries exhausted)."""

    def __init__(self, url: str, message: str, *, status: Optional[int] = None, attempts: int = 1):
        super().__init__(f"{message} (url={url}, status={status}, attempts={attempts})")
        self.url = url
        self.status = status
        self.attempts = attempts


class ListingProcessingError(CrawlerError):
    """One parsed listing could not be turned into stored records."""

    def __init__(self, title: str, message: str):
        super().__init__(f"{message} (title={title!r})")
        self.title = title


class CatalogError(CrawlerError):
    pass


class DuplicateJobLink(CatalogError):
    def __init__(self, link: str):
        super().__init__(f"job with link {link!r} already exists")
        self.link = link


class CompanyNotFound(CatalogError):
    def __init__(self, company_id: int):
        super().__init__(f"company {company_id} not found")
        self.company_id = company_id


class JobNotFound(CatalogError):
    def __init__(self, job_id: int):
        super().__init__(f"job {job_id} not found")
        self.job_id = job_id


__all__ = [
    "CrawlerError",
    "FetchError",
    "ListingProcessingError",
    "CatalogError",
    "DuplicateJobLink",
    "CompanyNotFound",
    "JobNotFound",
]
