from .listing import ParsedListing, clean_text, unique_tags
from .errors import (
    CrawlerError,
    FetchError,
    ListingProcessingError,
    CatalogError,
    DuplicateJobLink,
    CompanyNotFound,
    JobNotFound,
)

__all__ = [
    "ParsedListing",
    "clean_text",
    "unique_tags",
    "CrawlerError",
    "FetchError",
    "ListingProcessingError",
    "CatalogError",
    "DuplicateJobLink",
    "CompanyNotFound",
    "JobNotFound",
]
