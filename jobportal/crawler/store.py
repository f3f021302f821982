from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobportal.core.errors import ListingProcessingError
from jobportal.core.listing import ParsedListing
from jobportal.db import crud
from jobportal.db.models import Company, Job

log = logging.getLogger(__name__)


class SaveResult(enum.Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"


@dataclass
class SaveOutcome:
    result: SaveResult
    job: Job | None = None
    company_created: bool = False


class CatalogWriter:
    """Turns parsed listings into Company/Job rows on one session.

    Nothing is committed here. Every listing, lookups included, runs in its
    own SAVEPOINT, so a failed listing is undone without touching the rest
    of the run; the caller owns the outer transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def link_exists(self, link: str) -> bool:
        return crud.link_exists(self.session, link)

    def resolve_company(self, name: str) -> tuple[Company, bool]:
        company, created = crud.get_or_create_company(self.session, name)
        if created:
            log.info("New company saved: %s", name)
        return company, created

    def save(self, listing: ParsedListing) -> SaveOutcome:
        if not listing.link:
            raise ListingProcessingError(listing.title, "listing has no link")
        if not listing.company:
            raise ListingProcessingError(listing.title, "listing has no company name")

        # lookups and inserts share one SAVEPOINT; a failed statement undoes
        # this listing only and leaves the run transaction usable
        with self.session.begin_nested():
            return self._save(listing)

    def _save(self, listing: ParsedListing) -> SaveOutcome:
        # existence check first; the unique index on jobs.link decides races
        if self.link_exists(listing.link):
            return SaveOutcome(SaveResult.DUPLICATE)

        company, company_created = self.resolve_company(listing.company)

        try:
            job = crud.insert_job(
                self.session,
                listing.job_fields(),
                company_id=company.id,
                skills=listing.skills,
            )
        except IntegrityError as e:
            if crud.get_job_by_link(self.session, listing.link) is not None:
                log.debug("Lost insert race for %s", listing.link)
                return SaveOutcome(SaveResult.DUPLICATE, company_created=company_created)
            raise ListingProcessingError(listing.title, f"insert rejected: {e.orig}") from e

        return SaveOutcome(SaveResult.CREATED, job=job, company_created=company_created)
