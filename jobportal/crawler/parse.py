"""Search-results page parser.

Each `.item_recruit` block is one listing. Fields are read by position
inside the block:

  .corp_name a           company name
  .job_tit a             title (href = detail page)
  .job_condition span    location, experience, education, employment type
  .job_date .date        deadline
  .job_sector            sector text; each <a> inside is one skill tag
  .area_badge .badge     salary badge

Every field has its own extractor and falls back to "" on its own, so one
missing element never costs the rest of the listing.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, List
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from jobportal.core.listing import ParsedListing, clean_text, unique_tags
from jobportal.crawler.fetch import SITE_ROOT

log = logging.getLogger(__name__)

LISTING_SELECTOR = ".item_recruit"
CONDITION_SELECTOR = ".job_condition span"

# order of the .job_condition spans
CONDITION_FIELDS = ("location", "experience", "education", "employment_type")


def _soup(html: str) -> BeautifulSoup:
    """
    Parse HTML into a BeautifulSoup object, preferring 'html.parser' but falling back to 'lxml'.
    """
    try:
        return BeautifulSoup(html, "html.parser")
    except Exception:
        return BeautifulSoup(html, "lxml")


def _first_text(block: Tag, selector: str) -> str:
    el = block.select_one(selector)
    if el is None:
        log.debug("listing has no %s", selector)
        return ""
    return clean_text(el.get_text(" ", strip=True))


# --------- Field extractors --------------------------------------------------

def extract_company(block: Tag, base_url: str) -> str:
    return _first_text(block, ".corp_name a")


def extract_title(block: Tag, base_url: str) -> str:
    return _first_text(block, ".job_tit a")


def extract_link(block: Tag, base_url: str) -> str:
    anchor = block.select_one(".job_tit a")
    if anchor is None:
        log.debug("listing has no title anchor")
        return ""
    href = anchor.get("href")
    if not isinstance(href, str) or not href.strip():
        log.debug("title anchor has no href")
        return ""
    return urljoin(base_url, href.strip())


def _condition(index: int) -> Callable[[Tag, str], str]:
    def extract(block: Tag, base_url: str) -> str:
        spans = block.select(CONDITION_SELECTOR)
        if index >= len(spans):
            log.debug("listing has %d condition fields, wanted #%d", len(spans), index)
            return ""
        return clean_text(spans[index].get_text(" ", strip=True))

    extract.__name__ = f"extract_{CONDITION_FIELDS[index]}"
    return extract


extract_location = _condition(0)
extract_experience = _condition(1)
extract_education = _condition(2)
extract_employment_type = _condition(3)


def extract_deadline(block: Tag, base_url: str) -> str:
    return _first_text(block, ".job_date .date")


def extract_sector(block: Tag, base_url: str) -> str:
    return _first_text(block, ".job_sector")


def extract_salary(block: Tag, base_url: str) -> str:
    return _first_text(block, ".area_badge .badge")


def extract_skills(block: Tag, base_url: str) -> List[str]:
    return unique_tags(a.get_text(" ", strip=True) for a in block.select(".job_sector a"))


FIELD_EXTRACTORS: Dict[str, Callable[[Tag, str], object]] = {
    "company": extract_company,
    "title": extract_title,
    "link": extract_link,
    "location": extract_location,
    "experience": extract_experience,
    "education": extract_education,
    "employment_type": extract_employment_type,
    "deadline": extract_deadline,
    "sector": extract_sector,
    "salary": extract_salary,
    "skills": extract_skills,
}


def _extract_field(name: str, block: Tag, base_url: str):
    try:
        return FIELD_EXTRACTORS[name](block, base_url)
    except Exception as e:
        log.debug("Could not read %s (%s); leaving it empty", name, e)
        return [] if name == "skills" else ""


# --------- Public API --------------------------------------------------------

def iter_listing_blocks(html: str) -> Iterator[Tag]:
    for block in _soup(html or "").select(LISTING_SELECTOR):
        if isinstance(block, Tag):
            yield block


def parse_listing(block: Tag, base_url: str = SITE_ROOT) -> ParsedListing:
    fields = {name: _extract_field(name, block, base_url) for name in FIELD_EXTRACTORS}
    return ParsedListing(**fields)


def parse_listings(html: str, base_url: str = SITE_ROOT) -> List[ParsedListing]:
    """All listings on a page. An empty list means the results ran out."""
    listings: List[ParsedListing] = []
    for idx, block in enumerate(iter_listing_blocks(html)):
        try:
            listings.append(parse_listing(block, base_url))
        except Exception as e:
            log.warning("Skipping listing #%d on page: %s", idx, e)
    return listings
