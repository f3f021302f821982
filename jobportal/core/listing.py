from __future__ import annotations

from pydantic import BaseModel


class ParsedListing(BaseModel):
    """One job listing block as read off a search-results page.

    Every text field defaults to "" so a listing missing a sub-element
    still validates.
    """
    company: str = ""
    title: str = ""
    link: str = ""
    location: str = ""
    experience: str = ""
    education: str = ""
    employment_type: str = ""
    deadline: str = ""
    sector: str = ""
    salary: str = ""
    skills: list[str] = []

    def job_fields(self) -> dict:
        """Column values for a Job row (company and skills handled separately)."""
        return self.model_dump(exclude={"company", "skills"})


def clean_text(text: str | None) -> str:
    return " ".join((text or "").split()).strip()


def unique_tags(tags) -> list[str]:
    """Trim, drop empties and repeats, keep first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for raw in tags or ():
        tag = clean_text(raw)
        if not tag or tag in seen:
            continue
        seen.add(tag)
        out.append(tag)
    return out
