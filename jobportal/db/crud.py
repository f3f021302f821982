from typing import Iterable, Optional, Sequence, Union

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobportal.core.errors import CatalogError, CompanyNotFound, DuplicateJobLink, JobNotFound
from jobportal.core.listing import unique_tags
from jobportal.db.models import Company, Job, JobSkill

# Columns an administrative edit may touch
EDITABLE_JOB_FIELDS = {
    "company_id",
    "title",
    "link",
    "location",
    "experience",
    "education",
    "employment_type",
    "deadline",
    "sector",
    "salary",
}


def _skill_rows(skills: Optional[Iterable[str]]) -> list[JobSkill]:
    return [JobSkill(skill=tag, position=i) for i, tag in enumerate(unique_tags(skills))]


def _replace_job_skills(session: Session, job: Job, skills: Optional[Iterable[str]]) -> None:
    """
    Replace skills for a job with the provided iterable.
    If skills is None, do nothing (keeps existing values).
    """
    if skills is None:
        return

    # Flush the removals first so re-adding the same tag cannot hit uq_job_skill
    job.skills.clear()
    session.flush()
    job.skills.extend(_skill_rows(skills))


# --- Companies ---------------------------------------------------------------

def find_company(session: Session, name: str) -> Optional[Company]:
    return session.execute(select(Company).where(Company.name == name)).scalar_one_or_none()


def get_or_create_company(session: Session, name: str, **attrs) -> tuple[Company, bool]:
    """
    Resolve a Company row by name, creating it if missing.
    Returns (company, created). Does not commit.

    The insert runs in a SAVEPOINT; losing a race on the unique name
    re-reads the row the other writer committed.
    """
    company = find_company(session, name)
    if company is not None:
        return company, False

    try:
        with session.begin_nested():
            company = Company(name=name, **attrs)
            session.add(company)
            session.flush()  # ensure company.id
    except IntegrityError:
        company = find_company(session, name)
        if company is None:
            raise
        return company, False
    return company, True


def create_company(
    session: Session,
    name: str,
    *,
    industry: Optional[str] = None,
    size: Optional[str] = None,
    location: Optional[str] = None,
) -> Company:
    company, created = get_or_create_company(
        session, name, industry=industry, size=size, location=location
    )
    if not created:
        session.rollback()
        raise CatalogError(f"company {name!r} already exists")
    session.commit()
    return company


# --- Jobs --------------------------------------------------------------------

def get_job_by_id(session: Session, job_id: int) -> Optional[Job]:
    return session.get(Job, job_id)


def get_job_by_link(session: Session, link: str) -> Optional[Job]:
    return session.execute(select(Job).where(Job.link == link)).scalar_one_or_none()


def link_exists(session: Session, link: str) -> bool:
    stmt = select(Job.id).where(Job.link == link).limit(1)
    return session.execute(stmt).first() is not None


def insert_job(
    session: Session,
    job_data: dict,
    *,
    company_id: Optional[int] = None,
    skills: Optional[Iterable[str]] = None,
) -> Job:
    """
    Insert a Job (and its skill rows) inside a SAVEPOINT. Does not commit.

    Raises IntegrityError when the link is already taken; the savepoint is
    rolled back so the surrounding transaction stays usable.
    """
    job = Job(**job_data)
    job.company_id = company_id
    job.skills = _skill_rows(skills)
    with session.begin_nested():
        session.add(job)
        session.flush()  # get job.id
    return job


def create_job(session: Session, company_id: int, job_data: dict) -> Job:
    """
    Administrative create. Requires an existing company and an unused link.
    - skills (list[str]) are written as ordered job_skills rows
    """
    job_data = dict(job_data)
    skills = job_data.pop("skills", None)
    link = job_data.get("link")
    if not link:
        raise ValueError("create_job requires 'link' in job_data")

    if session.get(Company, company_id) is None:
        raise CompanyNotFound(company_id)

    if link_exists(session, link):
        raise DuplicateJobLink(link)

    try:
        job = insert_job(session, job_data, company_id=company_id, skills=skills)
    except IntegrityError:
        if get_job_by_link(session, link) is None:
            raise
        session.rollback()
        raise DuplicateJobLink(link) from None

    session.commit()
    session.refresh(job)
    return job


def update_job(session: Session, job_id: int, changes: dict) -> Job:
    """
    Apply an administrative edit. Unknown keys are ignored.
    Moving a job onto a link another job already has is rejected.
    """
    job = session.get(Job, job_id)
    if job is None:
        raise JobNotFound(job_id)

    changes = dict(changes)
    skills = changes.pop("skills", None)

    new_link = changes.get("link")
    if new_link and new_link != job.link:
        other = get_job_by_link(session, new_link)
        if other is not None and other.id != job.id:
            raise DuplicateJobLink(new_link)

    new_company = changes.get("company_id")
    if new_company is not None and session.get(Company, new_company) is None:
        raise CompanyNotFound(new_company)

    for key, value in changes.items():
        if key not in EDITABLE_JOB_FIELDS or value is None:
            continue
        setattr(job, key, value)

    _replace_job_skills(session, job, skills)

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        if new_link:
            raise DuplicateJobLink(new_link) from None
        raise
    session.refresh(job)
    return job


def record_view(session: Session, job_id: int) -> int:
    """Atomically bump the view counter and return the new count."""
    result = session.execute(
        update(Job).where(Job.id == job_id).values(views=Job.views + 1)
    )
    if result.rowcount == 0:
        session.rollback()
        raise JobNotFound(job_id)
    session.commit()
    return session.execute(select(Job.views).where(Job.id == job_id)).scalar_one()


def delete_job(session: Session, job_id: int) -> bool:
    # skill rows go with the job through the delete-orphan cascade
    job = session.get(Job, job_id)
    if job:
        session.delete(job)
        session.commit()
        return True
    session.rollback()
    return False


def count_jobs(session: Session) -> int:
    return session.execute(select(func.count()).select_from(Job)).scalar_one()


def count_companies(session: Session) -> int:
    return session.execute(select(func.count()).select_from(Company)).scalar_one()


# Sortable columns for find_jobs
JOB_SORT_COLUMNS = {
    "created_at": Job.created_at,
    "views": Job.views,
    "title": Job.title,
    "deadline": Job.deadline,
}


def _split_skills(skills: Union[str, Iterable[str], None]) -> list[str]:
    if skills is None:
        return []
    if isinstance(skills, str):
        skills = skills.split(",")
    return unique_tags(skills)


def find_jobs(
    session: Session,
    *,
    keyword: Optional[str] = None,
    company_name: Optional[str] = None,
    location: Optional[str] = None,
    experience: Optional[str] = None,
    salary: Optional[str] = None,
    skills: Union[str, Iterable[str], None] = None,
    sort_by: str = "created_at",
    descending: bool = True,
    skip: int = 0,
    limit: int = 20,
) -> Sequence[Job]:
    """
    Catalog search.
    - keyword: case-insensitive substring of title or sector
    - company_name: case-insensitive substring of the company's name
    - location / experience / salary: exact match
    - skills: list or comma-separated string; a job matches if it has any of them
    """
    if sort_by not in JOB_SORT_COLUMNS:
        raise ValueError(f"cannot sort jobs by {sort_by!r}")

    stmt = select(Job)
    if keyword:
        stmt = stmt.where(
            or_(
                Job.title.icontains(keyword, autoescape=True),
                Job.sector.icontains(keyword, autoescape=True),
            )
        )
    if company_name:
        stmt = stmt.where(Job.company.has(Company.name.icontains(company_name, autoescape=True)))
    if location:
        stmt = stmt.where(Job.location == location)
    if experience:
        stmt = stmt.where(Job.experience == experience)
    if salary:
        stmt = stmt.where(Job.salary == salary)
    wanted = _split_skills(skills)
    if wanted:
        stmt = stmt.where(Job.skills.any(JobSkill.skill.in_(wanted)))

    column = JOB_SORT_COLUMNS[sort_by]
    stmt = stmt.order_by(column.desc() if descending else column.asc(), Job.id.desc())
    stmt = stmt.offset(max(0, skip)).limit(limit)
    return session.execute(stmt).scalars().all()


def skill_counts(session: Session) -> list[tuple[str, int]]:
    """Number of jobs per skill tag, most common first."""
    count = func.count(JobSkill.job_id).label("count")
    stmt = (
        select(JobSkill.skill, count)
        .group_by(JobSkill.skill)
        .order_by(count.desc(), JobSkill.skill.asc())
    )
    return [(skill, n) for skill, n in session.execute(stmt).all()]
