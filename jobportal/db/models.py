from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Integer,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- SQLAlchemy base ---------------------------------------------------------

class Base(DeclarativeBase):
    """Declarative base for all models."""
    pass


# --- Models ------------------------------------------------------------------

class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(primary_key=True)
    # Natural key: one row per company name
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    industry: Mapped[Optional[str]] = mapped_column(String(200))
    size: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[Optional[str]] = mapped_column(String(300))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Relationships
    jobs: Mapped[list[Job]] = relationship(back_populates="company", passive_deletes=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Company id={self.id} name={self.name!r}>"


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Natural key: the posting's source URL
    link: Mapped[str] = mapped_column(String(600), nullable=False, unique=True, index=True)

    # Company link (weak reference; a deleted company leaves its jobs behind)
    company_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL"), index=True
    )
    company: Mapped[Optional[Company]] = relationship(back_populates="jobs")

    # Listing fields, stored as the text the source shows
    title: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    location: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    experience: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    education: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    employment_type: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    deadline: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    sector: Mapped[str] = mapped_column(String(600), nullable=False, default="")
    salary: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Bookkeeping
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Relationships
    skills: Mapped[list["JobSkill"]] = relationship(
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobSkill.position",
    )

    @property
    def skill_names(self) -> list[str]:
        return [s.skill for s in self.skills]

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Job id={self.id} link={self.link!r} title={self.title!r}>"


class JobSkill(Base):
    """Ordered skill tags shown on a listing."""

    __tablename__ = "job_skills"
    __table_args__ = (UniqueConstraint("job_id", "skill", name="uq_job_skill"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    job: Mapped["Job"] = relationship(back_populates="skills")

    skill: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<JobSkill job_id={self.job_id} skill={self.skill!r} position={self.position}>"


__all__ = [
    "Base",
    "Company",
    "Job",
    "JobSkill",
]
