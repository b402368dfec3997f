"""
Persisted records for the crawl pipeline.

CrawlJob            one crawl invocation (status, filters, counters, timestamps)
CatalogCourse       a course, unique on (subject_code, course_number)
CoursePrerequisite  the current prerequisite parse for one course
ParsedPrerequisite  structured guess produced by crawler.prereq

These are pydantic models so the JSON store and the API can dump and
validate them directly.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class CrawlParams(BaseModel):
    term: str | None = None
    subject: str | None = None
    query: str | None = None


class CrawlJob(BaseModel):
    id: str = Field(default_factory=new_id)
    status: JobStatus = JobStatus.PENDING
    term: str | None = None
    subject: str | None = None
    query: str | None = None
    pages_fetched: int = 0
    courses_found: int | None = None
    courses_saved: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_log: str | None = None


class ParsedPrerequisite(BaseModel):
    raw: str
    has_and: bool = False
    has_or: bool = False
    has_parentheses: bool = False
    courses: list[str] = Field(default_factory=list)
    min_credit: int | None = None
    concurrent: bool | None = None


class CatalogCourse(BaseModel):
    id: str = Field(default_factory=new_id)
    subject_code: str
    course_number: str
    title: str
    description: str | None = None
    credit_min: int | None = None
    credit_max: int | None = None
    last_seen_term: str | None = None
    source_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.subject_code, self.course_number)


class CoursePrerequisite(BaseModel):
    id: str = Field(default_factory=new_id)
    course_id: str
    raw_text: str
    parsed: ParsedPrerequisite | None = None
    confidence: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
