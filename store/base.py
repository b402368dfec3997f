"""
Job store interface.

The crawler only needs record-level operations: create/update a job,
upsert a course on its natural key (subject_code, course_number), and
find/create/update the single current prerequisite of a course. The read
side (search, get) backs the HTTP API.

Implementations must serialise individual record writes; several crawl
jobs may write concurrently.
"""

from datetime import datetime
from typing import Optional, Protocol

from crawler.models import (
    CatalogCourse,
    CoursePrerequisite,
    CrawlJob,
    CrawlParams,
    ParsedPrerequisite,
)

# fields a job update may touch
JOB_FIELDS = frozenset({
    "status", "started_at", "finished_at",
    "pages_fetched", "courses_found", "courses_saved", "error_log",
})


class TerminalJobError(RuntimeError):
    """Raised when a COMPLETED or FAILED job is updated."""


class JobStore(Protocol):
    def create_job(self, params: CrawlParams) -> CrawlJob: ...

    def update_job(self, job_id: str, **fields) -> CrawlJob: ...

    def get_job(self, job_id: str) -> Optional[CrawlJob]: ...

    def upsert_course(
        self,
        subject_code: str,
        course_number: str,
        *,
        title: str,
        description: Optional[str] = None,
        credit_min: Optional[int] = None,
        credit_max: Optional[int] = None,
        last_seen_term: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> CatalogCourse: ...

    def get_course(self, course_id: str) -> Optional[CatalogCourse]: ...

    def search_courses(
        self,
        term: Optional[str] = None,
        subject: Optional[str] = None,
        q: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[CatalogCourse], int]: ...

    def find_prerequisite(self, course_id: str) -> Optional[CoursePrerequisite]: ...

    def create_prerequisite(
        self,
        course_id: str,
        raw_text: str,
        parsed: Optional[ParsedPrerequisite],
        confidence: float,
    ) -> CoursePrerequisite: ...

    def update_prerequisite(
        self,
        prereq_id: str,
        raw_text: str,
        parsed: Optional[ParsedPrerequisite],
        confidence: float,
    ) -> CoursePrerequisite: ...


def check_timestamps(started_at: Optional[datetime], finished_at: Optional[datetime]) -> None:
    if started_at and finished_at and finished_at < started_at:
        raise ValueError("finished_at precedes started_at")
