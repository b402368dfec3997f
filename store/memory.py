"""
In-process job store.

Keeps jobs, courses and prerequisites in dicts guarded by one lock, so it
can be shared by crawl jobs running on the event loop and on worker
threads. Records handed out are copies; mutate through the store.

Update semantics follow the crawler's needs:
  - upsert_course overwrites title always, other fields only when not None
  - a job's status only moves forward, and COMPLETED / FAILED are final
  - courses_saved may never exceed courses_found once that is set
"""

import threading
from typing import Optional

from crawler.models import (
    CatalogCourse,
    CoursePrerequisite,
    CrawlJob,
    CrawlParams,
    JobStatus,
    ParsedPrerequisite,
    utcnow,
)
from store.base import JOB_FIELDS, TerminalJobError, check_timestamps

STATUS_ORDER = {
    JobStatus.PENDING: 0,
    JobStatus.RUNNING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


class InMemoryJobStore:
    def __init__(self):
        self._lock = threading.RLock()
        self.jobs: dict[str, CrawlJob] = {}
        self.courses: dict[str, CatalogCourse] = {}
        self.prerequisites: dict[str, CoursePrerequisite] = {}
        self._by_key: dict[tuple[str, str], str] = {}

    def _persist(self) -> None:
        """Hook for subclasses; called under the lock after every write."""

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(self, params: CrawlParams) -> CrawlJob:
        job = CrawlJob(term=params.term, subject=params.subject, query=params.query)
        with self._lock:
            self.jobs[job.id] = job
            self._persist()
            return job.model_copy(deep=True)

    def update_job(self, job_id: str, **fields) -> CrawlJob:
        unknown = set(fields) - JOB_FIELDS
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")

        with self._lock:
            job = self.jobs.get(job_id)
            if job is None:
                raise KeyError(f"Crawl job {job_id} not found")
            if job.status.is_terminal:
                raise TerminalJobError(f"Crawl job {job_id} is already {job.status.value}")

            if "status" in fields:
                status = JobStatus(fields["status"])
                if STATUS_ORDER[status] < STATUS_ORDER[job.status]:
                    raise ValueError(f"Illegal transition {job.status.value} -> {status.value}")
                fields["status"] = status

            updated = job.model_copy(update=fields)
            if updated.courses_found is not None and updated.courses_saved > updated.courses_found:
                raise ValueError(
                    f"courses_saved ({updated.courses_saved}) exceeds courses_found ({updated.courses_found})"
                )
            check_timestamps(updated.started_at, updated.finished_at)

            self.jobs[job_id] = updated
            self._persist()
            return updated.model_copy(deep=True)

    def get_job(self, job_id: str) -> Optional[CrawlJob]:
        with self._lock:
            job = self.jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

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
    ) -> CatalogCourse:
        key = (subject_code, course_number)
        optional = {
            "description": description,
            "credit_min": credit_min,
            "credit_max": credit_max,
            "last_seen_term": last_seen_term,
            "source_url": source_url,
        }
        with self._lock:
            course_id = self._by_key.get(key)
            if course_id is None:
                course = CatalogCourse(
                    subject_code=subject_code,
                    course_number=course_number,
                    title=title,
                    **optional,
                )
                self._by_key[key] = course.id
            else:
                changes = {k: v for k, v in optional.items() if v is not None}
                course = self.courses[course_id].model_copy(
                    update={"title": title, "updated_at": utcnow(), **changes}
                )
            self.courses[course.id] = course
            self._persist()
            return course.model_copy(deep=True)

    def get_course(self, course_id: str) -> Optional[CatalogCourse]:
        with self._lock:
            course = self.courses.get(course_id)
            return course.model_copy(deep=True) if course else None

    def search_courses(
        self,
        term: Optional[str] = None,
        subject: Optional[str] = None,
        q: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[CatalogCourse], int]:
        """
        Filter on subject code and last-seen term (equality) and a free-text
        q matched against title / description (case-insensitive) or course
        number. Ordered by subject code then course number.
        """
        needle = q.lower() if q else None

        def matches(c: CatalogCourse) -> bool:
            if subject and c.subject_code != subject:
                return False
            if term and c.last_seen_term != term:
                return False
            if needle is not None:
                return (
                    needle in c.title.lower()
                    or needle in (c.description or "").lower()
                    or q in c.course_number
                )
            return True

        with self._lock:
            hits = sorted(
                (c for c in self.courses.values() if matches(c)),
                key=lambda c: c.natural_key,
            )
            page = [c.model_copy(deep=True) for c in hits[offset:offset + limit]]
        return page, len(hits)

    # ------------------------------------------------------------------
    # Prerequisites
    # ------------------------------------------------------------------

    def find_prerequisite(self, course_id: str) -> Optional[CoursePrerequisite]:
        with self._lock:
            for prereq in self.prerequisites.values():
                if prereq.course_id == course_id:
                    return prereq.model_copy(deep=True)
        return None

    def create_prerequisite(
        self,
        course_id: str,
        raw_text: str,
        parsed: Optional[ParsedPrerequisite],
        confidence: float,
    ) -> CoursePrerequisite:
        with self._lock:
            if course_id not in self.courses:
                raise KeyError(f"Course {course_id} not found")
            prereq = CoursePrerequisite(
                course_id=course_id, raw_text=raw_text, parsed=parsed, confidence=confidence
            )
            self.prerequisites[prereq.id] = prereq
            self._persist()
            return prereq.model_copy(deep=True)

    def update_prerequisite(
        self,
        prereq_id: str,
        raw_text: str,
        parsed: Optional[ParsedPrerequisite],
        confidence: float,
    ) -> CoursePrerequisite:
        with self._lock:
            prereq = self.prerequisites.get(prereq_id)
            if prereq is None:
                raise KeyError(f"Prerequisite {prereq_id} not found")
            updated = prereq.model_copy(update={
                "raw_text": raw_text,
                "parsed": parsed,
                "confidence": confidence,
                "updated_at": utcnow(),
            })
            self.prerequisites[prereq_id] = updated
            self._persist()
            return updated.model_copy(deep=True)
