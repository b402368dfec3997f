"""
JSON-file job store.

Same semantics as InMemoryJobStore; the whole state is rewritten to
data/catalog.json after each write and read back on start:

    {"jobs": [...], "courses": [...], "prerequisites": [...]}

Jobs still PENDING or RUNNING in the file belonged to a previous process
and are marked FAILED ("Interrupted by restart") on load.
"""

import json
import logging
from pathlib import Path

from crawler.models import CatalogCourse, CoursePrerequisite, CrawlJob, JobStatus, utcnow
from store.memory import InMemoryJobStore

log = logging.getLogger(__name__)

INTERRUPTED = "Interrupted by restart"


class JsonJobStore(InMemoryJobStore):
    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        data = json.loads(self.path.read_text(encoding="utf-8"))
        interrupted = 0
        for raw in data.get("jobs", []):
            job = CrawlJob.model_validate(raw)
            if not job.status.is_terminal:
                job = job.model_copy(update={
                    "status": JobStatus.FAILED,
                    "finished_at": utcnow(),
                    "error_log": job.error_log or INTERRUPTED,
                })
                interrupted += 1
            self.jobs[job.id] = job
        for raw in data.get("courses", []):
            course = CatalogCourse.model_validate(raw)
            self.courses[course.id] = course
            self._by_key[course.natural_key] = course.id
        for raw in data.get("prerequisites", []):
            prereq = CoursePrerequisite.model_validate(raw)
            self.prerequisites[prereq.id] = prereq
        log.info(
            "Loaded %d jobs, %d courses, %d prerequisites from %s",
            len(self.jobs), len(self.courses), len(self.prerequisites), self.path,
        )
        if interrupted:
            log.warning("Marked %d interrupted crawl job(s) FAILED", interrupted)
            self._persist()

    def _persist(self) -> None:
        payload = {
            "jobs": [j.model_dump(mode="json") for j in self.jobs.values()],
            "courses": [c.model_dump(mode="json") for c in self.courses.values()],
            "prerequisites": [p.model_dump(mode="json") for p in self.prerequisites.values()],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)
