"""
FastAPI application for the course catalog crawler.

Run as a script:
    python api/app.py

Or as a module:
    uvicorn api.app:app --reload

Endpoints:
    POST /catalog/crawl/run           body: {"term", "subject", "query"} (all optional)
                                      returns: {"jobId": str} as soon as the job row exists
    GET  /catalog/crawl/job/{id}      job status, counters, timestamps, error_log
    GET  /catalog/courses/search      ?term&subject&q&limit&offset
    GET  /catalog/courses/{id}        course plus its current prerequisite parse

A job whose courses_saved is below courses_found finished with some
courses skipped; the log has the per-course errors.

Logs to stdout and logs/app.log (rotating, 5 MB max, 3 backups).
"""

import asyncio
import logging
import logging.handlers
import math
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

# Ensure project root is on sys.path when running as a script (python api/app.py)
sys.path.insert(0, str(Path(__file__).parent.parent))

from crawler.config import Settings
from crawler.models import CatalogCourse, CoursePrerequisite, CrawlJob, CrawlParams
from crawler.orchestrator import CatalogCrawler
from store.base import JobStore
from store.json_store import JsonJobStore

load_dotenv()

SETTINGS = Settings.from_env()


def _setup_logging(log_file: Path) -> None:
    root = logging.getLogger()
    if any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers):
        return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    fmt = logging.Formatter("%(asctime)s  %(levelname)s  %(message)s")

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(fmt)

    # Rotate at 5 MB, keep 3 backups
    rotating = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    rotating.setFormatter(fmt)

    root.setLevel(logging.INFO)
    root.addHandler(stream)
    root.addHandler(rotating)


_setup_logging(SETTINGS.log_file)
log = logging.getLogger("api")


# ---------------------------------------------------------------------------
# App + lifespan
# ---------------------------------------------------------------------------

_store: JobStore | None = None
_crawler: CatalogCrawler | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    global _store, _crawler

    log.info("Opening job store %s…", SETTINGS.data_file)
    _store = JsonJobStore(SETTINGS.data_file)
    _crawler = CatalogCrawler(_store, SETTINGS)
    log.info("  Crawler ready (driver=%s, base_url=%s)", SETTINGS.driver, SETTINGS.base_url)

    yield  # server runs here

    if _crawler.active:
        log.info("Cancelling %d running crawl(s)…", _crawler.active)
        await _crawler.cancel_all()


app = FastAPI(title="Course Catalog Crawler", lifespan=lifespan)


def get_store() -> JobStore:
    if _store is None:
        raise HTTPException(status_code=503, detail="Job store not initialised.")
    return _store


def get_crawler() -> CatalogCrawler:
    if _crawler is None:
        raise HTTPException(status_code=503, detail="Crawler not initialised.")
    return _crawler


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class CrawlStarted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")


class CourseWithPrerequisite(CatalogCourse):
    prerequisite: Optional[CoursePrerequisite] = None


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    limit: int
    offset: int
    total_pages: int = Field(alias="totalPages")


class SearchResponse(BaseModel):
    data: list[CourseWithPrerequisite]
    pagination: Pagination


def _with_prerequisite(store: JobStore, course: CatalogCourse) -> CourseWithPrerequisite:
    return CourseWithPrerequisite(
        **course.model_dump(),
        prerequisite=store.find_prerequisite(course.id),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.post("/catalog/crawl/run", response_model=CrawlStarted)
async def run_crawl(params: CrawlParams, crawler: CatalogCrawler = Depends(get_crawler)) -> CrawlStarted:
    job_id = crawler.crawl(params)
    return CrawlStarted(job_id=job_id)


@app.get("/catalog/crawl/job/{job_id}", response_model=CrawlJob)
def get_crawl_job(job_id: str, store: JobStore = Depends(get_store)) -> CrawlJob:
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Crawl job not found.")
    return job


@app.get("/catalog/courses/search", response_model=SearchResponse)
def search_courses(
    term: Optional[str] = None,
    subject: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: JobStore = Depends(get_store),
) -> SearchResponse:
    courses, total = store.search_courses(term=term, subject=subject, q=q, limit=limit, offset=offset)
    log.info("search term=%r subject=%r q=%r  hits=%d", term, subject, q, total)
    return SearchResponse(
        data=[_with_prerequisite(store, c) for c in courses],
        pagination=Pagination(
            total=total, limit=limit, offset=offset, total_pages=math.ceil(total / limit),
        ),
    )


@app.get("/catalog/courses/{course_id}", response_model=CourseWithPrerequisite)
def get_course(course_id: str, store: JobStore = Depends(get_store)) -> CourseWithPrerequisite:
    course = store.get_course(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Course not found.")
    return _with_prerequisite(store, course)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _launch_server() -> None:
    config = uvicorn.Config(app, host="0.0.0.0", port=8000, reload=False)
    server = uvicorn.Server(config)

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        uvicorn.run(app, host="0.0.0.0", port=8000, reload=False)
        return

    log.warning(
        "Detected an existing asyncio event loop; serving with create_task() instead of asyncio.run()."
    )
    asyncio.create_task(server.serve())


if __name__ == "__main__":
    log.info("=== Course Catalog Crawler starting up ===")
    _launch_server()
