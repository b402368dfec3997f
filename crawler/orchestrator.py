"""
Crawl orchestrator.

    crawl(params) → job_id
        Inserts a PENDING CrawlJob and returns at once; the crawl itself runs
        as a background task (on the caller's event loop, or on a worker
        thread when there is none).

    run_crawl(job_id, params)
        PENDING → RUNNING → COMPLETED | FAILED

        1. open a browser session
        2. load the catalog entry point                (fatal on failure)
        3. apply term / subject / page size / query    (each best-effort)
        4. submit the search                           (button optional)
        5. extract the course list → pages_fetched, courses_found
        6. for each course, one at a time:
             detail page → CourseDetail (falls back to the list stub)
             upsert course, parse + upsert prerequisite
             a failing course is logged and skipped
             courses_saved flushed every `progress_every` saved courses
        7. COMPLETED with the final courses_saved

        Anything escaping steps 1-5 marks the job FAILED with the error
        text. The job-level deadline (settings.job_timeout_s) and task
        cancellation also end in FAILED. The browser is closed on every path.

Courses are processed sequentially: the single page is shared, and the
rate limiter would serialise navigations anyway. Store calls made while the
crawl runs go through a worker thread so a file-backed store never blocks
the event loop.
"""

import asyncio
import logging
import threading
from contextlib import AbstractAsyncContextManager
from typing import Callable, Optional

from crawler.browser import DETAIL_TIMEOUT_MS, ENTRY_TIMEOUT_MS, BrowserDriver, apply_filters, open_driver, submit_search
from crawler.config import Settings
from crawler.extract import CourseDetail, CourseListItem, read_course_detail, read_course_list
from crawler.models import CatalogCourse, CrawlParams, JobStatus, utcnow
from crawler.prereq import parse_prerequisite
from crawler.rate_limit import RateLimiter
from store.base import JobStore, TerminalJobError

log = logging.getLogger(__name__)

DriverFactory = Callable[[], AbstractAsyncContextManager[BrowserDriver]]


class CatalogCrawler:
    def __init__(
        self,
        store: JobStore,
        settings: Optional[Settings] = None,
        driver_factory: Optional[DriverFactory] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.driver_factory = driver_factory or (lambda: open_driver(self.settings))
        self.limiter = limiter or RateLimiter(self.settings.min_delay_ms, self.settings.max_delay_ms)
        self._tasks: set[asyncio.Task] = set()
        self._threads: list[threading.Thread] = []

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def crawl(self, params: Optional[CrawlParams] = None) -> str:
        """Create a job and start crawling in the background. Returns the job id."""
        params = params or CrawlParams()
        job = self.store.create_job(params)
        log.info(
            "Created crawl job %s  term=%r  subject=%r  query=%r",
            job.id, params.term, params.subject, params.query,
        )
        self._spawn(job.id, params)
        return job.id

    def _spawn(self, job_id: str, params: CrawlParams) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            thread = threading.Thread(
                target=self._run_in_thread, args=(job_id, params),
                name=f"crawl-{job_id[:8]}", daemon=True,
            )
            self._threads.append(thread)
            thread.start()
            return

        task = loop.create_task(self.run_crawl(job_id, params), name=f"crawl-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _run_in_thread(self, job_id: str, params: CrawlParams) -> None:
        try:
            asyncio.run(self.run_crawl(job_id, params))
        except Exception:
            log.exception("Crawl job %s crashed outside its error handling", job_id)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Crawl task %s crashed outside its error handling", task.get_name(), exc_info=exc)

    @property
    def active(self) -> int:
        return len(self._tasks) + sum(t.is_alive() for t in self._threads)

    async def drain(self) -> None:
        """Wait for every crawl started on this loop to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()

    def join(self, timeout: Optional[float] = None) -> None:
        """Join crawls started on worker threads."""
        for thread in list(self._threads):
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    async def run_crawl(self, job_id: str, params: CrawlParams) -> None:
        timeout = self.settings.job_timeout_s or None
        try:
            await asyncio.wait_for(self._crawl(job_id, params), timeout=timeout)
        except asyncio.TimeoutError:
            log.error("Crawl job %s timed out after %s s", job_id, timeout)
            self._finish(job_id, JobStatus.FAILED, error_log=f"Crawl timed out after {timeout} s")
        except asyncio.CancelledError:
            log.warning("Crawl job %s cancelled", job_id)
            self._finish(job_id, JobStatus.FAILED, error_log="Crawl cancelled")
            raise

    async def _call(self, fn, *args, **kwargs):
        return await asyncio.to_thread(fn, *args, **kwargs)

    def _finish(self, job_id: str, status: JobStatus, **fields) -> None:
        try:
            self.store.update_job(job_id, status=status, finished_at=utcnow(), **fields)
        except TerminalJobError:
            log.warning("Crawl job %s already finalised, not marking %s", job_id, status.value)

    async def _crawl(self, job_id: str, params: CrawlParams) -> None:
        try:
            await self._call(self.store.update_job, job_id, status=JobStatus.RUNNING, started_at=utcnow())
            log.info("Crawl job %s running", job_id)

            async with self.driver_factory() as driver:
                found, saved = await self._run_session(driver, job_id, params)
                self._finish(job_id, JobStatus.COMPLETED, courses_saved=saved)

            log.info("Crawl job %s completed. Saved %d/%d courses.", job_id, saved, found)
        except Exception as exc:
            log.exception("Crawl job %s failed", job_id)
            self._finish(job_id, JobStatus.FAILED, error_log=str(exc) or repr(exc))

    async def _run_session(self, driver: BrowserDriver, job_id: str, params: CrawlParams) -> tuple[int, int]:
        base_url = self.settings.base_url

        log.info("Navigating to %s", base_url)
        await driver.goto(base_url, ENTRY_TIMEOUT_MS)
        await self.limiter.delay()

        applied = await apply_filters(driver, params, self.limiter)
        log.info("  Filters applied: %s", ", ".join(applied) or "none")
        await submit_search(driver, self.limiter)

        log.info("Extracting course list…")
        courses = await read_course_list(driver, base_url, self.settings.detail_link)
        log.info("  Found %d courses", len(courses))
        await self._call(self.store.update_job, job_id, pages_fetched=1, courses_found=len(courses))

        saved = 0
        for item in courses:
            try:
                await self._process_course(driver, item, params.term)
            except Exception:
                log.exception("Failed to process course %s %s", item.subject_code, item.course_number)
            else:
                saved += 1
                if saved % self.settings.progress_every == 0:
                    await self._call(self.store.update_job, job_id, courses_saved=saved)
                    log.info("  Progress: %d/%d saved", saved, len(courses))
            await self.limiter.delay()

        return len(courses), saved

    # ------------------------------------------------------------------
    # Per course
    # ------------------------------------------------------------------

    async def _process_course(self, driver: BrowserDriver, item: CourseListItem, term: Optional[str]) -> CatalogCourse:
        detail: Optional[CourseDetail] = None
        if item.detail_url:
            try:
                await driver.goto(item.detail_url, DETAIL_TIMEOUT_MS)
                await self.limiter.delay()
                detail = await read_course_detail(driver, item.subject_code, item.course_number)
            except Exception as exc:
                log.warning("Failed to fetch detail for %s %s: %s", item.subject_code, item.course_number, exc)

        if detail is None:
            detail = CourseDetail(
                subject_code=item.subject_code,
                course_number=item.course_number,
                title=item.title,
            )
        elif not detail.title:
            detail.title = item.title

        course = await self._call(
            self.store.upsert_course,
            detail.subject_code,
            detail.course_number,
            title=detail.title,
            description=detail.description,
            credit_min=detail.credit_min,
            credit_max=detail.credit_max,
            last_seen_term=term,
            source_url=item.detail_url,
        )

        if detail.prerequisite_text:
            parsed, confidence = parse_prerequisite(detail.prerequisite_text)
            existing = await self._call(self.store.find_prerequisite, course.id)
            if existing:
                await self._call(self.store.update_prerequisite, existing.id, detail.prerequisite_text, parsed, confidence)
            else:
                await self._call(self.store.create_prerequisite, course.id, detail.prerequisite_text, parsed, confidence)

        return course
