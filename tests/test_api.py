import pytest
from fastapi.testclient import TestClient

from api.app import app, get_crawler, get_store
from crawler.models import CrawlParams, JobStatus, utcnow
from crawler.orchestrator import CatalogCrawler
from crawler.prereq import parse_prerequisite
from tests.helpers import BASE_URL, FakeDriver, list_page


@pytest.fixture
def crawler(store, settings, no_delay):
    pages = {BASE_URL: list_page([("ASIAN", "101", "Introduction to Asian Studies")])}
    return CatalogCrawler(store, settings, driver_factory=lambda: FakeDriver(pages), limiter=no_delay)


@pytest.fixture
def client(store, crawler):
    """FastAPI test client wired to an in-memory store."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_crawler] = lambda: crawler
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def catalog(store):
    """Three courses, one with a parsed prerequisite."""
    eecs = store.upsert_course("EECS", "281", title="Data Structures and Algorithms", last_seen_term="Winter 2026")
    store.upsert_course("ASIAN", "205", title="Modern Japan", description="Meiji to the present day.")
    store.upsert_course("ASIAN", "101", title="Introduction to Asian Studies", last_seen_term="Winter 2026")
    parsed, confidence = parse_prerequisite("EECS 280 and EECS 203")
    store.create_prerequisite(eecs.id, "EECS 280 and EECS 203", parsed, confidence)
    return store


class TestCrawlEndpoints:
    """POST /catalog/crawl/run and GET /catalog/crawl/job/{id}."""

    def test_run_returns_job_id(self, client, store):
        """Starting a crawl returns the new job id and stores the filters."""
        response = client.post("/catalog/crawl/run", json={"term": "Winter 2026", "subject": "ASIAN"})
        assert response.status_code == 200
        job_id = response.json()["jobId"]

        job = store.get_job(job_id)
        assert job is not None
        assert (job.term, job.subject, job.query) == ("Winter 2026", "ASIAN", None)

    def test_run_accepts_empty_body(self, client):
        """All crawl filters are optional."""
        response = client.post("/catalog/crawl/run", json={})
        assert response.status_code == 200
        assert response.json()["jobId"]

    def test_run_rejects_bad_types(self, client):
        """A non-string filter is a validation error."""
        response = client.post("/catalog/crawl/run", json={"term": 2026})
        assert response.status_code == 422

    def test_job_status(self, client, store):
        """The job record carries status, counters and timestamps."""
        job_id = client.post("/catalog/crawl/run", json={"subject": "ASIAN"}).json()["jobId"]

        response = client.get(f"/catalog/crawl/job/{job_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == job_id
        assert data["subject"] == "ASIAN"
        assert data["status"] in {s.value for s in JobStatus}
        for field in ("pages_fetched", "courses_found", "courses_saved", "started_at", "finished_at", "error_log"):
            assert field in data

    def test_finished_job_exposes_counters(self, client, store):
        """Found and saved counts are reported for a finished job."""
        job = store.create_job(CrawlParams(subject="ASIAN"))
        store.update_job(job.id, status=JobStatus.RUNNING, started_at=utcnow())
        store.update_job(job.id, pages_fetched=1, courses_found=10)
        store.update_job(job.id, status=JobStatus.COMPLETED, finished_at=utcnow(), courses_saved=8)

        data = client.get(f"/catalog/crawl/job/{job.id}").json()
        assert data["status"] == "COMPLETED"
        assert (data["courses_found"], data["courses_saved"]) == (10, 8)

    def test_unknown_job(self, client):
        """Unknown job ids return 404."""
        assert client.get("/catalog/crawl/job/does-not-exist").status_code == 404


class TestCourseEndpoints:
    """Catalog search and course detail."""

    def test_search_all(self, client, catalog):
        """No filters returns every course in natural key order."""
        response = client.get("/catalog/courses/search")
        assert response.status_code == 200
        data = response.json()
        codes = [(c["subject_code"], c["course_number"]) for c in data["data"]]
        assert codes == [("ASIAN", "101"), ("ASIAN", "205"), ("EECS", "281")]
        assert data["pagination"] == {"total": 3, "limit": 50, "offset": 0, "totalPages": 1}

    def test_search_filters(self, client, catalog):
        """Subject and free-text filters combine."""
        data = client.get("/catalog/courses/search", params={"subject": "ASIAN", "q": "meiji"}).json()
        assert [c["course_number"] for c in data["data"]] == ["205"]

    def test_search_includes_prerequisite(self, client, catalog):
        """Search hits embed their parsed prerequisite."""
        data = client.get("/catalog/courses/search", params={"subject": "EECS"}).json()
        prereq = data["data"][0]["prerequisite"]
        assert prereq["raw_text"] == "EECS 280 and EECS 203"
        assert prereq["parsed"]["has_and"] is True
        assert prereq["parsed"]["courses"] == ["EECS 280", "EECS 203"]

    def test_search_paging(self, client, catalog):
        """limit and offset page through results."""
        data = client.get("/catalog/courses/search", params={"limit": 2, "offset": 2}).json()
        assert [c["course_number"] for c in data["data"]] == ["281"]
        assert data["pagination"]["totalPages"] == 2

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 500}, {"offset": -1}])
    def test_search_rejects_bad_paging(self, client, params):
        """Out-of-range paging values are rejected."""
        assert client.get("/catalog/courses/search", params=params).status_code == 422

    def test_course_detail(self, client, catalog):
        """A course is returned with its prerequisite."""
        course_id = catalog.search_courses(subject="EECS")[0][0].id
        response = client.get(f"/catalog/courses/{course_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Data Structures and Algorithms"
        assert data["prerequisite"]["confidence"] == pytest.approx(0.7)

    def test_course_without_prerequisite(self, client, catalog):
        """prerequisite is null when none was found."""
        course_id = catalog.search_courses(subject="ASIAN")[0][0].id
        assert client.get(f"/catalog/courses/{course_id}").json()["prerequisite"] is None

    def test_unknown_course(self, client):
        """Unknown course ids return 404."""
        assert client.get("/catalog/courses/nope").status_code == 404


class TestUninitialised:
    """Without the lifespan the store is unavailable."""

    def test_store_not_ready(self):
        """Requests before startup get 503."""
        app.dependency_overrides.clear()
        response = TestClient(app).get("/catalog/crawl/job/anything")
        assert response.status_code == 503
