import pytest

from crawler.config import Settings
from crawler.rate_limit import RateLimiter
from store.memory import InMemoryJobStore
from tests.helpers import BASE_URL


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def settings():
    return Settings(base_url=BASE_URL, min_delay_ms=0, max_delay_ms=0, progress_every=2, job_timeout_s=30)


@pytest.fixture
def no_delay():
    return RateLimiter(0, 0)
