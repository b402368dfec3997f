"""
Runtime configuration for the catalog crawler.

All knobs come from environment variables (a .env file is loaded by the
API entry point). Defaults target the LSA public course bulletin.

    CATALOG_BASE_URL       crawl entry point
    CATALOG_DETAIL_LINK    substring that marks a course detail link
    CRAWL_MIN_DELAY_MS     rate limiter lower bound
    CRAWL_MAX_DELAY_MS     rate limiter upper bound
    CRAWL_PROGRESS_EVERY   flush courses_saved every N saved courses
    CRAWL_JOB_TIMEOUT_S    whole-job deadline, 0 disables it
    CRAWL_DRIVER           "playwright" (default) or "static"
    CRAWL_HEADLESS         "true" / "false"
    CATALOG_DATA_FILE      JSON job store location
    CATALOG_LOG_FILE       rotating log file
"""

import os
from dataclasses import dataclass
from pathlib import Path

ROOT_DIR = Path(__file__).parent.parent

DEFAULT_BASE_URL = (
    "https://webapps.lsa.umich.edu/CrsMaint/Public/CB_PublicBulletin.aspx?crselevel=ug"
)
DEFAULT_DETAIL_LINK = "CB_PublicBulletin"

DRIVERS = ("playwright", "static")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    detail_link: str = DEFAULT_DETAIL_LINK
    min_delay_ms: int = 1000
    max_delay_ms: int = 3000
    progress_every: int = 10
    job_timeout_s: int = 3600
    driver: str = "playwright"
    headless: bool = True
    data_file: Path = ROOT_DIR / "data" / "catalog.json"
    log_file: Path = ROOT_DIR / "logs" / "app.log"

    def __post_init__(self):
        if self.min_delay_ms < 0 or self.max_delay_ms < self.min_delay_ms:
            raise ValueError(
                f"Invalid delay window [{self.min_delay_ms}, {self.max_delay_ms}] ms"
            )
        if self.progress_every < 1:
            raise ValueError("progress_every must be >= 1")
        if self.job_timeout_s < 0:
            raise ValueError("job_timeout_s must be >= 0")
        if self.driver not in DRIVERS:
            raise ValueError(f"driver must be one of {DRIVERS}, got {self.driver!r}")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            base_url=os.getenv("CATALOG_BASE_URL", DEFAULT_BASE_URL),
            detail_link=os.getenv("CATALOG_DETAIL_LINK", DEFAULT_DETAIL_LINK),
            min_delay_ms=_int_env("CRAWL_MIN_DELAY_MS", 1000),
            max_delay_ms=_int_env("CRAWL_MAX_DELAY_MS", 3000),
            progress_every=_int_env("CRAWL_PROGRESS_EVERY", 10),
            job_timeout_s=_int_env("CRAWL_JOB_TIMEOUT_S", 3600),
            driver=os.getenv("CRAWL_DRIVER", "playwright").strip().lower(),
            headless=_bool_env("CRAWL_HEADLESS", True),
            data_file=Path(os.getenv("CATALOG_DATA_FILE", ROOT_DIR / "data" / "catalog.json")),
            log_file=Path(os.getenv("CATALOG_LOG_FILE", ROOT_DIR / "logs" / "app.log")),
        )
