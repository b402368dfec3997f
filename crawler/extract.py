"""
Course extraction from rendered bulletin HTML.

Two extractors, both pure functions over an HTML string:

  extract_course_list(html, base_url)
      Search results page → list[CourseListItem]. Two passes because the
      bulletin mixes layouts:
        1. every <tr> whose text holds a course code ("ASIAN 101"),
           title = text after the code in its cell, else the next cell;
           detail link = first matching <a> in the row
        2. every detail-page <a> whose text holds a course code
      Results are keyed on (subject, number); first occurrence wins, later
      occurrences only back-fill a missing detail_url.

  extract_course_detail(html, subject, number)
      Course page → CourseDetail. Each field walks an ordered list of
      strategies (CSS selector, then "Label: value" / label-cell + value-cell)
      and keeps the first non-trivial hit. Credits come from a regex over the
      whole page text. Never raises: unfound fields stay None.

read_course_list / read_course_detail wrap the above with the soft waits
a live page needs before its HTML is read.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, Tag

from crawler.browser import BrowserDriver
from crawler.config import DEFAULT_DETAIL_LINK

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

COURSE_CODE_RE = re.compile(r"\b([A-Z]{2,6})\s+(\d{3,4})\b")

RESULTS_SELECTOR = 'table, .course-listing, [id*="course"]'
RESULTS_TIMEOUT_MS = 10_000
DETAIL_LOAD_TIMEOUT_MS = 10_000

LIST_TITLE_MAX   = 200
TITLE_MAX        = 500
DESCRIPTION_MAX  = 5000
PREREQ_MAX       = 2000

DESCRIPTION_MIN  = 20
PREREQ_MIN       = 10

CREDIT_RANGE_RE  = re.compile(r"\b(\d{1,2})\s*(?:to|-|–)\s*(\d{1,2})\s*credits?\b", re.IGNORECASE)
CREDIT_SINGLE_RE = re.compile(r"\b(\d{1,2})\s*credits?\b", re.IGNORECASE)
MAX_CREDITS      = 20

TITLE_LABEL_RE       = re.compile(r"\btitle\b", re.IGNORECASE)
DESCRIPTION_LABEL_RE = re.compile(r"\bdescription\b", re.IGNORECASE)
PREREQ_LABEL_RE      = re.compile(r"\bprereq(?:uisite)?s?\b", re.IGNORECASE)

# label inside one of these is read together with its parent's text
INLINE_TAGS = {"b", "strong", "span", "label", "em", "i", "dt", "th"}
SKIP_TAGS = {"script", "style", "title", "head", "noscript"}

log = logging.getLogger(__name__)


@dataclass
class CourseListItem:
    subject_code: str
    course_number: str
    title: str
    detail_url: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.subject_code, self.course_number)


@dataclass
class CourseDetail:
    subject_code: str
    course_number: str
    title: str = ""
    description: Optional[str] = None
    credit_min: Optional[int] = None
    credit_max: Optional[int] = None
    prerequisite_text: Optional[str] = None


# ---------------------------------------------------------------------------
# List page
# ---------------------------------------------------------------------------

def _merge(items: dict[tuple[str, str], CourseListItem], item: CourseListItem) -> None:
    existing = items.get(item.key)
    if existing is None:
        items[item.key] = item
    elif not existing.detail_url and item.detail_url:
        existing.detail_url = item.detail_url


def _absolute(href: Optional[str], base_url: str) -> Optional[str]:
    href = (href or "").strip()
    return urljoin(base_url, href) if href else None


def extract_course_list(html: str, base_url: str, detail_link: str = DEFAULT_DETAIL_LINK) -> list[CourseListItem]:
    """Return the deduplicated course stubs found on a results page."""
    soup = BeautifulSoup(html, "html.parser")
    link_selector = f'a[href*="{detail_link}"]'
    items: dict[tuple[str, str], CourseListItem] = {}

    # Pass 1: table rows
    for row in soup.find_all("tr"):
        # one line per cell
        cells = [_text(cell) for cell in row.find_all(["td", "th"])] or [_text(row)]
        text = "\n".join(c for c in cells if c)
        match = COURSE_CODE_RE.search(text)
        if not match:
            continue
        subject, number = match.groups()
        following = (part.strip() for part in text[match.end():].split("\n"))
        line = next((part for part in following if part), "")
        link = row.select_one(link_selector)
        _merge(items, CourseListItem(
            subject_code=subject,
            course_number=number,
            title=line[:LIST_TITLE_MAX] or f"{subject} {number}",
            detail_url=_absolute(link.get("href"), base_url) if link else None,
        ))

    # Pass 2: standalone detail links
    for link in soup.select(link_selector):
        href = link.get("href")
        text = link.get_text(" ", strip=True)
        match = COURSE_CODE_RE.search(text)
        if not match or not href:
            continue
        subject, number = match.groups()
        title = text.replace(match.group(0), "", 1).strip()
        _merge(items, CourseListItem(
            subject_code=subject,
            course_number=number,
            title=title[:LIST_TITLE_MAX] or f"{subject} {number}",
            detail_url=_absolute(href, base_url),
        ))

    return list(items.values())


# ---------------------------------------------------------------------------
# Detail page
# ---------------------------------------------------------------------------

Strategy = Callable[[BeautifulSoup], Optional[str]]


def _text(el: Optional[Tag]) -> str:
    return el.get_text(" ", strip=True) if el is not None else ""


def by_selector(selector: str, min_len: int = 0, sibling: bool = False) -> Strategy:
    """First element matching selector; with sibling=True an empty match falls through to its next sibling."""
    def strategy(soup: BeautifulSoup) -> Optional[str]:
        el = soup.select_one(selector)
        if el is None:
            return None
        text = _text(el)
        if len(text) <= min_len and sibling:
            text = _text(el.find_next_sibling())
        return text if len(text) > min_len else None
    return strategy


def by_label(label_re: re.Pattern, min_len: int = 0) -> Strategy:
    """
    Text following a label: "Prerequisites: MATH 115" in one element, or a
    label cell followed by a value cell.
    """
    strip_re = re.compile(r"^.*?" + label_re.pattern + r"\s*:?\s*", re.IGNORECASE | re.DOTALL)

    def strategy(soup: BeautifulSoup) -> Optional[str]:
        for node in soup.find_all(string=label_re):
            el = node.parent
            if isinstance(node, Comment) or el is None or el.name in SKIP_TAGS:
                continue

            candidates = [el]
            if el.name in INLINE_TAGS and el.parent is not None:
                candidates.append(el.parent)
            for candidate in candidates:
                value = strip_re.sub("", _text(candidate), count=1)
                if len(value) > min_len:
                    return value

            value = _text(el.find_next_sibling())
            if len(value) > min_len:
                return value
        return None
    return strategy


TITLE_STRATEGIES: list[Strategy] = [
    by_selector("h1"),
    by_selector("h2"),
    by_selector('[id*="title" i]'),
    by_selector(".course-title"),
    by_label(TITLE_LABEL_RE),
]

DESCRIPTION_STRATEGIES: list[Strategy] = [
    by_selector('[id*="description" i]', DESCRIPTION_MIN, sibling=True),
    by_selector(".course-description", DESCRIPTION_MIN, sibling=True),
    by_label(DESCRIPTION_LABEL_RE, DESCRIPTION_MIN),
]

PREREQ_STRATEGIES: list[Strategy] = [
    by_selector('[id*="prereq" i]', PREREQ_MIN, sibling=True),
    by_selector('[class*="prereq" i]', PREREQ_MIN, sibling=True),
    by_label(PREREQ_LABEL_RE, PREREQ_MIN),
]


def first_match(soup: BeautifulSoup, strategies: list[Strategy], max_len: int) -> Optional[str]:
    """Run strategies in order; return the first hit truncated to max_len."""
    for strategy in strategies:
        try:
            value = strategy(soup)
        except Exception as exc:
            log.debug("Extraction strategy failed: %s", exc)
            continue
        if value:
            return value[:max_len]
    return None


def extract_credits(page_text: str) -> tuple[Optional[int], Optional[int]]:
    """"3 - 4 credits" → (3, 4); "4 credits" → (4, 4); nothing → (None, None)."""
    for match in CREDIT_RANGE_RE.finditer(page_text):
        low, high = sorted((int(match.group(1)), int(match.group(2))))
        if high <= MAX_CREDITS:
            return low, high
    for match in CREDIT_SINGLE_RE.finditer(page_text):
        credits = int(match.group(1))
        if credits <= MAX_CREDITS:
            return credits, credits
    return None, None


def extract_course_detail(html: str, subject_code: str, course_number: str) -> CourseDetail:
    """Build a CourseDetail from a course page. Missing fields are left as None."""
    detail = CourseDetail(subject_code=subject_code, course_number=course_number)
    try:
        soup = BeautifulSoup(html or "", "html.parser")
    except Exception as exc:
        log.warning("Unparseable detail page for %s %s: %s", subject_code, course_number, exc)
        return detail

    detail.title = first_match(soup, TITLE_STRATEGIES, TITLE_MAX) or ""
    detail.description = first_match(soup, DESCRIPTION_STRATEGIES, DESCRIPTION_MAX)
    detail.prerequisite_text = first_match(soup, PREREQ_STRATEGIES, PREREQ_MAX)

    body = soup.body or soup
    detail.credit_min, detail.credit_max = extract_credits(body.get_text(" ", strip=True))
    return detail


# ---------------------------------------------------------------------------
# Live page wrappers
# ---------------------------------------------------------------------------

async def read_course_list(
    driver: BrowserDriver, base_url: str, detail_link: str = DEFAULT_DETAIL_LINK
) -> list[CourseListItem]:
    if not await driver.wait_for_selector(RESULTS_SELECTOR, RESULTS_TIMEOUT_MS):
        log.warning("No course results found on page")
    return extract_course_list(await driver.content(), base_url, detail_link)


async def read_course_detail(driver: BrowserDriver, subject_code: str, course_number: str) -> CourseDetail:
    if not await driver.wait_for_load(DETAIL_LOAD_TIMEOUT_MS):
        log.warning("Page load timeout for %s %s, proceeding anyway", subject_code, course_number)
    return extract_course_detail(await driver.content(), subject_code, course_number)
