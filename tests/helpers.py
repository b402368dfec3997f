"""Builders for bulletin HTML and a scripted BrowserDriver."""

from crawler.browser import DriverError

BASE_URL = "https://bulletin.example.edu/CrsMaint/Public/CB_PublicBulletin.aspx?crselevel=ug"


def detail_url(subject: str, number: str) -> str:
    return f"{BASE_URL}&subject={subject}&catalog={number}"


def list_page(courses: list[tuple[str, str, str]]) -> str:
    """Results table with one linked row per (subject, number, title)."""
    rows = "".join(
        f'<tr><td><a href="CB_PublicBulletin.aspx?crselevel=ug&amp;subject={s}&amp;catalog={n}">{s} {n}</a></td>'
        f"<td>{t}</td></tr>"
        for s, n, t in courses
    )
    return f"<html><body><table><tr><th>Course</th><th>Title</th></tr>{rows}</table></body></html>"


def detail_page(title: str, description: str = "", prereq: str = "", credits: str = "") -> str:
    parts = [f"<h1>{title}</h1>"]
    if description:
        parts.append(f'<div id="courseDescription">{description}</div>')
    cells = []
    if credits:
        cells.append(f"<tr><td>Credits:</td><td>{credits}</td></tr>")
    if prereq:
        cells.append(f"<tr><td>Enforced Prerequisites:</td><td>{prereq}</td></tr>")
    if cells:
        parts.append("<table>" + "".join(cells) + "</table>")
    return "<html><head><title>Course Guide</title></head><body>" + "".join(parts) + "</body></html>"


class FakeDriver:
    """
    Scripted BrowserDriver: serves HTML from a url → html dict.

    failing_urls     goto() raises DriverError
    broken_selectors select_option() / fill() raise DriverError
    search_button    what is_visible() reports for the search button
    """

    def __init__(self, pages: dict[str, str], failing_urls=(), broken_selectors=(), search_button=True):
        self.pages = pages
        self.failing_urls = set(failing_urls)
        self.broken_selectors = set(broken_selectors)
        self.search_button = search_button
        self.current = ""
        self.visited: list[str] = []
        self.actions: list[tuple[str, str, str]] = []
        self.opened = False
        self.closed = False

    async def __aenter__(self):
        self.opened = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    async def goto(self, url, timeout_ms=0):
        self.visited.append(url)
        if url in self.failing_urls or url not in self.pages:
            raise DriverError(f"net::ERR_FAILED at {url}")
        self.current = url

    async def wait_for_load(self, timeout_ms=0):
        return True

    async def wait_for_selector(self, selector, timeout_ms=0):
        return True

    async def content(self):
        return self.pages.get(self.current, "")

    async def select_option(self, selector, label):
        if selector in self.broken_selectors:
            raise DriverError(f"No element matches {selector}")
        self.actions.append(("select", selector, label))

    async def fill(self, selector, value):
        if selector in self.broken_selectors:
            raise DriverError(f"No element matches {selector}")
        self.actions.append(("fill", selector, value))

    async def click(self, selector):
        self.actions.append(("click", selector, ""))

    async def is_visible(self, selector, timeout_ms=0):
        return self.search_button


