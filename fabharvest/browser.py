"""Page drivers: how the harvester loads pages and opens collapsed sections.

``HttpPage`` fetches server-rendered history pages with requests.
``PlaywrightPage`` drives Chromium for pages that only fill in results
after a click. Both expose the same small interface used by
``fabharvest.harvest.run_harvest``.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Protocol

import requests
from bs4 import BeautifulSoup

USER_AGENT = "FabHistoryHarvester/1.0 (+https://fabstats.netlify.app)"
REQUEST_TIMEOUT = 30

# Elements whose text matches are "clicked" to reveal results.
PRIMARY_EXPAND_RE = re.compile(r"View Results", re.I)
SECONDARY_EXPAND_RE = re.compile(r"View|Show")
MAX_TRIGGER_TEXT = 30

TRIGGER_SELECTOR = "a, button, summary, span, div, [role='button']"
CLICK_SETTLE = 0.5
DETAILS_SETTLE = 0.4


class Page(Protocol):
    url: str

    def load(self, url: str) -> None: ...

    def html(self) -> str: ...

    def expand(
        self, pattern: re.Pattern, open_details: bool, sleep: Callable[[float], None]
    ) -> int: ...


def is_trigger_text(text: str, pattern: re.Pattern) -> bool:
    return len(text) < MAX_TRIGGER_TEXT and bool(pattern.search(text))


class HttpPage:
    """A page fetched over plain HTTP.

    The markup is complete once fetched, so expansion only marks closed
    ``<details>`` elements as open and nothing needs to settle.
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.url = ""
        self._soup: BeautifulSoup | None = None

    def load(self, url: str) -> None:
        response = self.session.get(url, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        self.url = response.url or url
        self._soup = BeautifulSoup(response.text, "html.parser")

    def html(self) -> str:
        return str(self._soup) if self._soup is not None else ""

    def expand(
        self, pattern: re.Pattern, open_details: bool, sleep: Callable[[float], None]
    ) -> int:
        if self._soup is None or not open_details:
            return 0
        expanded = 0
        for details in self._soup.find_all("details"):
            if not details.has_attr("open") and details.find("summary") is not None:
                details["open"] = ""
                expanded += 1
        return expanded

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> HttpPage:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class PlaywrightPage:
    """A real Chromium tab, for history pages that load results lazily."""

    def __init__(self, headless: bool = True) -> None:
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=headless)
        self._page = self._browser.new_page(user_agent=USER_AGENT)

    @property
    def url(self) -> str:
        return self._page.url

    def load(self, url: str) -> None:
        self._page.goto(url, timeout=REQUEST_TIMEOUT * 1000, wait_until="domcontentloaded")

    def html(self) -> str:
        return self._page.content()

    def expand(
        self, pattern: re.Pattern, open_details: bool, sleep: Callable[[float], None]
    ) -> int:
        from playwright.sync_api import Error as PlaywrightError

        expanded = 0

        for handle in self._page.query_selector_all(TRIGGER_SELECTOR):
            try:
                text = (handle.text_content() or "").strip()
                if not is_trigger_text(text, pattern):
                    continue
                # Same as element.click() in the page; no visibility checks.
                handle.dispatch_event("click")
            except PlaywrightError:
                # Detached by an earlier click's re-render.
                continue
            expanded += 1
            sleep(CLICK_SETTLE)

        if open_details:
            for summary in self._page.query_selector_all("details:not([open]) > summary"):
                try:
                    summary.dispatch_event("click")
                except PlaywrightError:
                    continue
                expanded += 1
                sleep(DETAILS_SETTLE)

        return expanded

    def close(self) -> None:
        self._browser.close()
        self._playwright.stop()

    def __enter__(self) -> PlaywrightPage:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
