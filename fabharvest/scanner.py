"""Scan a GEM history page: every results table, plus the next-page link."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from fabharvest import MatchRecord
from fabharvest.classifiers import extract_event_info
from fabharvest.dom import text_of
from fabharvest.hero import extract_hero
from fabharvest.rows import classify_columns, parse_results_table

PAGE_PARAM_RE = re.compile(r"[?&]page=(\d+)")
NEXT_LINK_TEXTS = (">>", ">")


@dataclass
class PageScan:
    """Everything read from one page."""

    matches: list[MatchRecord] = field(default_factory=list)
    next_url: str | None = None
    errors: list[str] = field(default_factory=list)


def _soup(page: str | BeautifulSoup) -> BeautifulSoup:
    if isinstance(page, BeautifulSoup):
        return page
    return BeautifulSoup(page, "html.parser")


def scrape_all_events(
    soup: BeautifulSoup, today: str | None = None
) -> tuple[list[MatchRecord], list[str]]:
    """Extract matches from every results table on the page.

    Tables without opponent and result columns (decklists, standings) are
    skipped. A table whose extraction raises yields nothing and its error
    is returned alongside the matches instead of aborting the page.
    """
    today = today or date.today().isoformat()
    matches: list[MatchRecord] = []
    errors: list[str] = []

    for i, table in enumerate(soup.find_all("table")):
        columns = classify_columns(table)
        if columns is None:
            continue

        try:
            event = extract_event_info(table, today)
            hero = extract_hero(table)
            matches.extend(parse_results_table(table, columns, event, hero))
        except Exception as e:
            errors.append(f"Table {i + 1}: {type(e).__name__}: {e}")

    return matches, errors


def current_page(url: str) -> int:
    """The ``page`` query parameter of a URL (1 when absent)."""
    for key, value in parse_qsl(urlparse(url).query):
        if key == "page" and value.isdigit():
            return int(value)
    return 1


def page_one_url(url: str) -> str:
    """The same URL with ``page=1``."""
    parts = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "page"]
    query.append(("page", "1"))
    return urlunparse(parts._replace(query=urlencode(query)))


def find_next_page_url(soup: BeautifulSoup, url: str) -> str | None:
    """Find the link to the page after ``url``.

    Prefers a link whose page number is current + 1, then falls back to
    ">>" / ">" / "Next" links that carry a page parameter.
    """
    next_page = current_page(url) + 1
    links = soup.find_all("a", href=True)

    for link in links:
        match = PAGE_PARAM_RE.search(link["href"])
        if match and int(match.group(1)) == next_page:
            return urljoin(url, link["href"])

    for link in links:
        text = text_of(link)
        if text in NEXT_LINK_TEXTS or text.lower() == "next":
            if "page=" in link["href"]:
                return urljoin(url, link["href"])

    return None


def scan_page(page: str | BeautifulSoup, url: str, today: str | None = None) -> PageScan:
    """Scan one page of history for matches and the next-page link."""
    soup = _soup(page)
    matches, errors = scrape_all_events(soup, today)
    return PageScan(matches=matches, next_url=find_next_page_url(soup, url), errors=errors)


def parse_matches_from_html(html: str, today: str | None = None) -> list[MatchRecord]:
    """Parse matches from raw HTML (used by tests)."""
    matches, _ = scrape_all_events(_soup(html), today)
    return matches
