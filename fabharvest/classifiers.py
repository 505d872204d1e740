"""Tiered metadata classifiers for a scoped event range.

Every classifier returns None when it finds nothing so callers can chain
them with ``first_match``; none of them raise on odd input.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import TypeVar

from bs4 import Tag

from fabharvest import EventInfo
from fabharvest.dom import closest, element_children, text_of
from fabharvest.locator import EventScope, locate_event

T = TypeVar("T")

# Common GEM abbreviations (case-insensitive keys).
EVENT_ABBREVIATIONS: dict[str, str] = {
    "rtn": "Road to Nationals",
    "pq": "ProQuest",
    "bh": "Battle Hardened",
    "upf": "Ultimate Pit Fight",
    "cc": "Classic Constructed",
    "sa": "Silver Age",
}

FORMAT_TESTS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"Classic Constructed", re.I), "Classic Constructed"),
    (re.compile(r"\bSilver Age\b", re.I), "Silver Age"),
    (re.compile(r"\bBlitz\b", re.I), "Blitz"),
    (re.compile(r"\bDraft\b", re.I), "Draft"),
    (re.compile(r"\bSealed\b", re.I), "Sealed"),
    (re.compile(r"\bClash\b", re.I), "Clash"),
    (re.compile(r"Ultimate Pit Fight|\bUPF\b", re.I), "Ultimate Pit Fight"),
    (re.compile(r"\bLiving Legend\b", re.I), "Living Legend"),
]

EVENT_TYPE_TESTS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"proquest|pro quest", re.I), "ProQuest"),
    (re.compile(r"\bcalling\b", re.I), "The Calling"),
    (re.compile(r"battle hardened", re.I), "Battle Hardened"),
    (re.compile(r"road to nationals", re.I), "Road to Nationals"),
    (re.compile(r"\bnationals?\b", re.I), "Nationals"),
    (re.compile(r"skirmish", re.I), "Skirmish"),
    (re.compile(r"armory", re.I), "Armory"),
    (re.compile(r"pre.?release", re.I), "Pre-Release"),
    (re.compile(r"on demand", re.I), "On Demand"),
    (re.compile(r"pro tour", re.I), "Pro Tour"),
    (re.compile(r"\bPTI\b|professional tournament invit", re.I), "PTI"),
    (re.compile(r"\bworlds\b|world championship", re.I), "Worlds"),
]

EVENT_TIERS: dict[str, str] = {
    "Armory": "casual",
    "On Demand": "casual",
    "Pre-Release": "casual",
    "Skirmish": "competitive",
    "Road to Nationals": "competitive",
    "ProQuest": "competitive",
    "PTI": "competitive",
    "Battle Hardened": "professional",
    "The Calling": "professional",
    "Nationals": "professional",
    "Pro Tour": "professional",
    "Worlds": "professional",
}

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)
FULL_DATE_RE = re.compile(rf"(?:{_MONTHS})\s+\d{{1,2}},?\s+\d{{4}}", re.I)
SHORT_DATE_RE = re.compile(
    r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\.?\s+\d{1,2},?\s+\d{4}", re.I
)

RATED_RE = re.compile(r"\bRated\b")
NOT_RATED_RE = re.compile(r"Not Rated|Unrated", re.I)

VENUE_ATTR_RE = re.compile(r"venue|location|store|shop", re.I)
CLOSED_RE = re.compile(r"\(closed\)|\(temporarily closed\)", re.I)
CLOSED_STRIP_RE = re.compile(r"\s*\((?:temporarily\s+)?closed\)\s*", re.I)

# Hand-maintained; under- and over-matches on unseen store names. Tune freely.
VENUE_KEYWORD_RE = re.compile(
    r"game|games|hobby|card|comics|shop|store|castle|kastle|mox|channel"
    r"|fireball|face.to.face|good.games|guf",
    re.I,
)

# A leaf that matches any of these is not a venue.
VENUE_EXCLUSIONS: list[re.Pattern] = [
    re.compile(_MONTHS, re.I),
    re.compile(r"^\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}"),
    re.compile(
        r"Classic Constructed|Blitz|Draft|Sealed|Clash|Ultimate Pit Fight|Silver Age"
        r"|Living Legend",
        re.I,
    ),
    re.compile(
        r"Armory|ProQuest|Calling|Battle Hardened|Road to Nationals|Nationals"
        r"|Skirmish|Pre.?Release",
        re.I,
    ),
    re.compile(r"XP Modifier|Not rated|^Rated$", re.I),
    re.compile(r"View Results|Results|Matches|Decklists", re.I),
    re.compile(r"^\d+[WLD]|\b(Win|Loss|Draw)\b", re.I),
    re.compile(r"^(Round|Playoff|Opponent|Result|Hero|Total)", re.I),
    re.compile(r"^\d+$"),
    re.compile(r"Event$|Event Type|Event description", re.I),
    re.compile(r"Rating Change|Pending", re.I),
]

NAME_SUFFIX_RE = re.compile(
    r"armory|proquest|calling|battle hardened|skirmish|nationals|pre.?release|weekly"
    r"|classic constructed|blitz|draft|sealed|clash|upf|ultimate pit fight",
    re.I,
)
DASH_SPLIT_RE = re.compile(r"\s+[-–—]\s+")

VENUE_TAGS = ["span", "a", "p", "div", "small"]


def first_match(candidates: Iterable[Callable[[], T | None]]) -> T | None:
    """Return the first non-empty candidate result."""
    for candidate in candidates:
        value = candidate()
        if value:
            return value
    return None


def _first_test(tests: list[tuple[re.Pattern, str]], text: str) -> str | None:
    for pattern, label in tests:
        if pattern.search(text):
            return label
    return None


def expand_event_name(name: str) -> str:
    """Expand known event abbreviations.

    "RtN" -> "Road to Nationals", "PQ Las Vegas" -> "ProQuest Las Vegas".
    Only whole words are replaced.
    """
    whole = EVENT_ABBREVIATIONS.get(name.strip().lower())
    if whole:
        return whole

    result = name
    for abbr, expanded in EVENT_ABBREVIATIONS.items():
        result = re.sub(rf"\b{abbr}\b", expanded, result, flags=re.I)
    return result


def parse_date(text: str) -> str | None:
    """Parse "Feb. 22, 2026" or "February 22 2026" into YYYY-MM-DD."""
    cleaned = " ".join(text.replace(",", " ").replace(".", " ").split())
    for fmt in ("%B %d %Y", "%b %d %Y"):
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def classify_date(text: str) -> str | None:
    match = FULL_DATE_RE.search(text) or SHORT_DATE_RE.search(text)
    if not match:
        return None
    return parse_date(match.group(0))


def classify_format(text: str) -> str | None:
    return _first_test(FORMAT_TESTS, text)


def classify_event_type(text: str) -> str | None:
    return _first_test(EVENT_TYPE_TESTS, text)


def classify_rated(text: str) -> bool:
    return bool(RATED_RE.search(text)) and not NOT_RATED_RE.search(text)


def event_tier(event_type: str) -> str:
    """Group an event type into casual / competitive / professional."""
    return EVENT_TIERS.get(event_type, "")


def _strip_closed(text: str) -> str:
    return CLOSED_STRIP_RE.sub("", text).strip()


def _venue_from_attributes(elements: list[Tag]) -> str | None:
    for el in elements:
        text = text_of(el)
        if len(text) < 3 or len(text) > 100 or len(element_children(el)) > 2:
            continue
        attrs = [
            el.get("title", ""),
            el.get("aria-label", ""),
            " ".join(el.get("class", [])),
        ]
        if any(VENUE_ATTR_RE.search(attr) for attr in attrs):
            return text
    return None


def _venue_from_closed_marker(elements: list[Tag]) -> str | None:
    for el in elements:
        if closest(el, "table") is not None:
            continue
        text = text_of(el)
        if 5 < len(text) < 120 and len(element_children(el)) <= 2:
            if CLOSED_RE.search(text):
                return _strip_closed(text)
    return None


def _looks_like_venue_leaf(text: str, event_name: str) -> bool:
    if len(text) < 5 or len(text) > 100:
        return False
    if text == event_name or "\n" in text:
        return False
    if any(pattern.search(text) for pattern in VENUE_EXCLUSIONS):
        return False
    return bool(VENUE_KEYWORD_RE.search(text) or CLOSED_RE.search(text))


def _venue_from_leaf_text(elements: list[Tag], event_name: str) -> str | None:
    for el in elements:
        if closest(el, "table") is not None:
            continue
        if len(element_children(el)) > 1:
            continue
        text = text_of(el)
        if _looks_like_venue_leaf(text, event_name):
            return _strip_closed(text)
    return None


def venue_from_event_name(name: str) -> str | None:
    """Split "Venue - Armory Blitz" style names into their venue part."""
    if " - " not in name:
        return None
    parts = DASH_SPLIT_RE.split(name)
    if len(parts) < 2:
        return None
    if NAME_SUFFIX_RE.search(" ".join(parts[1:])):
        return parts[0].strip() or None
    return None


def classify_venue(scope: EventScope, event_name: str) -> str | None:
    """Four tiers, strongest structural signal first."""
    elements: list[Tag] = []
    for scope_el in scope.elements:
        if scope_el.name in VENUE_TAGS:
            elements.append(scope_el)
        elements.extend(scope_el.find_all(VENUE_TAGS))

    return first_match([
        lambda: _venue_from_attributes(elements),
        lambda: _venue_from_closed_marker(elements),
        lambda: _venue_from_leaf_text(elements, event_name),
        lambda: venue_from_event_name(event_name),
    ])


def classify_scope(scope: EventScope, today: str) -> EventInfo:
    """Run every classifier over a located event scope."""
    name = expand_event_name(scope.heading)
    text = scope.text

    return EventInfo(
        name=name,
        date=classify_date(text) or today,
        venue=classify_venue(scope, name) or "",
        event_type=first_match([
            lambda: classify_event_type(text),
            lambda: classify_event_type(name),
        ]) or "",
        format=first_match([
            lambda: classify_format(text),
            lambda: classify_format(name),
        ]) or "",
        rated=classify_rated(text),
    )


def extract_event_info(table: Tag, today: str | None = None) -> EventInfo:
    """Resolve the event a results table belongs to.

    Falls back to "Unknown Event" on ``today`` when no heading is found.
    """
    today = today or date.today().isoformat()
    scope = locate_event(table)
    if scope is None:
        return EventInfo.unknown(today)
    return classify_scope(scope, today)
