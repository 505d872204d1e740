"""Associate a results table with the event heading that owns it.

GEM history pages have no stable markup for "this is an event", so the
heading is found positionally: walk up from the table and look back
through earlier siblings at each level. The sibling that holds the heading
and the table's ancestor at that same level bound the event's scope; only
elements between the two are read for metadata, so nothing leaks in from
a neighbouring event.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from bs4 import Tag

from fabharvest.dom import (
    HEADING_TAGS,
    contains,
    is_heading,
    next_elements,
    parent_element,
    previous_elements,
    text_of,
)

MAX_DEPTH = 10
PRE_HEADING_LIMIT = 3

GENERIC_HEADING_RE = re.compile(
    r"^(Results|Matches|Decklists|Event History|History|Dashboard|Profile)$", re.I
)


def is_generic_heading(text: str) -> bool:
    return bool(GENERIC_HEADING_RE.match(text))


def _accept_heading(text: str) -> bool:
    return not is_generic_heading(text) and 2 < len(text) < 250


@dataclass
class EventScope:
    """The sibling range between an event heading and its results table."""

    heading: str
    heading_sibling: Tag
    table_ancestor: Tag
    elements: list[Tag] = field(default_factory=list)
    pre_texts: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Scoped text searched by the metadata classifiers."""
        return " ".join(self.pre_texts) + " " + " ".join(
            el.get_text() for el in self.elements
        )


def _heading_in(sib: Tag) -> str | None:
    """Heading text carried by a sibling, or found inside it (last first)."""
    if is_heading(sib):
        text = text_of(sib)
        if _accept_heading(text):
            return text

    for heading in reversed(sib.find_all(HEADING_TAGS)):
        text = text_of(heading)
        if _accept_heading(text):
            return text

    return None


def find_heading(table: Tag) -> tuple[str, Tag, Tag] | None:
    """Find ``(heading_text, heading_sibling, table_ancestor)`` for a table.

    Returns None when no usable heading exists within ``MAX_DEPTH`` levels.
    """
    current: Tag | None = table
    for _ in range(MAX_DEPTH):
        if current is None:
            break
        for sib in previous_elements(current):
            heading = _heading_in(sib)
            if heading:
                return heading, sib, current
        current = parent_element(current)

    return None


def _pre_heading_texts(heading_sibling: Tag) -> list[str]:
    """Text of up to three elements before the heading (date labels live here)."""
    texts: list[str] = []
    for prev in previous_elements(heading_sibling):
        if len(texts) >= PRE_HEADING_LIMIT:
            break
        text = text_of(prev)
        if is_heading(prev) and not is_generic_heading(text):
            break
        if prev.name == "table" or prev.find("table") is not None:
            break
        texts.insert(0, text)
    return texts


def locate_event(table: Tag) -> EventScope | None:
    """Build the scoped range for a results table."""
    found = find_heading(table)
    if found is None:
        return None

    heading, heading_sibling, table_ancestor = found

    elements: list[Tag] = [heading_sibling]
    if heading_sibling is not table_ancestor and not contains(heading_sibling, table):
        for el in next_elements(heading_sibling):
            elements.append(el)
            if el is table_ancestor or contains(el, table):
                break

    return EventScope(
        heading=heading,
        heading_sibling=heading_sibling,
        table_ancestor=table_ancestor,
        elements=elements,
        pre_texts=_pre_heading_texts(heading_sibling),
    )
