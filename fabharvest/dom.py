"""Small helpers for walking a parsed BeautifulSoup tree.

BeautifulSoup compares tags by value, so every identity check here uses
``is``. Sibling helpers skip text nodes and only yield elements.
"""

from __future__ import annotations

from collections.abc import Iterator

from bs4 import Tag

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5"]


def text_of(node: Tag | None) -> str:
    """Stripped text content of a node ("" for None)."""
    if node is None:
        return ""
    return node.get_text().strip()


def element_children(node: Tag) -> list[Tag]:
    return [c for c in node.children if isinstance(c, Tag)]


def previous_elements(node: Tag) -> Iterator[Tag]:
    """Preceding element siblings, closest first."""
    for sib in node.previous_siblings:
        if isinstance(sib, Tag):
            yield sib


def next_elements(node: Tag) -> Iterator[Tag]:
    for sib in node.next_siblings:
        if isinstance(sib, Tag):
            yield sib


def parent_element(node: Tag) -> Tag | None:
    parent = node.parent
    if parent is None or parent.name == "[document]":
        return None
    return parent


def contains(node: Tag, other: Tag) -> bool:
    """True if ``other`` is ``node`` or one of its descendants."""
    if other is node:
        return True
    return any(parent is node for parent in other.parents)


def closest(node: Tag, name: str) -> Tag | None:
    """The node itself or its nearest ancestor with the given tag name."""
    if node.name == name:
        return node
    return node.find_parent(name)


def is_heading(node: Tag) -> bool:
    return node.name in HEADING_TAGS
