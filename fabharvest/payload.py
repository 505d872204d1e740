"""Hand harvested matches over to the FaB Stats import page."""

from __future__ import annotations

import base64
import csv
import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pyperclip

from fabharvest import MatchRecord

FABSTATS_IMPORT_URL = "https://fabstats.netlify.app/import"
MAX_FRAGMENT_LENGTH = 1_000_000

CSV_FIELDS = [
    "event", "date", "venue", "eventType", "format", "rated", "hero",
    "round", "roundLabel", "opponent", "opponentGemId", "result",
]


@dataclass
class HarvestOutcome:
    """What a finished harvest produced."""

    match_count: int
    pages_scraped: int
    import_url: str
    clipboard_ok: bool
    pretty_json: str


def to_pretty_json(matches: list[MatchRecord]) -> str:
    return json.dumps([m.to_dict() for m in matches], indent=2, ensure_ascii=False)


def to_compact_json(matches: list[MatchRecord]) -> str:
    return json.dumps([m.to_dict() for m in matches], separators=(",", ":"), ensure_ascii=False)


def encode_fragment(matches: list[MatchRecord]) -> str:
    """Base64 of the UTF-8 bytes of the compact JSON array."""
    return base64.b64encode(to_compact_json(matches).encode("utf-8")).decode("ascii")


def build_import_url(
    matches: list[MatchRecord],
    base_url: str = FABSTATS_IMPORT_URL,
    limit: int = MAX_FRAGMENT_LENGTH,
) -> str:
    """Import URL with ``#ext=<payload>``.

    Falls back to the bare URL when the payload is too long or cannot be
    encoded; the clipboard copy then carries the matches.
    """
    try:
        encoded = encode_fragment(matches)
    except (TypeError, ValueError):
        return base_url
    if len(encoded) < limit:
        return f"{base_url}#ext={encoded}"
    return base_url


def copy_to_clipboard(text: str, copy: Callable[[str], None] = pyperclip.copy) -> bool:
    """Copy text to the system clipboard. Returns False if unavailable.

    Any clipboard error counts as unavailable.
    """
    try:
        copy(text)
        return True
    except Exception:
        return False


def finalize_payload(
    matches: list[MatchRecord],
    pages_scraped: int,
    base_url: str = FABSTATS_IMPORT_URL,
    copy: Callable[[str], None] | None = pyperclip.copy,
    limit: int = MAX_FRAGMENT_LENGTH,
) -> HarvestOutcome:
    """Copy the pretty JSON to the clipboard and build the import URL.

    Pass ``copy=None`` to skip the clipboard entirely.
    """
    pretty = to_pretty_json(matches)
    clipboard_ok = copy_to_clipboard(pretty, copy) if copy is not None else False

    return HarvestOutcome(
        match_count=len(matches),
        pages_scraped=pages_scraped,
        import_url=build_import_url(matches, base_url, limit),
        clipboard_ok=clipboard_ok,
        pretty_json=pretty,
    )


def write_json(outcome: HarvestOutcome, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(outcome.pretty_json, encoding="utf-8")


def write_csv(matches: list[MatchRecord], path: Path) -> None:
    """Write matches as CSV (BOM included so spreadsheets detect UTF-8)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for m in matches:
            writer.writerow(m.to_dict())
