"""Parse results-table rows into MatchRecords."""

from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import Tag

from fabharvest import EventInfo, MatchRecord
from fabharvest.dom import text_of

BYE_RE = re.compile(r"\bbye\b", re.I)
GEM_ID_SUFFIX_RE = re.compile(r"\s*\((\d+)\)\s*$")
LEADING_INT_RE = re.compile(r"^\s*(\d+)")

RESULTS = {
    "win": "win",
    "w": "win",
    "loss": "loss",
    "l": "loss",
    "draw": "draw",
    "d": "draw",
}


@dataclass(frozen=True)
class TableColumns:
    """Column positions of a results table; -1 means absent."""

    round_idx: int
    opponent_idx: int
    result_idx: int
    is_playoff: bool = False


def _find_col_index(headers: list[str], predicate) -> int:
    for i, h in enumerate(headers):
        if predicate(h):
            return i
    return -1


def classify_columns(table: Tag) -> TableColumns | None:
    """Map header columns; None unless both opponent and result exist."""
    headers = [text_of(th).lower() for th in table.find_all("th")]

    round_idx = _find_col_index(
        headers, lambda h: "round" in h or "playoff" in h or h in ("rnd", "#")
    )
    opponent_idx = _find_col_index(headers, lambda h: "opponent" in h)
    result_idx = _find_col_index(headers, lambda h: "result" in h)

    if opponent_idx < 0 or result_idx < 0:
        return None

    is_playoff = any("playoff" in h or "top" in h for h in headers)
    return TableColumns(round_idx, opponent_idx, result_idx, is_playoff)


def normalize_result(text: str) -> str | None:
    """Map "Win", "W", "win" to "win" (likewise loss/draw); else None."""
    return RESULTS.get(text.strip().lower())


def split_opponent(raw: str) -> tuple[str, str]:
    """Split "Smith, Jane (1234)" into ("Smith, Jane", "1234")."""
    match = GEM_ID_SUFFIX_RE.search(raw)
    gem_id = match.group(1) if match else ""
    name = GEM_ID_SUFFIX_RE.sub("", raw).strip()
    return name, gem_id


def playoff_round_label(round_text: str) -> str:
    lower = round_text.lower()
    if "final" in lower and "semi" not in lower and "quarter" not in lower:
        return "Finals"
    if "semi" in lower:
        return "Top 4"
    if "quarter" in lower:
        return "Top 8"
    if re.search(r"top\s*4", lower):
        return "Top 4"
    if re.search(r"top\s*8", lower):
        return "Top 8"
    return "Playoff"


def parse_round_number(round_text: str) -> int:
    match = LEADING_INT_RE.match(round_text)
    return int(match.group(1)) if match else 0


def table_rows(table: Tag) -> list[Tag]:
    """Body rows; falls back to every row after the header."""
    rows = table.select("tbody tr")
    if rows:
        return rows
    return table.find_all("tr")[1:]


def parse_row(
    row: Tag, columns: TableColumns, event: EventInfo, hero: str
) -> MatchRecord | None:
    cells = row.find_all("td")
    if len(cells) <= max(columns.opponent_idx, columns.result_idx):
        return None

    round_text = "0"
    if 0 <= columns.round_idx < len(cells):
        round_text = text_of(cells[columns.round_idx])
    opponent_raw = text_of(cells[columns.opponent_idx])

    if BYE_RE.search(opponent_raw):
        return None
    if len(opponent_raw) < 2:
        return None

    result = normalize_result(text_of(cells[columns.result_idx]))
    if result is None:
        return None

    opponent, gem_id = split_opponent(opponent_raw)

    return MatchRecord(
        event=event.name,
        date=event.date,
        venue=event.venue,
        event_type=event.event_type,
        format=event.format,
        rated=event.rated,
        hero=hero,
        round=parse_round_number(round_text),
        round_label=playoff_round_label(round_text) if columns.is_playoff else "",
        opponent=opponent,
        opponent_gem_id=gem_id,
        result=result,
    )


def parse_results_table(
    table: Tag, columns: TableColumns, event: EventInfo, hero: str
) -> list[MatchRecord]:
    matches: list[MatchRecord] = []
    for row in table_rows(table):
        match = parse_row(row, columns, event, hero)
        if match:
            matches.append(match)
    return matches
