"""Tests for payload encoding, file exports and state persistence."""

from __future__ import annotations

import base64
import csv
import json
from pathlib import Path

import pyperclip
import pytest

from fabharvest import HarvestState, MatchRecord
from fabharvest.payload import (
    FABSTATS_IMPORT_URL,
    MAX_FRAGMENT_LENGTH,
    build_import_url,
    encode_fragment,
    finalize_payload,
    write_csv,
    write_json,
)
from fabharvest.store import SCRAPE_KEY, StateStore


@pytest.fixture
def matches() -> list[MatchRecord]:
    return [
        MatchRecord(
            event="ProQuest Las Vegas",
            date="2026-02-22",
            venue="Zoë's Card Café",
            event_type="ProQuest",
            format="Classic Constructed",
            rated=True,
            hero="Dorinthea Ironsong",
            round=1,
            opponent="Smith, Jane",
            opponent_gem_id="1234",
            result="win",
        ),
        MatchRecord(
            event="ProQuest Las Vegas",
            date="2026-02-22",
            round_label="Finals",
            opponent="Doe, John",
            result="loss",
        ),
    ]


# --- Payload tests ---


class TestPayload:
    def test_fragment_decodes_to_compact_json(self, matches: list[MatchRecord]) -> None:
        decoded = base64.b64decode(encode_fragment(matches)).decode("utf-8")
        assert json.loads(decoded) == [m.to_dict() for m in matches]
        assert decoded.startswith('[{"event":"ProQuest Las Vegas","date":"2026-02-22",')
        assert "Zoë" in decoded

    def test_transport_keys(self, matches: list[MatchRecord]) -> None:
        assert list(matches[0].to_dict()) == [
            "event", "date", "venue", "eventType", "format", "rated", "hero",
            "round", "roundLabel", "opponent", "opponentGemId", "result",
        ]

    def test_import_url_has_fragment(self, matches: list[MatchRecord]) -> None:
        url = build_import_url(matches)
        assert url == f"{FABSTATS_IMPORT_URL}#ext={encode_fragment(matches)}"

    def test_oversized_payload_drops_fragment(self) -> None:
        big = [
            MatchRecord(event="Big", date="2026-01-01", opponent="x" * 2000, result="win")
            for _ in range(600)
        ]
        copied: list[str] = []

        outcome = finalize_payload(big, 3, copy=copied.append)

        assert len(encode_fragment(big)) > MAX_FRAGMENT_LENGTH
        assert outcome.import_url == FABSTATS_IMPORT_URL
        assert outcome.clipboard_ok is True
        assert len(json.loads(copied[0])) == 600

    def test_clipboard_failure_is_not_fatal(self, matches: list[MatchRecord]) -> None:
        def denied(text: str) -> None:
            raise pyperclip.PyperclipException("clipboard unavailable")

        outcome = finalize_payload(matches, 1, copy=denied)

        assert outcome.clipboard_ok is False
        assert "#ext=" in outcome.import_url
        assert outcome.match_count == 2

    def test_any_clipboard_error_is_not_fatal(self, matches: list[MatchRecord]) -> None:
        def denied(text: str) -> None:
            raise PermissionError("clipboard permission denied")

        outcome = finalize_payload(matches, 1, copy=denied)

        assert outcome.clipboard_ok is False
        assert "#ext=" in outcome.import_url

    def test_unencodable_payload_gives_bare_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from fabharvest import payload

        def broken(matches: list[MatchRecord]) -> str:
            raise ValueError("cannot encode")

        monkeypatch.setattr(payload, "encode_fragment", broken)
        record = MatchRecord(event="E", date="2026-01-01", opponent="Doe, John", result="win")
        assert build_import_url([record]) == FABSTATS_IMPORT_URL

    def test_clipboard_pretty_json(self, matches: list[MatchRecord]) -> None:
        copied: list[str] = []
        outcome = finalize_payload(matches, 1, copy=copied.append)
        assert copied[0] == outcome.pretty_json
        assert copied[0].startswith("[\n  {")

    def test_write_files(self, tmp_path: Path, matches: list[MatchRecord]) -> None:
        outcome = finalize_payload(matches, 1, copy=None)
        json_path = tmp_path / "export" / "matches.json"
        csv_path = tmp_path / "export" / "matches.csv"

        write_json(outcome, json_path)
        write_csv(matches, csv_path)

        assert json.loads(json_path.read_text(encoding="utf-8"))[1]["roundLabel"] == "Finals"
        assert csv_path.read_bytes().startswith(b"\xef\xbb\xbf")
        with open(csv_path, newline="", encoding="utf-8-sig") as f:
            rows = list(csv.DictReader(f))
        assert [r["opponent"] for r in rows] == ["Smith, Jane", "Doe, John"]
        assert rows[0]["venue"] == "Zoë's Card Café"


# --- State store tests ---


class TestStateStore:
    def test_save_and_load(self, tmp_path: Path, matches: list[MatchRecord]) -> None:
        store = StateStore(tmp_path)
        state = HarvestState(matches=matches, pages_scraped=2, next_url="https://x.test/?page=3")

        store.save(state)

        assert store.path == tmp_path / f"{SCRAPE_KEY}.json"
        assert store.load() == state

    def test_persisted_layout(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        store.save(HarvestState(pages_scraped=1))
        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data == {"matches": [], "pagesScraped": 1}

    def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        assert StateStore(tmp_path / "nowhere").load() is None

    def test_corrupt_state_is_cleared(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None
        assert not store.path.exists()

    def test_second_harvest_replaces_first(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path)
        store.save(HarvestState(pages_scraped=5))
        store.save(HarvestState(pages_scraped=1))
        assert store.load().pages_scraped == 1

    def test_clear_missing_is_fine(self, tmp_path: Path) -> None:
        StateStore(tmp_path).clear()
