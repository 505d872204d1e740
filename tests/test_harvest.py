"""Tests for the resumable harvest state machine and the CLI."""

from __future__ import annotations

import re
from pathlib import Path

import pytest
import requests

import harvest_history
from fabharvest import HarvestError, HarvestState, MatchRecord
from fabharvest.browser import PRIMARY_EXPAND_RE, SECONDARY_EXPAND_RE
from fabharvest.harvest import (
    BEFORE_NAVIGATE,
    NO_MATCHES_MESSAGE,
    PAGE_SETTLE,
    Clear,
    Expand,
    Expanded,
    Machine,
    Navigate,
    Navigated,
    Persist,
    Phase,
    Scan,
    Scanned,
    Settle,
    Start,
    Status,
    run_harvest,
    step,
)
from fabharvest.store import StateStore

START = "https://gem.example/profile/history/"
PAGE1 = START + "?page=1"
PAGE2 = START + "?page=2"


def history_page(event: str, when: str, rows: list[tuple[str, str, str]], next_page: int | None = None) -> str:
    body = "".join(f"<tr><td>{r}</td><td>{o}</td><td>{res}</td></tr>" for r, o, res in rows)
    link = f'<a href="?page={next_page}">{next_page}</a>' if next_page else ""
    return (
        f"<html><body><div class='event'><p>{when}</p><h3>{event}</h3>"
        "<table><thead><tr><th>Round</th><th>Opponent</th><th>Result</th></tr></thead>"
        f"<tbody>{body}</tbody></table></div>{link}</body></html>"
    )


PAGES = {
    PAGE1: history_page(
        "Armory Night",
        "March 1, 2026",
        [("1", "Smith, Jane (1234)", "W"), ("2", "Doe, John", "L")],
        next_page=2,
    ),
    PAGE2: history_page("Skirmish Seattle", "January 10, 2026", [("1", "Lee, Ann", "D")]),
}


class FakePage:
    """Serves canned HTML; URLs it does not know fail like a dead network."""

    def __init__(self, pages: dict[str, str]) -> None:
        self.pages = pages
        self.url = ""
        self.loaded: list[str] = []
        self.expand_calls: list[tuple[str, bool]] = []

    def load(self, url: str) -> None:
        self.loaded.append(url)
        if url not in self.pages:
            raise requests.ConnectionError(f"cannot reach {url}")
        self.url = url

    def html(self) -> str:
        return self.pages[self.url]

    def expand(self, pattern: re.Pattern, open_details: bool, sleep) -> int:
        self.expand_calls.append((pattern.pattern, open_details))
        return 0

    def __enter__(self) -> FakePage:
        return self

    def __exit__(self, *exc) -> None:
        pass


class ProcessKilled(BaseException):
    """Stands in for the process being torn down mid-harvest."""


def _record(opponent: str = "Someone, Else") -> MatchRecord:
    return MatchRecord(event="Old Event", date="2025-12-01", opponent=opponent, result="win")


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state")


# --- End-to-end runs ---


class TestRunHarvest:
    def test_harvests_every_page(self, store: StateStore) -> None:
        page = FakePage(PAGES)
        copied: list[str] = []
        statuses: list[str] = []

        machine = run_harvest(
            page,
            store,
            START,
            sleep=lambda s: None,
            on_status=lambda status, detail, count: statuses.append(status),
            copy=copied.append,
        )

        assert machine.phase is Phase.DONE
        assert page.loaded == [PAGE1, PAGE2]
        assert machine.outcome.match_count == 3
        assert machine.outcome.pages_scraped == 2
        assert machine.outcome.clipboard_ok is True
        assert machine.outcome.import_url.startswith("https://fabstats.netlify.app/import#ext=")
        assert copied == [machine.outcome.pretty_json]
        assert store.load() is None
        assert "Moving to page 2..." in statuses

        events = [m.event for m in machine.state.matches]
        assert events == ["Armory Night", "Armory Night", "Skirmish Seattle"]

    def test_expansion_passes_per_page(self, store: StateStore) -> None:
        page = FakePage({PAGE1: PAGES[PAGE2]})
        sleeps: list[float] = []

        run_harvest(page, store, START, sleep=sleeps.append, copy=None)

        # Nothing expanded, so each of the two passes also tries the loose vocabulary
        assert page.expand_calls == [
            (PRIMARY_EXPAND_RE.pattern, True),
            (SECONDARY_EXPAND_RE.pattern, False),
            (PRIMARY_EXPAND_RE.pattern, True),
            (SECONDARY_EXPAND_RE.pattern, False),
        ]
        assert sleeps == [PAGE_SETTLE, 0.5]

    def test_resumes_from_saved_state(self, store: StateStore) -> None:
        store.save(HarvestState(matches=[_record()] * 5, pages_scraped=1, next_url=PAGE2))
        page = FakePage(PAGES)

        machine = run_harvest(page, store, sleep=lambda s: None, copy=None)

        assert page.loaded == [PAGE2]
        assert machine.phase is Phase.DONE
        assert machine.outcome.match_count == 6
        assert machine.outcome.pages_scraped == 2

    def test_start_url_replaces_saved_harvest(self, store: StateStore) -> None:
        other = "https://gem.example/other/history/?page=7"
        store.save(HarvestState(matches=[_record()] * 5, pages_scraped=6, next_url=other))
        page = FakePage(PAGES)

        machine = run_harvest(page, store, START, sleep=lambda s: None, copy=None)

        assert page.loaded == [PAGE1, PAGE2]
        assert machine.outcome.match_count == 3
        assert machine.outcome.pages_scraped == 2
        assert store.load() is None

    def test_survives_process_restart(self, store: StateStore) -> None:
        def killed_before_navigation(seconds: float) -> None:
            if seconds == BEFORE_NAVIGATE:
                raise ProcessKilled()

        with pytest.raises(ProcessKilled):
            run_harvest(FakePage(PAGES), store, START, sleep=killed_before_navigation, copy=None)

        saved = store.load()
        assert saved is not None
        assert len(saved.matches) == 2
        assert saved.pages_scraped == 1
        assert saved.next_url == PAGE2

        # A new process picks the harvest up without being given a URL
        page = FakePage(PAGES)
        machine = run_harvest(page, store, sleep=lambda s: None, copy=None)
        assert page.loaded == [PAGE2]
        assert machine.outcome.match_count == 3

    def test_navigation_failure_keeps_partial_results(self, store: StateStore) -> None:
        page = FakePage({PAGE1: PAGES[PAGE1]})

        machine = run_harvest(page, store, START, sleep=lambda s: None, copy=None)

        assert machine.phase is Phase.DONE
        assert machine.outcome.match_count == 2
        assert store.load() is None

    def test_clipboard_error_keeps_matches(self, store: StateStore) -> None:
        def denied(text: str) -> None:
            raise PermissionError("clipboard permission denied")

        machine = run_harvest(FakePage(PAGES), store, START, sleep=lambda s: None, copy=denied)

        assert machine.phase is Phase.DONE
        assert machine.outcome.match_count == 3
        assert machine.outcome.clipboard_ok is False
        assert "#ext=" in machine.outcome.import_url

    def test_failure_with_no_matches(self, store: StateStore) -> None:
        failures: list[str] = []

        machine = run_harvest(
            FakePage({}), store, START, sleep=lambda s: None, on_failure=failures.append
        )

        assert machine.phase is Phase.FAILED
        assert "cannot reach" in failures[0]
        assert store.load() is None

    def test_empty_history_fails(self, store: StateStore) -> None:
        page = FakePage({PAGE1: "<html><body><h1>History</h1></body></html>"})
        machine = run_harvest(page, store, START, sleep=lambda s: None, copy=None)
        assert machine.phase is Phase.FAILED
        assert machine.error == NO_MATCHES_MESSAGE

    def test_needs_state_or_url(self, store: StateStore) -> None:
        with pytest.raises(HarvestError):
            run_harvest(FakePage(PAGES), store)


# --- Pure transition tests ---


class TestStep:
    def test_start_persists_before_navigating(self) -> None:
        machine, effects = step(Machine(), Start(START))
        assert machine.phase is Phase.NAVIGATING_NEXT
        assert [type(e) for e in effects] == [Clear, Status, Persist, Navigate]
        assert effects[2].state.next_url == PAGE1
        assert effects[3].url == PAGE1

    def test_loose_vocabulary_tried_once_per_pass(self) -> None:
        machine, _ = step(Machine(phase=Phase.NAVIGATING_NEXT), Navigated(PAGE1))
        assert machine.phase is Phase.EXPANDING

        machine, effects = step(machine, Expanded(0))
        assert effects == [Expand(SECONDARY_EXPAND_RE, open_details=False)]

        machine, effects = step(machine, Expanded(0))
        assert effects == [Settle(0.5), Expand(PRIMARY_EXPAND_RE, open_details=True)]
        assert machine.expand_pass == 2

        machine, effects = step(machine, Expanded(4))
        assert machine.phase is Phase.SCANNING
        assert effects[0] == Settle(0.6)
        assert effects[-1] == Scan(PAGE1)

    def test_next_page_is_persisted_before_navigation(self) -> None:
        machine = Machine(phase=Phase.SCANNING, url=PAGE1)
        machine, effects = step(machine, Scanned([_record()], PAGE2))
        kinds = [type(e) for e in effects]
        assert kinds.index(Persist) < kinds.index(Navigate)
        assert machine.state.pages_scraped == 1
        assert effects[kinds.index(Persist)].state.next_url == PAGE2

    def test_step_does_not_mutate_input(self) -> None:
        before = Machine(phase=Phase.SCANNING, url=PAGE1)
        step(before, Scanned([_record()], None))
        assert before.state.matches == []

    def test_unexpected_event(self) -> None:
        with pytest.raises(HarvestError):
            step(Machine(), Navigated(PAGE1))


# --- CLI tests ---


class TestCli:
    def test_main_exports(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ) -> None:
        monkeypatch.setenv("FABHARVEST_STATE_DIR", str(tmp_path / "state"))
        monkeypatch.setattr(harvest_history, "HttpPage", lambda: FakePage(PAGES))
        monkeypatch.setattr("fabharvest.harvest.time.sleep", lambda s: None)
        csv_path = tmp_path / "out" / "matches.csv"

        code = harvest_history.main([START, "--no-clipboard", "--csv", str(csv_path)])

        assert code == 0
        assert csv_path.exists()
        out = capsys.readouterr().out
        assert "Export complete: 3 matches across 2 pages" in out
        assert "#ext=" in out

    def test_reset_without_url_only_discards(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        state_dir = tmp_path / "state"
        monkeypatch.setenv("FABHARVEST_STATE_DIR", str(state_dir))
        StateStore(state_dir).save(HarvestState(matches=[_record()], pages_scraped=1, next_url=PAGE2))

        assert harvest_history.main(["--reset"]) == 0
        assert StateStore(state_dir).load() is None

    def test_main_without_url_or_state(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ) -> None:
        monkeypatch.setenv("FABHARVEST_STATE_DIR", str(tmp_path / "state"))
        monkeypatch.setattr(harvest_history, "HttpPage", lambda: FakePage(PAGES))

        assert harvest_history.main([]) == 1
        assert "ERROR: No harvest in progress" in capsys.readouterr().out
