"""Resumable multi-page harvest.

The harvest is a pure state machine: ``step(machine, event)`` returns the
next machine and a list of effects. ``run_harvest`` performs the effects
against a page driver and a ``StateStore`` and feeds the results back in
as events. State is persisted before every navigation, so a harvest
killed mid-way picks up again on the next run from the saved page.

    IDLE -> NAVIGATING_NEXT -> EXPANDING -> SCANNING -> NAVIGATING_NEXT ...
                                                     -> FINALIZING -> DONE
    any error in NAVIGATING_NEXT / EXPANDING / SCANNING -> FINALIZING | FAILED
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

import pyperclip
from bs4 import BeautifulSoup

from fabharvest import HarvestError, HarvestState, MatchRecord
from fabharvest.browser import PRIMARY_EXPAND_RE, SECONDARY_EXPAND_RE, Page
from fabharvest.payload import FABSTATS_IMPORT_URL, HarvestOutcome, finalize_payload
from fabharvest.scanner import PageScan, current_page, page_one_url, scan_page
from fabharvest.store import StateStore

PAGE_SETTLE = 2.0
PASS_SETTLE = 0.6
BETWEEN_PASSES = 0.5
BEFORE_NAVIGATE = 0.8

NO_MATCHES_MESSAGE = (
    "No matches found. Make sure you're on your GEM History page with events listed."
)


class Phase(Enum):
    IDLE = "idle"
    EXPANDING = "expanding"
    SCANNING = "scanning"
    NAVIGATING_NEXT = "navigating_next"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


# --- Events ---


@dataclass(frozen=True)
class Start:
    url: str


@dataclass(frozen=True)
class Resume:
    state: HarvestState


@dataclass(frozen=True)
class Navigated:
    url: str


@dataclass(frozen=True)
class Expanded:
    count: int


@dataclass(frozen=True)
class Scanned:
    matches: list[MatchRecord]
    next_url: str | None


@dataclass(frozen=True)
class Finalized:
    outcome: HarvestOutcome


@dataclass(frozen=True)
class Errored:
    message: str


# --- Effects ---


@dataclass(frozen=True)
class Status:
    status: str
    detail: str
    match_count: int


@dataclass(frozen=True)
class Settle:
    seconds: float


@dataclass(frozen=True)
class Expand:
    pattern: re.Pattern
    open_details: bool


@dataclass(frozen=True)
class Scan:
    url: str


@dataclass(frozen=True)
class Persist:
    state: HarvestState


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class Navigate:
    url: str


@dataclass(frozen=True)
class Finalize:
    matches: list[MatchRecord]
    pages_scraped: int


@dataclass(frozen=True)
class Complete:
    outcome: HarvestOutcome


@dataclass(frozen=True)
class Fail:
    message: str


@dataclass(frozen=True)
class Machine:
    phase: Phase = Phase.IDLE
    state: HarvestState = field(default_factory=HarvestState)
    url: str = ""
    expand_pass: int = 0
    loose_tried: bool = False
    outcome: HarvestOutcome | None = None
    error: str = ""


def _begin_expanding(machine: Machine, url: str) -> tuple[Machine, list]:
    machine = replace(machine, phase=Phase.EXPANDING, url=url, expand_pass=1, loose_tried=False)
    return machine, [
        Settle(PAGE_SETTLE),
        Status(
            "Expanding events...",
            f"Page {current_page(url)}: opening all collapsed sections",
            len(machine.state.matches),
        ),
        Expand(PRIMARY_EXPAND_RE, open_details=True),
    ]


def _on_expanded(machine: Machine, count: int) -> tuple[Machine, list]:
    if count == 0 and not machine.loose_tried:
        return replace(machine, loose_tried=True), [
            Expand(SECONDARY_EXPAND_RE, open_details=False)
        ]

    effects: list = [Settle(PASS_SETTLE)] if count > 0 else []

    if machine.expand_pass == 1:
        # Second pass catches sections revealed by lazily loaded content.
        machine = replace(machine, expand_pass=2, loose_tried=False)
        effects += [Settle(BETWEEN_PASSES), Expand(PRIMARY_EXPAND_RE, open_details=True)]
        return machine, effects

    machine = replace(machine, phase=Phase.SCANNING)
    effects += [
        Status(
            "Reading matches...",
            f"Page {current_page(machine.url)}: scraping match tables",
            len(machine.state.matches),
        ),
        Scan(machine.url),
    ]
    return machine, effects


def _finish(machine: Machine, state: HarvestState) -> tuple[Machine, list]:
    if not state.matches:
        return replace(machine, phase=Phase.FAILED, state=state, error=NO_MATCHES_MESSAGE), [
            Fail(NO_MATCHES_MESSAGE)
        ]
    return replace(machine, phase=Phase.FINALIZING, state=state), [
        Finalize(list(state.matches), state.pages_scraped)
    ]


def _on_scanned(machine: Machine, event: Scanned) -> tuple[Machine, list]:
    old = machine.state
    state = HarvestState(
        matches=old.matches + list(event.matches),
        pages_scraped=old.pages_scraped + 1,
        next_url=event.next_url,
    )

    if not event.next_url:
        machine, effects = _finish(machine, state)
        return machine, [Clear()] + effects

    machine = replace(machine, phase=Phase.NAVIGATING_NEXT, state=state)
    return machine, [
        Status(
            f"Moving to page {current_page(machine.url) + 1}...",
            f"Found {len(event.matches)} matches on this page "
            f"({len(state.matches)} total)",
            len(state.matches),
        ),
        Persist(state),
        Settle(BEFORE_NAVIGATE),
        Navigate(event.next_url),
    ]


def _on_error(machine: Machine, message: str) -> tuple[Machine, list]:
    state = machine.state
    if state.matches:
        machine, effects = _finish(machine, state)
    else:
        machine = replace(machine, phase=Phase.FAILED, error=message)
        effects = [Fail(message)]
    return machine, [Clear()] + effects


def step(machine: Machine, event) -> tuple[Machine, list]:
    """Advance the harvest by one event. Pure; never touches I/O."""
    phase = machine.phase

    if phase is Phase.IDLE and isinstance(event, Start):
        first = page_one_url(event.url)
        state = HarvestState(next_url=first)
        return replace(machine, phase=Phase.NAVIGATING_NEXT, state=state), [
            Clear(),
            Status("Starting export...", "Navigating to page 1", 0),
            Persist(state),
            Navigate(first),
        ]

    if phase is Phase.IDLE and isinstance(event, Resume):
        state = event.state
        if not state.next_url:
            machine, effects = _finish(machine, state)
            return machine, [Clear()] + effects
        return replace(machine, phase=Phase.NAVIGATING_NEXT, state=state), [
            Status(
                "Resuming export...",
                f"Loading page {current_page(state.next_url)}",
                len(state.matches),
            ),
            Navigate(state.next_url),
        ]

    if isinstance(event, Errored) and phase in (
        Phase.NAVIGATING_NEXT,
        Phase.EXPANDING,
        Phase.SCANNING,
    ):
        return _on_error(machine, event.message)

    if phase is Phase.NAVIGATING_NEXT and isinstance(event, Navigated):
        return _begin_expanding(machine, event.url)

    if phase is Phase.EXPANDING and isinstance(event, Expanded):
        return _on_expanded(machine, event.count)

    if phase is Phase.SCANNING and isinstance(event, Scanned):
        return _on_scanned(machine, event)

    if phase is Phase.FINALIZING and isinstance(event, Finalized):
        return replace(machine, phase=Phase.DONE, outcome=event.outcome), [
            Complete(event.outcome)
        ]

    if phase is Phase.FINALIZING and isinstance(event, Errored):
        return replace(machine, phase=Phase.FAILED, error=event.message), [
            Fail(event.message)
        ]

    raise HarvestError(f"Unexpected {type(event).__name__} while {phase.value}")


def run_harvest(
    page: Page,
    store: StateStore,
    start_url: str | None = None,
    *,
    sleep: Callable[[float], None] | None = None,
    on_status: Callable[[str, str, int], None] | None = None,
    on_complete: Callable[[HarvestOutcome], None] | None = None,
    on_failure: Callable[[str], None] | None = None,
    on_scan: Callable[[str, PageScan], None] | None = None,
    copy: Callable[[str], None] | None = pyperclip.copy,
    import_url: str = FABSTATS_IMPORT_URL,
) -> Machine:
    """Run a harvest to completion.

    A ``start_url`` always starts a fresh harvest from page 1, discarding any
    saved one. Without it, the saved harvest is resumed. Raises HarvestError
    when there is neither.
    """
    sleep = sleep or time.sleep
    if start_url:
        event = Start(start_url)
    else:
        saved = store.load()
        if saved is None:
            raise HarvestError("No harvest in progress and no start URL given")
        event = Resume(saved)

    machine = Machine()

    while event is not None:
        machine, effects = step(machine, event)
        event = None

        for effect in effects:
            if isinstance(effect, Status):
                if on_status:
                    on_status(effect.status, effect.detail, effect.match_count)
            elif isinstance(effect, Settle):
                sleep(effect.seconds)
            elif isinstance(effect, Persist):
                store.save(effect.state)
            elif isinstance(effect, Clear):
                store.clear()
            elif isinstance(effect, Navigate):
                try:
                    page.load(effect.url)
                    event = Navigated(page.url or effect.url)
                except Exception as e:
                    event = Errored(f"Failed to load {effect.url}: {e}")
            elif isinstance(effect, Expand):
                try:
                    event = Expanded(page.expand(effect.pattern, effect.open_details, sleep))
                except Exception as e:
                    event = Errored(f"Failed to expand sections: {e}")
            elif isinstance(effect, Scan):
                try:
                    scan = scan_page(BeautifulSoup(page.html(), "html.parser"), effect.url)
                    if on_scan:
                        on_scan(effect.url, scan)
                    event = Scanned(scan.matches, scan.next_url)
                except Exception as e:
                    event = Errored(f"Failed to read matches: {e}")
            elif isinstance(effect, Finalize):
                try:
                    outcome = finalize_payload(
                        effect.matches, effect.pages_scraped, base_url=import_url, copy=copy
                    )
                    event = Finalized(outcome)
                except Exception as e:
                    event = Errored(f"Failed to build payload: {e}")
            elif isinstance(effect, Complete):
                if on_complete:
                    on_complete(effect.outcome)
            elif isinstance(effect, Fail):
                if on_failure:
                    on_failure(effect.message)

    return machine
