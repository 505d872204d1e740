#!/usr/bin/env python3
"""
FaB History Harvester

Reads every page of a GEM match-history listing and hands the matches to
the FaB Stats import page. Progress is saved before each page change, so
if the run is interrupted, running the script again without a URL carries
on from the saved page. Giving a URL always starts over from page 1.

Usage:
    python harvest_history.py https://gem.fabtcg.com/profile/history/
    python harvest_history.py                 # resume an interrupted harvest
    python harvest_history.py URL --browser   # drive Chromium via Playwright
    python harvest_history.py --reset         # discard saved progress
"""

from __future__ import annotations

import argparse
import os
import sys
from collections import Counter
from pathlib import Path

import pyperclip

from fabharvest import HarvestError
from fabharvest.browser import HttpPage, PlaywrightPage
from fabharvest.classifiers import event_tier
from fabharvest.harvest import Phase, run_harvest
from fabharvest.payload import FABSTATS_IMPORT_URL, HarvestOutcome, write_csv, write_json
from fabharvest.scanner import PageScan
from fabharvest.store import StateStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Export GEM match history to FaB Stats")
    p.add_argument("url", nargs="?", help="GEM history page to start from")
    p.add_argument("--browser", action="store_true", help="use a Playwright-driven Chromium")
    p.add_argument("--headful", action="store_true", help="show the browser window")
    p.add_argument("--reset", action="store_true", help="discard any saved harvest")
    p.add_argument("--csv", type=Path, help="also write matches to this CSV file")
    p.add_argument("--json", type=Path, help="also write matches to this JSON file")
    p.add_argument("--no-clipboard", action="store_true", help="skip the clipboard backup")
    return p.parse_args(argv)


def print_status(status: str, detail: str, match_count: int) -> None:
    line = f"  {status} {detail}"
    if match_count > 0:
        line += f" [{match_count} matches so far]"
    print(line)


def print_scan(url: str, scan: PageScan) -> None:
    print(f"  Found {len(scan.matches)} matches on {url}")
    for err in scan.errors:
        print(f"  Warning: skipped table ({err})")


def print_summary(outcome: HarvestOutcome, matches: list) -> None:
    pages = f" across {outcome.pages_scraped} pages" if outcome.pages_scraped > 1 else ""
    print(f"\nExport complete: {outcome.match_count} matches{pages} ready to import")

    tiers = Counter(event_tier(m.event_type) or "unclassified" for m in matches)
    for tier, count in sorted(tiers.items()):
        print(f"  {tier}: {count}")

    if outcome.clipboard_ok:
        print("Also copied to clipboard as backup")
    if "#ext=" not in outcome.import_url:
        print("Payload too large for the import link; paste from the clipboard instead")
    print(f"\nOpen FaB Stats Import: {outcome.import_url}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    store = StateStore(Path(os.environ.get("FABHARVEST_STATE_DIR", ".harvest")))
    import_url = os.environ.get("FABSTATS_IMPORT_URL", FABSTATS_IMPORT_URL)

    if args.reset:
        store.clear()
        print("Discarded saved harvest")
        if not args.url:
            return 0

    if args.url:
        print(f"Starting harvest from {args.url}")
    else:
        saved = store.load()
        if saved is not None:
            print(
                f"Resuming harvest ({len(saved.matches)} matches, "
                f"{saved.pages_scraped} pages so far)"
            )

    page = PlaywrightPage(headless=not args.headful) if args.browser else HttpPage()
    failure: list[str] = []

    try:
        with page:
            machine = run_harvest(
                page,
                store,
                args.url,
                on_status=print_status,
                on_scan=print_scan,
                on_failure=failure.append,
                copy=None if args.no_clipboard else pyperclip.copy,
                import_url=import_url,
            )
    except HarvestError as e:
        print(f"ERROR: {e}")
        return 1

    if machine.phase is not Phase.DONE or machine.outcome is None:
        print(f"\nERROR: Export failed: {failure[0] if failure else machine.error}")
        return 1

    outcome = machine.outcome
    if args.json:
        write_json(outcome, args.json)
        print(f"Saved {args.json}")
    if args.csv:
        write_csv(machine.state.matches, args.csv)
        print(f"Saved {args.csv}")

    print_summary(outcome, machine.state.matches)
    return 0


if __name__ == "__main__":
    sys.exit(main())
