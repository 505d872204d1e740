"""Harvest state persistence across page loads and process restarts."""

from __future__ import annotations

import json
from pathlib import Path

from fabharvest import HarvestState

SCRAPE_KEY = "fab-stats-scrape"


class StateStore:
    """One JSON file per key; a second harvest under the same key replaces the first."""

    def __init__(self, directory: Path, key: str = SCRAPE_KEY) -> None:
        self.directory = Path(directory)
        self.key = key

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def load(self) -> HarvestState | None:
        """Load saved state. Returns None if nothing (valid) is saved."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return HarvestState.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError):
            # Corrupt state is dropped; the next run starts fresh.
            self.clear()
            return None

    def save(self, state: HarvestState) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state.to_dict(), ensure_ascii=False), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
