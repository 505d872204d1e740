"""FaB history harvester: shared data models."""

from __future__ import annotations

from dataclasses import dataclass, field

UNKNOWN_HERO = "Unknown"
UNKNOWN_EVENT = "Unknown Event"


class HarvestError(Exception):
    """Raised when a harvest cannot be started or continued."""


@dataclass(frozen=True)
class EventInfo:
    """Metadata shared by every match in one results table."""

    name: str
    date: str
    venue: str = ""
    event_type: str = ""
    format: str = ""
    rated: bool = False

    @classmethod
    def unknown(cls, today: str) -> EventInfo:
        return cls(name=UNKNOWN_EVENT, date=today)


@dataclass
class MatchRecord:
    """A single recorded match from a results table."""

    event: str
    date: str
    opponent: str
    result: str
    venue: str = ""
    event_type: str = ""
    format: str = ""
    rated: bool = False
    hero: str = UNKNOWN_HERO
    round: int = 0
    round_label: str = ""
    opponent_gem_id: str = ""

    def to_dict(self) -> dict:
        """Convert to the camelCase mapping the import page expects."""
        return {
            "event": self.event,
            "date": self.date,
            "venue": self.venue,
            "eventType": self.event_type,
            "format": self.format,
            "rated": self.rated,
            "hero": self.hero,
            "round": self.round,
            "roundLabel": self.round_label,
            "opponent": self.opponent,
            "opponentGemId": self.opponent_gem_id,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict) -> MatchRecord:
        return cls(
            event=data.get("event", UNKNOWN_EVENT),
            date=data["date"],
            opponent=data["opponent"],
            result=data["result"],
            venue=data.get("venue", ""),
            event_type=data.get("eventType", ""),
            format=data.get("format", ""),
            rated=bool(data.get("rated", False)),
            hero=data.get("hero", UNKNOWN_HERO),
            round=int(data.get("round", 0)),
            round_label=data.get("roundLabel", ""),
            opponent_gem_id=data.get("opponentGemId", ""),
        )


@dataclass
class HarvestState:
    """Accumulated harvest progress; survives page reloads via the store."""

    matches: list[MatchRecord] = field(default_factory=list)
    pages_scraped: int = 0
    next_url: str | None = None

    def to_dict(self) -> dict:
        data: dict = {
            "matches": [m.to_dict() for m in self.matches],
            "pagesScraped": self.pages_scraped,
        }
        if self.next_url:
            data["nextUrl"] = self.next_url
        return data

    @classmethod
    def from_dict(cls, data: dict) -> HarvestState:
        return cls(
            matches=[MatchRecord.from_dict(m) for m in data.get("matches", [])],
            pages_scraped=int(data.get("pagesScraped", 0)),
            next_url=data.get("nextUrl") or None,
        )
