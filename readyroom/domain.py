"""In-memory snapshot types the engine works on.

The store converts ORM rows into these before any classification happens, so
the classifier and aggregator never touch a session.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum


class RsvpValue(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    TENTATIVE = "tentative"


class RollCallValue(str, Enum):
    PRESENT = "Present"
    ABSENT = "Absent"
    TENTATIVE = "Tentative"


class Category(str, Enum):
    PRESENT = "Present"
    NO_SHOW = "NoShow"
    LAST_MINUTE_SNIVEL = "LastMinuteSnivel"
    ADVANCED_SNIVEL = "AdvancedSnivel"
    NO_RESPONSE = "NoResponse"


UNASSIGNED_SQUADRON = "unassigned"


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class StatusInterval:
    start: date
    end: date | None
    is_active: bool


@dataclass(frozen=True)
class CycleInfo:
    id: int
    name: str
    type: str
    start_date: date
    end_date: date


@dataclass(frozen=True)
class EventInfo:
    id: int
    name: str
    start: datetime
    cycle_id: int | None
    message_ids: tuple[str, ...] = ()

    @property
    def response_channel_ids(self) -> tuple[str, ...]:
        """Message ids to collect responses from; manual roll calls live under a synthetic id."""
        return self.message_ids or (f"manual-{self.id}",)


@dataclass
class RosterPilot:
    id: int
    callsign: str
    board_number: int
    discord_id: str | None
    intervals: list[StatusInterval] = field(default_factory=list)
    squadron_id: int | None = None
    squadron_name: str | None = None
    qualification_ids: frozenset[int] = frozenset()

    @property
    def squadron_key(self) -> str:
        return str(self.squadron_id) if self.squadron_id is not None else UNASSIGNED_SQUADRON

    @property
    def display_name(self) -> str:
        return f"{self.board_number} - {self.callsign}"


@dataclass(frozen=True)
class ResponseRecord:
    """A single attendance row. It may carry an RSVP value, a roll-call value, or both."""

    discord_id: str
    timestamp: datetime
    rsvp: RsvpValue | None = None
    roll_call: RollCallValue | None = None


@dataclass(frozen=True)
class Classification:
    pilot_id: int
    event_id: int
    category: Category
    history: tuple[ResponseRecord, ...] = ()
