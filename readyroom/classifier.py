"""Attendance classification for one pilot at one event.

Each (pilot, event) pair lands in exactly one :class:`Category`. The rules are
an ordered table evaluated top to bottom; the first predicate that holds
decides the category, and ``NoResponse`` is the fallback:

1. ``Present``          latest roll call is Present.
2. ``LastMinuteSnivel`` some consecutive RSVP pair goes accepted -> declined or
                        tentative with the second response inside
                        ``[start - window, start]``.
3. ``AdvancedSnivel``   latest roll call is not Present and the latest RSVP is
                        declined or tentative.
4. ``NoShow``           latest RSVP is accepted and latest roll call is not Present.
5. ``NoResponse``       anything else, including an Absent roll call with no RSVP.
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from readyroom.domain import (
    Category,
    Classification,
    ResponseRecord,
    RollCallValue,
    RsvpValue,
    as_utc,
)

DEFAULT_SNIVEL_WINDOW = timedelta(hours=2)

_BACKED_OUT = (RsvpValue.DECLINED, RsvpValue.TENTATIVE)


@dataclass(frozen=True)
class ResponseContext:
    """The views of a history that the rules look at."""
    discord: tuple[ResponseRecord, ...]
    roll_calls: tuple[ResponseRecord, ...]
    event_start: datetime
    window: timedelta

    @classmethod
    def build(cls, history: Sequence[ResponseRecord], event_start: datetime, window: timedelta) -> ResponseContext:
        return cls(
            discord=tuple(r for r in history if r.rsvp is not None),
            roll_calls=tuple(r for r in history if r.roll_call is not None),
            event_start=as_utc(event_start),
            window=window,
        )

    @property
    def latest_discord(self) -> ResponseRecord | None:
        return self.discord[-1] if self.discord else None

    @property
    def latest_roll_call(self) -> ResponseRecord | None:
        return self.roll_calls[-1] if self.roll_calls else None

    @property
    def marked_present(self) -> bool:
        latest = self.latest_roll_call
        return latest is not None and latest.roll_call is RollCallValue.PRESENT

    def in_snivel_window(self, ts: datetime) -> bool:
        return self.event_start - self.window <= as_utc(ts) <= self.event_start


def _is_present(ctx: ResponseContext) -> bool:
    return ctx.marked_present


def _is_last_minute_snivel(ctx: ResponseContext) -> bool:
    # Any qualifying transition counts, not only the most recent one.
    return any(
        prev.rsvp is RsvpValue.ACCEPTED
        and curr.rsvp in _BACKED_OUT
        and ctx.in_snivel_window(curr.timestamp)
        for prev, curr in zip(ctx.discord, ctx.discord[1:])
    )


def _is_advanced_snivel(ctx: ResponseContext) -> bool:
    latest = ctx.latest_discord
    return not ctx.marked_present and latest is not None and latest.rsvp in _BACKED_OUT


def _is_no_show(ctx: ResponseContext) -> bool:
    latest = ctx.latest_discord
    return not ctx.marked_present and latest is not None and latest.rsvp is RsvpValue.ACCEPTED


Rule = tuple[Category, Callable[[ResponseContext], bool]]

RULES: tuple[Rule, ...] = (
    (Category.PRESENT, _is_present),
    (Category.LAST_MINUTE_SNIVEL, _is_last_minute_snivel),
    (Category.ADVANCED_SNIVEL, _is_advanced_snivel),
    (Category.NO_SHOW, _is_no_show),
)


def classify(
    history: Sequence[ResponseRecord], event_start: datetime,
    window: timedelta = DEFAULT_SNIVEL_WINDOW,
) -> Category:
    """Classify one pilot's chronologically ordered history for one event."""
    ctx = ResponseContext.build(history, event_start, window)
    for category, predicate in RULES:
        if predicate(ctx):
            return category
    return Category.NO_RESPONSE


def classify_pilot_event(
    pilot_id: int, event_id: int, history: Sequence[ResponseRecord], event_start: datetime,
    window: timedelta = DEFAULT_SNIVEL_WINDOW,
) -> Classification:
    """Like :func:`classify`, keeping the identity and the evidence used."""
    return Classification(
        pilot_id=pilot_id, event_id=event_id,
        category=classify(history, event_start, window),
        history=tuple(history),
    )
