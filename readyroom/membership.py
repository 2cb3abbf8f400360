"""Roster membership as of a given date, from a pilot's status intervals."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from readyroom.domain import StatusInterval


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def is_active(intervals: Iterable[StatusInterval], on_date: date | datetime) -> bool:
    """True iff some active interval covers *on_date*.

    Overlapping intervals are tolerated: any covering active interval wins.
    """
    day = _as_date(on_date)
    return any(
        iv.is_active and iv.start <= day and (iv.end is None or iv.end >= day)
        for iv in intervals
    )


def overlaps(intervals: Iterable[StatusInterval], start: date | datetime, end: date | datetime) -> bool:
    """True iff some active interval overlaps the closed range [start, end]."""
    lo, hi = _as_date(start), _as_date(end)
    return any(
        iv.is_active and iv.start <= hi and (iv.end is None or iv.end >= lo)
        for iv in intervals
    )
