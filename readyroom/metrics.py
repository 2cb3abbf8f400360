"""Fold per-pilot classifications into per-event and per-squadron counts."""
from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable

from readyroom.domain import UNASSIGNED_SQUADRON, Category, Classification, EventInfo, RosterPilot
from readyroom.schemas import ChartDataPoint, EventSquadronMetrics, SquadronMetrics


def attendance_percentage(attended: int, total: int) -> int:
    """Rounded percentage, half up; 0 when there is nobody to count."""
    if total <= 0:
        return 0
    return (200 * attended + total) // (2 * total)


def count_categories(classifications: Iterable[Classification]) -> dict[str, int]:
    counts = Counter(c.category for c in classifications)
    total = sum(counts.values())
    present = counts[Category.PRESENT]
    last_minute = counts[Category.LAST_MINUTE_SNIVEL]
    advanced = counts[Category.ADVANCED_SNIVEL]
    return {
        "attendance_count": present,
        "no_show_count": counts[Category.NO_SHOW],
        "last_minute_snivel_count": last_minute,
        "advanced_snivel_count": advanced,
        "total_snivels_count": last_minute + advanced,
        "no_response_count": counts[Category.NO_RESPONSE],
        "total_pilots": total,
        "attendance_percentage": attendance_percentage(present, total),
    }


def _squadron_sort_key(key: str) -> tuple[int, int, str]:
    if key == UNASSIGNED_SQUADRON:
        return (1, 0, key)
    return (0, int(key), key) if key.isdigit() else (0, 0, key)


def aggregate(
    events: list[EventInfo], classifications: Iterable[Classification], roster: list[RosterPilot],
) -> tuple[list[ChartDataPoint], list[EventSquadronMetrics]]:
    """Per-event chart points and per-squadron breakdowns.

    An event's denominator is the set of pilots classified for it, which is
    the roster filtered to pilots active on the event date.
    """
    squadron_of = {p.id: p.squadron_key for p in roster}
    by_event: dict[int, list[Classification]] = defaultdict(list)
    for c in classifications:
        by_event[c.event_id].append(c)

    chart_data: list[ChartDataPoint] = []
    squadron_data: list[EventSquadronMetrics] = []
    for event in events:
        event_rows = by_event.get(event.id, [])
        chart_data.append(ChartDataPoint(
            event_id=event.id, event_name=event.name, event_date=event.start,
            **count_categories(event_rows),
        ))

        by_squadron: dict[str, list[Classification]] = defaultdict(list)
        for c in event_rows:
            by_squadron[squadron_of.get(c.pilot_id, UNASSIGNED_SQUADRON)].append(c)
        squadron_data.append(EventSquadronMetrics(
            event_id=event.id, event_name=event.name, event_date=event.start,
            squadron_metrics=[
                SquadronMetrics(squadron_id=key, **count_categories(by_squadron[key]))
                for key in sorted(by_squadron, key=_squadron_sort_key)
            ],
        ))
    return chart_data, squadron_data
