"""Gather each pilot's RSVP and roll-call rows per event."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from readyroom.domain import EventInfo, ResponseRecord, RosterPilot
from readyroom.membership import is_active

log = logging.getLogger(__name__)

HistoryKey = tuple[int, int]  # (pilot_id, event_id)


def group_event_rows(
    event: EventInfo, rows: list[ResponseRecord], roster: list[RosterPilot],
) -> dict[HistoryKey, list[ResponseRecord]]:
    """Map one event's rows onto the roster pilots active on the event date.

    Every active pilot gets a key, with an empty list when they have no rows.
    Rows keep their chronological order.
    """
    by_discord: dict[str, list[ResponseRecord]] = defaultdict(list)
    for row in sorted(rows, key=lambda r: r.timestamp):
        by_discord[row.discord_id].append(row)

    histories: dict[HistoryKey, list[ResponseRecord]] = {}
    matched: set[str] = set()
    for pilot in roster:
        if not is_active(pilot.intervals, event.start):
            continue
        if pilot.discord_id:
            histories[(pilot.id, event.id)] = list(by_discord.get(pilot.discord_id, ()))
            matched.add(pilot.discord_id)
        else:
            histories[(pilot.id, event.id)] = []

    unmatched = set(by_discord) - matched
    if unmatched:
        log.debug("Event %s: ignoring rows from %d identities outside the active roster", event.id, len(unmatched))
    return histories


async def collect_histories(
    store, events: list[EventInfo], roster: list[RosterPilot],
) -> dict[HistoryKey, list[ResponseRecord]]:
    """Fetch every event's responses concurrently, then group them by (pilot, event)."""
    results = await asyncio.gather(
        *(store.list_responses(event.response_channel_ids) for event in events)
    )
    histories: dict[HistoryKey, list[ResponseRecord]] = {}
    for event, rows in zip(events, results):
        histories.update(group_event_rows(event, rows, roster))
    log.info("Collected %d pilot histories across %d events", len(histories), len(events))
    return histories
