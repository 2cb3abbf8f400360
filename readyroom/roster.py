"""Resolve the pilots eligible for a cycle report."""
from __future__ import annotations

import asyncio
import logging
from datetime import date

from readyroom.domain import RosterPilot
from readyroom.membership import overlaps
from readyroom.schemas import ReportFilters

log = logging.getLogger(__name__)


def apply_filters(pilots: list[RosterPilot], filters: ReportFilters) -> list[RosterPilot]:
    """Keep pilots matching every non-empty filter set."""
    if filters.squadron_ids:
        wanted = set(filters.squadron_ids)
        pilots = [p for p in pilots if p.squadron_id in wanted]
    if filters.qualification_ids:
        wanted = set(filters.qualification_ids)
        pilots = [p for p in pilots if p.qualification_ids & wanted]
    if filters.pilot_ids:
        wanted = set(filters.pilot_ids)
        pilots = [p for p in pilots if p.id in wanted]
    return pilots


async def load_roster(
    store, cycle_start: date, cycle_end: date, filters: ReportFilters | None = None,
) -> list[RosterPilot]:
    """Pilots active at some point in [cycle_start, cycle_end] that pass *filters*, by board number.

    Squadron assignments and qualifications are fetched once for the whole
    candidate set. Per-event membership is decided later against each event's
    own date.
    """
    filters = filters or ReportFilters()
    candidates = await store.list_pilots_with_intervals(cycle_start, cycle_end)
    # The store already narrows by overlap; re-check so any store honours the contract.
    candidates = [p for p in candidates if overlaps(p.intervals, cycle_start, cycle_end)]
    if not candidates:
        log.info("No active pilots between %s and %s", cycle_start, cycle_end)
        return []

    ids = [p.id for p in candidates]
    assignments, qualifications = await asyncio.gather(
        store.list_squadron_assignments(ids),
        store.list_qualification_ids(ids, cycle_start),
    )
    for pilot in candidates:
        assignment = assignments.get(pilot.id)
        if assignment is not None:
            pilot.squadron_id, pilot.squadron_name = assignment
        pilot.qualification_ids = frozenset(qualifications.get(pilot.id, ()))

    roster = apply_filters(candidates, filters)
    roster.sort(key=lambda p: (p.board_number, p.id))
    log.info("Roster resolved: %d of %d active pilots after filters", len(roster), len(candidates))
    return roster
