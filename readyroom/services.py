"""Report pipeline shared by the HTTP API and the MCP server."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from readyroom.classifier import classify_pilot_event
from readyroom.config import get_settings
from readyroom.domain import Classification, CycleInfo, EventInfo, RosterPilot
from readyroom.errors import CycleNotFound
from readyroom.history import collect_histories
from readyroom.metrics import aggregate
from readyroom.roster import load_roster
from readyroom.schemas import (
    CycleOut,
    EventOut,
    PilotOut,
    QualificationOut,
    ReportFilters,
    ReportPayload,
    SquadronOut,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def cycle_out(cycle: CycleInfo) -> CycleOut:
    return CycleOut(
        id=cycle.id, name=cycle.name, type=cycle.type,
        start_date=cycle.start_date, end_date=cycle.end_date,
    )


def event_out(event: EventInfo) -> EventOut:
    return EventOut(
        id=event.id, name=event.name, start_datetime=event.start,
        cycle_id=event.cycle_id, message_ids=list(event.message_ids),
    )


def pilot_out(pilot: RosterPilot) -> PilotOut:
    return PilotOut(
        id=pilot.id, callsign=pilot.callsign, board_number=pilot.board_number,
        discord_id=pilot.discord_id, squadron_id=pilot.squadron_id,
        squadron_name=pilot.squadron_name, qualification_ids=sorted(pilot.qualification_ids),
    )


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


async def list_cycles(store) -> list[CycleOut]:
    return [cycle_out(c) for c in await store.list_cycles()]


async def default_cycle(store, now: datetime | None = None) -> CycleOut | None:
    """The cycle running today, else the most recently ended one."""
    today = (now or datetime.now(UTC)).date()
    cycle = await store.find_cycle_covering(today)
    if cycle is None:
        cycle = await store.find_last_ended_cycle(today)
    return cycle_out(cycle) if cycle else None


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@dataclass
class CycleComputation:
    """Everything one report run derived, before shaping it into a payload."""
    cycle: CycleInfo
    filters: ReportFilters
    events: list[EventInfo] = field(default_factory=list)
    roster: list[RosterPilot] = field(default_factory=list)
    classifications: list[Classification] = field(default_factory=list)

    @property
    def state(self) -> str:
        if not self.events:
            return "no_events"
        if not self.roster:
            return "no_pilots"
        return "ready"


async def compute_cycle(
    store, cycle_id: int, filters: ReportFilters | None = None,
    window: timedelta | None = None,
) -> CycleComputation:
    """Load, collect and classify every (pilot, event) pair for a cycle."""
    filters = filters or ReportFilters()
    if window is None:
        window = timedelta(hours=get_settings().snivel_window_hours)

    cycle = await store.get_cycle(cycle_id)
    if cycle is None:
        raise CycleNotFound(cycle_id)

    events = await store.list_events(cycle.id, start=cycle.start_date, end=cycle.end_date)
    computation = CycleComputation(cycle=cycle, filters=filters, events=events)
    if not events:
        log.info("Cycle %s has no events", cycle.name)
        return computation

    computation.roster = await load_roster(store, cycle.start_date, cycle.end_date, filters)
    if not computation.roster:
        return computation

    histories = await collect_histories(store, events, computation.roster)
    starts = {e.id: e.start for e in events}
    computation.classifications = [
        classify_pilot_event(pilot_id, event_id, history, starts[event_id], window)
        for (pilot_id, event_id), history in sorted(histories.items())
    ]
    log.info(
        "Classified %d pilot-events for cycle %s (%d events, %d pilots)",
        len(computation.classifications), cycle.name, len(events), len(computation.roster),
    )
    return computation


async def build_cycle_report(
    store, cycle_id: int, filters: ReportFilters | None = None,
    window: timedelta | None = None,
) -> ReportPayload:
    """Full report payload: chart data, squadron breakdowns and filter lookup lists."""
    computation = await compute_cycle(store, cycle_id, filters, window)
    chart_data, squadron_metrics = aggregate(
        computation.events, computation.classifications, computation.roster,
    )
    squadrons, qualifications = await asyncio.gather(
        store.list_squadrons(), store.list_qualifications(),
    )
    return ReportPayload(
        state=computation.state,
        cycle=cycle_out(computation.cycle),
        filters=computation.filters,
        events=[event_out(e) for e in computation.events],
        chart_data=chart_data,
        event_squadron_metrics=squadron_metrics,
        squadrons=[SquadronOut(**s) for s in squadrons],
        qualifications=[QualificationOut(**q) for q in qualifications],
        pilots=[pilot_out(p) for p in computation.roster],
    )
