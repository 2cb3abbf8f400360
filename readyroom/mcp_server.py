from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from readyroom import services
from readyroom.db import get_session_factory, init_db
from readyroom.errors import ReportError
from readyroom.export import export_csv
from readyroom.schemas import ReportFilters
from readyroom.store import SqlAttendanceStore

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def readyroom_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "ReadyRoom",
    instructions=(
        "ReadyRoom reports squadron attendance per training cycle. "
        "Start with list_cycles() to find a cycle id, then get_attendance_report(cycle_id) "
        "for per-event attendance, no-shows and snivels, optionally filtered by squadron, "
        "qualification or pilot ids."
    ),
    lifespan=readyroom_lifespan,
    json_response=True,
)


def _store() -> SqlAttendanceStore:
    return SqlAttendanceStore(get_session_factory())


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("readyroom://overview")
def readyroom_overview() -> str:
    """Overview of the attendance categories and how they are decided."""
    return json.dumps({
        "system": "ReadyRoom cycle attendance reporting",
        "categories": {
            "Present": "Latest roll call marked the pilot Present.",
            "LastMinuteSnivel": "RSVP went from accepted to declined/tentative within 2 hours of the start.",
            "AdvancedSnivel": "Latest RSVP is declined/tentative and the pilot was not marked Present.",
            "NoShow": "Latest RSVP is accepted but the pilot was not marked Present.",
            "NoResponse": "No RSVP at all and not marked Present.",
        },
        "report_states": {
            "ready": "Events and pilots found.",
            "no_events": "The cycle has no events.",
            "no_pilots": "No active pilots match the filters; totals are zero.",
        },
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def list_cycles() -> list[dict] | dict:
    """List training cycles, newest first."""
    try:
        return [c.model_dump(mode="json") for c in await services.list_cycles(_store())]
    except ReportError as exc:
        return {"error": str(exc)}


@mcp.tool()
async def get_attendance_report(
    cycle_id: int,
    squadron_ids: list[int] | None = None,
    qualification_ids: list[int] | None = None,
    pilot_ids: list[int] | None = None,
) -> dict:
    """Attendance report for a cycle.

    Args:
        cycle_id: Cycle to report on.
        squadron_ids: Keep only pilots currently assigned to these squadrons.
        qualification_ids: Keep only pilots holding at least one of these qualifications.
        pilot_ids: Keep only these pilots.
    """
    filters = ReportFilters(
        squadron_ids=squadron_ids or [],
        qualification_ids=qualification_ids or [],
        pilot_ids=pilot_ids or [],
    )
    try:
        payload = await services.build_cycle_report(_store(), cycle_id, filters)
    except ReportError as exc:
        return {"error": str(exc)}
    return payload.model_dump(mode="json", exclude={"squadrons", "qualifications"})


@mcp.tool()
async def export_attendance_csv(cycle_id: int) -> dict:
    """Per-event attendance metrics for a cycle as CSV text."""
    try:
        payload = await services.build_cycle_report(_store(), cycle_id)
    except ReportError as exc:
        return {"error": str(exc)}
    return {"cycle": payload.cycle.name, "csv": export_csv(payload.chart_data)}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the ReadyRoom MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
