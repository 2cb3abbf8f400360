from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import Response

from readyroom import services
from readyroom.config import get_settings
from readyroom.db import get_session_factory, init_db
from readyroom.errors import CycleNotFound, FetchFailure, ReportError, RequestSuperseded
from readyroom.export import csv_filename, export_csv, export_cycle_workbook
from readyroom.orchestrator import DEFAULT_SLOT, ReportCoordinator
from readyroom.schemas import CycleOut, ReportFilters, ReportPayload
from readyroom.store import SqlAttendanceStore
from readyroom.utils import parse_id_list

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own store before startup.
    if getattr(app.state, "store", None) is None:
        init_db()
        app.state.store = SqlAttendanceStore(get_session_factory())
    app.state.coordinator = ReportCoordinator(
        lambda cycle_id, filters: services.build_cycle_report(app.state.store, cycle_id, filters)
    )
    yield


app = FastAPI(
    title="ReadyRoom Attendance",
    version="0.1.0",
    description=(
        "Cycle attendance reporting for squadron operations. "
        "Classifies every pilot at every event of a training cycle from RSVP and roll-call "
        "history and aggregates the result per event and per squadron. Read-only."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Cycles", "description": "Browse training cycles."},
        {"name": "Reports", "description": "Attendance reports, CSV and spreadsheet exports."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def get_store(request: Request) -> SqlAttendanceStore:
    return request.app.state.store


def get_coordinator(request: Request) -> ReportCoordinator:
    return request.app.state.coordinator


def report_filters(
    squadron_ids: str | None = Query(None, description="Comma-separated squadron ids"),
    qualification_ids: str | None = Query(None, description="Comma-separated qualification ids"),
    pilot_ids: str | None = Query(None, description="Comma-separated pilot ids"),
) -> ReportFilters:
    try:
        return ReportFilters(
            squadron_ids=parse_id_list(squadron_ids),
            qualification_ids=parse_id_list(qualification_ids),
            pilot_ids=parse_id_list(pilot_ids),
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


def _http_error(exc: ReportError) -> HTTPException:
    if isinstance(exc, CycleNotFound):
        return HTTPException(404, "Cycle not found")
    if isinstance(exc, RequestSuperseded):
        return HTTPException(409, "Superseded by a newer request")
    if isinstance(exc, FetchFailure):
        return HTTPException(502, f"Failed to load report data: {exc}")
    return HTTPException(500, str(exc))


# ---------------------------------------------------------------------------
# Routes: Cycles
# ---------------------------------------------------------------------------


@app.get("/api/cycles", response_model=list[CycleOut],
         tags=["Cycles"], summary="List cycles, newest first")
async def list_cycles(store: SqlAttendanceStore = Depends(get_store)):
    try:
        return await services.list_cycles(store)
    except ReportError as exc:
        raise _http_error(exc) from exc


@app.get("/api/cycles/default", response_model=CycleOut,
         tags=["Cycles"], summary="Cycle running today, else the most recently ended one")
async def get_default_cycle(store: SqlAttendanceStore = Depends(get_store)):
    try:
        cycle = await services.default_cycle(store)
    except ReportError as exc:
        raise _http_error(exc) from exc
    if cycle is None:
        raise HTTPException(404, "No cycles found")
    return cycle


# ---------------------------------------------------------------------------
# Routes: Reports
# ---------------------------------------------------------------------------


@app.get("/api/cycles/{cycle_id}/report", response_model=ReportPayload,
         tags=["Reports"], summary="Attendance report for a cycle (chart data, squadron metrics, lookups)")
async def get_report(
    cycle_id: int,
    filters: ReportFilters = Depends(report_filters),
    view: str = Query(DEFAULT_SLOT, description="Report view; a newer request for the same view supersedes older ones"),
    coordinator: ReportCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.fetch_report(cycle_id, filters, slot=view)
    except ReportError as exc:
        raise _http_error(exc) from exc


@app.get("/api/cycles/{cycle_id}/report.csv", tags=["Reports"],
         summary="Per-event attendance metrics as CSV")
async def get_report_csv(
    cycle_id: int,
    filters: ReportFilters = Depends(report_filters),
    store: SqlAttendanceStore = Depends(get_store),
):
    try:
        payload = await services.build_cycle_report(store, cycle_id, filters)
    except ReportError as exc:
        raise _http_error(exc) from exc
    return Response(
        export_csv(payload.chart_data), media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{csv_filename(payload.cycle.name)}"'},
    )


@app.get("/api/cycles/{cycle_id}/attendance.xlsx", tags=["Reports"],
         summary="Pilot-by-event attendance sheet with qualification and squadron breakdowns")
async def get_attendance_workbook(
    cycle_id: int,
    filters: ReportFilters = Depends(report_filters),
    store: SqlAttendanceStore = Depends(get_store),
):
    try:
        filename, content = await export_cycle_workbook(store, cycle_id, filters)
    except ReportError as exc:
        raise _http_error(exc) from exc
    return Response(
        content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("readyroom.app:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
