"""CSV and spreadsheet exports of cycle attendance."""
from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime

from openpyxl import Workbook
from openpyxl.comments import Comment
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from readyroom.domain import Category, RollCallValue
from readyroom.schemas import ChartDataPoint, ReportFilters
from readyroom.services import CycleComputation, compute_cycle

log = logging.getLogger(__name__)

CSV_HEADERS = (
    "Event Name", "Event Date", "Attendance Count", "Total Pilots", "Attendance %",
    "No Show Count", "Last Minute Snivel Count", "Advanced Snivel Count",
)

# Sheet markers
PRESENT_MARK = "X"
ABSENT_MARK = ""
UNKNOWN_MARK = "?"
NOT_ON_ROSTER_MARK = "-"

_FUTURE_FONT = Font(color="D1D5DB")
_CENTER = Alignment(horizontal="center", vertical="center")
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


def format_event_date(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%d %H:%M")


def export_csv(chart_data: list[ChartDataPoint]) -> str:
    """One quoted row per event under the fixed header."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for point in chart_data:
        writer.writerow([
            point.event_name,
            format_event_date(point.event_date),
            point.attendance_count,
            point.total_pilots,
            f"{point.attendance_percentage}%",
            point.no_show_count,
            point.last_minute_snivel_count,
            point.advanced_snivel_count,
        ])
    return buf.getvalue()


def csv_filename(cycle_name: str) -> str:
    return f"{cycle_name}_attendance_report.csv"


# ---------------------------------------------------------------------------
# Cycle attendance sheet
# ---------------------------------------------------------------------------


@dataclass
class SheetRow:
    label: str
    cells: list[str | int] = field(default_factory=list)


@dataclass
class CycleSheet:
    cycle_name: str
    event_names: list[str]
    event_dates: list[datetime]
    pilot_rows: list[SheetRow]
    qualification_rows: list[SheetRow]
    squadron_rows: list[SheetRow]


def _marker(history) -> str:
    roll_calls = [r for r in history if r.roll_call is not None]
    if not roll_calls:
        return UNKNOWN_MARK
    latest = roll_calls[-1].roll_call
    if latest is RollCallValue.PRESENT:
        return PRESENT_MARK
    if latest is RollCallValue.ABSENT:
        return ABSENT_MARK
    return UNKNOWN_MARK


def build_cycle_sheet(computation: CycleComputation, qualifications: list[dict]) -> CycleSheet:
    """Pilot-by-event markers plus Present counts per qualification and per squadron.

    *qualifications* is the store's lookup list (``id``, ``name``, ``order``).
    """
    events = computation.events
    by_pair = {(c.pilot_id, c.event_id): c for c in computation.classifications}

    pilot_rows = []
    for pilot in computation.roster:
        cells: list[str | int] = []
        for event in events:
            c = by_pair.get((pilot.id, event.id))
            cells.append(NOT_ON_ROSTER_MARK if c is None else _marker(c.history))
        pilot_rows.append(SheetRow(pilot.display_name, cells))

    def present_counts(pilot_ids: set[int]) -> list[str | int]:
        return [
            sum(
                1 for pid in pilot_ids
                if (c := by_pair.get((pid, event.id))) is not None and c.category is Category.PRESENT
            )
            for event in events
        ]

    held = {qid for p in computation.roster for qid in p.qualification_ids}
    qualification_rows = [
        SheetRow(q["name"], present_counts({p.id for p in computation.roster if q["id"] in p.qualification_ids}))
        for q in sorted(qualifications, key=lambda q: (q.get("order", 999), q["name"]))
        if q["id"] in held
    ]

    squadrons = {p.squadron_id: p.squadron_name for p in computation.roster if p.squadron_id is not None}
    squadron_rows = [
        SheetRow(name or str(sid), present_counts({p.id for p in computation.roster if p.squadron_id == sid}))
        for sid, name in sorted(squadrons.items(), key=lambda kv: (kv[1] or "").casefold())
    ]

    return CycleSheet(
        cycle_name=computation.cycle.name,
        event_names=[e.name for e in events],
        event_dates=[e.start for e in events],
        pilot_rows=pilot_rows,
        qualification_rows=qualification_rows,
        squadron_rows=squadron_rows,
    )


def sheet_title(cycle_name: str) -> str:
    """Excel caps sheet names at 31 characters and rejects a few punctuation marks."""
    title = _INVALID_SHEET_CHARS.sub("_", cycle_name).strip() or "Attendance"
    return title[:31]


def workbook_filename(cycle_name: str) -> str:
    return f"Attendance_{re.sub(r'[^a-zA-Z0-9]', '_', cycle_name)}.xlsx"


def write_cycle_workbook(sheet: CycleSheet, now: datetime | None = None) -> bytes:
    """Render a :class:`CycleSheet` as an .xlsx file and return its bytes."""
    now = now or datetime.now(UTC)
    future = [d > now for d in sheet.event_dates]

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title(sheet.cycle_name)

    ws.append(["Board # - Callsign"] + [f"Event {i + 1}" for i in range(len(sheet.event_names))])
    ws.append([""] + [d.astimezone(UTC).strftime("%m/%d/%Y") for d in sheet.event_dates])
    for row in sheet.pilot_rows:
        ws.append([row.label] + row.cells)
    ws.append([])
    ws.append(["QUALIFICATION BREAKDOWN"])
    for row in sheet.qualification_rows:
        ws.append([row.label] + row.cells)
    ws.append([])
    ws.append(["SQUADRON BREAKDOWN"])
    for row in sheet.squadron_rows:
        ws.append([row.label] + row.cells)

    ws.column_dimensions["A"].width = 20
    pilot_end = 2 + len(sheet.pilot_rows)
    for idx, name in enumerate(sheet.event_names):
        col = idx + 2
        ws.column_dimensions[get_column_letter(col)].width = 12
        header = ws.cell(row=1, column=col)
        header.alignment = _CENTER
        header.comment = Comment(name, "ReadyRoom")
        for r in range(2, pilot_end + 1):
            cell = ws.cell(row=r, column=col)
            cell.alignment = _CENTER
            if future[idx]:
                cell.font = _FUTURE_FONT
        for r in range(pilot_end + 1, ws.max_row + 1):
            cell = ws.cell(row=r, column=col)
            if isinstance(cell.value, int):
                cell.alignment = _CENTER

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


async def export_cycle_workbook(store, cycle_id: int, filters: ReportFilters | None = None) -> tuple[str, bytes]:
    """Compute a cycle and return ``(filename, xlsx bytes)`` for its attendance sheet."""
    computation = await compute_cycle(store, cycle_id, filters)
    qualifications = await store.list_qualifications()
    sheet = build_cycle_sheet(computation, qualifications)
    log.info(
        "Writing attendance sheet for %s: %d pilots x %d events",
        computation.cycle.name, len(sheet.pilot_rows), len(sheet.event_names),
    )
    return workbook_filename(computation.cycle.name), write_cycle_workbook(sheet)
