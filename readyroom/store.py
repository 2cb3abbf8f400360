"""Read-only access to the squadron database, returning engine snapshot types.

Every query runs in its own short-lived session on a worker thread, so
per-event fetches gathered together overlap. Any SQLAlchemy error is logged
and re-raised as :class:`FetchFailure`.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Generator, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from readyroom.domain import (
    CycleInfo,
    EventInfo,
    ResponseRecord,
    RollCallValue,
    RosterPilot,
    RsvpValue,
    StatusInterval,
    as_utc,
)
from readyroom.errors import FetchFailure
from readyroom.models import (
    AttendanceResponse,
    Cycle,
    Event,
    Pilot,
    PilotAssignment,
    PilotQualification,
    PilotStatus,
    Qualification,
    Squadron,
    Status,
)
from readyroom.utils import json_parse

log = logging.getLogger(__name__)

T = TypeVar("T")

_RSVP_VALUES = {v.value: v for v in RsvpValue}
_ROLL_CALL_VALUES = {v.value: v for v in RollCallValue}


def _cycle_info(row: Cycle) -> CycleInfo:
    return CycleInfo(
        id=row.id, name=row.name, type=row.type,
        start_date=row.start_date, end_date=row.end_date,
    )


def _event_info(row: Event) -> EventInfo:
    entries = json_parse(row.discord_event_ids_json, [])
    if not isinstance(entries, list):
        entries = []
    message_ids = tuple(
        str(e["messageId"]) for e in entries
        if isinstance(e, dict) and e.get("messageId")
    )
    return EventInfo(
        id=row.id, name=row.name, start=as_utc(row.start_datetime),
        cycle_id=row.cycle_id, message_ids=message_ids,
    )


def _response_record(row: AttendanceResponse) -> ResponseRecord:
    return ResponseRecord(
        discord_id=row.discord_id or "",
        timestamp=as_utc(row.updated_at),
        rsvp=_RSVP_VALUES.get(row.user_response or ""),
        roll_call=_ROLL_CALL_VALUES.get(row.roll_call_response or ""),
    )


class SqlAttendanceStore:
    """Query facade over the ORM models used by the report pipeline.

    Each public coroutine hands its query to a worker thread with
    :func:`asyncio.to_thread`, so fetches gathered side by side overlap and the
    event loop stays free while SQLite works.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _query(self, what: str) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            log.error("Error fetching %s: %s", what, exc)
            raise FetchFailure(f"Failed to fetch {what}: {exc}") from exc
        finally:
            session.close()

    def _execute(self, what: str, fetch: Callable[..., T], *args) -> T:
        with self._query(what) as session:
            return fetch(session, *args)

    async def _run(self, what: str, fetch: Callable[..., T], *args) -> T:
        return await asyncio.to_thread(self._execute, what, fetch, *args)

    # ------------------------------------------------------------------
    # Cycles and events
    # ------------------------------------------------------------------

    async def get_cycle(self, cycle_id: int) -> CycleInfo | None:
        return await self._run("cycle", self._get_cycle, cycle_id)

    def _get_cycle(self, session: Session, cycle_id: int) -> CycleInfo | None:
        row = session.execute(select(Cycle).where(Cycle.id == cycle_id)).scalars().first()
        return _cycle_info(row) if row else None

    async def list_cycles(self) -> list[CycleInfo]:
        return await self._run("cycles", self._list_cycles)

    def _list_cycles(self, session: Session) -> list[CycleInfo]:
        rows = session.execute(select(Cycle).order_by(Cycle.start_date.desc())).scalars().all()
        return [_cycle_info(r) for r in rows]

    async def find_cycle_covering(self, day: date) -> CycleInfo | None:
        return await self._run("active cycle", self._find_cycle_covering, day)

    def _find_cycle_covering(self, session: Session, day: date) -> CycleInfo | None:
        row = session.execute(
            select(Cycle)
            .where(Cycle.start_date <= day, Cycle.end_date >= day)
            .order_by(Cycle.start_date.desc())
            .limit(1)
        ).scalars().first()
        return _cycle_info(row) if row else None

    async def find_last_ended_cycle(self, day: date) -> CycleInfo | None:
        return await self._run("recent cycle", self._find_last_ended_cycle, day)

    def _find_last_ended_cycle(self, session: Session, day: date) -> CycleInfo | None:
        row = session.execute(
            select(Cycle)
            .where(Cycle.end_date < day)
            .order_by(Cycle.end_date.desc())
            .limit(1)
        ).scalars().first()
        return _cycle_info(row) if row else None

    async def list_events(
        self, cycle_id: int, *, start: date | None = None, end: date | None = None,
    ) -> list[EventInfo]:
        """Events of a cycle ordered by start; *start*/*end* bound the event date inclusively."""
        query = select(Event).where(Event.cycle_id == cycle_id)
        if start is not None:
            query = query.where(Event.start_datetime >= datetime.combine(start, datetime.min.time()))
        if end is not None:
            query = query.where(
                Event.start_datetime < datetime.combine(end + timedelta(days=1), datetime.min.time())
            )
        return await self._run("events", self._list_events, query.order_by(Event.start_datetime, Event.id))

    def _list_events(self, session: Session, query) -> list[EventInfo]:
        return [_event_info(r) for r in session.execute(query).scalars().all()]

    # ------------------------------------------------------------------
    # Pilots
    # ------------------------------------------------------------------

    async def list_pilots_with_intervals(self, start: date, end: date) -> list[RosterPilot]:
        """Pilots with an active status overlapping [start, end], each carrying its full interval history."""
        return await self._run("active pilots", self._list_pilots_with_intervals, start, end)

    def _list_pilots_with_intervals(self, session: Session, start: date, end: date) -> list[RosterPilot]:
        active_ids = (
            select(PilotStatus.pilot_id)
            .join(Status, Status.id == PilotStatus.status_id)
            .where(
                Status.is_active.is_(True),
                PilotStatus.start_date <= end,
                or_(PilotStatus.end_date.is_(None), PilotStatus.end_date >= start),
            )
        )
        pilots = session.execute(select(Pilot).where(Pilot.id.in_(active_ids))).scalars().all()
        if not pilots:
            return []
        rows = session.execute(
            select(PilotStatus.pilot_id, PilotStatus.start_date, PilotStatus.end_date, Status.is_active)
            .join(Status, Status.id == PilotStatus.status_id)
            .where(PilotStatus.pilot_id.in_([p.id for p in pilots]))
        ).all()
        intervals: dict[int, list[StatusInterval]] = defaultdict(list)
        for pilot_id, iv_start, iv_end, active in rows:
            intervals[pilot_id].append(StatusInterval(start=iv_start, end=iv_end, is_active=bool(active)))
        return [
            RosterPilot(
                id=p.id, callsign=p.callsign, board_number=p.board_number,
                discord_id=p.discord_id or None, intervals=intervals.get(p.id, []),
            )
            for p in pilots
        ]

    async def list_squadron_assignments(self, pilot_ids: Iterable[int]) -> dict[int, tuple[int, str]]:
        """Current squadron (id, name) per pilot, one query for the whole set."""
        ids = list(pilot_ids)
        if not ids:
            return {}
        return await self._run("squadron assignments", self._list_squadron_assignments, ids)

    def _list_squadron_assignments(self, session: Session, ids: list[int]) -> dict[int, tuple[int, str]]:
        rows = session.execute(
            select(PilotAssignment.pilot_id, Squadron.id, Squadron.name)
            .join(Squadron, Squadron.id == PilotAssignment.squadron_id)
            .where(PilotAssignment.pilot_id.in_(ids), PilotAssignment.end_date.is_(None))
            .order_by(PilotAssignment.id)
        ).all()
        return {pilot_id: (squadron_id, name) for pilot_id, squadron_id, name in rows}

    async def list_qualification_ids(self, pilot_ids: Iterable[int], as_of: date) -> dict[int, set[int]]:
        """Unexpired qualification ids per pilot as of *as_of*, one query for the whole set."""
        ids = list(pilot_ids)
        if not ids:
            return {}
        return await self._run("pilot qualifications", self._list_qualification_ids, ids, as_of)

    def _list_qualification_ids(self, session: Session, ids: list[int], as_of: date) -> dict[int, set[int]]:
        rows = session.execute(
            select(PilotQualification.pilot_id, PilotQualification.qualification_id)
            .where(
                PilotQualification.pilot_id.in_(ids),
                or_(PilotQualification.expiry_date.is_(None), PilotQualification.expiry_date >= as_of),
            )
        ).all()
        result: dict[int, set[int]] = defaultdict(set)
        for pilot_id, qual_id in rows:
            result[pilot_id].add(qual_id)
        return dict(result)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def list_responses(self, message_ids: Iterable[str]) -> list[ResponseRecord]:
        """All response rows for the given message ids, oldest first."""
        ids = list(message_ids)
        if not ids:
            return []
        return await self._run("attendance responses", self._list_responses, ids)

    def _list_responses(self, session: Session, ids: list[str]) -> list[ResponseRecord]:
        rows = session.execute(
            select(AttendanceResponse)
            .where(AttendanceResponse.discord_event_id.in_(ids))
            .order_by(AttendanceResponse.updated_at, AttendanceResponse.id)
        ).scalars().all()
        return [_response_record(r) for r in rows if r.discord_id]

    # ------------------------------------------------------------------
    # Lookup lists for filter controls
    # ------------------------------------------------------------------

    async def list_squadrons(self) -> list[dict]:
        return await self._run("squadrons", self._list_squadrons)

    def _list_squadrons(self, session: Session) -> list[dict]:
        rows = session.execute(select(Squadron).order_by(Squadron.name)).scalars().all()
        return [{"id": s.id, "name": s.name, "designation": s.designation} for s in rows]

    async def list_qualifications(self) -> list[dict]:
        return await self._run("qualifications", self._list_qualifications)

    def _list_qualifications(self, session: Session) -> list[dict]:
        rows = session.execute(
            select(Qualification).order_by(Qualification.order, Qualification.name)
        ).scalars().all()
        return [{"id": q.id, "name": q.name, "code": q.code, "order": q.order} for q in rows]
