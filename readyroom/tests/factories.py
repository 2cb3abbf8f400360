"""Row builders for seeding test databases."""
from __future__ import annotations

import json
from datetime import date, datetime

from sqlalchemy.orm import Session

from readyroom.models import (
    AttendanceResponse,
    Cycle,
    Event,
    Pilot,
    PilotAssignment,
    PilotQualification,
    PilotStatus,
    Squadron,
    Status,
)


def add_pilot(
    session: Session, board: int, callsign: str, discord_id: str | None = None, *,
    intervals=((date(2024, 1, 1), None, True),), squadron: Squadron | None = None,
    qualifications=(),
) -> Pilot:
    """Add a pilot with status intervals given as (start, end, is_active) tuples."""
    pilot = Pilot(callsign=callsign, board_number=board, discord_id=discord_id)
    session.add(pilot)
    session.flush()
    for start, end, active in intervals:
        status = Status(name="Active" if active else "Retired", is_active=active)
        session.add(status)
        session.flush()
        session.add(PilotStatus(pilot_id=pilot.id, status_id=status.id, start_date=start, end_date=end))
    if squadron is not None:
        session.add(PilotAssignment(pilot_id=pilot.id, squadron_id=squadron.id, start_date=date(2024, 1, 1)))
    for qual in qualifications:
        session.add(PilotQualification(pilot_id=pilot.id, qualification_id=qual.id))
    session.flush()
    return pilot


def add_event(
    session: Session, cycle: Cycle, name: str, start: datetime, message_ids=(),
) -> Event:
    event = Event(
        name=name, start_datetime=start, cycle_id=cycle.id,
        discord_event_ids_json=json.dumps([
            {"messageId": m, "guildId": "g1", "channelId": "c1", "squadronId": ""} for m in message_ids
        ]),
    )
    session.add(event)
    session.flush()
    return event


def add_response(
    session: Session, message_id: str, discord_id: str, at: datetime,
    rsvp: str = "roll_call", roll_call: str | None = None,
) -> AttendanceResponse:
    row = AttendanceResponse(
        discord_event_id=message_id, discord_id=discord_id, discord_username=discord_id,
        user_response=rsvp, roll_call_response=roll_call, created_at=at, updated_at=at,
    )
    session.add(row)
    session.flush()
    return row
