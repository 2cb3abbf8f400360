from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Cycle(Base):
    __tablename__ = "cycles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(50), default="Training")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    events: Mapped[list[Event]] = relationship("Event", back_populates="cycle")


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    start_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    cycle_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("cycles.id"), nullable=True)
    # [{"messageId": ..., "guildId": ..., "channelId": ..., "squadronId": ...}, ...]
    discord_event_ids_json: Mapped[str] = mapped_column(Text, default="[]")

    cycle: Mapped[Cycle | None] = relationship("Cycle", back_populates="events")


class Pilot(Base):
    __tablename__ = "pilots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    callsign: Mapped[str] = mapped_column(String(100), nullable=False)
    board_number: Mapped[int] = mapped_column(Integer, nullable=False)
    discord_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    statuses: Mapped[list[PilotStatus]] = relationship("PilotStatus", back_populates="pilot", cascade="all, delete-orphan")


class Status(Base):
    __tablename__ = "statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class PilotStatus(Base):
    __tablename__ = "pilot_statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pilot_id: Mapped[int] = mapped_column(Integer, ForeignKey("pilots.id"), nullable=False)
    status_id: Mapped[int] = mapped_column(Integer, ForeignKey("statuses.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    pilot: Mapped[Pilot] = relationship("Pilot", back_populates="statuses")
    status: Mapped[Status] = relationship("Status")


class Squadron(Base):
    __tablename__ = "squadrons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    designation: Mapped[str] = mapped_column(String(50), default="")


class PilotAssignment(Base):
    __tablename__ = "pilot_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pilot_id: Mapped[int] = mapped_column(Integer, ForeignKey("pilots.id"), nullable=False)
    squadron_id: Mapped[int] = mapped_column(Integer, ForeignKey("squadrons.id"), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)  # NULL = current assignment

    squadron: Mapped[Squadron] = relationship("Squadron")


class Qualification(Base):
    __tablename__ = "qualifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(20), default="")
    order: Mapped[int] = mapped_column(Integer, default=999)


class PilotQualification(Base):
    __tablename__ = "pilot_qualifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pilot_id: Mapped[int] = mapped_column(Integer, ForeignKey("pilots.id"), nullable=False)
    qualification_id: Mapped[int] = mapped_column(Integer, ForeignKey("qualifications.id"), nullable=False)
    achieved_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class AttendanceResponse(Base):
    """One RSVP / roll-call row written by the Discord bot or the roll-call screen."""

    __tablename__ = "discord_event_attendance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discord_event_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    discord_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    discord_username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_response: Mapped[str] = mapped_column(String(20), nullable=False)  # accepted | declined | tentative | roll_call
    roll_call_response: Mapped[str | None] = mapped_column(String(20), nullable=True)  # Present | Absent | Tentative
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
