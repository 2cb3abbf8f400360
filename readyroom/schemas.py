"""Pydantic request/response schemas for the ReadyRoom attendance API."""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

ReportState = Literal["ready", "no_events", "no_pilots"]


class ReportFilters(BaseModel):
    squadron_ids: list[int] = Field(default_factory=list)
    qualification_ids: list[int] = Field(default_factory=list)
    pilot_ids: list[int] = Field(default_factory=list)

    @field_validator("squadron_ids", "qualification_ids", "pilot_ids")
    @classmethod
    def dedupe_and_sort(cls, v: list[int]) -> list[int]:
        return sorted(set(v))

    def cache_key(self) -> str:
        """Stable serialization; equal filter sets give equal keys regardless of input order."""
        return json.dumps(self.model_dump(), sort_keys=True, separators=(",", ":"))

    @property
    def is_empty(self) -> bool:
        return not (self.squadron_ids or self.qualification_ids or self.pilot_ids)


class CycleOut(BaseModel):
    id: int
    name: str
    type: str
    start_date: date
    end_date: date


class EventOut(BaseModel):
    id: int
    name: str
    start_datetime: datetime
    cycle_id: int | None
    message_ids: list[str] = []


class SquadronOut(BaseModel):
    id: int
    name: str
    designation: str = ""


class QualificationOut(BaseModel):
    id: int
    name: str
    code: str = ""
    order: int = 999


class PilotOut(BaseModel):
    id: int
    callsign: str
    board_number: int
    discord_id: str | None = None
    squadron_id: int | None = None
    squadron_name: str | None = None
    qualification_ids: list[int] = []


class _AttendanceCounts(BaseModel):
    attendance_count: int = 0
    no_show_count: int = 0
    last_minute_snivel_count: int = 0
    advanced_snivel_count: int = 0
    total_snivels_count: int = 0
    no_response_count: int = 0
    total_pilots: int = 0
    attendance_percentage: int = 0


class ChartDataPoint(_AttendanceCounts):
    event_id: int
    event_name: str
    event_date: datetime


class SquadronMetrics(_AttendanceCounts):
    squadron_id: str  # squadron id as a string, or "unassigned"


class EventSquadronMetrics(BaseModel):
    event_id: int
    event_name: str
    event_date: datetime
    squadron_metrics: list[SquadronMetrics] = []


class ReportPayload(BaseModel):
    state: ReportState
    cycle: CycleOut
    filters: ReportFilters
    events: list[EventOut] = []
    chart_data: list[ChartDataPoint] = []
    event_squadron_metrics: list[EventSquadronMetrics] = []
    squadrons: list[SquadronOut] = []
    qualifications: list[QualificationOut] = []
    pilots: list[PilotOut] = []
