"""End-to-end report pipeline against the seeded database."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import text

from readyroom.domain import Category
from readyroom.errors import CycleNotFound, FetchFailure
from readyroom.schemas import ReportFilters
from readyroom.services import build_cycle_report, compute_cycle, default_cycle, list_cycles
from readyroom.tests.factories import add_event

WINDOW = timedelta(hours=2)


class TestCycles:
    @pytest.mark.asyncio
    async def test_list_cycles_newest_first(self, store, seeded):
        assert [c.name for c in await list_cycles(store)] == ["Cycle 25-1", "Cycle 24-4"]

    @pytest.mark.asyncio
    async def test_default_cycle_prefers_running_cycle(self, store, seeded):
        cycle = await default_cycle(store, now=datetime(2024, 11, 15, tzinfo=UTC))
        assert cycle.name == "Cycle 24-4"

    @pytest.mark.asyncio
    async def test_default_cycle_falls_back_to_last_ended(self, store, seeded):
        cycle = await default_cycle(store, now=datetime(2025, 6, 1, tzinfo=UTC))
        assert cycle.name == "Cycle 25-1"

    @pytest.mark.asyncio
    async def test_default_cycle_none(self, store, seeded):
        assert await default_cycle(store, now=datetime(2020, 1, 1, tzinfo=UTC)) is None


class TestComputeCycle:
    @pytest.mark.asyncio
    async def test_classifications(self, store, seeded):
        computation = await compute_cycle(store, seeded["cycle"].id, window=WINDOW)
        e1, e2 = seeded["events"]
        p = seeded["pilots"]
        got = {(c.pilot_id, c.event_id): c.category for c in computation.classifications}
        assert got == {
            (p["alpha"].id, e1.id): Category.LAST_MINUTE_SNIVEL,
            (p["bravo"].id, e1.id): Category.PRESENT,
            (p["charlie"].id, e1.id): Category.ADVANCED_SNIVEL,
            (p["alpha"].id, e2.id): Category.PRESENT,
            (p["bravo"].id, e2.id): Category.NO_RESPONSE,
            (p["charlie"].id, e2.id): Category.NO_RESPONSE,
            (p["delta"].id, e2.id): Category.NO_RESPONSE,
        }

    @pytest.mark.asyncio
    async def test_narrow_window_turns_last_minute_into_advanced(self, store, seeded):
        computation = await compute_cycle(store, seeded["cycle"].id, window=timedelta(minutes=30))
        alpha, e1 = seeded["pilots"]["alpha"], seeded["events"][0]
        got = {(c.pilot_id, c.event_id): c.category for c in computation.classifications}
        assert got[(alpha.id, e1.id)] is Category.ADVANCED_SNIVEL

    @pytest.mark.asyncio
    async def test_unknown_cycle(self, store, seeded):
        with pytest.raises(CycleNotFound) as info:
            await compute_cycle(store, 999)
        assert str(info.value) == "Cycle 999 not found"

    @pytest.mark.asyncio
    async def test_events_outside_cycle_dates_are_skipped(self, store, session, seeded):
        add_event(session, seeded["cycle"], "Stray", datetime(2025, 5, 1, 20, 0), ["m-stray"])
        session.commit()
        computation = await compute_cycle(store, seeded["cycle"].id, window=WINDOW)
        assert [e.name for e in computation.events] == ["Strike Training", "BFM Night"]


class TestBuildCycleReport:
    @pytest.mark.asyncio
    async def test_per_event_chart_data(self, store, seeded):
        report = await build_cycle_report(store, seeded["cycle"].id, window=WINDOW)
        assert report.state == "ready"
        first, second = report.chart_data
        assert (first.event_name, first.total_pilots, first.attendance_count) == ("Strike Training", 3, 1)
        assert first.last_minute_snivel_count == 1
        assert first.advanced_snivel_count == 1
        assert first.total_snivels_count == 2
        assert first.attendance_percentage == 33
        assert (second.total_pilots, second.attendance_count, second.no_response_count) == (4, 1, 3)
        assert second.attendance_percentage == 25

    @pytest.mark.asyncio
    async def test_squadron_breakdown(self, store, seeded):
        report = await build_cycle_report(store, seeded["cycle"].id, window=WINDOW)
        s1, s2 = seeded["squadrons"]
        second = report.event_squadron_metrics[1]
        metrics = {m.squadron_id: m for m in second.squadron_metrics}
        assert list(metrics) == [str(s1.id), str(s2.id), "unassigned"]
        assert metrics[str(s1.id)].total_pilots == 2
        assert metrics[str(s1.id)].attendance_percentage == 50
        assert metrics["unassigned"].no_response_count == 1
        first = report.event_squadron_metrics[0]
        assert "unassigned" not in {m.squadron_id for m in first.squadron_metrics}

    @pytest.mark.asyncio
    async def test_lookup_lists(self, store, seeded):
        report = await build_cycle_report(store, seeded["cycle"].id, window=WINDOW)
        assert [s.name for s in report.squadrons] == ["VFA-161", "VFA-26"]
        assert [q.name for q in report.qualifications] == ["Flight Lead", "Section Lead"]
        assert [p.callsign for p in report.pilots] == ["Late", "Ghost", "Rook", "Nubs"]
        assert [e.message_ids for e in report.events] == [["m1"], []]

    @pytest.mark.asyncio
    async def test_filters_echoed_and_applied(self, store, seeded):
        q1 = seeded["qualifications"][0]
        report = await build_cycle_report(
            store, seeded["cycle"].id, ReportFilters(qualification_ids=[q1.id]), window=WINDOW,
        )
        assert report.filters.qualification_ids == [q1.id]
        assert [p.callsign for p in report.pilots] == ["Nubs"]
        assert [p.total_pilots for p in report.chart_data] == [1, 1]
        assert [p.attendance_percentage for p in report.chart_data] == [0, 100]

    @pytest.mark.asyncio
    async def test_no_events_state(self, store, seeded):
        report = await build_cycle_report(store, seeded["other_cycle"].id, window=WINDOW)
        assert report.state == "no_events"
        assert report.chart_data == []
        assert report.event_squadron_metrics == []

    @pytest.mark.asyncio
    async def test_no_pilots_state(self, store, seeded):
        report = await build_cycle_report(
            store, seeded["cycle"].id, ReportFilters(pilot_ids=[9999]), window=WINDOW,
        )
        assert report.state == "no_pilots"
        assert [p.total_pilots for p in report.chart_data] == [0, 0]
        assert [p.attendance_percentage for p in report.chart_data] == [0, 0]
        assert report.pilots == []

    @pytest.mark.asyncio
    async def test_fetch_failure_aborts_the_report(self, store, engine, seeded):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE discord_event_attendance"))
        with pytest.raises(FetchFailure):
            await build_cycle_report(store, seeded["cycle"].id, window=WINDOW)
