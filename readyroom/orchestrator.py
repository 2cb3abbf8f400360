"""Request coordination for report fetches.

Identical in-flight requests share one computation, and within a slot (one
report view) the most recent request wins: a result that arrives after a
newer request started is dropped instead of committed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from readyroom.errors import RequestSuperseded
from readyroom.schemas import ReportFilters, ReportPayload

log = logging.getLogger(__name__)

RequestKey = tuple[int, str]
ReportBuilder = Callable[[int, ReportFilters], Awaitable[ReportPayload]]

DEFAULT_SLOT = "default"


@dataclass
class SlotState:
    generation: int = 0
    key: RequestKey | None = None
    loading: bool = False
    waiters: int = 0
    current: ReportPayload | None = None
    error: str | None = None


class ReportCoordinator:
    """Owns the in-flight map and the committed report state per slot."""

    def __init__(self, build: ReportBuilder):
        self._build = build
        self._in_flight: dict[RequestKey, asyncio.Task] = {}
        self._slots: dict[str, SlotState] = {}

    def slot(self, name: str = DEFAULT_SLOT) -> SlotState:
        return self._slots.setdefault(name, SlotState())

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _task_for(self, key: RequestKey, cycle_id: int, filters: ReportFilters) -> asyncio.Task:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._build(cycle_id, filters))
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        return task

    def _forget(self, key: RequestKey, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Retrieve the failure even when every caller has gone away.
        if not task.cancelled() and task.exception() is not None:
            log.debug("Report build for %s finished with %r", key, task.exception())

    async def fetch_report(
        self, cycle_id: int, filters: ReportFilters | None = None, slot: str = DEFAULT_SLOT,
    ) -> ReportPayload:
        """Compute (or join) the report for *cycle_id*/*filters* and commit it to *slot*.

        Raises :class:`RequestSuperseded` if a different request for the same
        slot started while this one was pending.
        """
        filters = filters or ReportFilters()
        key = (cycle_id, filters.cache_key())
        state = self.slot(slot)
        # Joining the request already pending for this slot does not supersede it.
        if not (state.loading and state.key == key):
            state.generation += 1
            state.key = key
            state.waiters = 0
        generation = state.generation
        state.loading = True
        state.waiters += 1

        task = self._task_for(key, cycle_id, filters)
        try:
            payload = await asyncio.shield(task)
        except asyncio.CancelledError:
            # The shared build keeps running; stop loading once no caller is left to commit it.
            if state.generation == generation:
                state.waiters -= 1
                if not state.waiters:
                    state.loading = False
            raise
        except Exception as exc:
            if state.generation != generation:
                raise RequestSuperseded(f"Request for cycle {cycle_id} was superseded") from exc
            state.loading = False
            state.error = str(exc)
            log.warning("Report fetch failed for cycle %s: %s", cycle_id, exc)
            raise

        if state.generation != generation:
            log.debug("Dropping stale report for cycle %s (slot %s)", cycle_id, slot)
            raise RequestSuperseded(f"Request for cycle {cycle_id} was superseded")
        state.loading = False
        state.error = None
        state.current = payload
        return payload
