"""Exceptions raised by the attendance reporting pipeline."""
from __future__ import annotations


class ReportError(Exception):
    """Base class for report generation failures."""


class FetchFailure(ReportError):
    """A store query failed; the request's computation is aborted."""


class CycleNotFound(ReportError):
    def __init__(self, cycle_id: int):
        super().__init__(f"Cycle {cycle_id} not found")
        self.cycle_id = cycle_id


class RequestSuperseded(ReportError):
    """A newer request for the same slot started before this one resolved."""
