# Copyright (c) Syntropy Systems
"""Pydantic models for samples and summary statistics."""

from __future__ import annotations

from pydantic import model_validator
from typing_extensions import Self

from .base import PerfgateBaseModel
from .budget import Metric


def _check_order(low: float, median: float, high: float) -> None:
    if not low <= median <= high:
        msg = f"summary must satisfy min <= median <= max (got {low}, {median}, {high})"
        raise ValueError(msg)


class IntSummary(PerfgateBaseModel):
    """Order statistics over integer values (milliseconds, kilobytes)."""

    median: int
    min: int
    max: int

    @model_validator(mode="after")
    def _ordered(self) -> Self:
        _check_order(self.min, self.median, self.max)
        return self


class FloatSummary(PerfgateBaseModel):
    """Order statistics over floating-point values."""

    median: float
    min: float
    max: float

    @model_validator(mode="after")
    def _ordered(self) -> Self:
        _check_order(self.min, self.median, self.max)
        return self


class Sample(PerfgateBaseModel):
    """One execution of the benchmarked command."""

    wall_ms: int
    exit_code: int
    warmup: bool = False
    timed_out: bool = False
    max_rss_kb: int | None = None
    throughput_per_s: float | None = None
    stdout: str | None = None
    stderr: str | None = None


class Stats(PerfgateBaseModel):
    """Per-metric summaries over the measured (non-warmup) samples."""

    wall_ms: IntSummary
    max_rss_kb: IntSummary | None = None
    throughput_per_s: FloatSummary | None = None

    def median(self, metric: Metric) -> float | None:
        """Return the median for ``metric`` as a float, or None if absent."""
        if metric is Metric.WALL_MS:
            return float(self.wall_ms.median)
        if metric is Metric.MAX_RSS_KB:
            return None if self.max_rss_kb is None else float(self.max_rss_kb.median)
        if self.throughput_per_s is None:
            return None
        return self.throughput_per_s.median
