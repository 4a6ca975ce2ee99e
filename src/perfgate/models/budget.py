# Copyright (c) Syntropy Systems
"""Metrics, budgets and verdict models."""

from __future__ import annotations

import math
from enum import Enum

from pydantic import Field, model_validator
from typing_extensions import Self

from perfgate.errors import ConfigError

from .base import PerfgateBaseModel


class Direction(str, Enum):
    """Which way a metric is allowed to move without regressing."""

    LOWER = "lower"
    HIGHER = "higher"


class Metric(str, Enum):
    """A measured quantity that budgets can be placed on.

    Members are totally ordered by declaration order, not by name, so any
    mapping keyed by metric iterates as wall_ms, max_rss_kb, throughput_per_s.
    """

    WALL_MS = "wall_ms"
    MAX_RSS_KB = "max_rss_kb"
    THROUGHPUT_PER_S = "throughput_per_s"

    @property
    def rank(self) -> int:
        return _METRIC_RANK[self]

    @property
    def default_direction(self) -> Direction:
        if self is Metric.THROUGHPUT_PER_S:
            return Direction.HIGHER
        return Direction.LOWER

    @property
    def unit(self) -> str:
        return _METRIC_UNITS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Metric):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Metric):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Metric):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Metric):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, key: str) -> Metric:
        """Look up a metric by wire name, raising ``ConfigError`` if unknown."""
        try:
            return cls(key.strip())
        except ValueError:
            names = ", ".join(m.value for m in cls)
            msg = f"unknown metric '{key}' (expected one of: {names})"
            raise ConfigError(msg) from None


_METRIC_RANK = {metric: idx for idx, metric in enumerate(Metric)}
_METRIC_UNITS = {
    Metric.WALL_MS: "ms",
    Metric.MAX_RSS_KB: "KB",
    Metric.THROUGHPUT_PER_S: "/s",
}

DEFAULT_WARN_FACTOR = 0.9


class MetricStatus(str, Enum):
    """Outcome for one compared metric."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class Budget(PerfgateBaseModel):
    """Allowed fractional regression for one metric (0.20 = 20%)."""

    threshold: float = Field(ge=0.0)
    warn_threshold: float = Field(ge=0.0)
    direction: Direction

    @model_validator(mode="after")
    def _check_thresholds(self) -> Self:
        if not (math.isfinite(self.threshold) and math.isfinite(self.warn_threshold)):
            msg = "budget thresholds must be finite"
            raise ValueError(msg)
        if self.warn_threshold > self.threshold:
            msg = (
                f"warn_threshold ({self.warn_threshold}) must not exceed "
                f"threshold ({self.threshold})"
            )
            raise ValueError(msg)
        return self

    @property
    def fail_threshold(self) -> float:
        return self.threshold

    @classmethod
    def from_threshold(
        cls,
        threshold: float,
        warn_factor: float = DEFAULT_WARN_FACTOR,
        direction: Direction = Direction.LOWER,
    ) -> Budget:
        """Build a budget whose warn threshold is ``threshold * warn_factor``."""
        if not 0.0 <= warn_factor <= 1.0:
            msg = f"warn_factor must be within [0, 1] (got {warn_factor})"
            raise ConfigError(msg)
        return cls(
            threshold=threshold,
            warn_threshold=threshold * warn_factor,
            direction=direction,
        )


class Delta(PerfgateBaseModel):
    """Baseline vs current medians for one metric."""

    baseline: float
    current: float
    ratio: float
    pct: float
    regression: float = Field(ge=0.0)
    status: MetricStatus


class VerdictStatus(str, Enum):
    """Aggregate outcome of a comparison."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class Verdict(PerfgateBaseModel):
    """Aggregate status with per-status counts and stable reason tokens."""

    status: VerdictStatus
    pass_count: int = 0
    warn_count: int = 0
    fail_count: int = 0
    reasons: tuple[str, ...] = ()
