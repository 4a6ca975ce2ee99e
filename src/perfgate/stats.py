# Copyright (c) Syntropy Systems
"""Summary statistics over benchmark samples.

Everything here is pure: the same samples always produce the same stats.
Inputs are never sorted in place.
"""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

from perfgate.errors import NoSamples, NonFiniteValue
from perfgate.models.stats import FloatSummary, IntSummary, Stats

if TYPE_CHECKING:
    from collections.abc import Sequence

    from perfgate.models.stats import Sample


def median_int_sorted(values: Sequence[int]) -> int:
    """Median of an already sorted, non-empty integer sequence.

    For even lengths this is the floor of the mean of the two middle values,
    computed from halves and remainders so that the intermediate never
    exceeds the larger operand (matches fixed-width unsigned arithmetic).
    """
    n = len(values)
    mid = n // 2
    if n % 2 == 1:
        return values[mid]
    a, b = values[mid - 1], values[mid]
    return (a // 2) + (b // 2) + ((a % 2 + b % 2) // 2)


def median_float_sorted(values: Sequence[float]) -> float:
    """Median of an already sorted, non-empty float sequence."""
    n = len(values)
    mid = n // 2
    if n % 2 == 1:
        return values[mid]
    a, b = values[mid - 1], values[mid]
    midpoint = (a + b) / 2.0
    if math.isinf(midpoint):
        midpoint = a / 2.0 + b / 2.0
    # rounding must not push the midpoint outside [a, b]
    return min(max(midpoint, a), b)


def summarize_int(values: Sequence[int]) -> IntSummary:
    """Compute min/median/max over integer values.

    Raises:
        NoSamples: if ``values`` is empty.

    """
    if not values:
        raise NoSamples
    ordered = sorted(values)
    return IntSummary(
        median=median_int_sorted(ordered),
        min=ordered[0],
        max=ordered[-1],
    )


def summarize_float(values: Sequence[float]) -> FloatSummary:
    """Compute min/median/max over float values.

    Non-finite values are rejected rather than propagated, so every summary
    satisfies ``min <= median <= max``.

    Raises:
        NoSamples: if ``values`` is empty.
        NonFiniteValue: on the first NaN or infinity encountered.

    """
    if not values:
        raise NoSamples
    for idx, value in enumerate(values):
        if not math.isfinite(value):
            raise NonFiniteValue(idx, value)
    ordered = sorted(values)
    return FloatSummary(
        median=median_float_sorted(ordered),
        min=ordered[0],
        max=ordered[-1],
    )


def aggregate(samples: Sequence[Sample]) -> Stats:
    """Reduce samples to per-metric summaries.

    Warmup samples are dropped before anything else is looked at. Memory and
    throughput summaries are present only when every measured sample carries
    a value for them.

    Raises:
        NoSamples: if no measured samples remain.

    """
    measured = [s for s in samples if not s.warmup]
    if not measured:
        raise NoSamples("measured (non-warmup) samples")

    wall_ms = summarize_int([s.wall_ms for s in measured])

    rss = [s.max_rss_kb for s in measured]
    max_rss_kb = None
    if all(v is not None for v in rss):
        max_rss_kb = summarize_int([v for v in rss if v is not None])

    throughput = [s.throughput_per_s for s in measured]
    throughput_per_s = None
    if all(v is not None for v in throughput):
        throughput_per_s = summarize_float([v for v in throughput if v is not None])

    return Stats(
        wall_ms=wall_ms,
        max_rss_kb=max_rss_kb,
        throughput_per_s=throughput_per_s,
    )
