# Copyright (c) Syntropy Systems
"""Budget comparison: per-metric deltas and the aggregate verdict."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from perfgate.errors import InvalidBaseline
from perfgate.models.budget import (
    Delta,
    Direction,
    Metric,
    MetricStatus,
    Verdict,
    VerdictStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from perfgate.models.budget import Budget
    from perfgate.models.stats import Stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Comparison:
    """Deltas for every compared metric, plus the verdict they add up to."""

    deltas: Mapping[Metric, Delta]
    verdict: Verdict


def regression_for(pct: float, direction: Direction) -> float:
    """Non-negative degradation for a fractional change in ``direction``."""
    if direction is Direction.LOWER:
        return max(0.0, pct)
    return max(0.0, -pct)


def metric_status(regression: float, budget: Budget) -> MetricStatus:
    """Classify a regression against a budget.

    ``regression == threshold`` is WARN and ``regression == warn_threshold``
    is WARN; only strictly exceeding the threshold fails.
    """
    if regression > budget.threshold:
        return MetricStatus.FAIL
    if regression >= budget.warn_threshold:
        return MetricStatus.WARN
    return MetricStatus.PASS


def reason_token(metric: Metric, status: MetricStatus) -> str:
    return f"{metric.value}_{status.value}"


def compute_delta(baseline: float, current: float, budget: Budget) -> Delta:
    """Compare two medians under one budget; ``baseline`` must be > 0."""
    ratio = current / baseline
    pct = (current - baseline) / baseline
    regression = regression_for(pct, budget.direction)
    return Delta(
        baseline=baseline,
        current=current,
        ratio=ratio,
        pct=pct,
        regression=regression,
        status=metric_status(regression, budget),
    )


def aggregate_verdict(statuses: Mapping[Metric, MetricStatus]) -> Verdict:
    """Fold per-metric statuses into a verdict with ordered reason tokens."""
    counts = {status: 0 for status in MetricStatus}
    reasons: list[str] = []
    for metric in sorted(statuses):
        status = statuses[metric]
        counts[status] += 1
        if status is not MetricStatus.PASS:
            reasons.append(reason_token(metric, status))

    if counts[MetricStatus.FAIL]:
        overall = VerdictStatus.FAIL
    elif counts[MetricStatus.WARN]:
        overall = VerdictStatus.WARN
    else:
        overall = VerdictStatus.PASS

    return Verdict(
        status=overall,
        pass_count=counts[MetricStatus.PASS],
        warn_count=counts[MetricStatus.WARN],
        fail_count=counts[MetricStatus.FAIL],
        reasons=tuple(reasons),
    )


def compare_stats(
    baseline: Stats,
    current: Stats,
    budgets: Mapping[Metric, Budget],
) -> Comparison:
    """Compare current stats against a baseline under per-metric budgets.

    Only metrics present in both stats and in ``budgets`` are compared;
    the rest are skipped and do not influence the verdict.

    Raises:
        InvalidBaseline: if a compared metric has a baseline median <= 0.

    """
    deltas: dict[Metric, Delta] = {}
    for metric in sorted(budgets):
        base = baseline.median(metric)
        cur = current.median(metric)
        if base is None or cur is None:
            logger.debug("Skipping %s: missing on one side", metric.value)
            continue
        if base <= 0:
            raise InvalidBaseline(metric, base)
        delta = compute_delta(base, cur, budgets[metric])
        logger.debug(
            "%s: baseline=%s current=%s regression=%.4f -> %s",
            metric.value,
            base,
            cur,
            delta.regression,
            delta.status.value,
        )
        deltas[metric] = delta

    verdict = aggregate_verdict({m: d.status for m, d in deltas.items()})
    return Comparison(deltas=MappingProxyType(deltas), verdict=verdict)


def comparable_metrics(baseline: Stats, current: Stats) -> Iterable[Metric]:
    """Metrics that have a median on both sides, in metric order."""
    return [
        m
        for m in Metric
        if baseline.median(m) is not None and current.median(m) is not None
    ]
