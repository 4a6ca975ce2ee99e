# Copyright (c) Syntropy Systems
"""Markdown and GitHub annotation rendering for compare receipts."""
from __future__ import annotations

from typing import TYPE_CHECKING

from perfgate.models.budget import Metric, MetricStatus, VerdictStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from perfgate.models.receipt import CompareReceipt, RunReceipt

_VERDICT_HEADERS = {
    VerdictStatus.PASS: "✅ perfgate: pass",
    VerdictStatus.WARN: "⚠️ perfgate: warn",
    VerdictStatus.FAIL: "❌ perfgate: fail",
}

_STATUS_ICONS = {
    MetricStatus.PASS: "✅",
    MetricStatus.WARN: "⚠️",
    MetricStatus.FAIL: "❌",
}


def format_value(metric: Metric, value: float) -> str:
    if metric is Metric.THROUGHPUT_PER_S:
        return f"{value:.3f}"
    return f"{value:.0f}"


def format_pct(pct: float) -> str:
    sign = "+" if pct > 0 else ""
    return f"{sign}{pct * 100:.2f}%"


def render_markdown(compare: CompareReceipt) -> str:
    """Render a PR-comment style summary table."""
    lines = [
        _VERDICT_HEADERS[compare.verdict.status],
        "",
        f"**Bench:** `{compare.bench.name}`",
        "",
        "| metric | baseline (median) | current (median) | delta | budget | status |",
        "|---|---:|---:|---:|---:|---|",
    ]

    for metric, delta in compare.deltas.items():
        budget = compare.budgets.get(metric)
        budget_cell = ""
        if budget is not None:
            budget_cell = f"{budget.threshold * 100:.1f}% ({budget.direction.value})"
        lines.append(
            f"| `{metric.value}` "
            f"| {format_value(metric, delta.baseline)} {metric.unit} "
            f"| {format_value(metric, delta.current)} {metric.unit} "
            f"| {format_pct(delta.pct)} "
            f"| {budget_cell} "
            f"| {_STATUS_ICONS[delta.status]} |"
        )

    if compare.verdict.reasons:
        lines.extend(["", "**Notes:**"])
        lines.extend(f"- {reason}" for reason in compare.verdict.reasons)

    return "\n".join(lines) + "\n"


def render_no_baseline_markdown(run: RunReceipt, warnings: Sequence[str]) -> str:
    """Render a summary for a run that had nothing to compare against."""
    stats = run.stats
    lines = [
        "ℹ️ perfgate: no baseline",
        "",
        f"**Bench:** `{run.bench.name}`",
        "",
        "| metric | median | min | max |",
        "|---|---:|---:|---:|",
        f"| `wall_ms` | {stats.wall_ms.median} ms | {stats.wall_ms.min} ms "
        f"| {stats.wall_ms.max} ms |",
    ]
    if stats.max_rss_kb is not None:
        rss = stats.max_rss_kb
        lines.append(f"| `max_rss_kb` | {rss.median} KB | {rss.min} KB | {rss.max} KB |")
    if stats.throughput_per_s is not None:
        thr = stats.throughput_per_s
        lines.append(
            f"| `throughput_per_s` | {thr.median:.3f} /s | {thr.min:.3f} /s "
            f"| {thr.max:.3f} /s |"
        )
    if warnings:
        lines.extend(["", "**Notes:**"])
        lines.extend(f"- {w}" for w in warnings)
    return "\n".join(lines) + "\n"


def github_annotations(compare: CompareReceipt) -> list[str]:
    """One ``::error::``/``::warning::`` line per failing or warning metric."""
    annotations: list[str] = []
    for metric, delta in compare.deltas.items():
        if delta.status is MetricStatus.FAIL:
            prefix = "::error"
        elif delta.status is MetricStatus.WARN:
            prefix = "::warning"
        else:
            continue
        annotations.append(
            f"{prefix}::perfgate {compare.bench.name} {metric.value}: "
            f"{format_pct(delta.pct)} (baseline {format_value(metric, delta.baseline)}"
            f"{metric.unit}, current {format_value(metric, delta.current)}{metric.unit})"
        )
    return annotations
