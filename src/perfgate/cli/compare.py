# Copyright (c) Syntropy Systems
"""Compare command - gate a run receipt against a baseline."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from perfgate.bench import compare_runs, exit_code_for, read_receipt, write_json
from perfgate.cli.options import console, parse_key_float, parse_key_value, reported_errors
from perfgate.config import DEFAULT_THRESHOLD, build_budgets
from perfgate.models.budget import DEFAULT_WARN_FACTOR, MetricStatus, VerdictStatus
from perfgate.models.receipt import CompareReceipt
from perfgate.render import format_pct, format_value

_STATUS_STYLES = {
    MetricStatus.PASS: "green",
    MetricStatus.WARN: "yellow",
    MetricStatus.FAIL: "red",
}

_VERDICT_STYLES = {
    VerdictStatus.PASS: "green",
    VerdictStatus.WARN: "yellow",
    VerdictStatus.FAIL: "red",
}


def print_comparison(receipt: CompareReceipt) -> None:
    """Print deltas as a rich table followed by the verdict line."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric", style="dim")
    table.add_column("Baseline", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Delta", justify="right")
    table.add_column("Budget", justify="right")
    table.add_column("Status")

    for metric, delta in receipt.deltas.items():
        budget = receipt.budgets[metric]
        style = _STATUS_STYLES[delta.status]
        table.add_row(
            metric.value,
            f"{format_value(metric, delta.baseline)} {metric.unit}",
            f"{format_value(metric, delta.current)} {metric.unit}",
            format_pct(delta.pct),
            f"{budget.threshold * 100:.1f}% ({budget.direction.value})",
            f"[{style}]{delta.status.value}[/{style}]",
        )

    console.print(table)

    verdict = receipt.verdict
    style = _VERDICT_STYLES[verdict.status]
    console.print(
        f"[bold {style}]{verdict.status.value.upper()}[/bold {style}] "
        f"[dim]({verdict.pass_count} pass, {verdict.warn_count} warn, "
        f"{verdict.fail_count} fail)[/dim]"
    )
    for reason in verdict.reasons:
        console.print(f"  - {reason}")


def compare(
    baseline: Path = typer.Option(..., "--baseline", "-b", help="Baseline run receipt"),
    current: Path = typer.Option(..., "--current", "-c", help="Current run receipt"),
    threshold: float = typer.Option(
        DEFAULT_THRESHOLD, "--threshold", min=0.0, help="Global regression budget (0.20 = 20%)"
    ),
    warn_factor: float = typer.Option(
        DEFAULT_WARN_FACTOR, "--warn-factor", min=0.0, max=1.0,
        help="warn_threshold = threshold * warn_factor",
    ),
    metric_threshold: Optional[list[str]] = typer.Option(
        None, "--metric-threshold", help="Per-metric budget, e.g. wall_ms=0.10"
    ),
    direction: Optional[list[str]] = typer.Option(
        None, "--direction", help="Per-metric direction, e.g. throughput_per_s=higher"
    ),
    fail_on_warn: bool = typer.Option(
        False, "--fail-on-warn", help="Exit 3 when the verdict is warn"
    ),
    out: Path = typer.Option(
        Path("perfgate-compare.json"), "--out", "-o", help="Compare receipt path"
    ),
    pretty: bool = typer.Option(False, "--pretty", help="Pretty-print JSON"),
) -> None:
    """Compare a current run receipt against a baseline.

    Exit codes: 0 pass (or warn), 2 fail, 3 warn with --fail-on-warn.

    Example:
        perfgate compare --baseline baselines/startup.json --current perfgate.json

    """
    with reported_errors():
        baseline_receipt = read_receipt(baseline)
        current_receipt = read_receipt(current)
        budgets = build_budgets(
            baseline_receipt.stats,
            current_receipt.stats,
            threshold=threshold,
            warn_factor=warn_factor,
            metric_thresholds=dict(parse_key_float(m) for m in metric_threshold or []),
            directions=dict(parse_key_value(d) for d in direction or []),
        )
        receipt = compare_runs(
            baseline_receipt,
            current_receipt,
            budgets,
            baseline_path=str(baseline),
            current_path=str(current),
        )
        write_json(out, receipt, pretty=pretty)

    print_comparison(receipt)
    code = exit_code_for(receipt.verdict, fail_on_warn=fail_on_warn)
    if code:
        raise typer.Exit(code)
