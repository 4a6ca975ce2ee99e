# Copyright (c) Syntropy Systems
"""Report command - wrap a compare receipt in a perfgate.report.v1 envelope."""
from __future__ import annotations

from pathlib import Path

import typer

from perfgate.bench import build_report, read_model, write_json
from perfgate.cli.options import console, reported_errors
from perfgate.models.receipt import CompareReceipt


def report(
    compare: Path = typer.Option(..., "--compare", help="Compare receipt"),
    out: Path = typer.Option(
        Path("perfgate-report.json"), "--out", "-o", help="Report output path"
    ),
    pretty: bool = typer.Option(False, "--pretty", help="Pretty-print JSON"),
) -> None:
    """Write a report with one finding per warn/fail metric.

    Always exits 0; gate on the compare step instead.

    Example:
        perfgate report --compare perfgate-compare.json --out report.json

    """
    with reported_errors():
        receipt = read_model(compare, CompareReceipt)
        result = build_report(receipt)
        write_json(out, result, pretty=pretty)

    summary = result.summary
    console.print(
        f"[green]Wrote[/green] {out} "
        f"[dim]({len(result.findings)} findings: {summary.warn_count} warn, "
        f"{summary.fail_count} fail)[/dim]"
    )
