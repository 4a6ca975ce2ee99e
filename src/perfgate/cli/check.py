# Copyright (c) Syntropy Systems
"""perfgate check command - config-driven run + compare."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from perfgate.bench import check as run_check
from perfgate.cli.compare import print_comparison
from perfgate.cli.options import console, reported_errors
from perfgate.config import load_config


def check(
    bench: str = typer.Option(..., "--bench", help="Bench name from the config file"),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file (default: nearest perfgate.yaml)"
    ),
    out_dir: Optional[Path] = typer.Option(
        None, "--out-dir", help="Artifact directory (default: defaults.out_dir)"
    ),
    baseline: Optional[Path] = typer.Option(
        None, "--baseline", help="Baseline receipt (default: <baseline_dir>/<bench>.json)"
    ),
    require_baseline: bool = typer.Option(
        False, "--require-baseline", help="Fail if no baseline exists"
    ),
    fail_on_warn: bool = typer.Option(
        False, "--fail-on-warn", help="Exit 3 when the verdict is warn"
    ),
) -> None:
    """Run a configured bench and compare it with its baseline.

    Writes run.json, compare.json (when a baseline exists), report.json
    and comment.md.

    Example:
        perfgate check --bench startup --fail-on-warn

    """
    with reported_errors():
        cfg = load_config(config)
        outcome = run_check(
            cfg,
            bench,
            out_dir=out_dir,
            baseline_path=baseline,
            require_baseline=require_baseline,
            fail_on_warn=fail_on_warn,
        )

    console.print(f"[green]Wrote[/green] {outcome.run_path}")
    for warning in outcome.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if outcome.run.failed:
        console.print(
            f"[yellow]Command problems:[/yellow] {', '.join(outcome.run.reasons)}"
        )
    if outcome.compare is not None:
        console.print(f"[green]Wrote[/green] {outcome.compare_path}")
        print_comparison(outcome.compare)
    console.print(f"[green]Wrote[/green] {outcome.report_path}")
    console.print(f"[green]Wrote[/green] {outcome.markdown_path}")

    if outcome.exit_code:
        raise typer.Exit(outcome.exit_code)
