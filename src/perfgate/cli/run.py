# Copyright (c) Syntropy Systems
"""perfgate run command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from perfgate.bench import EXIT_ERROR, RunRequest, run_bench, write_json
from perfgate.cli.options import console, err_console, parse_key_value, reported_errors
from perfgate.config import DEFAULT_REPEAT, DEFAULT_WARMUP, parse_duration
from perfgate.runner import DEFAULT_OUTPUT_CAP_BYTES


def run(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", help="Bench identifier"),
    repeat: int = typer.Option(DEFAULT_REPEAT, "--repeat", "-r", min=1, help="Measured samples"),
    warmup: int = typer.Option(
        DEFAULT_WARMUP, "--warmup", "-w", min=0, help="Warmup samples (excluded from stats)"
    ),
    work: Optional[int] = typer.Option(
        None, "--work", min=0, help="Units of work per run (enables throughput_per_s)"
    ),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory"),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", help="Per-run timeout, e.g. 500ms, 2s, 1m"
    ),
    env: Optional[list[str]] = typer.Option(
        None, "--env", "-e", help="Environment override KEY=VALUE (repeatable)"
    ),
    output_cap_bytes: int = typer.Option(
        DEFAULT_OUTPUT_CAP_BYTES, "--output-cap-bytes", min=0,
        help="Max bytes kept from stdout/stderr per run",
    ),
    allow_nonzero: bool = typer.Option(
        False, "--allow-nonzero", help="Do not fail when the command exits non-zero"
    ),
    abort_on_timeout: bool = typer.Option(
        False, "--abort-on-timeout", help="Stop at the first measured run that times out"
    ),
    out: Path = typer.Option(Path("perfgate.json"), "--out", "-o", help="Run receipt path"),
    pretty: bool = typer.Option(False, "--pretty", help="Pretty-print JSON"),
) -> None:
    """Run a command repeatedly and write a run receipt.

    Use -- to separate perfgate options from the command:

        perfgate run --name startup --repeat 10 -- ./app --version
    """
    command_argv = list(ctx.args)

    if not command_argv:
        err_console.print("[red]Error:[/red] No command provided")
        err_console.print("\nUsage: perfgate run [OPTIONS] -- COMMAND...")
        raise typer.Exit(EXIT_ERROR)

    with reported_errors():
        request = RunRequest(
            name=name,
            command=command_argv,
            repeat=repeat,
            warmup=warmup,
            work_units=work,
            cwd=cwd,
            timeout=parse_duration(timeout) if timeout else None,
            env=[parse_key_value(item) for item in env or []],
            output_cap_bytes=output_cap_bytes,
            abort_on_timeout=abort_on_timeout,
        )
        outcome = run_bench(request)
        write_json(out, outcome.receipt, pretty=pretty)

    wall = outcome.receipt.stats.wall_ms
    console.print(
        f"[green]Wrote[/green] {out} "
        f"[dim](wall_ms median {wall.median}, min {wall.min}, max {wall.max})[/dim]"
    )

    if outcome.failed and not allow_nonzero:
        err_console.print(
            f"[red]Benchmark command failed:[/red] {', '.join(outcome.reasons)}"
        )
        raise typer.Exit(EXIT_ERROR)
