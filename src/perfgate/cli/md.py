# Copyright (c) Syntropy Systems
"""Markdown and annotation commands for compare receipts."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from perfgate.bench import read_model, write_text
from perfgate.cli.options import console, reported_errors
from perfgate.models.receipt import CompareReceipt
from perfgate.render import github_annotations as render_annotations
from perfgate.render import render_markdown


def md(
    compare: Path = typer.Option(..., "--compare", help="Compare receipt"),
    out: Optional[Path] = typer.Option(
        None, "--out", "-o", help="Markdown output path (default: stdout)"
    ),
) -> None:
    """Render a Markdown summary from a compare receipt."""
    with reported_errors():
        receipt = read_model(compare, CompareReceipt)
        markdown = render_markdown(receipt)
        if out is not None:
            write_text(out, markdown)
            console.print(f"[green]Wrote[/green] {out}")
            return

    typer.echo(markdown, nl=False)


def github_annotations(
    compare: Path = typer.Option(..., "--compare", help="Compare receipt"),
) -> None:
    """Emit GitHub Actions annotations for warn/fail metrics."""
    with reported_errors():
        receipt = read_model(compare, CompareReceipt)

    for line in render_annotations(receipt):
        typer.echo(line)
