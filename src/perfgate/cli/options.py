# Copyright (c) Syntropy Systems
"""Shared option parsing and error reporting for CLI commands."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from perfgate.bench import EXIT_ERROR
from perfgate.errors import ConfigError, PerfgateError

if TYPE_CHECKING:
    from collections.abc import Iterator

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    """Route log records through rich; DEBUG when verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def parse_key_value(item: str) -> tuple[str, str]:
    key, sep, value = item.partition("=")
    if not sep or not key:
        msg = f"expected KEY=VALUE, got {item!r}"
        raise ConfigError(msg)
    return key, value


def parse_key_float(item: str) -> tuple[str, float]:
    key, value = parse_key_value(item)
    try:
        return key, float(value)
    except ValueError:
        msg = f"invalid number for {key}: {value!r}"
        raise ConfigError(msg) from None


@contextmanager
def reported_errors() -> Iterator[None]:
    """Print perfgate errors in red and exit 1 instead of showing a traceback."""
    try:
        yield
    except PerfgateError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(EXIT_ERROR) from e
