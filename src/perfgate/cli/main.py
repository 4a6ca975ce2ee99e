# Copyright (c) Syntropy Systems
"""Main CLI entry point for perfgate."""

import typer

from perfgate import __version__
from perfgate.cli.check import check
from perfgate.cli.compare import compare
from perfgate.cli.md import github_annotations, md
from perfgate.cli.options import configure_logging
from perfgate.cli.report import report
from perfgate.cli.run import run

app = typer.Typer(
    name="perfgate",
    help="Performance budgets and baseline diffs for CI.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"perfgate {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Performance budgets and baseline diffs for CI."""
    _ = version
    configure_logging(verbose)


# Register commands
_ = app.command(
    context_settings={"allow_extra_args": True, "allow_interspersed_args": False}
)(run)
_ = app.command()(compare)
_ = app.command()(md)
_ = app.command(name="github-annotations")(github_annotations)
_ = app.command()(check)
_ = app.command()(report)


if __name__ == "__main__":
    app()
