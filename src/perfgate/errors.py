# Copyright (c) Syntropy Systems
"""Exception hierarchy for perfgate.

Domain errors come from the pure numeric engine, adapter errors from
process execution, and config errors from resolving user input.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from perfgate.models.budget import Metric


class PerfgateError(Exception):
    """Base class for all perfgate errors."""


class DomainError(PerfgateError):
    """No statistics or verdict can be produced from the given data."""


class NoSamples(DomainError):
    """Raised when there is nothing left to summarize."""

    def __init__(self, what: str = "samples") -> None:
        self.what = what
        super().__init__(f"no {what} to summarize")


class InvalidBaseline(DomainError):
    """Raised when a compared metric has a non-positive baseline median."""

    def __init__(self, metric: Metric, value: float) -> None:
        self.metric = metric
        self.value = value
        super().__init__(
            f"baseline value for {metric.value} must be > 0 (got {value!r})"
        )


class NonFiniteValue(DomainError):
    """Raised when a float summary is asked to include NaN or infinity."""

    def __init__(self, index: int, value: float) -> None:
        self.index = index
        self.value = value
        super().__init__(f"non-finite value {value!r} at position {index}")


class AdapterError(PerfgateError):
    """Raised when a command could not be executed as requested.

    ``iteration`` and ``warmup`` are filled in by the sample collector so the
    failing execution can be identified.
    """

    iteration: int | None = None
    warmup: bool | None = None

    def __str__(self) -> str:
        msg = super().__str__()
        if self.iteration is None:
            return msg
        kind = "warmup" if self.warmup else "measured"
        return f"iteration {self.iteration} ({kind}): {msg}"


class EmptyArgv(AdapterError):
    """Raised before spawning when the command has no argv."""

    def __init__(self) -> None:
        super().__init__("command argv must not be empty")


class CommandTimeout(AdapterError):
    """Raised by orchestration when a timed-out sample aborts the run."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"command timed out after {timeout:g}s")


class TimeoutUnsupported(AdapterError):
    """Raised when a timeout is requested on a platform that cannot enforce it."""

    def __init__(self, platform: str) -> None:
        self.platform = platform
        super().__init__(f"timeout is not supported on this platform ({platform})")


class SpawnError(AdapterError):
    """Wraps an OS-level failure to spawn or wait for a command."""

    def __init__(self, argv: Sequence[str], cause: OSError) -> None:
        self.argv = list(argv)
        self.cause = cause
        super().__init__(f"failed to run {self.argv!r}: {cause}")


class ConfigError(PerfgateError, ValueError):
    """Raised for invalid configuration or command-line input."""
