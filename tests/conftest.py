# Copyright (c) Syntropy Systems
"""Pytest fixtures for perfgate tests."""

import os
import tempfile
from collections.abc import Callable, Generator, Iterable
from pathlib import Path

import pytest

from perfgate.errors import AdapterError
from perfgate.models.stats import FloatSummary, IntSummary, Sample, Stats
from perfgate.runner import CommandSpec, ExecutionResult

# Store original cwd at module load time
_original_cwd = Path.cwd()


class ScriptedRunner:
    """Stand-in for ProcessRunner that replays canned results in order."""

    def __init__(self, results: Iterable[ExecutionResult | AdapterError]) -> None:
        self.results = list(results)
        self.specs: list[CommandSpec] = []

    def run(self, spec: CommandSpec) -> ExecutionResult:
        self.specs.append(spec)
        result = self.results.pop(0)
        if isinstance(result, AdapterError):
            raise result
        return result


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def in_temp_dir(temp_dir: Path) -> Generator[Path, None, None]:
    """Run the test with the temporary directory as cwd."""
    os.chdir(temp_dir)
    yield temp_dir
    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def scripted_runner() -> Callable[..., ScriptedRunner]:
    """Build a ScriptedRunner from results."""
    return ScriptedRunner


@pytest.fixture
def make_result() -> Callable[..., ExecutionResult]:
    """Build an ExecutionResult with sensible defaults."""

    def _make(
        wall_ms: int = 100,
        exit_code: int = 0,
        timed_out: bool = False,
        max_rss_kb: int | None = 2048,
        stdout: bytes = b"",
        stderr: bytes = b"",
    ) -> ExecutionResult:
        return ExecutionResult(
            wall_ms=wall_ms,
            exit_code=exit_code,
            timed_out=timed_out,
            max_rss_kb=max_rss_kb,
            stdout=stdout,
            stderr=stderr,
        )

    return _make


@pytest.fixture
def make_sample() -> Callable[..., Sample]:
    """Build a Sample with sensible defaults."""

    def _make(
        wall_ms: int = 100,
        warmup: bool = False,
        max_rss_kb: int | None = None,
        throughput_per_s: float | None = None,
        exit_code: int = 0,
    ) -> Sample:
        return Sample(
            wall_ms=wall_ms,
            exit_code=exit_code,
            warmup=warmup,
            max_rss_kb=max_rss_kb,
            throughput_per_s=throughput_per_s,
        )

    return _make


@pytest.fixture
def make_stats() -> Callable[..., Stats]:
    """Build Stats whose summaries collapse to the given medians."""

    def _make(
        wall_ms: int = 1000,
        max_rss_kb: int | None = None,
        throughput_per_s: float | None = None,
    ) -> Stats:
        return Stats(
            wall_ms=IntSummary(median=wall_ms, min=wall_ms, max=wall_ms),
            max_rss_kb=(
                None
                if max_rss_kb is None
                else IntSummary(median=max_rss_kb, min=max_rss_kb, max=max_rss_kb)
            ),
            throughput_per_s=(
                None
                if throughput_per_s is None
                else FloatSummary(
                    median=throughput_per_s, min=throughput_per_s, max=throughput_per_s
                )
            ),
        )

    return _make
