# Copyright (c) Syntropy Systems
"""Sequential sample collection.

Iterations never overlap: running two copies of the command at once would
perturb the timings being measured.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from perfgate.errors import AdapterError
from perfgate.models.stats import Sample

if TYPE_CHECKING:
    from collections.abc import Callable

    from perfgate.runner import CommandSpec, ExecutionResult, ProcessRunner

logger = logging.getLogger(__name__)


def throughput_per_s(work_units: int, wall_ms: int) -> float:
    """Units of work per second for one execution.

    A zero wall time yields 0.0 instead of infinity.
    """
    if wall_ms <= 0:
        return 0.0
    return work_units / (wall_ms / 1000.0)


def _decode(data: bytes) -> str | None:
    if not data:
        return None
    return data.decode("utf-8", errors="replace")


def sample_from_result(
    result: ExecutionResult,
    *,
    warmup: bool,
    work_units: int | None = None,
) -> Sample:
    """Tag an execution result as a warmup or measured sample."""
    return Sample(
        wall_ms=result.wall_ms,
        exit_code=result.exit_code,
        warmup=warmup,
        timed_out=result.timed_out,
        max_rss_kb=result.max_rss_kb,
        throughput_per_s=(
            None if work_units is None else throughput_per_s(work_units, result.wall_ms)
        ),
        stdout=_decode(result.stdout),
        stderr=_decode(result.stderr),
    )


class SampleCollector:
    """Runs a command ``warmup + repeat`` times, warmups first."""

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    def collect(
        self,
        spec: CommandSpec,
        warmup: int,
        repeat: int,
        work_units: int | None = None,
        on_sample: Callable[[int, Sample], None] | None = None,
    ) -> list[Sample]:
        """Collect samples in execution order.

        A failing execution is re-raised unchanged, with ``iteration``
        (1-based) and ``warmup`` set on the exception. Non-zero exits and
        timeouts are not failures here; they are recorded on the sample.
        ``on_sample`` sees each sample as it is taken and may raise to stop
        the collection early.
        """
        if warmup < 0 or repeat < 0:
            msg = f"warmup and repeat must be >= 0 (got {warmup}, {repeat})"
            raise ValueError(msg)
        if work_units is not None and work_units < 0:
            msg = f"work_units must be >= 0 (got {work_units})"
            raise ValueError(msg)

        samples: list[Sample] = []
        total = warmup + repeat
        for idx in range(total):
            is_warmup = idx < warmup
            try:
                result = self.runner.run(spec)
            except AdapterError as exc:
                exc.iteration = idx + 1
                exc.warmup = is_warmup
                raise
            sample = sample_from_result(result, warmup=is_warmup, work_units=work_units)
            logger.debug(
                "Iteration %d/%d%s: wall_ms=%d exit=%d%s",
                idx + 1,
                total,
                " (warmup)" if is_warmup else "",
                sample.wall_ms,
                sample.exit_code,
                " timed out" if sample.timed_out else "",
            )
            samples.append(sample)
            if on_sample is not None:
                on_sample(idx + 1, sample)
        return samples
