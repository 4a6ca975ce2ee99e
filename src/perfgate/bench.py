# Copyright (c) Syntropy Systems
"""Benchmark orchestration: run receipts, comparisons and config checks.

The engine modules (runner, collector, stats, compare) stay free of policy;
decisions such as whether a timeout aborts the run or which exit code a
verdict maps to live here.
"""
from __future__ import annotations

import logging
import os
import platform
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

import psutil
from pydantic import BaseModel, ValidationError

from perfgate import __version__
from perfgate.collector import SampleCollector
from perfgate.compare import compare_stats
from perfgate.config import bench_budgets
from perfgate.errors import CommandTimeout, ConfigError, PerfgateError
from perfgate.models.budget import MetricStatus, Verdict, VerdictStatus
from perfgate.models.receipt import (
    BenchMeta,
    CompareReceipt,
    CompareRef,
    FindingData,
    HostInfo,
    PerfgateReport,
    ReportFinding,
    ReportSummary,
    RunMeta,
    RunReceipt,
    Severity,
    ToolInfo,
)
from perfgate.render import (
    format_pct,
    render_markdown,
    render_no_baseline_markdown,
)
from perfgate.runner import DEFAULT_OUTPUT_CAP_BYTES, CommandSpec, ProcessRunner
from perfgate.stats import aggregate

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from perfgate.config import PerfgateConfig
    from perfgate.models.budget import Budget, Metric
    from perfgate.models.stats import Sample

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAIL = 2
EXIT_WARN = 3

CHECK_ID_BUDGET = "perf.budget"
CHECK_ID_BASELINE = "perf.baseline"
FINDING_CODE_METRIC_WARN = "metric_warn"
FINDING_CODE_METRIC_FAIL = "metric_fail"
FINDING_CODE_BASELINE_MISSING = "baseline_missing"
VERDICT_REASON_NO_BASELINE = "no_baseline"

ModelT = TypeVar("ModelT", bound=BaseModel)


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def tool_info() -> ToolInfo:
    return ToolInfo(name="perfgate", version=__version__)


def host_info() -> HostInfo:
    """Describe the current machine; memory comes from psutil."""
    try:
        memory_total_kb: int | None = int(psutil.virtual_memory().total) // 1024
    except (psutil.Error, OSError):
        memory_total_kb = None
    return HostInfo(
        os=platform.system().lower(),
        arch=platform.machine(),
        cpu_count=os.cpu_count(),
        memory_total_kb=memory_total_kb,
    )


@dataclass
class RunRequest:
    """Everything needed to benchmark one command."""

    name: str
    command: Sequence[str]
    repeat: int = 5
    warmup: int = 0
    work_units: int | None = None
    cwd: Path | None = None
    timeout: float | None = None
    env: Sequence[tuple[str, str]] = ()
    output_cap_bytes: int = DEFAULT_OUTPUT_CAP_BYTES
    abort_on_timeout: bool = False

    def to_spec(self) -> CommandSpec:
        return CommandSpec(
            argv=self.command,
            cwd=self.cwd,
            env=self.env,
            timeout=self.timeout,
            output_cap_bytes=self.output_cap_bytes,
        )


@dataclass
class RunOutcome:
    """A run receipt plus what went wrong in measured iterations, if anything."""

    receipt: RunReceipt
    reasons: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.reasons)


def run_bench(request: RunRequest, runner: ProcessRunner | None = None) -> RunOutcome:
    """Collect samples for ``request`` and build a run receipt.

    Measured iterations that time out or exit non-zero are listed in
    ``RunOutcome.reasons``; they still count towards the stats.

    Raises:
        CommandTimeout: if ``abort_on_timeout`` is set and a measured
            iteration timed out.
        NoSamples: if ``repeat`` is zero.
        AdapterError: if any iteration could not be executed.

    """
    spec = request.to_spec()
    collector = SampleCollector(runner or ProcessRunner())
    started_at = utcnow()
    logger.info(
        "Running bench %s: %d warmup + %d measured", request.name, request.warmup, request.repeat
    )
    reasons: list[str] = []

    def _review(iteration: int, sample: Sample) -> None:
        if sample.warmup:
            return
        if sample.timed_out:
            if request.abort_on_timeout and request.timeout is not None:
                exc = CommandTimeout(request.timeout)
                exc.iteration = iteration
                exc.warmup = False
                raise exc
            reasons.append(f"iteration {iteration} timed out")
        if sample.exit_code != 0:
            reasons.append(f"iteration {iteration} exit code {sample.exit_code}")

    samples = collector.collect(
        spec, request.warmup, request.repeat, request.work_units, on_sample=_review
    )
    ended_at = utcnow()

    stats = aggregate(samples)
    receipt = RunReceipt(
        tool=tool_info(),
        run=RunMeta(
            id=str(uuid.uuid4()),
            started_at=started_at,
            ended_at=ended_at,
            host=host_info(),
        ),
        bench=BenchMeta(
            name=request.name,
            cwd=None if request.cwd is None else str(request.cwd),
            command=list(request.command),
            repeat=request.repeat,
            warmup=request.warmup,
            work_units=request.work_units,
            timeout_ms=None if request.timeout is None else int(request.timeout * 1000),
        ),
        samples=samples,
        stats=stats,
    )
    return RunOutcome(receipt=receipt, reasons=reasons)


def compare_runs(
    baseline: RunReceipt,
    current: RunReceipt,
    budgets: Mapping[Metric, Budget],
    *,
    baseline_path: str | None = None,
    current_path: str | None = None,
) -> CompareReceipt:
    """Compare two run receipts and wrap the result in a compare receipt."""
    comparison = compare_stats(baseline.stats, current.stats, budgets)
    return CompareReceipt(
        tool=tool_info(),
        bench=current.bench,
        baseline_ref=CompareRef(path=baseline_path, run_id=baseline.run.id),
        current_ref=CompareRef(path=current_path, run_id=current.run.id),
        budgets=dict(budgets),
        deltas=dict(comparison.deltas),
        verdict=comparison.verdict,
    )


def build_report(compare: CompareReceipt) -> PerfgateReport:
    """Wrap a compare receipt in a report with one finding per non-passing metric.

    Findings follow metric order; passing metrics contribute only to the summary.
    """
    findings: list[ReportFinding] = []
    for metric, delta in compare.deltas.items():
        if delta.status is MetricStatus.PASS:
            continue
        budget = compare.budgets[metric]
        if delta.status is MetricStatus.FAIL:
            code, severity = FINDING_CODE_METRIC_FAIL, Severity.FAIL
        else:
            code, severity = FINDING_CODE_METRIC_WARN, Severity.WARN
        findings.append(
            ReportFinding(
                check_id=CHECK_ID_BUDGET,
                code=code,
                severity=severity,
                message=(
                    f"{metric.value} regression: {format_pct(delta.pct)} "
                    f"(threshold: {budget.threshold * 100:.1f}%)"
                ),
                data=FindingData(
                    metric_name=metric.value,
                    baseline=delta.baseline,
                    current=delta.current,
                    regression_pct=delta.regression,
                    threshold=budget.threshold,
                    direction=budget.direction,
                ),
            )
        )
    verdict = compare.verdict
    return PerfgateReport(
        verdict=verdict,
        compare=compare,
        findings=tuple(findings),
        summary=ReportSummary(
            pass_count=verdict.pass_count,
            warn_count=verdict.warn_count,
            fail_count=verdict.fail_count,
            total_count=verdict.pass_count + verdict.warn_count + verdict.fail_count,
        ),
    )


def build_no_baseline_report(run: RunReceipt) -> PerfgateReport:
    """Report for a run that had nothing to compare against: a single warning."""
    finding = ReportFinding(
        check_id=CHECK_ID_BASELINE,
        code=FINDING_CODE_BASELINE_MISSING,
        severity=Severity.WARN,
        message=f"No baseline found for bench '{run.bench.name}'; comparison skipped",
    )
    return PerfgateReport(
        verdict=Verdict(
            status=VerdictStatus.WARN,
            warn_count=1,
            reasons=(VERDICT_REASON_NO_BASELINE,),
        ),
        findings=(finding,),
        summary=ReportSummary(warn_count=1, total_count=1),
    )


def exit_code_for(verdict: Verdict, *, fail_on_warn: bool = False) -> int:
    """Map a verdict to a process exit code: 0 pass, 2 fail, 3 warn (if gated)."""
    if verdict.status is VerdictStatus.FAIL:
        return EXIT_FAIL
    if verdict.status is VerdictStatus.WARN and fail_on_warn:
        return EXIT_WARN
    return EXIT_OK


def read_model(path: Path, model: type[ModelT]) -> ModelT:
    """Read and validate a JSON document, naming the file on failure."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"cannot read {path}: {exc}"
        raise PerfgateError(msg) from exc
    try:
        return model.model_validate_json(text)
    except ValidationError as exc:
        msg = f"invalid {model.__name__} in {path}: {exc}"
        raise PerfgateError(msg) from exc


def read_receipt(path: Path) -> RunReceipt:
    return read_model(path, RunReceipt)


def write_text(path: Path, text: str) -> None:
    """Write ``text`` atomically: a temp file in the same directory, then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            _ = f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def write_json(path: Path, model: BaseModel, *, pretty: bool = False) -> None:
    text = model.model_dump_json(by_alias=True, indent=2 if pretty else None)
    write_text(path, text + "\n")


@dataclass
class CheckOutcome:
    """Artifacts and exit code from a config-driven check."""

    run: RunOutcome
    run_path: Path
    compare: CompareReceipt | None
    compare_path: Path | None
    report: PerfgateReport
    report_path: Path
    markdown: str
    markdown_path: Path
    warnings: list[str]
    exit_code: int


def check(
    config: PerfgateConfig,
    bench_name: str,
    *,
    out_dir: Path | None = None,
    baseline_path: Path | None = None,
    require_baseline: bool = False,
    fail_on_warn: bool = False,
    runner: ProcessRunner | None = None,
) -> CheckOutcome:
    """Run a configured bench, compare it with its baseline and write artifacts.

    The baseline defaults to ``<baseline_dir>/<bench>.json``. A missing
    baseline is a warning unless ``require_baseline`` is set.
    """
    bench = config.get_bench(bench_name)
    defaults = config.defaults
    out_dir = out_dir if out_dir is not None else Path(defaults.out_dir)
    if baseline_path is None:
        baseline_path = Path(defaults.baseline_dir) / f"{bench.name}.json"

    request = RunRequest(
        name=bench.name,
        command=bench.command,
        repeat=bench.repeat if bench.repeat is not None else defaults.repeat,
        warmup=bench.warmup if bench.warmup is not None else defaults.warmup,
        work_units=bench.work,
        cwd=Path(bench.cwd) if bench.cwd is not None else None,
        timeout=bench.timeout_seconds(),
        env=sorted(bench.env.items()),
        output_cap_bytes=defaults.output_cap_bytes,
        abort_on_timeout=bench.abort_on_timeout,
    )
    outcome = run_bench(request, runner)
    run_path = out_dir / "run.json"
    write_json(run_path, outcome.receipt, pretty=True)

    warnings: list[str] = []
    compare: CompareReceipt | None = None
    compare_path: Path | None = None
    exit_code = EXIT_OK

    if baseline_path.is_file():
        baseline = read_receipt(baseline_path)
        budgets = bench_budgets(bench, defaults, baseline.stats, outcome.receipt.stats)
        compare = compare_runs(
            baseline,
            outcome.receipt,
            budgets,
            baseline_path=str(baseline_path),
            current_path=str(run_path),
        )
        compare_path = out_dir / "compare.json"
        write_json(compare_path, compare, pretty=True)
        report = build_report(compare)
        markdown = render_markdown(compare)
        exit_code = exit_code_for(compare.verdict, fail_on_warn=fail_on_warn)
    else:
        if require_baseline:
            msg = f"baseline required but not found for bench '{bench.name}': {baseline_path}"
            raise ConfigError(msg)
        warnings.append(
            f"no baseline found for bench '{bench.name}' at {baseline_path}, skipping comparison"
        )
        report = build_no_baseline_report(outcome.receipt)
        markdown = render_no_baseline_markdown(outcome.receipt, warnings)

    report_path = out_dir / "report.json"
    write_json(report_path, report, pretty=True)
    markdown_path = out_dir / "comment.md"
    write_text(markdown_path, markdown)
    for warning in warnings:
        logger.warning(warning)

    return CheckOutcome(
        run=outcome,
        run_path=run_path,
        compare=compare,
        compare_path=compare_path,
        report=report,
        report_path=report_path,
        markdown=markdown,
        markdown_path=markdown_path,
        warnings=warnings,
        exit_code=exit_code,
    )
