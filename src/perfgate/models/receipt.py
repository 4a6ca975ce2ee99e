# Copyright (c) Syntropy Systems
"""Versioned receipt models written by ``perfgate run`` and ``perfgate compare``."""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator

from .base import PerfgateBaseModel
from .budget import Budget, Delta, Direction, Metric, Verdict
from .stats import Sample, Stats

RUN_SCHEMA_V1 = "perfgate.run.v1"
COMPARE_SCHEMA_V1 = "perfgate.compare.v1"
REPORT_SCHEMA_V1 = "perfgate.report.v1"


class ToolInfo(PerfgateBaseModel):
    """Name and version of the tool that wrote a receipt."""

    name: str
    version: str


class HostInfo(PerfgateBaseModel):
    """Machine the samples were collected on."""

    os: str
    arch: str
    cpu_count: int | None = None
    memory_total_kb: int | None = None


class RunMeta(PerfgateBaseModel):
    """Identity and timing of one collection run."""

    id: str
    started_at: str
    ended_at: str
    host: HostInfo


class BenchMeta(PerfgateBaseModel):
    """How the benchmarked command was invoked."""

    name: str
    cwd: str | None = None
    command: list[str]
    repeat: int
    warmup: int
    work_units: int | None = None
    timeout_ms: int | None = None


class RunReceipt(PerfgateBaseModel):
    """Samples and stats from one ``perfgate run``."""

    schema_id: str = Field(default=RUN_SCHEMA_V1, alias="schema")
    tool: ToolInfo
    run: RunMeta
    bench: BenchMeta
    samples: list[Sample]
    stats: Stats


class CompareRef(PerfgateBaseModel):
    """Where one side of a comparison came from."""

    path: str | None = None
    run_id: str | None = None


class CompareReceipt(PerfgateBaseModel):
    """Deltas and verdict from comparing two run receipts."""

    schema_id: str = Field(default=COMPARE_SCHEMA_V1, alias="schema")
    tool: ToolInfo
    bench: BenchMeta
    baseline_ref: CompareRef
    current_ref: CompareRef
    budgets: dict[Metric, Budget]
    deltas: dict[Metric, Delta]
    verdict: Verdict

    @field_validator("budgets", "deltas", mode="after")
    @classmethod
    def _metric_order(cls, value: dict[Metric, object]) -> dict[Metric, object]:
        return {metric: value[metric] for metric in sorted(value)}


class Severity(str, Enum):
    """How serious a report finding is."""

    WARN = "warn"
    FAIL = "fail"


class FindingData(PerfgateBaseModel):
    """Numbers behind a budget finding."""

    metric_name: str
    baseline: float
    current: float
    regression_pct: float
    threshold: float
    direction: Direction


class ReportFinding(PerfgateBaseModel):
    """One problem surfaced by a check, keyed by a stable ``check_id``/``code``."""

    check_id: str
    code: str
    severity: Severity
    message: str
    data: FindingData | None = None


class ReportSummary(PerfgateBaseModel):
    pass_count: int = 0
    warn_count: int = 0
    fail_count: int = 0
    total_count: int = 0


class PerfgateReport(PerfgateBaseModel):
    """Envelope for dashboards: verdict, findings and counts in one document.

    ``compare`` is absent when there was no baseline to compare against.
    """

    report_type: str = REPORT_SCHEMA_V1
    verdict: Verdict
    compare: CompareReceipt | None = None
    findings: tuple[ReportFinding, ...] = ()
    summary: ReportSummary
