# Copyright (c) Syntropy Systems
"""Pydantic models for perfgate receipts and engine values."""

from .budget import (
    Budget,
    Delta,
    Direction,
    Metric,
    MetricStatus,
    Verdict,
    VerdictStatus,
)
from .receipt import (
    COMPARE_SCHEMA_V1,
    REPORT_SCHEMA_V1,
    RUN_SCHEMA_V1,
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
from .stats import FloatSummary, IntSummary, Sample, Stats

__all__ = [
    "COMPARE_SCHEMA_V1",
    "REPORT_SCHEMA_V1",
    "RUN_SCHEMA_V1",
    "BenchMeta",
    "Budget",
    "CompareReceipt",
    "CompareRef",
    "Delta",
    "Direction",
    "FindingData",
    "FloatSummary",
    "HostInfo",
    "IntSummary",
    "Metric",
    "MetricStatus",
    "PerfgateReport",
    "ReportFinding",
    "ReportSummary",
    "RunMeta",
    "RunReceipt",
    "Sample",
    "Severity",
    "Stats",
    "ToolInfo",
    "Verdict",
    "VerdictStatus",
]
