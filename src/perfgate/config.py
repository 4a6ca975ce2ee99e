# Copyright (c) Syntropy Systems
"""Configuration management for perfgate."""
from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, cast

import yaml
from pydantic import Field, ValidationError

from perfgate.compare import comparable_metrics
from perfgate.errors import ConfigError
from perfgate.models.base import StrictConfigModel
from perfgate.models.budget import DEFAULT_WARN_FACTOR, Budget, Direction, Metric
from perfgate.runner import DEFAULT_OUTPUT_CAP_BYTES

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from perfgate.models.stats import Stats

CONFIG_FILENAME = "perfgate.yaml"

DEFAULT_REPEAT = 5
DEFAULT_WARMUP = 0
DEFAULT_THRESHOLD = 0.20
DEFAULT_OUT_DIR = "artifacts/perfgate"
DEFAULT_BASELINE_DIR = "baselines"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(text: str) -> float:
    """Parse a duration like ``250ms``, ``2s``, ``1.5m`` or ``1h`` into seconds.

    A bare number is taken as seconds.
    """
    match = _DURATION_RE.match(text)
    if match is None:
        msg = f"invalid duration: {text!r} (expected e.g. 500ms, 2s, 1m)"
        raise ConfigError(msg)
    value, unit = match.groups()
    return float(value) * _DURATION_UNITS[unit or "s"]


def parse_direction(text: str) -> Direction:
    try:
        return Direction(text.strip().lower())
    except ValueError:
        msg = f"invalid direction: {text!r} (expected lower|higher)"
        raise ConfigError(msg) from None


class BudgetOverride(StrictConfigModel):
    """Per-metric budget settings from the config file."""

    threshold: float | None = None
    warn_factor: float | None = None
    direction: Direction | None = None


class DefaultsConfig(StrictConfigModel):
    """Defaults shared by every bench in the config file."""

    repeat: int = Field(default=DEFAULT_REPEAT, ge=1)
    warmup: int = Field(default=DEFAULT_WARMUP, ge=0)
    threshold: float = Field(default=DEFAULT_THRESHOLD, ge=0.0)
    warn_factor: float = Field(default=DEFAULT_WARN_FACTOR, ge=0.0, le=1.0)
    output_cap_bytes: int = Field(default=DEFAULT_OUTPUT_CAP_BYTES, ge=0)
    out_dir: str = DEFAULT_OUT_DIR
    baseline_dir: str = DEFAULT_BASELINE_DIR


class BenchConfig(StrictConfigModel):
    """One named benchmark."""

    name: str
    command: list[str] = Field(min_length=1)
    cwd: str | None = None
    work: int | None = Field(default=None, ge=0)
    timeout: str | None = None
    repeat: int | None = Field(default=None, ge=1)
    warmup: int | None = Field(default=None, ge=0)
    env: dict[str, str] = Field(default_factory=dict)
    abort_on_timeout: bool = False
    metrics: list[Metric] | None = None
    budgets: dict[Metric, BudgetOverride] = Field(default_factory=dict)

    def timeout_seconds(self) -> float | None:
        if self.timeout is None:
            return None
        try:
            return parse_duration(self.timeout)
        except ConfigError as exc:
            msg = f"bench '{self.name}': {exc}"
            raise ConfigError(msg) from exc


class PerfgateConfig(StrictConfigModel):
    """Contents of perfgate.yaml."""

    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    benches: list[BenchConfig] = Field(default_factory=list, alias="bench")

    def get_bench(self, name: str) -> BenchConfig:
        for bench in self.benches:
            if bench.name == name:
                return bench
        known = ", ".join(b.name for b in self.benches) or "none"
        msg = f"bench '{name}' not found in config (known: {known})"
        raise ConfigError(msg)


def find_config(start_path: Path | None = None) -> Path | None:
    """Find the nearest perfgate.yaml by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        current = current.parent

    # Check root
    candidate = current / CONFIG_FILENAME
    if candidate.is_file():
        return candidate

    return None


def load_config(config_path: Path | None = None) -> PerfgateConfig:
    """Load configuration from perfgate.yaml.

    Looks for config in:
    1. Provided config_path (must exist)
    2. Nearest perfgate.yaml walking up from the current directory
    3. Defaults
    """
    if config_path is None:
        config_path = find_config()
        if config_path is None:
            return PerfgateConfig()
    elif not config_path.is_file():
        msg = f"config file not found: {config_path}"
        raise ConfigError(msg)

    try:
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
    except yaml.YAMLError as exc:
        msg = f"invalid YAML in {config_path}: {exc}"
        raise ConfigError(msg) from exc

    try:
        return PerfgateConfig.model_validate(data)
    except ValidationError as exc:
        msg = f"invalid config {config_path}: {exc}"
        raise ConfigError(msg) from exc


def _make_budget(
    metric: Metric, threshold: float, warn_factor: float, direction: Direction
) -> Budget:
    try:
        return Budget.from_threshold(threshold, warn_factor, direction)
    except ValueError as exc:
        msg = f"invalid budget for {metric.value}: {exc}"
        raise ConfigError(msg) from exc


def build_budgets(
    baseline: Stats,
    current: Stats,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    warn_factor: float = DEFAULT_WARN_FACTOR,
    metric_thresholds: Mapping[str, float] | None = None,
    directions: Mapping[str, str] | None = None,
    metrics: Iterable[Metric] | None = None,
) -> dict[Metric, Budget]:
    """Resolve budgets for every metric both stats can be compared on.

    Per-metric thresholds and directions override the global values; keys
    are metric wire names. ``metrics`` restricts which metrics get budgets.
    """
    thresholds = {Metric.parse(k): v for k, v in (metric_thresholds or {}).items()}
    dirs = {Metric.parse(k): parse_direction(v) for k, v in (directions or {}).items()}
    allowed = set(metrics) if metrics is not None else set(Metric)

    budgets: dict[Metric, Budget] = {}
    for metric in comparable_metrics(baseline, current):
        if metric not in allowed:
            continue
        budgets[metric] = _make_budget(
            metric,
            thresholds.get(metric, threshold),
            warn_factor,
            dirs.get(metric, metric.default_direction),
        )
    return budgets


def bench_budgets(
    bench: BenchConfig,
    defaults: DefaultsConfig,
    baseline: Stats,
    current: Stats,
) -> dict[Metric, Budget]:
    """Resolve budgets for a configured bench: bench override > defaults."""
    allowed = set(bench.metrics) if bench.metrics is not None else set(Metric)
    budgets: dict[Metric, Budget] = {}
    for metric in comparable_metrics(baseline, current):
        if metric not in allowed:
            continue
        override = bench.budgets.get(metric, BudgetOverride())
        budgets[metric] = _make_budget(
            metric,
            override.threshold if override.threshold is not None else defaults.threshold,
            override.warn_factor if override.warn_factor is not None else defaults.warn_factor,
            override.direction or metric.default_direction,
        )
    return budgets
