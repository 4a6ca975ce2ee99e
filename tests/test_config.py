# Copyright (c) Syntropy Systems
"""Tests for configuration loading and budget resolution."""

from pathlib import Path

import pytest

from perfgate.config import (
    BenchConfig,
    BudgetOverride,
    DefaultsConfig,
    PerfgateConfig,
    bench_budgets,
    build_budgets,
    find_config,
    load_config,
    parse_direction,
    parse_duration,
)
from perfgate.errors import ConfigError
from perfgate.models.budget import Direction, Metric

CONFIG_YAML = """\
defaults:
  repeat: 7
  threshold: 0.25
  baseline_dir: perf/baselines

bench:
  - name: startup
    command: ["./app", "--version"]
    timeout: 2s
    work: 100
    abort_on_timeout: true
    budgets:
      wall_ms:
        threshold: 0.10
      throughput_per_s:
        direction: higher
        warn_factor: 0.5
"""


class TestParseDuration:
    """Tests for duration strings."""

    @pytest.mark.parametrize(
        ("text", "seconds"),
        [
            ("250ms", 0.25),
            ("2s", 2.0),
            ("1.5m", 90.0),
            ("1h", 3600.0),
            ("3", 3.0),
            (" 10 s ", 10.0),
        ],
    )
    def test_valid(self, text, seconds):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "fast", "-1s", "2d", "1.s"])
    def test_invalid(self, text):
        with pytest.raises(ConfigError):
            parse_duration(text)


class TestParseDirection:
    def test_valid(self):
        assert parse_direction("Higher") is Direction.HIGHER

    def test_invalid(self):
        with pytest.raises(ConfigError):
            parse_direction("sideways")


class TestLoadConfig:
    """Tests for reading perfgate.yaml."""

    def test_load_explicit_path(self, temp_dir: Path):
        path = temp_dir / "perfgate.yaml"
        path.write_text(CONFIG_YAML)

        config = load_config(path)

        assert config.defaults.repeat == 7
        assert config.defaults.warmup == 0
        bench = config.get_bench("startup")
        assert bench.command == ["./app", "--version"]
        assert bench.timeout_seconds() == 2.0
        assert bench.abort_on_timeout is True
        assert bench.budgets[Metric.WALL_MS].threshold == 0.10

    def test_missing_explicit_path(self, temp_dir: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "nope.yaml")

    def test_defaults_when_absent(self, in_temp_dir: Path):
        config = load_config()

        assert config.benches == []
        assert config.defaults.threshold == 0.20

    def test_found_from_subdirectory(self, in_temp_dir: Path):
        (in_temp_dir / "perfgate.yaml").write_text(CONFIG_YAML)
        nested = in_temp_dir / "a" / "b"
        nested.mkdir(parents=True)

        found = find_config(nested)

        assert found == (in_temp_dir / "perfgate.yaml").resolve()

    def test_invalid_yaml(self, temp_dir: Path):
        path = temp_dir / "perfgate.yaml"
        path.write_text("bench: [unclosed")

        with pytest.raises(ConfigError, match="invalid YAML"):
            load_config(path)

    def test_unknown_key(self, temp_dir: Path):
        path = temp_dir / "perfgate.yaml"
        path.write_text("defaults:\n  repaet: 3\n")

        with pytest.raises(ConfigError, match="invalid config"):
            load_config(path)

    def test_unknown_metric_in_budgets(self, temp_dir: Path):
        path = temp_dir / "perfgate.yaml"
        path.write_text(
            "bench:\n  - name: x\n    command: [a]\n    budgets:\n      cpu: {threshold: 0.1}\n"
        )

        with pytest.raises(ConfigError):
            load_config(path)

    def test_empty_command_rejected(self, temp_dir: Path):
        path = temp_dir / "perfgate.yaml"
        path.write_text("bench:\n  - name: x\n    command: []\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_unknown_bench(self):
        config = PerfgateConfig.model_validate({"bench": [{"name": "a", "command": ["x"]}]})

        with pytest.raises(ConfigError, match="known: a"):
            config.get_bench("b")

    def test_abort_on_timeout_defaults_off(self):
        bench = BenchConfig(name="a", command=["x"])

        assert bench.abort_on_timeout is False

    def test_bad_timeout_names_bench(self):
        bench = BenchConfig(name="slow", command=["x"], timeout="soon")

        with pytest.raises(ConfigError, match="bench 'slow'"):
            bench.timeout_seconds()


class TestBuildBudgets:
    """Tests for resolving budgets from command-line style options."""

    def test_global_threshold(self, make_stats):
        budgets = build_budgets(make_stats(100), make_stats(100), threshold=0.3)

        assert list(budgets) == [Metric.WALL_MS]
        assert budgets[Metric.WALL_MS].threshold == 0.3
        assert budgets[Metric.WALL_MS].warn_threshold == pytest.approx(0.27)

    def test_only_comparable_metrics(self, make_stats):
        budgets = build_budgets(
            make_stats(100, max_rss_kb=10, throughput_per_s=1.0),
            make_stats(100, throughput_per_s=2.0),
        )

        assert list(budgets) == [Metric.WALL_MS, Metric.THROUGHPUT_PER_S]
        assert budgets[Metric.THROUGHPUT_PER_S].direction is Direction.HIGHER

    def test_per_metric_overrides(self, make_stats):
        budgets = build_budgets(
            make_stats(100, max_rss_kb=10),
            make_stats(100, max_rss_kb=10),
            threshold=0.2,
            metric_thresholds={"max_rss_kb": 0.05},
            directions={"wall_ms": "higher"},
        )

        assert budgets[Metric.WALL_MS].threshold == 0.2
        assert budgets[Metric.WALL_MS].direction is Direction.HIGHER
        assert budgets[Metric.MAX_RSS_KB].threshold == 0.05

    def test_restricted_metrics(self, make_stats):
        budgets = build_budgets(
            make_stats(100, max_rss_kb=10),
            make_stats(100, max_rss_kb=10),
            metrics=[Metric.MAX_RSS_KB],
        )

        assert list(budgets) == [Metric.MAX_RSS_KB]

    def test_unknown_metric(self, make_stats):
        with pytest.raises(ConfigError):
            build_budgets(make_stats(), make_stats(), metric_thresholds={"cpu": 0.1})

    def test_bad_warn_factor(self, make_stats):
        with pytest.raises(ConfigError):
            build_budgets(make_stats(), make_stats(), warn_factor=2.0)

    def test_negative_threshold(self, make_stats):
        with pytest.raises(ConfigError, match="wall_ms"):
            build_budgets(make_stats(), make_stats(), threshold=-1.0)


class TestBenchBudgets:
    """Tests for resolving budgets from the config file."""

    def test_override_beats_defaults(self, make_stats):
        bench = BenchConfig(
            name="startup",
            command=["./app"],
            budgets={
                Metric.WALL_MS: BudgetOverride(threshold=0.10),
                Metric.THROUGHPUT_PER_S: BudgetOverride(warn_factor=0.5),
            },
        )
        defaults = DefaultsConfig(threshold=0.25, warn_factor=0.8)
        stats = make_stats(100, max_rss_kb=10, throughput_per_s=5.0)

        budgets = bench_budgets(bench, defaults, stats, stats)

        assert budgets[Metric.WALL_MS].threshold == 0.10
        assert budgets[Metric.WALL_MS].warn_threshold == pytest.approx(0.08)
        assert budgets[Metric.MAX_RSS_KB].threshold == 0.25
        assert budgets[Metric.THROUGHPUT_PER_S].warn_threshold == pytest.approx(0.125)
        assert budgets[Metric.THROUGHPUT_PER_S].direction is Direction.HIGHER

    def test_metrics_filter(self, make_stats):
        bench = BenchConfig(name="x", command=["a"], metrics=[Metric.WALL_MS])
        stats = make_stats(100, max_rss_kb=10)

        budgets = bench_budgets(bench, DefaultsConfig(), stats, stats)

        assert list(budgets) == [Metric.WALL_MS]
