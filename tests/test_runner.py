# Copyright (c) Syntropy Systems
"""Tests for the process runner."""

import math
import os
import signal
import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from perfgate.errors import EmptyArgv, SpawnError, TimeoutUnsupported
from perfgate.runner import (
    BlockingReaper,
    CommandSpec,
    ProcessRunner,
    PsutilReaper,
    Wait4Reaper,
    default_reaper,
    truncate,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="POSIX process groups")


def py(code: str) -> list[str]:
    """Build an argv running ``code`` with the current interpreter."""
    return [sys.executable, "-c", code]


class TestTruncate:
    """Tests for output truncation."""

    @pytest.mark.parametrize("length", [0, 1, 5, 100])
    @pytest.mark.parametrize("cap", [0, 1, 5, 1000])
    def test_length_is_min(self, length, cap):
        data = b"x" * length

        assert len(truncate(data, cap)) == min(length, cap)

    def test_keeps_prefix(self):
        assert truncate(b"abcdef", 3) == b"abc"

    def test_negative_cap_rejected(self):
        with pytest.raises(ValueError):
            truncate(b"abc", -1)


class TestCommandSpec:
    """Tests for command spec validation."""

    def test_empty_argv_rejected(self):
        with pytest.raises(EmptyArgv):
            CommandSpec(argv=[])

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValueError):
            CommandSpec(argv=["true"], timeout=-1)

    @pytest.mark.parametrize("timeout", [math.nan, math.inf, -math.inf])
    def test_non_finite_timeout_rejected(self, timeout):
        """Test a timeout that could never expire is refused up front."""
        with pytest.raises(ValueError, match="finite"):
            CommandSpec(argv=["true"], timeout=timeout)

    def test_zero_timeout_allowed(self):
        assert CommandSpec(argv=["true"], timeout=0).timeout == 0

    @pytest.mark.parametrize("argv", ["true", b"true"])
    def test_string_argv_rejected(self, argv):
        """Test a bare string is not split into one-character arguments."""
        with pytest.raises(TypeError, match="sequence of arguments"):
            CommandSpec(argv=argv)

    def test_env_merged_in_order(self, monkeypatch):
        """Test later overrides win and the ambient env is kept."""
        monkeypatch.setenv("PERFGATE_AMBIENT", "yes")
        spec = CommandSpec(argv=["true"], env=[("A", "1"), ("A", "2")])

        env = spec.build_env()

        assert env["A"] == "2"
        assert env["PERFGATE_AMBIENT"] == "yes"

    def test_env_without_inheritance(self, monkeypatch):
        monkeypatch.setenv("PERFGATE_AMBIENT", "yes")
        spec = CommandSpec(argv=["true"], env=[("A", "1")], inherit_env=False)

        assert spec.build_env() == {"A": "1"}


class TestProcessRunner:
    """Tests for running real commands."""

    def test_exit_code(self):
        result = ProcessRunner().run(CommandSpec(argv=py("import sys; sys.exit(42)")))

        assert result.exit_code == 42
        assert result.timed_out is False
        assert result.wall_ms >= 0

    def test_captures_stdout_and_stderr(self):
        """Test stdout and stderr are captured separately."""
        code = "import sys; print('out'); print('err', file=sys.stderr)"

        result = ProcessRunner().run(CommandSpec(argv=py(code)))

        assert result.exit_code == 0
        assert result.stdout.strip() == b"out"
        assert result.stderr.strip() == b"err"

    def test_output_capped(self):
        """Test output beyond the cap is dropped without blocking the child."""
        code = "import sys; sys.stdout.write('x' * 200000); sys.stderr.write('y' * 50)"

        result = ProcessRunner().run(CommandSpec(argv=py(code), output_cap_bytes=100))

        assert result.exit_code == 0
        assert result.stdout == b"x" * 100
        assert result.stderr == b"y" * 50

    def test_zero_cap(self):
        result = ProcessRunner().run(
            CommandSpec(argv=py("print('hello')"), output_cap_bytes=0)
        )

        assert result.stdout == b""

    def test_env_override(self):
        code = "import os; print(os.environ['PERFGATE_TEST_VAR'])"

        result = ProcessRunner().run(
            CommandSpec(argv=py(code), env=[("PERFGATE_TEST_VAR", "hello")])
        )

        assert result.stdout.strip() == b"hello"

    def test_env_not_inherited(self, monkeypatch):
        monkeypatch.setenv("PERFGATE_AMBIENT", "yes")
        code = "import os; print(os.environ.get('PERFGATE_AMBIENT', '<none>'))"

        result = ProcessRunner().run(CommandSpec(argv=py(code), inherit_env=False))

        assert result.stdout.strip() == b"<none>"

    def test_cwd(self, temp_dir: Path):
        code = "import os; print(os.getcwd())"

        result = ProcessRunner().run(CommandSpec(argv=py(code), cwd=temp_dir))

        assert Path(result.stdout.decode().strip()).resolve() == temp_dir.resolve()

    def test_missing_executable(self, temp_dir: Path):
        """Test a command that cannot be spawned raises SpawnError."""
        missing = str(temp_dir / "does-not-exist")

        with pytest.raises(SpawnError) as exc_info:
            ProcessRunner().run(CommandSpec(argv=[missing]))

        assert exc_info.value.argv == [missing]

    def test_empty_argv_never_spawns(self, monkeypatch):
        """Test an empty argv is rejected before anything is spawned."""

        def _fail(*args, **kwargs):
            raise AssertionError("Popen must not be called")

        monkeypatch.setattr(subprocess, "Popen", _fail)
        spec = SimpleNamespace(argv=(), timeout=None)

        with pytest.raises(EmptyArgv):
            ProcessRunner().run(spec)

    @posix_only
    def test_timeout_kills_child(self):
        """Test a hung command is killed and reported as timed out."""
        code = "import time; print('started', flush=True); time.sleep(30)"

        result = ProcessRunner().run(CommandSpec(argv=py(code), timeout=1.0))

        assert result.timed_out is True
        assert result.exit_code == -signal.SIGKILL
        assert result.wall_ms < 10000
        assert result.stdout.startswith(b"started")

    @posix_only
    def test_timeout_kills_descendants(self):
        """Test a timeout kill reaches grandchildren holding the pipes."""
        inner = "import time; time.sleep(30)"
        code = (
            "import subprocess, sys, time; "
            f"subprocess.Popen([sys.executable, '-c', {inner!r}]); "
            "time.sleep(30)"
        )

        result = ProcessRunner().run(CommandSpec(argv=py(code), timeout=0.5))

        assert result.timed_out is True
        assert result.wall_ms < 10000

    def test_no_timeout_when_fast(self):
        result = ProcessRunner().run(CommandSpec(argv=py("pass"), timeout=30))

        assert result.timed_out is False
        assert result.exit_code == 0

    @pytest.mark.skipif(sys.platform != "linux", reason="ru_maxrss semantics")
    def test_max_rss_reported(self):
        result = ProcessRunner().run(CommandSpec(argv=py("x = bytearray(10_000_000)")))

        assert result.max_rss_kb is not None
        assert result.max_rss_kb > 0

    def test_sequential_runs_independent(self):
        """Test each run owns exactly one child."""
        runner = ProcessRunner()

        first = runner.run(CommandSpec(argv=py("import sys; sys.exit(1)")))
        second = runner.run(CommandSpec(argv=py("pass")))

        assert first.exit_code == 1
        assert second.exit_code == 0


class TestReapers:
    """Tests for the platform reaper strategies."""

    def test_default_reaper(self):
        reaper = default_reaper()

        if os.name == "posix":
            assert isinstance(reaper, Wait4Reaper)
        elif sys.platform == "win32":
            assert isinstance(reaper, PsutilReaper)

    def test_rss_units(self):
        """Test macOS byte counts are normalized to kilobytes."""
        assert Wait4Reaper(platform="linux").rss_kb(2048) == 2048
        assert Wait4Reaper(platform="darwin").rss_kb(2048 * 1024) == 2048

    def test_blocking_reaper_rejects_timeout(self):
        runner = ProcessRunner(reaper=BlockingReaper())

        with pytest.raises(TimeoutUnsupported):
            runner.run(CommandSpec(argv=py("pass"), timeout=1.0))

    def test_blocking_reaper_without_timeout(self):
        result = ProcessRunner(reaper=BlockingReaper()).run(
            CommandSpec(argv=py("import sys; sys.exit(3)"))
        )

        assert result.exit_code == 3
        assert result.max_rss_kb is None

    def test_psutil_reaper(self):
        reaper = PsutilReaper(memory_field="rss")

        result = ProcessRunner(reaper=reaper).run(
            CommandSpec(argv=py("import sys; sys.exit(5)"))
        )

        assert result.exit_code == 5
        assert result.timed_out is False

    @posix_only
    def test_psutil_reaper_timeout(self):
        reaper = PsutilReaper(memory_field="rss")

        result = ProcessRunner(reaper=reaper).run(
            CommandSpec(argv=py("import time; time.sleep(30)"), timeout=0.5)
        )

        assert result.timed_out is True
        assert result.wall_ms < 10000
