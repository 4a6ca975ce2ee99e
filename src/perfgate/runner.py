# Copyright (c) Syntropy Systems
"""Process runner with timeout enforcement and resource accounting.

Each ``ProcessRunner.run`` call owns exactly one child process. The child is
always reaped before ``run`` returns, whether it exits on its own, is killed
on timeout, or the caller is interrupted.
"""
from __future__ import annotations

import contextlib
import ctypes
import logging
import math
import os
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, TYPE_CHECKING, Protocol

import psutil

from perfgate.errors import EmptyArgv, SpawnError, TimeoutUnsupported

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path
    from resource import struct_rusage

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_CAP_BYTES = 8192
DEFAULT_POLL_INTERVAL = 0.01

_READ_CHUNK = 8192
_READER_JOIN_TIMEOUT = 5.0


def setup_pdeathsig() -> None:
    """Set PDEATHSIG so child dies when parent dies.

    This prevents orphan processes when perfgate itself is killed.
    Only works on Linux.
    """
    if sys.platform != "linux":
        return
    try:
        libc = ctypes.CDLL("libc.so.6", use_errno=True)
        pr_set_pdeathsig = 1
        libc.prctl(pr_set_pdeathsig, signal.SIGKILL)
    except (AttributeError, OSError):
        # Can't set PDEATHSIG, continue without it
        return


def truncate(data: bytes, cap: int) -> bytes:
    """Return at most ``cap`` leading bytes of ``data``."""
    if cap < 0:
        msg = f"output cap must be >= 0 (got {cap})"
        raise ValueError(msg)
    return data[:cap]


@dataclass(frozen=True)
class CommandSpec:
    """A fully resolved command to execute.

    ``env`` entries are applied in order on top of the ambient environment
    (or on top of nothing when ``inherit_env`` is False). ``timeout`` is in
    seconds and applies to each execution separately.
    """

    argv: Sequence[str]
    cwd: Path | None = None
    env: Sequence[tuple[str, str]] = ()
    timeout: float | None = None
    output_cap_bytes: int = DEFAULT_OUTPUT_CAP_BYTES
    inherit_env: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.argv, (str, bytes)):
            msg = f"argv must be a sequence of arguments, not {type(self.argv).__name__}"
            raise TypeError(msg)
        object.__setattr__(self, "argv", tuple(self.argv))
        object.__setattr__(self, "env", tuple((k, v) for k, v in self.env))
        if not self.argv:
            raise EmptyArgv
        if self.timeout is not None and not (
            math.isfinite(self.timeout) and self.timeout >= 0
        ):
            msg = f"timeout must be a finite number of seconds >= 0 (got {self.timeout})"
            raise ValueError(msg)
        if self.output_cap_bytes < 0:
            msg = f"output_cap_bytes must be >= 0 (got {self.output_cap_bytes})"
            raise ValueError(msg)

    def build_env(self) -> dict[str, str]:
        """Merge env overrides onto the inherited environment."""
        merged = os.environ.copy() if self.inherit_env else {}
        for key, value in self.env:
            merged[key] = value
        return merged


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one command execution."""

    wall_ms: int
    exit_code: int
    timed_out: bool
    max_rss_kb: int | None = None
    stdout: bytes = b""
    stderr: bytes = b""


class ChildState(Enum):
    """Lifecycle of a child while it is being watched."""

    RUNNING = "running"
    EXITED = "exited"
    TIMED_OUT = "timed_out"


@dataclass
class Reaped:
    """What a reaper learned about a child it has waited for."""

    exit_code: int
    state: ChildState
    max_rss_kb: int | None = None

    @property
    def timed_out(self) -> bool:
        return self.state is ChildState.TIMED_OUT


class ChildReaper(Protocol):
    """Waits for a child, enforces the timeout, and collects resource usage.

    Implementations must leave the child reaped on every return path.
    """

    supports_timeout: bool

    def reap(self, proc: subprocess.Popen[bytes], timeout: float | None) -> Reaped:
        ...


def force_kill(proc: subprocess.Popen[bytes]) -> None:
    """Send an unconditional kill to the child (and its group on POSIX)."""
    if os.name == "posix":
        # start_new_session=True makes the child its own group leader
        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(proc.pid, signal.SIGKILL)
    else:
        with contextlib.suppress(OSError):
            proc.kill()


def _deadline(timeout: float | None) -> float | None:
    return None if timeout is None else time.monotonic() + timeout


class Wait4Reaper:
    """POSIX reaper built on ``os.wait4``.

    Polls with WNOHANG while a deadline is set and blocks otherwise. The
    rusage returned by the final wait gives peak RSS, which Linux reports in
    kilobytes and macOS in bytes.
    """

    supports_timeout = True

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        platform: str = sys.platform,
    ) -> None:
        self.poll_interval = poll_interval
        self._rss_divisor = 1024 if platform == "darwin" else 1

    def rss_kb(self, ru_maxrss: int) -> int:
        return int(ru_maxrss) // self._rss_divisor

    def reap(self, proc: subprocess.Popen[bytes], timeout: float | None) -> Reaped:
        deadline = _deadline(timeout)
        options = os.WNOHANG if deadline is not None else 0
        state = ChildState.RUNNING

        while state is ChildState.RUNNING:
            pid, status, rusage = self._wait4(proc, options)
            if pid == proc.pid:
                state = ChildState.EXITED
                break
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(
                    "Command exceeded %.3fs timeout, killing pid %d", timeout, proc.pid
                )
                force_kill(proc)
                pid, status, rusage = self._wait4(proc, 0)
                state = ChildState.TIMED_OUT
                break
            time.sleep(self.poll_interval)

        exit_code = os.waitstatus_to_exitcode(status)
        # Popen must not try to wait for a pid we already reaped
        proc.returncode = exit_code
        return Reaped(
            exit_code=exit_code,
            state=state,
            max_rss_kb=self.rss_kb(rusage.ru_maxrss),
        )

    @staticmethod
    def _wait4(
        proc: subprocess.Popen[bytes], options: int
    ) -> tuple[int, int, struct_rusage]:
        try:
            return os.wait4(proc.pid, options)
        except ChildProcessError as exc:
            raise SpawnError(list(proc.args), exc) from exc


class PsutilReaper:
    """Portable reaper that polls ``Popen`` and samples memory via psutil.

    Used on Windows, where the peak working set is tracked by the OS; the
    largest value seen before exit is reported. ``memory_field`` names the
    ``memory_info()`` attribute to sample.
    """

    supports_timeout = True

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        memory_field: str = "peak_wset",
    ) -> None:
        self.poll_interval = poll_interval
        self.memory_field = memory_field

    def reap(self, proc: subprocess.Popen[bytes], timeout: float | None) -> Reaped:
        deadline = _deadline(timeout)
        peak_bytes: int | None = None
        try:
            handle: psutil.Process | None = psutil.Process(proc.pid)
        except psutil.Error:
            handle = None

        state = ChildState.RUNNING
        while state is ChildState.RUNNING:
            if handle is not None:
                peak_bytes = self._sample(handle, peak_bytes)
            if proc.poll() is not None:
                state = ChildState.EXITED
                break
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(
                    "Command exceeded %.3fs timeout, killing pid %d", timeout, proc.pid
                )
                force_kill(proc)
                _ = proc.wait()
                state = ChildState.TIMED_OUT
                break
            time.sleep(self.poll_interval)

        return Reaped(
            exit_code=proc.returncode,
            state=state,
            max_rss_kb=None if peak_bytes is None else peak_bytes // 1024,
        )

    def _sample(self, handle: psutil.Process, peak: int | None) -> int | None:
        try:
            value = int(getattr(handle.memory_info(), self.memory_field))
        except (psutil.Error, AttributeError):
            # process is gone or this platform lacks the field
            return peak
        return value if peak is None else max(peak, value)


class BlockingReaper:
    """Fallback reaper: a plain blocking wait with no resource accounting."""

    supports_timeout = False

    def reap(self, proc: subprocess.Popen[bytes], timeout: float | None) -> Reaped:
        if timeout is not None:
            raise TimeoutUnsupported(sys.platform)
        return Reaped(exit_code=proc.wait(), state=ChildState.EXITED)


def default_reaper(poll_interval: float = DEFAULT_POLL_INTERVAL) -> ChildReaper:
    """Pick the reaper for the running platform."""
    if os.name == "posix":
        return Wait4Reaper(poll_interval=poll_interval)
    if sys.platform == "win32":
        return PsutilReaper(poll_interval=poll_interval)
    return BlockingReaper()


@dataclass
class _OutputPump:
    """Drains one pipe on a background thread, keeping the first ``cap`` bytes."""

    stream: IO[bytes]
    cap: int
    buffer: bytearray = field(default_factory=bytearray)
    _thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._drain, daemon=True)
        self._thread.start()

    def _drain(self) -> None:
        try:
            while True:
                chunk = os.read(self.stream.fileno(), _READ_CHUNK)
                if not chunk:
                    break
                room = self.cap - len(self.buffer)
                if room > 0:
                    self.buffer += truncate(chunk, room)
        except OSError as exc:
            logger.debug("Output pipe closed with error: %s", exc)
        finally:
            with contextlib.suppress(OSError):
                self.stream.close()

    def join(self) -> bytes:
        if self._thread is not None:
            self._thread.join(timeout=_READER_JOIN_TIMEOUT)
            if self._thread.is_alive():
                logger.warning(
                    "Output pipe still open after child exit; "
                    "a detached descendant may be holding it"
                )
        return bytes(self.buffer)


class ProcessRunner:
    """Runs one command instance per call and reports how it went.

    Features:
    - Uses start_new_session=True so a timeout kill reaches the whole group
    - Sets PDEATHSIG on Linux to prevent orphans
    - Captures stdout/stderr separately, each capped at output_cap_bytes
    - Collects peak RSS where the platform reaper can
    """

    reaper: ChildReaper

    def __init__(self, reaper: ChildReaper | None = None) -> None:
        """Initialize a runner.

        Args:
            reaper: Strategy used to wait for children. Defaults to the one
                chosen for the running platform.

        """
        self.reaper = reaper if reaper is not None else default_reaper()

    def run(self, spec: CommandSpec) -> ExecutionResult:
        """Execute ``spec`` once.

        Raises:
            EmptyArgv: if ``spec.argv`` is empty; nothing is spawned.
            TimeoutUnsupported: if a timeout is set but the reaper cannot
                enforce one.
            SpawnError: if the OS refuses to start or wait for the command.

        """
        if not spec.argv:
            raise EmptyArgv
        if spec.timeout is not None and not self.reaper.supports_timeout:
            raise TimeoutUnsupported(sys.platform)

        argv = list(spec.argv)
        logger.debug("Spawning %s (cwd=%s, timeout=%s)", argv, spec.cwd, spec.timeout)

        started = time.perf_counter()
        try:
            proc = subprocess.Popen(  # noqa: S603
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=spec.build_env(),
                cwd=None if spec.cwd is None else str(spec.cwd),
                start_new_session=True,  # Creates new process group
                preexec_fn=setup_pdeathsig if sys.platform == "linux" else None,  # noqa: PLW1509
            )
        except OSError as exc:
            raise SpawnError(argv, exc) from exc

        assert proc.stdout is not None
        assert proc.stderr is not None
        out_pump = _OutputPump(proc.stdout, spec.output_cap_bytes)
        err_pump = _OutputPump(proc.stderr, spec.output_cap_bytes)
        out_pump.start()
        err_pump.start()

        try:
            reaped = self.reaper.reap(proc, spec.timeout)
        except BaseException:
            if proc.returncode is None:
                force_kill(proc)
                with contextlib.suppress(OSError):
                    _ = proc.wait()
            raise
        wall_ms = int((time.perf_counter() - started) * 1000)

        stdout = out_pump.join()
        stderr = err_pump.join()
        logger.debug(
            "pid %d finished: exit=%d state=%s wall_ms=%d",
            proc.pid,
            reaped.exit_code,
            reaped.state.value,
            wall_ms,
        )

        return ExecutionResult(
            wall_ms=wall_ms,
            exit_code=reaped.exit_code,
            timed_out=reaped.timed_out,
            max_rss_kb=reaped.max_rss_kb,
            stdout=stdout,
            stderr=stderr,
        )
