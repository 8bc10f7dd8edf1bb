"""Run loop: drives decode, adapt, execute and record for N iterations.

One iteration:
    1. Reset the host cost meter to unlimited.
    2. Draw a buffer from the byte source (prefixed with the selector of
       RunConfig.operation when one is set).
    3. Decode one instruction. InsufficientInput skips the iteration.
    4. Adapt it to the host. Object creation is charged to the fresh meter.
    5. Execute it inside the isolation boundary, timed with perf_counter_ns.
    6. Aborted: count it, save the buffer to findings_dir, move on.
       Completed: append one telemetry line with cpu/mem cost and duration.

Iterations are strictly sequential and share only the host environment.
With RunConfig.host_reset_interval set, the host is reset every that many
iterations so its tables stay bounded. replay_prefix() repeats the same
schedule to rebuild the state a saved finding ran against.
PersistenceError from the recorder is not caught and ends the run.

Observability follows the usual fuzzer layout: RunStats holds counters and
bounded histories, build_stats_dict() flattens them, and emit_report() prints
a ``[SUMMARY-JSON-BEGIN]...[SUMMARY-JSON-END]`` line to stderr.

Python 3.13+.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import pathlib
import random
import statistics
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import psutil

from hostfuzz.adapter import AdaptedInstruction, adapt
from hostfuzz.catalog import (
    DecodedInstruction,
    all_operations,
    decode_instruction,
    operation_for_syscall,
    selector_bytes,
)
from hostfuzz.constants import (
    BUFFER_SIZE,
    DEFAULT_LOG_PATH,
    DEFAULT_RUNS,
    MEMORY_SAMPLE_INTERVAL,
)
from hostfuzz.errors import InsufficientInput
from hostfuzz.isolation import Aborted, Completed, Outcome, run_isolated
from hostfuzz.telemetry import TelemetryRecorder

if TYPE_CHECKING:
    from hostfuzz.host import HostEnvironment

__all__ = [
    "ByteSource",
    "FuzzRunner",
    "IterationResult",
    "RandomByteSource",
    "RunConfig",
    "RunReport",
    "RunStats",
    "build_stats_dict",
    "emit_report",
    "execute_buffer",
    "get_process",
    "record_memory",
    "replay_prefix",
]

logger = logging.getLogger(__name__)

type RunReport = dict[str, int | str | float]


# --- Configuration ---


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Settings of one fuzzing run.

    Attributes:
        runs: Number of iterations
        buffer_size: Random bytes drawn per iteration
        log_path: Telemetry log, appended to
        seed: Byte source seed. None draws from OS entropy.
        operation: Syscall name to pin every iteration to, or None for the
            whole catalog
        findings_dir: Where buffers of aborted iterations are saved. None
            disables saving.
        memory_sample_interval: Iterations between RSS samples
        host_reset_interval: Iterations between host resets. None keeps every
            object and table entry for the whole run.
    """

    runs: int = DEFAULT_RUNS
    buffer_size: int = BUFFER_SIZE
    log_path: pathlib.Path = pathlib.Path(DEFAULT_LOG_PATH)
    seed: int | None = None
    operation: str | None = None
    findings_dir: pathlib.Path | None = None
    memory_sample_interval: int = MEMORY_SAMPLE_INTERVAL
    host_reset_interval: int | None = None

    def __post_init__(self) -> None:
        """Validate configuration.

        Raises:
            ValueError: If a count is out of range or operation is unknown
        """
        if self.runs < 0:
            msg = f"runs must be non-negative, got {self.runs}"
            raise ValueError(msg)
        if self.buffer_size <= 0:
            msg = f"buffer_size must be positive, got {self.buffer_size}"
            raise ValueError(msg)
        if self.memory_sample_interval <= 0:
            msg = f"memory_sample_interval must be positive, got {self.memory_sample_interval}"
            raise ValueError(msg)
        if self.host_reset_interval is not None and self.host_reset_interval <= 0:
            msg = f"host_reset_interval must be positive, got {self.host_reset_interval}"
            raise ValueError(msg)
        if self.operation is not None:
            try:
                operation_for_syscall(self.operation)
            except KeyError as exc:
                raise ValueError(exc.args[0]) from None

    @property
    def prefix(self) -> bytes:
        """Selector prefix of the pinned operation, empty when unpinned."""
        if self.operation is None:
            return b""
        return selector_bytes(operation_for_syscall(self.operation))


# --- Byte Source ---


class ByteSource(Protocol):
    """Supplier of one input buffer per iteration."""

    def next_buffer(self) -> bytes: ...


class RandomByteSource:
    """Fixed-size buffers from a seeded pseudo-random generator.

    The same seed yields the same buffer sequence.
    """

    __slots__ = ("_rng", "size")

    def __init__(self, size: int = BUFFER_SIZE, seed: int | None = None) -> None:
        """Initialize the source.

        Args:
            size: Bytes per buffer
            seed: Generator seed. None seeds from OS entropy.
        """
        self.size = size
        self._rng = random.Random(seed)

    def next_buffer(self) -> bytes:
        """Draw the next buffer."""
        return self._rng.randbytes(self.size)


# --- Process Handle (lazy singleton) ---

_process: psutil.Process | None = None


def get_process() -> psutil.Process:
    """Lazy-initialize psutil process handle."""
    global _process  # noqa: PLW0603  # pylint: disable=global-statement
    if _process is None:
        _process = psutil.Process(os.getpid())
    return _process


# --- Run Statistics ---


@dataclass
class RunStats:
    """Counters and bounded histories of one run.

    Skipped and aborted iterations never reach the telemetry log. They are
    counted here so the end-of-run report shows how much was dropped.
    """

    iterations: int = 0
    completed: int = 0
    host_errors: int = 0
    aborted: int = 0
    insufficient_input: int = 0
    records_written: int = 0
    host_resets: int = 0
    status: str = "incomplete"

    # syscall -> decoded count
    syscall_coverage: dict[str, int] = field(default_factory=dict)
    # "<type>_<code>" -> count
    error_counts: dict[str, int] = field(default_factory=dict)
    # exception class name -> count
    abort_counts: dict[str, int] = field(default_factory=dict)

    # Bounded histories: host call durations (us) and RSS samples (MB)
    duration_history: deque[float] = field(
        default_factory=lambda: deque(maxlen=10000),
    )
    memory_history: deque[float] = field(
        default_factory=lambda: deque(maxlen=1000),
    )
    initial_memory_mb: float = 0.0

    finding_counter: int = 0


def record_memory(stats: RunStats) -> None:
    """Sample current RSS memory usage."""
    current_mb = get_process().memory_info().rss / (1024 * 1024)
    stats.memory_history.append(current_mb)


def _add_duration_stats(stats: RunStats, report: RunReport) -> None:
    if not stats.duration_history:
        return

    data = list(stats.duration_history)
    report["duration_mean_us"] = round(statistics.mean(data), 3)
    report["duration_median_us"] = round(statistics.median(data), 3)
    report["duration_min_us"] = round(min(data), 3)
    report["duration_max_us"] = round(max(data), 3)
    if len(data) >= 20:
        report["duration_p95_us"] = round(statistics.quantiles(data, n=20)[18], 3)
    if len(data) >= 100:
        report["duration_p99_us"] = round(statistics.quantiles(data, n=100)[98], 3)


def _add_memory_stats(stats: RunStats, report: RunReport) -> None:
    if not stats.memory_history:
        return

    data = list(stats.memory_history)
    report["memory_mean_mb"] = round(statistics.mean(data), 2)
    report["memory_peak_mb"] = round(max(data), 2)
    report["memory_delta_mb"] = round(max(data) - stats.initial_memory_mb, 2)


def build_stats_dict(stats: RunStats) -> RunReport:
    """Flatten run statistics for the JSON report.

    Args:
        stats: Statistics of a (possibly unfinished) run

    Returns:
        Stats dictionary suitable for JSON serialization
    """
    report: RunReport = {
        "status": stats.status,
        "iterations": stats.iterations,
        "completed": stats.completed,
        "host_errors": stats.host_errors,
        "aborted": stats.aborted,
        "insufficient_input": stats.insufficient_input,
        "records_written": stats.records_written,
        "host_resets": stats.host_resets,
        "findings": stats.finding_counter,
    }

    _add_duration_stats(stats, report)
    _add_memory_stats(stats, report)

    report["syscalls_total"] = len(all_operations())
    report["syscalls_tested"] = len(stats.syscall_coverage)
    for syscall, count in sorted(stats.syscall_coverage.items()):
        report[f"syscall_{syscall.removeprefix('syscalls::')}"] = count

    for key, count in sorted(stats.error_counts.items()):
        report[f"error_{key}"] = count
    for name, count in sorted(stats.abort_counts.items()):
        report[f"abort_{name}"] = count

    return report


def emit_report(
    stats: RunStats,
    report: RunReport,
    report_path: pathlib.Path | None = None,
) -> None:
    """Print the JSON summary to stderr and optionally save it.

    Args:
        stats: Run statistics (status set to "complete")
        report: Pre-built stats dictionary
        report_path: File to also write the report to, best effort
    """
    stats.status = "complete"
    report["status"] = stats.status
    text = json.dumps(report, sort_keys=True)

    print(
        f"\n[SUMMARY-JSON-BEGIN]{text}[SUMMARY-JSON-END]",
        file=sys.stderr,
        flush=True,
    )

    if report_path is None:
        return
    try:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(text, encoding="utf-8")
    except OSError as exc:
        logger.warning("Cannot write report %s: %s", report_path, exc)


# --- Single Iteration ---


@dataclass(frozen=True, slots=True)
class IterationResult:
    """Everything one executed buffer produced.

    Attributes:
        decoded: Instruction decoded from the buffer
        adapted: Instruction as handed to the host
        outcome: Result of the isolated host call
        duration_ns: Wall-clock duration of the host call alone
    """

    decoded: DecodedInstruction
    adapted: AdaptedInstruction
    outcome: Outcome
    duration_ns: int


def execute_buffer(host: HostEnvironment, data: bytes) -> IterationResult:
    """Reset the meter, then decode, adapt and execute one buffer.

    Raises:
        InsufficientInput: If data is too short for the selected instruction
    """
    host.budget.reset_unlimited()
    decoded = decode_instruction(data)
    logger.info("input: %r", decoded)
    adapted = adapt(decoded, host)

    start = time.perf_counter_ns()
    outcome = run_isolated(adapted, host)
    duration_ns = time.perf_counter_ns() - start

    return IterationResult(decoded, adapted, outcome, duration_ns)


def replay_prefix(host: HostEnvironment, config: RunConfig, iterations: int) -> int:
    """Rebuild the host state a seeded run had after its first iterations.

    Draws the buffers FuzzRunner.run drew for config and executes the ones
    since the last host reset on host, which must be constructed the way the
    run constructed its host. Buffers before that reset are drawn but not
    executed. Nothing is recorded.

    Args:
        host: Fresh environment to bring up to date
        config: Settings of the original run
        iterations: Iterations of the original run to account for

    Returns:
        Number of buffers executed

    Raises:
        ValueError: If config has no seed
    """
    if config.seed is None:
        msg = "only seeded runs can be replayed"
        raise ValueError(msg)

    source = RandomByteSource(config.buffer_size, config.seed)
    prefix = config.prefix
    interval = config.host_reset_interval
    first = 0 if interval is None else (iterations // interval) * interval
    executed = 0
    for index in range(iterations):
        data = prefix + source.next_buffer()
        if index < first:
            continue
        executed += 1
        try:
            execute_buffer(host, data)
        except InsufficientInput:
            continue
    return executed


# --- Run Loop ---


class FuzzRunner:
    """Sequential fuzzing loop over one long-lived host environment."""

    __slots__ = ("_config", "_host", "_prefix", "_recorder", "_source", "stats")

    def __init__(
        self,
        host: HostEnvironment,
        config: RunConfig | None = None,
        *,
        source: ByteSource | None = None,
        recorder: TelemetryRecorder | None = None,
    ) -> None:
        """Initialize runner.

        Args:
            host: Environment under test, reused for every iteration
            config: Run settings (defaults to RunConfig())
            source: Byte source. Defaults to a RandomByteSource seeded from
                config.seed.
            recorder: Telemetry recorder. Defaults to one on config.log_path.
        """
        self._config = config or RunConfig()
        self._host = host
        self._prefix = self._config.prefix
        self._source = source or RandomByteSource(self._config.buffer_size, self._config.seed)
        self._recorder = recorder or TelemetryRecorder(self._config.log_path)
        self.stats = RunStats()

    @property
    def config(self) -> RunConfig:
        """Run settings."""
        return self._config

    def run(self) -> RunStats:
        """Execute config.runs iterations and return the statistics.

        Raises:
            PersistenceError: If a telemetry line cannot be written
        """
        self.stats.initial_memory_mb = get_process().memory_info().rss / (1024 * 1024)
        with self._recorder:
            for _ in range(self._config.runs):
                self.step(self._prefix + self._source.next_buffer())
        return self.stats

    def step(self, data: bytes) -> Outcome | None:
        """Run one iteration on data.

        Returns:
            The outcome, or None if the iteration was skipped for lack of input
        """
        stats = self.stats
        interval = self._config.host_reset_interval
        if interval is not None and stats.iterations and stats.iterations % interval == 0:
            self._host.reset()
            stats.host_resets += 1
        stats.iterations += 1
        if stats.iterations % self._config.memory_sample_interval == 0:
            record_memory(stats)

        try:
            result = execute_buffer(self._host, data)
        except InsufficientInput as exc:
            stats.insufficient_input += 1
            logger.debug("Skipped iteration %d: %s", stats.iterations, exc)
            return None

        syscall = result.decoded.syscall
        stats.syscall_coverage[syscall] = stats.syscall_coverage.get(syscall, 0) + 1

        match result.outcome:
            case Aborted(exception=exc):
                stats.aborted += 1
                name = type(exc).__name__
                stats.abort_counts[name] = stats.abort_counts.get(name, 0) + 1
                logger.warning("Aborted %s: %s: %s", syscall, name, exc)
                self._write_finding(data, result, exc)
            case Completed(error=error):
                stats.completed += 1
                if error is not None:
                    stats.host_errors += 1
                    key = f"{error.error_type}_{error.code}"
                    stats.error_counts[key] = stats.error_counts.get(key, 0) + 1
                stats.duration_history.append(result.duration_ns / 1000)
                budget = self._host.budget
                self._recorder.record(
                    syscall,
                    repr(result.adapted),
                    repr(result.decoded),
                    budget.cpu_instruction_cost(),
                    budget.memory_bytes_cost(),
                    result.duration_ns,
                )
                stats.records_written += 1

        return result.outcome

    def _write_finding(self, data: bytes, result: IterationResult, exc: Exception) -> None:
        """Save an aborting buffer and its metadata for replay.

        Best effort: I/O errors are logged so they cannot end the run. The
        metadata carries the run settings replay_prefix() needs to rebuild the
        host state the buffer ran against.
        """
        findings_dir = self._config.findings_dir
        if findings_dir is None:
            return
        try:
            findings_dir.mkdir(parents=True, exist_ok=True)
            self.stats.finding_counter += 1
            prefix = f"finding_p{os.getpid()}_{self.stats.finding_counter:04d}"

            (findings_dir / f"{prefix}.bin").write_bytes(data)

            meta = {
                "iteration": self.stats.iterations,
                "syscall": result.decoded.syscall,
                "decoded": repr(result.decoded),
                "adapted": repr(result.adapted),
                "exception": f"{type(exc).__name__}: {exc}",
                "seed": self._config.seed,
                "buffer_size": self._config.buffer_size,
                "operation": self._config.operation,
                "host_reset_interval": self._config.host_reset_interval,
                "timestamp": datetime.datetime.now(tz=datetime.UTC).isoformat(),
            }
            (findings_dir / f"{prefix}_meta.json").write_text(
                json.dumps(meta, indent=2, sort_keys=True),
                encoding="utf-8",
            )
        except OSError as io_exc:
            logger.warning("Cannot save finding in %s: %s", findings_dir, io_exc)
