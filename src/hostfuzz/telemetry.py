"""Telemetry recorder: one pipe-delimited line per completed host call.

Log format (UTF-8, line oriented):

    Syscalls|SyscallsInput|ArbitraryInput|CPU|MEM|Duration
    <syscall>|"<adapted>"|"<decoded>"|<cpu>|<mem>|<duration-ns>

The file is opened in append mode and the header is written on every open,
so a log that spans several runs contains several header lines. read_log
skips them.

Inside the two quoted debug-string fields, backslash, double quote and pipe
are backslash-escaped. Every line therefore splits into exactly six fields.

A write failure raises PersistenceError. The run loop does not catch it: a
run with a partial log is not worth continuing.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Self, TextIO

from hostfuzz.constants import LOG_HEADER
from hostfuzz.errors import PersistenceError

if TYPE_CHECKING:
    import os
    from types import TracebackType

__all__ = [
    "FIELD_COUNT",
    "TelemetryRecord",
    "TelemetryRecorder",
    "escape_field",
    "parse_line",
    "read_log",
]

logger = logging.getLogger(__name__)

FIELD_COUNT: int = 6
"""Fields per log line, header included."""

_ESCAPED = str.maketrans({"\\": "\\\\", '"': '\\"', "|": "\\|"})


def escape_field(text: str) -> str:
    """Escape backslash, double quote and pipe for a quoted log field."""
    return text.translate(_ESCAPED)


@dataclass(frozen=True, slots=True)
class TelemetryRecord:
    """Cost and timing of one completed host call.

    Attributes:
        syscall: Stable identifying name of the operation
        adapted_repr: Adapted-instruction debug string
        decoded_repr: Decoded-instruction debug string
        cpu_cost: CPU units charged by the host
        mem_cost: Memory bytes charged by the host
        duration_ns: Wall-clock duration of the host call
    """

    syscall: str
    adapted_repr: str
    decoded_repr: str
    cpu_cost: int
    mem_cost: int
    duration_ns: int

    def to_line(self) -> str:
        """Render as one log line, without the trailing newline."""
        return (
            f"{self.syscall}"
            f'|"{escape_field(self.adapted_repr)}"'
            f'|"{escape_field(self.decoded_repr)}"'
            f"|{self.cpu_cost}|{self.mem_cost}|{self.duration_ns}"
        )


def _split_fields(line: str) -> list[str]:
    """Split on unescaped pipes, dropping unescaped quotes and escape backslashes."""
    fields: list[str] = []
    current: list[str] = []
    chars = iter(line)
    for ch in chars:
        if ch == "\\":
            current.append(next(chars, ""))
        elif ch == "|":
            fields.append("".join(current))
            current = []
        elif ch != '"':
            current.append(ch)
    fields.append("".join(current))
    return fields


def parse_line(line: str) -> TelemetryRecord | None:
    """Parse one log line.

    Returns:
        The record, or None for a header line

    Raises:
        ValueError: If the line does not have six fields or a cost field is
            not an integer
    """
    line = line.rstrip("\r\n")
    if line == LOG_HEADER:
        return None
    fields = _split_fields(line)
    if len(fields) != FIELD_COUNT:
        msg = f"expected {FIELD_COUNT} fields, got {len(fields)}: {line!r}"
        raise ValueError(msg)
    syscall, adapted, decoded, cpu, mem, duration = fields
    return TelemetryRecord(syscall, adapted, decoded, int(cpu), int(mem), int(duration))


def read_log(path: str | os.PathLike[str]) -> list[TelemetryRecord]:
    """Read every record of a telemetry log, skipping headers and blank lines."""
    records: list[TelemetryRecord] = []
    with pathlib.Path(path).open(encoding="utf-8") as log:
        for line in log:
            if not line.strip():
                continue
            record = parse_line(line)
            if record is not None:
                records.append(record)
    return records


class TelemetryRecorder:
    """Append-only writer for the telemetry log.

    Use as a context manager, or call open() and close() explicitly. Each
    record is flushed as soon as it is written so a crash of the process
    loses at most the line being written.

    Example:
        >>> with TelemetryRecorder("budget.csv") as recorder:  # doctest: +SKIP
        ...     recorder.record("syscalls::test::dummy0", "Test", "Test", 0, 0, 120)
    """

    __slots__ = ("_file", "_path", "records_written")

    def __init__(self, path: str | os.PathLike[str]) -> None:
        """Initialize recorder. Nothing is opened until open().

        Args:
            path: Log file location
        """
        self._path = pathlib.Path(path)
        self._file: TextIO | None = None
        self.records_written = 0

    @property
    def path(self) -> pathlib.Path:
        """Log file location."""
        return self._path

    def open(self) -> None:
        """Open the log in append mode and write the header.

        Raises:
            PersistenceError: If the file cannot be opened or written
        """
        try:
            self._file = self._path.open("a", encoding="utf-8", newline="\n")
            self._file.write(LOG_HEADER + "\n")
            self._file.flush()
        except OSError as exc:
            msg = f"Cannot open telemetry log {self._path}: {exc}"
            raise PersistenceError(msg) from exc
        logger.debug("Telemetry log opened: %s", self._path)

    def write(self, record: TelemetryRecord) -> None:
        """Append one record and flush.

        Raises:
            PersistenceError: If the recorder is closed or the write fails
        """
        if self._file is None:
            msg = f"Telemetry log {self._path} is not open"
            raise PersistenceError(msg)
        try:
            self._file.write(record.to_line() + "\n")
            self._file.flush()
        except OSError as exc:
            msg = f"Cannot write telemetry log {self._path}: {exc}"
            raise PersistenceError(msg) from exc
        self.records_written += 1

    def record(
        self,
        syscall: str,
        adapted_repr: str,
        decoded_repr: str,
        cpu_cost: int,
        mem_cost: int,
        duration_ns: int,
    ) -> TelemetryRecord:
        """Build a record from its fields, append it, and return it."""
        entry = TelemetryRecord(syscall, adapted_repr, decoded_repr, cpu_cost, mem_cost, duration_ns)
        self.write(entry)
        return entry

    def close(self) -> None:
        """Close the log. Safe to call more than once."""
        if self._file is not None:
            try:
                self._file.close()
            except OSError as exc:
                msg = f"Cannot close telemetry log {self._path}: {exc}"
                raise PersistenceError(msg) from exc
            finally:
                self._file = None

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
