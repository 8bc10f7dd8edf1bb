"""Tests for the hostfuzz command line interface."""

from __future__ import annotations

import json
import pathlib

import pytest

from hostfuzz.adapter import AdaptedInstruction
from hostfuzz.catalog import all_operations, operation_for_syscall, selector_bytes
from hostfuzz.cli import main
from hostfuzz.constants import LOG_HEADER
from hostfuzz.sandbox import SandboxHost

_DUMMY = selector_bytes(operation_for_syscall("syscalls::test::dummy0"))


class CrashingHost(SandboxHost):
    """Sandbox whose every call escapes with an unexpected exception."""

    __slots__ = ()

    def try_run(self, instruction: AdaptedInstruction) -> object:
        msg = "replayed crash"
        raise RuntimeError(msg)


class ThirdCallCrashingHost(SandboxHost):
    """Sandbox that aborts on its third call, whatever the instruction."""

    __slots__ = ("calls",)

    def __init__(self, *, seed: int = 0) -> None:
        super().__init__(seed=seed)
        self.calls = 0

    def try_run(self, instruction: AdaptedInstruction) -> object:
        self.calls += 1
        if self.calls == 3:
            msg = "third call"
            raise RuntimeError(msg)
        return super().try_run(instruction)


def _run_args(tmp_path: pathlib.Path, *extra: str) -> list[str]:
    return [
        "run",
        "--operation",
        "syscalls::test::dummy0",
        "--log",
        str(tmp_path / "budget.csv"),
        "--findings-dir",
        str(tmp_path / "findings"),
        "-q",
        *extra,
    ]


class TestCatalogCommand:
    """catalog subcommand."""

    def test_lists_every_operation(self, capsys: pytest.CaptureFixture[str]) -> None:
        """One line per operation, in decode order."""
        assert main(["catalog"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == len(all_operations())
        assert lines[0].startswith("syscalls::address::account_public_key_to_address")
        assert lines[0].endswith("AccountPublicKeyToAddress(bytes)")

    def test_category_filter(self, capsys: pytest.CaptureFixture[str]) -> None:
        """--category restricts the listing."""
        assert main(["catalog", "--category", "test"]) == 0
        assert capsys.readouterr().out.split() == ["syscalls::test::dummy0", "Dummy0()"]

    def test_unknown_category(self) -> None:
        """Unknown categories are a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            main(["catalog", "--category", "nope"])
        assert exc_info.value.code == 2


class TestRunCommand:
    """run subcommand and its default invocation."""

    def test_run_writes_log_and_report(
        self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A short seeded run writes telemetry and the JSON summary."""
        log = tmp_path / "budget.csv"
        report = tmp_path / "summary.json"
        status = main(
            ["run", "--runs", "5", "--seed", "1", "--log", str(log), "--report", str(report), "-q"]
        )
        assert status == 0

        out = capsys.readouterr().out
        assert "Host Syscall Fuzzer" in out
        assert f"{len(all_operations())} operations" in out
        assert log.read_text(encoding="utf-8").splitlines()[0] == LOG_HEADER
        summary = json.loads(report.read_text(encoding="utf-8"))
        assert summary["iterations"] == 5
        assert summary["status"] == "complete"

    def test_run_is_the_default(self, tmp_path: pathlib.Path) -> None:
        """Options without a subcommand run the fuzzer."""
        log = tmp_path / "budget.csv"
        assert main(["--runs", "0", "--log", str(log), "-q"]) == 0
        assert log.exists()

    def test_pinned_operation(self, tmp_path: pathlib.Path) -> None:
        """--operation pins the run to one syscall."""
        report = tmp_path / "summary.json"
        status = main(
            [
                "run",
                "--runs",
                "3",
                "--seed",
                "2",
                "--operation",
                "syscalls::test::dummy0",
                "--log",
                str(tmp_path / "budget.csv"),
                "--report",
                str(report),
                "-q",
            ]
        )
        assert status == 0
        summary = json.loads(report.read_text(encoding="utf-8"))
        assert summary["syscall_test::dummy0"] == 3

    def test_unknown_operation_is_usage_error(self, tmp_path: pathlib.Path) -> None:
        """Unknown syscalls are rejected before the run starts."""
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--operation", "syscalls::buf::nope", "--log", str(tmp_path / "b.csv")])
        assert exc_info.value.code == 2

    def test_negative_runs_is_usage_error(self) -> None:
        """Invalid counts are usage errors."""
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--runs", "-1"])
        assert exc_info.value.code == 2

    def test_bad_reset_interval_is_usage_error(self) -> None:
        """--reset-every must be positive."""
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--reset-every", "0"])
        assert exc_info.value.code == 2

    def test_unseeded_run_records_drawn_seed(
        self,
        tmp_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Without --seed a seed is drawn, printed and saved with findings."""
        monkeypatch.setattr("hostfuzz.cli.SandboxHost", CrashingHost)
        assert main(_run_args(tmp_path, "--runs", "1")) == 0

        (meta_path,) = (tmp_path / "findings").glob("*_meta.json")
        seed = json.loads(meta_path.read_text(encoding="utf-8"))["seed"]
        assert isinstance(seed, int)
        assert f"Seed:       {seed}\n" in capsys.readouterr().out

    def test_unwritable_log(self, tmp_path: pathlib.Path) -> None:
        """A telemetry failure ends the run with status 2."""
        log = tmp_path / "missing" / "budget.csv"
        assert main(["run", "--runs", "1", "--seed", "1", "--log", str(log), "-q"]) == 2

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        """--version prints the program name and exits."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("hostfuzz ")


class TestReplayCommand:
    """replay subcommand."""

    def test_completed_buffer(
        self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Buffers that complete exit 0."""
        path = tmp_path / "finding_p1_0000.bin"
        path.write_bytes(_DUMMY)
        assert main(["replay", str(path)]) == 0
        out = capsys.readouterr().out
        assert "Completed:" in out
        assert "No buffer aborted" in out

    def test_host_error_and_skipped(
        self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Host errors and short buffers are reported, not failures."""
        (tmp_path / "a.bin").write_bytes(b"\x00" * 64)
        (tmp_path / "b.bin").write_bytes(b"")
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
        assert main(["replay", str(tmp_path)]) == 0
        out = capsys.readouterr().out
        assert "Replaying 2 buffer(s)" in out
        assert "[a.bin] Host error:" in out
        assert "[b.bin] Skipped:" in out

    def test_aborted_buffer(
        self,
        tmp_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A buffer that aborts the host exits 1."""
        monkeypatch.setattr("hostfuzz.cli.SandboxHost", CrashingHost)
        path = tmp_path / "crash.bin"
        path.write_bytes(_DUMMY)
        assert main(["replay", str(path)]) == 1
        assert "[CONFIRMED] Aborted: RuntimeError: replayed crash" in capsys.readouterr().out

    def test_rebuilds_host_state_from_metadata(
        self,
        tmp_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An abort that depends on earlier calls is reproduced."""
        monkeypatch.setattr("hostfuzz.cli.SandboxHost", ThirdCallCrashingHost)
        assert main(_run_args(tmp_path, "--runs", "3", "--seed", "5")) == 0
        (finding,) = (tmp_path / "findings").glob("*.bin")
        capsys.readouterr()

        assert main(["replay", str(finding)]) == 1
        out = capsys.readouterr().out
        assert "Rebuilt host from seed 5: 2 earlier buffer(s)" in out
        assert "[CONFIRMED] Aborted: RuntimeError: third call" in out

    def test_fresh_skips_rebuild(
        self,
        tmp_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """--fresh replays against a new sandbox only."""
        monkeypatch.setattr("hostfuzz.cli.SandboxHost", ThirdCallCrashingHost)
        assert main(_run_args(tmp_path, "--runs", "3", "--seed", "5")) == 0
        capsys.readouterr()

        assert main(["replay", "--fresh", str(tmp_path / "findings")]) == 0
        out = capsys.readouterr().out
        assert "Rebuilt host" not in out
        assert "No buffer aborted" in out

    def test_resets_shorten_rebuild(
        self,
        tmp_path: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Only buffers since the last host reset are re-executed."""
        monkeypatch.setattr("hostfuzz.cli.SandboxHost", CrashingHost)
        assert main(_run_args(tmp_path, "--runs", "5", "--seed", "5", "--reset-every", "2")) == 0
        finding = sorted((tmp_path / "findings").glob("*.bin"))[-1]
        capsys.readouterr()

        assert main(["replay", str(finding)]) == 1
        assert "Rebuilt host from seed 5: 0 earlier buffer(s)" in capsys.readouterr().out

    def test_unreadable_metadata_is_ignored(
        self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Broken metadata falls back to a fresh sandbox."""
        path = tmp_path / "finding_p1_0001.bin"
        path.write_bytes(_DUMMY)
        path.with_name("finding_p1_0001_meta.json").write_text("{", encoding="utf-8")
        assert main(["replay", str(path)]) == 0
        out = capsys.readouterr().out
        assert "Ignoring unreadable metadata" in out
        assert "Completed:" in out

    def test_empty_directory(
        self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Nothing to replay is not an error."""
        assert main(["replay", str(tmp_path)]) == 0
        assert "No finding buffers found" in capsys.readouterr().out
