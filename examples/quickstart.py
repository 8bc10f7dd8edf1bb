"""Quickstart example for hostfuzz.

This example walks through the decode / adapt / execute / record pipeline
against the reference sandbox, then runs a short seeded fuzzing session.

Note: The telemetry log is written to a temporary directory so the example
leaves nothing behind.
"""

import tempfile
from pathlib import Path

from hostfuzz import FuzzRunner, RunConfig, SandboxHost, adapt, decode_instruction, run_isolated
from hostfuzz.catalog import DecodedInstruction, encode_instruction, operation_for_syscall
from hostfuzz.telemetry import read_log

# Example 1: Decoding raw bytes
print("=" * 50)
print("Example 1: Decoding Raw Bytes")
print("=" * 50)

instruction = decode_instruction(b"\x00" * 64)
print(instruction)
# Output: Address(AccountPublicKeyToAddress(Bytes(0x)))

# Example 2: Building a buffer for a chosen syscall
print("\n" + "=" * 50)
print("Example 2: Encoding a Chosen Instruction")
print("=" * 50)

op = operation_for_syscall("syscalls::buf::bytes_append")
buffer = encode_instruction(DecodedInstruction(op, (b"\x01", b"\x02\x03")))
print(f"{len(buffer)} bytes -> {decode_instruction(buffer)!r}")
# Output: 13 bytes -> Buf(BytesAppend(Bytes(0x01), Bytes(0x0203)))

# Example 3: Adapting and executing in isolation
print("\n" + "=" * 50)
print("Example 3: Isolated Execution")
print("=" * 50)

host = SandboxHost(seed=0)
host.budget.reset_unlimited()
adapted = adapt(decode_instruction(buffer), host)
print(adapted)
# Output: Buf(BytesAppend(Bytes(obj#0), Bytes(obj#1)))

outcome = run_isolated(adapted, host)
print(f"error:  {outcome.error}")
print(f"result: {host.bytes_of(outcome.value)!r}")
print(f"cpu:    {host.budget.cpu_instruction_cost()}")
print(f"mem:    {host.budget.memory_bytes_cost()}")
# Output: result: b'\x01\x02\x03'

# Host errors are ordinary outcomes, not crashes
outcome = run_isolated(adapt(decode_instruction(b"\x00" * 64), host), host)
print(f"zero buffer: {outcome.error}")

# Example 4: A short fuzzing run
print("\n" + "=" * 50)
print("Example 4: Seeded Fuzzing Run")
print("=" * 50)

with tempfile.TemporaryDirectory() as tmpdir:
    log_path = Path(tmpdir) / "budget.csv"
    config = RunConfig(runs=200, seed=7, log_path=log_path)
    stats = FuzzRunner(SandboxHost(seed=7), config).run()
    print(f"iterations: {stats.iterations}")
    print(f"completed:  {stats.completed} ({stats.host_errors} host errors)")
    print(f"skipped:    {stats.insufficient_input}")
    print(f"aborted:    {stats.aborted}")

    records = read_log(log_path)
    if records:
        slowest = max(records, key=lambda r: r.duration_ns)
        print(f"slowest:    {slowest.syscall} ({slowest.duration_ns} ns)")
