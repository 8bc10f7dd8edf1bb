"""Test syscalls: a single no-op."""

from __future__ import annotations

from hostfuzz.host import RawVal
from hostfuzz.sandbox.host import SandboxHost
from hostfuzz.sandbox.registry import SYSCALLS


@SYSCALLS.register("syscalls::test::dummy0")
def dummy0(host: SandboxHost) -> RawVal:
    return host.void()
