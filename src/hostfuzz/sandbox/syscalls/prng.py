"""PRNG syscalls backed by the host's seeded random.Random."""

from __future__ import annotations

from hostfuzz.constants import MAX_OBJECT_SIZE
from hostfuzz.enums import HostErrorCode, HostErrorType
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.sandbox.budget import CostType
from hostfuzz.sandbox.host import SandboxHost, check_length
from hostfuzz.sandbox.registry import SYSCALLS

_SEED_LEN = 32


@SYSCALLS.register("syscalls::prng::prng_bytes_new")
def prng_bytes_new(host: SandboxHost, length: int) -> Handle:
    if length > MAX_OBJECT_SIZE:
        msg = f"{length} random bytes exceed {MAX_OBJECT_SIZE}"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.EXCEEDED_LIMIT, msg)
    host.budget.charge(CostType.PRNG_GENERATE, length)
    return host.bytes_new(host.prng().randbytes(length))


@SYSCALLS.register("syscalls::prng::prng_reseed")
def prng_reseed(host: SandboxHost, seed: Handle) -> RawVal:
    data = host.bytes_of(seed)
    check_length(data, _SEED_LEN, "prng seed")
    host.prng().seed(int.from_bytes(data, "little"))
    return host.void()


@SYSCALLS.register("syscalls::prng::prng_u64_in_inclusive_range")
def prng_u64_in_inclusive_range(host: SandboxHost, lo: int, hi: int) -> int:
    if lo > hi:
        msg = f"empty range [{lo}, {hi}]"
        raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg)
    host.budget.charge(CostType.PRNG_GENERATE)
    return host.prng().randint(lo, hi)


@SYSCALLS.register("syscalls::prng::prng_vec_shuffle")
def prng_vec_shuffle(host: SandboxHost, v: Handle) -> Handle:
    items = list(host.vec_of(v))
    host.budget.charge(CostType.PRNG_GENERATE, len(items))
    host.prng().shuffle(items)
    return host.vec_new(tuple(items))
