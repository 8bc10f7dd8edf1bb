"""Map syscalls.

Map objects keep their entries sorted by key under the host's total value
order, with unique keys. Every mutating syscall returns a new map.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right

from hostfuzz.enums import HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import MapEntries, Val, val_sort_key
from hostfuzz.sandbox.budget import CostType
from hostfuzz.sandbox.host import SandboxHost, normalize_entries
from hostfuzz.sandbox.registry import SYSCALLS


def _missing(key: Val) -> HostError:
    return HostError(HostErrorType.OBJECT, HostErrorCode.MISSING_VALUE, f"no map key {key!r}")


def _lookup(host: SandboxHost, entries: MapEntries, key: Val) -> Val:
    host.budget.charge(CostType.HOST_MEM_CMP, len(entries))
    for entry_key, value in entries:
        if entry_key == key:
            return value
    raise _missing(key)


def _keys(entries: MapEntries) -> list[tuple[object, ...]]:
    return [val_sort_key(k) for k, _ in entries]


def _non_empty(entries: MapEntries) -> MapEntries:
    if not entries:
        msg = "map is empty"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.MISSING_VALUE, msg)
    return entries


@SYSCALLS.register("syscalls::map::map_del")
def map_del(host: SandboxHost, m: Handle, k: RawVal) -> Handle:
    entries = host.map_of(m)
    key = host.val_of(k)
    _lookup(host, entries, key)
    return host.map_new(tuple(e for e in entries if e[0] != key))


@SYSCALLS.register("syscalls::map::map_get")
def map_get(host: SandboxHost, m: Handle, k: RawVal) -> RawVal:
    return host.val_to_raw(_lookup(host, host.map_of(m), host.val_of(k)))


@SYSCALLS.register("syscalls::map::map_has")
def map_has(host: SandboxHost, m: Handle, k: RawVal) -> bool:
    entries = host.map_of(m)
    key = host.val_of(k)
    host.budget.charge(CostType.HOST_MEM_CMP, len(entries))
    return any(entry_key == key for entry_key, _ in entries)


@SYSCALLS.register("syscalls::map::map_keys")
def map_keys(host: SandboxHost, m: Handle) -> Handle:
    return host.vec_new(tuple(k for k, _ in host.map_of(m)))


@SYSCALLS.register("syscalls::map::map_len")
def map_len(host: SandboxHost, m: Handle) -> int:
    return len(host.map_of(m))


@SYSCALLS.register("syscalls::map::map_max_key")
def map_max_key(host: SandboxHost, m: Handle) -> RawVal:
    return host.val_to_raw(_non_empty(host.map_of(m))[-1][0])


@SYSCALLS.register("syscalls::map::map_min_key")
def map_min_key(host: SandboxHost, m: Handle) -> RawVal:
    return host.val_to_raw(_non_empty(host.map_of(m))[0][0])


@SYSCALLS.register("syscalls::map::map_new")
def map_new(host: SandboxHost) -> Handle:
    return host.map_new(())


@SYSCALLS.register("syscalls::map::map_new_from_linear_memory")
def map_new_from_linear_memory(
    host: SandboxHost, keys_pos: int, vals_pos: int, length: int
) -> Handle:
    """Map from length symbol keys at keys_pos and raw vals at vals_pos."""
    names = host.read_symbol_slices(keys_pos, length)
    vals = host.read_raw_vals(vals_pos, length)
    keys = [Val(ValTag.SYMBOL, name) for name in names]
    return host.map_new(tuple(zip(keys, vals, strict=True)))


@SYSCALLS.register("syscalls::map::map_next_key")
def map_next_key(host: SandboxHost, m: Handle, k: RawVal) -> RawVal:
    """Smallest key strictly greater than k."""
    entries = host.map_of(m)
    key = host.val_of(k)
    index = bisect_right(_keys(entries), val_sort_key(key))
    if index >= len(entries):
        raise _missing(key)
    return host.val_to_raw(entries[index][0])


@SYSCALLS.register("syscalls::map::map_prev_key")
def map_prev_key(host: SandboxHost, m: Handle, k: RawVal) -> RawVal:
    """Largest key strictly less than k."""
    entries = host.map_of(m)
    key = host.val_of(k)
    index = bisect_left(_keys(entries), val_sort_key(key))
    if index == 0:
        raise _missing(key)
    return host.val_to_raw(entries[index - 1][0])


@SYSCALLS.register("syscalls::map::map_put")
def map_put(host: SandboxHost, m: Handle, k: RawVal, v: RawVal) -> Handle:
    entries = host.map_of(m)
    return host.map_new(normalize_entries((*entries, (host.val_of(k), host.val_of(v)))))


@SYSCALLS.register("syscalls::map::map_unpack_to_linear_memory")
def map_unpack_to_linear_memory(
    host: SandboxHost, m: Handle, keys_pos: int, vals_pos: int, length: int
) -> RawVal:
    """Write the values of the length symbol keys at keys_pos to vals_pos."""
    entries = host.map_of(m)
    if length != len(entries):
        msg = f"map has {len(entries)} entries, {length} requested"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.UNEXPECTED_SIZE, msg)
    names = host.read_symbol_slices(keys_pos, length)
    values = tuple(_lookup(host, entries, Val(ValTag.SYMBOL, name)) for name in names)
    host.write_raw_vals(vals_pos, values)
    return host.void()


@SYSCALLS.register("syscalls::map::map_values")
def map_values(host: SandboxHost, m: Handle) -> Handle:
    return host.vec_new(tuple(v for _, v in host.map_of(m)))
