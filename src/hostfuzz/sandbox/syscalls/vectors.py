"""Vec syscalls. Every mutating syscall returns a new vec."""

from __future__ import annotations

from bisect import bisect_left

from hostfuzz.constants import MAX_OBJECT_SIZE
from hostfuzz.enums import HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Val, val_sort_key
from hostfuzz.sandbox.budget import CostType
from hostfuzz.sandbox.host import VOID, SandboxHost, check_index
from hostfuzz.sandbox.registry import SYSCALLS

# VecBinarySearch sets this bit in its result when the value was found.
_FOUND_FLAG = 1 << 32


def _non_empty(items: tuple[Val, ...]) -> tuple[Val, ...]:
    if not items:
        msg = "vec is empty"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.INDEX_BOUNDS, msg)
    return items


def _index_or_void(host: SandboxHost, index: int | None) -> RawVal:
    return host.val_to_raw(VOID if index is None else Val(ValTag.U32, index))


@SYSCALLS.register("syscalls::vec::vec_append")
def vec_append(host: SandboxHost, v1: Handle, v2: Handle) -> Handle:
    return host.vec_new(host.vec_of(v1) + host.vec_of(v2))


@SYSCALLS.register("syscalls::vec::vec_back")
def vec_back(host: SandboxHost, v: Handle) -> RawVal:
    return host.val_to_raw(_non_empty(host.vec_of(v))[-1])


@SYSCALLS.register("syscalls::vec::vec_binary_search")
def vec_binary_search(host: SandboxHost, v: Handle, x: RawVal) -> int:
    """Insertion point of x, with _FOUND_FLAG set when x is present.

    Assumes the vec is sorted under the host's value order; the result is
    deterministic but meaningless otherwise.
    """
    items = host.vec_of(v)
    target = host.val_of(x)
    host.budget.charge(CostType.HOST_MEM_CMP, len(items))
    index = bisect_left([val_sort_key(item) for item in items], val_sort_key(target))
    found = index < len(items) and items[index] == target
    return _FOUND_FLAG | index if found else index


@SYSCALLS.register("syscalls::vec::vec_del")
def vec_del(host: SandboxHost, v: Handle, i: int) -> Handle:
    items = host.vec_of(v)
    check_index(i, len(items))
    return host.vec_new(items[:i] + items[i + 1 :])


@SYSCALLS.register("syscalls::vec::vec_first_index_of")
def vec_first_index_of(host: SandboxHost, v: Handle, x: RawVal) -> RawVal:
    items = host.vec_of(v)
    target = host.val_of(x)
    host.budget.charge(CostType.HOST_MEM_CMP, len(items))
    return _index_or_void(host, next((i for i, item in enumerate(items) if item == target), None))


@SYSCALLS.register("syscalls::vec::vec_front")
def vec_front(host: SandboxHost, v: Handle) -> RawVal:
    return host.val_to_raw(_non_empty(host.vec_of(v))[0])


@SYSCALLS.register("syscalls::vec::vec_get")
def vec_get(host: SandboxHost, v: Handle, i: int) -> RawVal:
    items = host.vec_of(v)
    check_index(i, len(items))
    return host.val_to_raw(items[i])


@SYSCALLS.register("syscalls::vec::vec_insert")
def vec_insert(host: SandboxHost, v: Handle, i: int, x: RawVal) -> Handle:
    items = host.vec_of(v)
    check_index(i, len(items), inclusive=True)
    return host.vec_new((*items[:i], host.val_of(x), *items[i:]))


@SYSCALLS.register("syscalls::vec::vec_last_index_of")
def vec_last_index_of(host: SandboxHost, v: Handle, x: RawVal) -> RawVal:
    items = host.vec_of(v)
    target = host.val_of(x)
    host.budget.charge(CostType.HOST_MEM_CMP, len(items))
    last = next((i for i in reversed(range(len(items))) if items[i] == target), None)
    return _index_or_void(host, last)


@SYSCALLS.register("syscalls::vec::vec_len")
def vec_len(host: SandboxHost, v: Handle) -> int:
    return len(host.vec_of(v))


@SYSCALLS.register("syscalls::vec::vec_new")
def vec_new(host: SandboxHost, c: RawVal) -> Handle:
    """Empty vec. c is the capacity hint: void or a u32."""
    capacity = host.val_of(c)
    match capacity.tag:
        case ValTag.VOID:
            pass
        case ValTag.U32:
            if capacity.value > MAX_OBJECT_SIZE // 8:  # type: ignore[operator]
                msg = f"vec capacity {capacity.value} too large"
                raise HostError(HostErrorType.OBJECT, HostErrorCode.EXCEEDED_LIMIT, msg)
        case _:
            msg = f"vec capacity must be void or u32, got {capacity.tag}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
    return host.vec_new(())


@SYSCALLS.register("syscalls::vec::vec_new_from_linear_memory")
def vec_new_from_linear_memory(host: SandboxHost, vals_pos: int, length: int) -> Handle:
    return host.vec_new(tuple(host.read_raw_vals(vals_pos, length)))


@SYSCALLS.register("syscalls::vec::vec_pop_back")
def vec_pop_back(host: SandboxHost, v: Handle) -> Handle:
    return host.vec_new(_non_empty(host.vec_of(v))[:-1])


@SYSCALLS.register("syscalls::vec::vec_pop_front")
def vec_pop_front(host: SandboxHost, v: Handle) -> Handle:
    return host.vec_new(_non_empty(host.vec_of(v))[1:])


@SYSCALLS.register("syscalls::vec::vec_push_back")
def vec_push_back(host: SandboxHost, v: Handle, x: RawVal) -> Handle:
    return host.vec_new((*host.vec_of(v), host.val_of(x)))


@SYSCALLS.register("syscalls::vec::vec_push_front")
def vec_push_front(host: SandboxHost, v: Handle, x: RawVal) -> Handle:
    return host.vec_new((host.val_of(x), *host.vec_of(v)))


@SYSCALLS.register("syscalls::vec::vec_put")
def vec_put(host: SandboxHost, v: Handle, i: int, x: RawVal) -> Handle:
    items = host.vec_of(v)
    check_index(i, len(items))
    return host.vec_new((*items[:i], host.val_of(x), *items[i + 1 :]))


@SYSCALLS.register("syscalls::vec::vec_slice")
def vec_slice(host: SandboxHost, v: Handle, start: int, end: int) -> Handle:
    items = host.vec_of(v)
    check_index(end, len(items), inclusive=True)
    if start > end:
        msg = f"slice start {start} is after end {end}"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.INVALID_INPUT, msg)
    return host.vec_new(items[start:end])


@SYSCALLS.register("syscalls::vec::vec_unpack_to_linear_memory")
def vec_unpack_to_linear_memory(host: SandboxHost, v: Handle, vals_pos: int, length: int) -> RawVal:
    items = host.vec_of(v)
    if length != len(items):
        msg = f"vec has {len(items)} elements, {length} requested"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.UNEXPECTED_SIZE, msg)
    host.write_raw_vals(vals_pos, items)
    return host.void()
