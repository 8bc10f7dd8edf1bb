"""Buffer syscalls: bytes, string and symbol objects and linear memory copies.

Bytes objects are immutable: every mutating syscall returns a new object.
Serialization uses the operand codec's val encoding.
"""

from __future__ import annotations

from hostfuzz.codec import ByteCursor, decode_val, encode_val
from hostfuzz.enums import HostErrorCode, HostErrorType
from hostfuzz.errors import HostError, InsufficientInput
from hostfuzz.host import Handle, RawVal
from hostfuzz.sandbox.budget import CostType
from hostfuzz.sandbox.host import SandboxHost, check_index
from hostfuzz.sandbox.registry import SYSCALLS

_BYTE_MAX = 0xFF


def _byte_value(value: int) -> int:
    if value > _BYTE_MAX:
        msg = f"byte value {value} does not fit in u8"
        raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg)
    return value


def _non_empty(data: bytes) -> bytes:
    if not data:
        msg = "bytes object is empty"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.INDEX_BOUNDS, msg)
    return data


def _copy_to_memory(host: SandboxHost, data: bytes, pos: int, lm_pos: int, length: int) -> RawVal:
    check_index(pos + length, len(data), inclusive=True)
    host.memory_write(lm_pos, data[pos : pos + length])
    return host.void()


# --- Bytes ---


@SYSCALLS.register("syscalls::buf::bytes_append")
def bytes_append(host: SandboxHost, b1: Handle, b2: Handle) -> Handle:
    return host.bytes_new(host.bytes_of(b1) + host.bytes_of(b2))


@SYSCALLS.register("syscalls::buf::bytes_back")
def bytes_back(host: SandboxHost, b: Handle) -> int:
    return _non_empty(host.bytes_of(b))[-1]


@SYSCALLS.register("syscalls::buf::bytes_copy_from_linear_memory")
def bytes_copy_from_linear_memory(
    host: SandboxHost, b: Handle, b_pos: int, lm_pos: int, length: int
) -> Handle:
    """Overwrite (and grow) b from b_pos with length bytes of linear memory."""
    data = host.bytes_of(b)
    check_index(b_pos, len(data), inclusive=True)
    chunk = host.memory_read(lm_pos, length)
    return host.bytes_new(data[:b_pos] + chunk + data[b_pos + length :])


@SYSCALLS.register("syscalls::buf::bytes_copy_to_linear_memory")
def bytes_copy_to_linear_memory(
    host: SandboxHost, b: Handle, b_pos: int, lm_pos: int, length: int
) -> RawVal:
    return _copy_to_memory(host, host.bytes_of(b), b_pos, lm_pos, length)


@SYSCALLS.register("syscalls::buf::bytes_del")
def bytes_del(host: SandboxHost, b: Handle, i: int) -> Handle:
    data = host.bytes_of(b)
    check_index(i, len(data))
    return host.bytes_new(data[:i] + data[i + 1 :])


@SYSCALLS.register("syscalls::buf::bytes_front")
def bytes_front(host: SandboxHost, b: Handle) -> int:
    return _non_empty(host.bytes_of(b))[0]


@SYSCALLS.register("syscalls::buf::bytes_get")
def bytes_get(host: SandboxHost, b: Handle, i: int) -> int:
    data = host.bytes_of(b)
    check_index(i, len(data))
    return data[i]


@SYSCALLS.register("syscalls::buf::bytes_insert")
def bytes_insert(host: SandboxHost, b: Handle, i: int, u: int) -> Handle:
    data = host.bytes_of(b)
    check_index(i, len(data), inclusive=True)
    return host.bytes_new(data[:i] + bytes([_byte_value(u)]) + data[i:])


@SYSCALLS.register("syscalls::buf::bytes_len")
def bytes_len(host: SandboxHost, b: Handle) -> int:
    return len(host.bytes_of(b))


@SYSCALLS.register("syscalls::buf::bytes_new")
def bytes_new(host: SandboxHost) -> Handle:
    return host.bytes_new(b"")


@SYSCALLS.register("syscalls::buf::bytes_new_from_linear_memory")
def bytes_new_from_linear_memory(host: SandboxHost, lm_pos: int, length: int) -> Handle:
    return host.bytes_new(host.memory_read(lm_pos, length))


@SYSCALLS.register("syscalls::buf::bytes_pop")
def bytes_pop(host: SandboxHost, b: Handle) -> Handle:
    return host.bytes_new(_non_empty(host.bytes_of(b))[:-1])


@SYSCALLS.register("syscalls::buf::bytes_push")
def bytes_push(host: SandboxHost, b: Handle, u: int) -> Handle:
    return host.bytes_new(host.bytes_of(b) + bytes([_byte_value(u)]))


@SYSCALLS.register("syscalls::buf::bytes_put")
def bytes_put(host: SandboxHost, b: Handle, i: int, u: int) -> Handle:
    data = host.bytes_of(b)
    check_index(i, len(data))
    return host.bytes_new(data[:i] + bytes([_byte_value(u)]) + data[i + 1 :])


@SYSCALLS.register("syscalls::buf::bytes_slice")
def bytes_slice(host: SandboxHost, b: Handle, start: int, end: int) -> Handle:
    data = host.bytes_of(b)
    check_index(end, len(data), inclusive=True)
    if start > end:
        msg = f"slice start {start} is after end {end}"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.INVALID_INPUT, msg)
    return host.bytes_new(data[start:end])


# --- Serialization ---


@SYSCALLS.register("syscalls::buf::deserialize_from_bytes")
def deserialize_from_bytes(host: SandboxHost, b: Handle) -> RawVal:
    data = host.bytes_of(b)
    host.budget.charge(CostType.VALUE_DESER, len(data))
    cursor = ByteCursor(data)
    try:
        val = decode_val(cursor)
    except InsufficientInput as exc:
        msg = f"truncated value: {exc}"
        raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg) from exc
    if not cursor.is_exhausted:
        msg = f"{cursor.remaining} trailing byte(s) after value"
        raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg)
    return host.val_to_raw(val)


@SYSCALLS.register("syscalls::buf::serialize_to_bytes")
def serialize_to_bytes(host: SandboxHost, v: RawVal) -> Handle:
    val = host.val_of(v)
    try:
        data = encode_val(val)
    except ValueError as exc:
        raise HostError(HostErrorType.VALUE, HostErrorCode.EXCEEDED_LIMIT, str(exc)) from exc
    host.budget.charge(CostType.VALUE_SER, len(data))
    return host.bytes_new(data)


# --- Strings ---


@SYSCALLS.register("syscalls::buf::string_copy_to_linear_memory")
def string_copy_to_linear_memory(
    host: SandboxHost, s: Handle, s_pos: int, lm_pos: int, length: int
) -> RawVal:
    return _copy_to_memory(host, host.string_of(s).encode("utf-8"), s_pos, lm_pos, length)


@SYSCALLS.register("syscalls::buf::string_len")
def string_len(host: SandboxHost, s: Handle) -> int:
    return len(host.string_of(s).encode("utf-8"))


@SYSCALLS.register("syscalls::buf::string_new_from_linear_memory")
def string_new_from_linear_memory(host: SandboxHost, lm_pos: int, length: int) -> Handle:
    raw = host.memory_read(lm_pos, length)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        msg = f"linear memory does not hold UTF-8 text: {exc.reason}"
        raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg) from exc
    return host.string_new(text)


# --- Symbols ---


@SYSCALLS.register("syscalls::buf::symbol_copy_to_linear_memory")
def symbol_copy_to_linear_memory(
    host: SandboxHost, s: Handle, s_pos: int, lm_pos: int, length: int
) -> RawVal:
    return _copy_to_memory(host, host.symbol_of(s).encode("ascii"), s_pos, lm_pos, length)


@SYSCALLS.register("syscalls::buf::symbol_index_in_linear_memory")
def symbol_index_in_linear_memory(host: SandboxHost, s: Handle, lm_pos: int, length: int) -> int:
    """Index of s among length (ptr, len) symbol slices at lm_pos."""
    name = host.symbol_of(s)
    names = host.read_symbol_slices(lm_pos, length)
    host.budget.charge(CostType.HOST_MEM_CMP, len(names))
    try:
        return names.index(name)
    except ValueError:
        msg = f"symbol {name!r} not found in linear memory"
        raise HostError(HostErrorType.VALUE, HostErrorCode.MISSING_VALUE, msg) from None


@SYSCALLS.register("syscalls::buf::symbol_len")
def symbol_len(host: SandboxHost, s: Handle) -> int:
    return len(host.symbol_of(s))


@SYSCALLS.register("syscalls::buf::symbol_new_from_linear_memory")
def symbol_new_from_linear_memory(host: SandboxHost, lm_pos: int, length: int) -> Handle:
    return host.symbol_new(host.symbol_from_bytes(host.memory_read(lm_pos, length)))
