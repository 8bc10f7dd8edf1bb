"""Integer syscalls: boxed 64/128/256-bit values and 256-bit arithmetic.

Arithmetic is checked: a result outside the type's range, a zero divisor, or
a shift of 256 bits or more fails with HostError(object, arith_domain).
Shifts otherwise discard the bits shifted out. Division truncates toward
zero.

The ObjTo{I64,U64,I128,U128} conversions take their operand as a plain
integer. The sandbox boxes it into an object and reads it back, so the
object path is exercised.
"""

from __future__ import annotations

from collections.abc import Callable

from hostfuzz.enums import HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Val, int_range
from hostfuzz.sandbox.budget import CostType
from hostfuzz.sandbox.host import SandboxHost, check_length
from hostfuzz.sandbox.registry import SYSCALLS

_U64_MASK = (1 << 64) - 1
_WIDTH_256 = 256
_BE_BYTES_LEN = 32


def _typed(host: SandboxHost, raw: RawVal, tag: ValTag) -> int:
    val = host.val_of(raw)
    if val.tag is not tag:
        msg = f"expected {tag} value, got {val.tag}"
        raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
    return val.value  # type: ignore[return-value]


def _boxed(host: SandboxHost, tag: ValTag, value: int) -> RawVal:
    low, high = int_range(tag)
    if not low <= value <= high:
        msg = f"{tag} overflow: {value}"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.ARITH_DOMAIN, msg)
    return host.val_to_raw(Val(tag, value))


def _round_trip(host: SandboxHost, tag: ValTag, value: int) -> int:
    return _typed(host, _boxed(host, tag, value), tag)


def _wrap(tag: ValTag, value: int) -> int:
    value &= (1 << _WIDTH_256) - 1
    if tag is ValTag.I256 and value >= 1 << (_WIDTH_256 - 1):
        value -= 1 << _WIDTH_256
    return value


def _div(a: int, b: int) -> int:
    if b == 0:
        msg = "division by zero"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.ARITH_DOMAIN, msg)
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def _pow(base: int, exp: int) -> int:
    if exp == 0:
        return 1
    if base in (0, 1):
        return base
    if base == -1:
        return -1 if exp % 2 else 1
    if exp >= _WIDTH_256:
        msg = f"{base} ** {exp} overflows 256 bits"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.ARITH_DOMAIN, msg)
    return base**exp


def _check_shift(bits: int) -> None:
    if bits >= _WIDTH_256:
        msg = f"shift by {bits} bits"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.ARITH_DOMAIN, msg)


def _binary(
    host: SandboxHost, tag: ValTag, lhs: RawVal, rhs: RawVal, op: Callable[[int, int], int]
) -> RawVal:
    a = _typed(host, lhs, tag)
    b = _typed(host, rhs, tag)
    host.budget.charge(CostType.INT256_ARITH)
    return _boxed(host, tag, op(a, b))


def _pieces(value: int) -> tuple[int, int, int, int]:
    """(hi_hi, hi_lo, lo_hi, lo_lo); hi_hi keeps the sign of value."""
    return (
        value >> 192,
        (value >> 128) & _U64_MASK,
        (value >> 64) & _U64_MASK,
        value & _U64_MASK,
    )


def _from_pieces(hi_hi: int, hi_lo: int, lo_hi: int, lo_lo: int) -> int:
    return hi_hi << 192 | hi_lo << 128 | lo_hi << 64 | lo_lo


# --- Time ---


@SYSCALLS.register("syscalls::int::duration_obj_from_u64")
def duration_obj_from_u64(host: SandboxHost, v: int) -> RawVal:
    return _boxed(host, ValTag.DURATION, v)


@SYSCALLS.register("syscalls::int::duration_obj_to_u64")
def duration_obj_to_u64(host: SandboxHost, obj: RawVal) -> int:
    return _typed(host, obj, ValTag.DURATION)


@SYSCALLS.register("syscalls::int::timepoint_obj_from_u64")
def timepoint_obj_from_u64(host: SandboxHost, v: int) -> RawVal:
    return _boxed(host, ValTag.TIMEPOINT, v)


@SYSCALLS.register("syscalls::int::timepoint_obj_to_u64")
def timepoint_obj_to_u64(host: SandboxHost, obj: RawVal) -> int:
    return _typed(host, obj, ValTag.TIMEPOINT)


# --- 64 and 128 bit ---


@SYSCALLS.register("syscalls::int::obj_from_i64")
def obj_from_i64(host: SandboxHost, v: int) -> RawVal:
    return _boxed(host, ValTag.I64, v)


@SYSCALLS.register("syscalls::int::obj_from_u64")
def obj_from_u64(host: SandboxHost, v: int) -> RawVal:
    return _boxed(host, ValTag.U64, v)


@SYSCALLS.register("syscalls::int::obj_to_i64")
def obj_to_i64(host: SandboxHost, v: int) -> int:
    return _round_trip(host, ValTag.I64, v)


@SYSCALLS.register("syscalls::int::obj_to_u64")
def obj_to_u64(host: SandboxHost, v: int) -> int:
    return _round_trip(host, ValTag.U64, v)


@SYSCALLS.register("syscalls::int::obj_from_i128_pieces")
def obj_from_i128_pieces(host: SandboxHost, hi: int, lo: int) -> RawVal:
    return _boxed(host, ValTag.I128, hi << 64 | lo)


@SYSCALLS.register("syscalls::int::obj_from_u128_pieces")
def obj_from_u128_pieces(host: SandboxHost, hi: int, lo: int) -> RawVal:
    return _boxed(host, ValTag.U128, hi << 64 | lo)


@SYSCALLS.register("syscalls::int::obj_to_i128_hi64")
def obj_to_i128_hi64(host: SandboxHost, v: int) -> int:
    return _round_trip(host, ValTag.I128, v) >> 64


@SYSCALLS.register("syscalls::int::obj_to_i128_lo64")
def obj_to_i128_lo64(host: SandboxHost, v: int) -> int:
    return _round_trip(host, ValTag.I128, v) & _U64_MASK


@SYSCALLS.register("syscalls::int::obj_to_u128_hi64")
def obj_to_u128_hi64(host: SandboxHost, v: int) -> int:
    return _round_trip(host, ValTag.U128, v) >> 64


@SYSCALLS.register("syscalls::int::obj_to_u128_lo64")
def obj_to_u128_lo64(host: SandboxHost, v: int) -> int:
    return _round_trip(host, ValTag.U128, v) & _U64_MASK


# --- 256 bit pieces ---


@SYSCALLS.register("syscalls::int::obj_from_i256_pieces")
def obj_from_i256_pieces(
    host: SandboxHost, hi_hi: int, hi_lo: int, lo_hi: int, lo_lo: int
) -> RawVal:
    return _boxed(host, ValTag.I256, _from_pieces(hi_hi, hi_lo, lo_hi, lo_lo))


@SYSCALLS.register("syscalls::int::obj_from_u256_pieces")
def obj_from_u256_pieces(
    host: SandboxHost, hi_hi: int, hi_lo: int, lo_hi: int, lo_lo: int
) -> RawVal:
    return _boxed(host, ValTag.U256, _from_pieces(hi_hi, hi_lo, lo_hi, lo_lo))


@SYSCALLS.register("syscalls::int::obj_to_i256_hi_hi")
def obj_to_i256_hi_hi(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.I256))[0]


@SYSCALLS.register("syscalls::int::obj_to_i256_hi_lo")
def obj_to_i256_hi_lo(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.I256))[1]


@SYSCALLS.register("syscalls::int::obj_to_i256_lo_hi")
def obj_to_i256_lo_hi(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.I256))[2]


@SYSCALLS.register("syscalls::int::obj_to_i256_lo_lo")
def obj_to_i256_lo_lo(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.I256))[3]


@SYSCALLS.register("syscalls::int::obj_to_u256_hi_hi")
def obj_to_u256_hi_hi(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.U256))[0]


@SYSCALLS.register("syscalls::int::obj_to_u256_hi_lo")
def obj_to_u256_hi_lo(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.U256))[1]


@SYSCALLS.register("syscalls::int::obj_to_u256_lo_hi")
def obj_to_u256_lo_hi(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.U256))[2]


@SYSCALLS.register("syscalls::int::obj_to_u256_lo_lo")
def obj_to_u256_lo_lo(host: SandboxHost, obj: RawVal) -> int:
    return _pieces(_typed(host, obj, ValTag.U256))[3]


# --- 256 bit big-endian bytes ---


@SYSCALLS.register("syscalls::int::i256_val_from_be_bytes")
def i256_val_from_be_bytes(host: SandboxHost, b: Handle) -> RawVal:
    data = host.bytes_of(b)
    check_length(data, _BE_BYTES_LEN, "i256 bytes")
    return _boxed(host, ValTag.I256, int.from_bytes(data, "big", signed=True))


@SYSCALLS.register("syscalls::int::i256_val_to_be_bytes")
def i256_val_to_be_bytes(host: SandboxHost, obj: RawVal) -> Handle:
    value = _typed(host, obj, ValTag.I256)
    return host.bytes_new(value.to_bytes(_BE_BYTES_LEN, "big", signed=True))


@SYSCALLS.register("syscalls::int::u256_val_from_be_bytes")
def u256_val_from_be_bytes(host: SandboxHost, b: Handle) -> RawVal:
    data = host.bytes_of(b)
    check_length(data, _BE_BYTES_LEN, "u256 bytes")
    return _boxed(host, ValTag.U256, int.from_bytes(data, "big"))


@SYSCALLS.register("syscalls::int::u256_val_to_be_bytes")
def u256_val_to_be_bytes(host: SandboxHost, obj: RawVal) -> Handle:
    value = _typed(host, obj, ValTag.U256)
    return host.bytes_new(value.to_bytes(_BE_BYTES_LEN, "big"))


# --- 256 bit arithmetic ---


@SYSCALLS.register("syscalls::int::i256_add")
def i256_add(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.I256, lhs, rhs, lambda a, b: a + b)


@SYSCALLS.register("syscalls::int::i256_sub")
def i256_sub(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.I256, lhs, rhs, lambda a, b: a - b)


@SYSCALLS.register("syscalls::int::i256_mul")
def i256_mul(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.I256, lhs, rhs, lambda a, b: a * b)


@SYSCALLS.register("syscalls::int::i256_div")
def i256_div(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.I256, lhs, rhs, _div)


@SYSCALLS.register("syscalls::int::i256_pow")
def i256_pow(host: SandboxHost, lhs: RawVal, exp: int) -> RawVal:
    base = _typed(host, lhs, ValTag.I256)
    host.budget.charge(CostType.INT256_ARITH)
    return _boxed(host, ValTag.I256, _pow(base, exp))


@SYSCALLS.register("syscalls::int::i256_shl")
def i256_shl(host: SandboxHost, lhs: RawVal, bits: int) -> RawVal:
    value = _typed(host, lhs, ValTag.I256)
    _check_shift(bits)
    return _boxed(host, ValTag.I256, _wrap(ValTag.I256, value << bits))


@SYSCALLS.register("syscalls::int::i256_shr")
def i256_shr(host: SandboxHost, lhs: RawVal, bits: int) -> RawVal:
    value = _typed(host, lhs, ValTag.I256)
    _check_shift(bits)
    return _boxed(host, ValTag.I256, value >> bits)


@SYSCALLS.register("syscalls::int::u256_add")
def u256_add(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.U256, lhs, rhs, lambda a, b: a + b)


@SYSCALLS.register("syscalls::int::u256_sub")
def u256_sub(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.U256, lhs, rhs, lambda a, b: a - b)


@SYSCALLS.register("syscalls::int::u256_mul")
def u256_mul(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.U256, lhs, rhs, lambda a, b: a * b)


@SYSCALLS.register("syscalls::int::u256_div")
def u256_div(host: SandboxHost, lhs: RawVal, rhs: RawVal) -> RawVal:
    return _binary(host, ValTag.U256, lhs, rhs, _div)


@SYSCALLS.register("syscalls::int::u256_pow")
def u256_pow(host: SandboxHost, lhs: RawVal, exp: int) -> RawVal:
    base = _typed(host, lhs, ValTag.U256)
    host.budget.charge(CostType.INT256_ARITH)
    return _boxed(host, ValTag.U256, _pow(base, exp))


@SYSCALLS.register("syscalls::int::u256_shl")
def u256_shl(host: SandboxHost, lhs: RawVal, bits: int) -> RawVal:
    value = _typed(host, lhs, ValTag.U256)
    _check_shift(bits)
    return _boxed(host, ValTag.U256, _wrap(ValTag.U256, value << bits))


@SYSCALLS.register("syscalls::int::u256_shr")
def u256_shr(host: SandboxHost, lhs: RawVal, bits: int) -> RawVal:
    value = _typed(host, lhs, ValTag.U256)
    _check_shift(bits)
    return _boxed(host, ValTag.U256, value >> bits)
