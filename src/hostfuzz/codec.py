"""Operand codec: typed values from a raw byte cursor.

Every decoder consumes a deterministic, shape-dependent number of bytes from
a ByteCursor and returns a fully-formed value, or raises InsufficientInput
when the cursor runs dry. The same cursor state always yields the same value,
so a saved buffer reproduces its instruction exactly.

Wire conventions:
    - Fixed-width integers are little-endian.
    - Catalog discriminants (decode_choice) are a u32 modulo the number of
      choices, and consume nothing when there is only one choice.
    - Inner tags (val tag, address kind) are a single byte modulo the count.
    - Lengths are a single byte modulo (limit + 1), keeping collections small.

The encode_* functions are the inverse of the decoders for values inside the
length budgets. They build buffers that decode to a chosen instruction.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import assert_never

from hostfuzz.constants import (
    ADDRESS_KEY_LEN,
    MAX_BYTES_LEN,
    MAX_COLLECTION_LEN,
    MAX_STRING_LEN,
    MAX_SYMBOL_LEN,
    MAX_VAL_DEPTH,
    SYMBOL_ALPHABET,
)
from hostfuzz.enums import AddressKind, OperandKind, ValTag
from hostfuzz.errors import InsufficientInput
from hostfuzz.operands import Address, MapEntries, Operand, Val

__all__ = [
    "ByteCursor",
    "decode_address",
    "decode_bytes",
    "decode_choice",
    "decode_length",
    "decode_map_entries",
    "decode_operand",
    "decode_string",
    "decode_symbol",
    "decode_tag",
    "decode_val",
    "decode_vals",
    "encode_choice",
    "encode_operand",
    "encode_val",
    "max_encoded_size",
    "max_val_size",
]

# Printable ASCII range used for string operands.
_STRING_BASE = 0x20
_STRING_SPAN = 95

_ADDRESS_KINDS: tuple[AddressKind, ...] = tuple(AddressKind)
_ALL_TAGS: tuple[ValTag, ...] = tuple(ValTag)
_SCALAR_TAGS: tuple[ValTag, ...] = tuple(t for t in ValTag if not t.is_container)

# Width in bytes and signedness of the fixed-size val payloads.
_INT_LAYOUT: dict[ValTag, tuple[int, bool]] = {
    ValTag.ERROR: (4, False),
    ValTag.U32: (4, False),
    ValTag.I32: (4, True),
    ValTag.U64: (8, False),
    ValTag.I64: (8, True),
    ValTag.TIMEPOINT: (8, False),
    ValTag.DURATION: (8, False),
    ValTag.U128: (16, False),
    ValTag.I128: (16, True),
    ValTag.U256: (32, False),
    ValTag.I256: (32, True),
}

_SCALAR_OPERAND_LAYOUT: dict[OperandKind, tuple[int, bool]] = {
    OperandKind.U32: (4, False),
    OperandKind.U64: (8, False),
    OperandKind.I64: (8, True),
    OperandKind.U128: (16, False),
    OperandKind.I128: (16, True),
}

# vec and map operands are containers themselves: their elements sit one level down.
_OPERAND_ELEMENT_DEPTH = 1


@dataclass(slots=True)
class ByteCursor:
    """Forward-only read position over a byte buffer.

    Example:
        >>> cursor = ByteCursor(b"\\x01\\x02\\x03")
        >>> cursor.take(2)
        b'\\x01\\x02'
        >>> cursor.remaining
        1
        >>> cursor.take(2)
        Traceback (most recent call last):
        ...
        hostfuzz.errors.InsufficientInput: Needed 2 byte(s) at offset 2, only 1 left

    Attributes:
        data: Underlying buffer
        pos: Offset of the next unread byte
    """

    data: bytes
    pos: int = 0

    @property
    def remaining(self) -> int:
        """Bytes not yet consumed."""
        return len(self.data) - self.pos

    @property
    def is_exhausted(self) -> bool:
        """True once every byte has been consumed."""
        return self.pos >= len(self.data)

    def take(self, count: int) -> bytes:
        """Consume and return the next count bytes.

        Raises:
            InsufficientInput: If fewer than count bytes remain. The cursor
                does not move in that case.
        """
        if count > self.remaining:
            raise InsufficientInput(count, self.remaining, self.pos)
        chunk = self.data[self.pos : self.pos + count]
        self.pos += count
        return chunk

    def take_byte(self) -> int:
        """Consume one byte and return it as an int."""
        return self.take(1)[0]


# ============================================================================
# PRIMITIVES
# ============================================================================


def _decode_int(cursor: ByteCursor, width: int, *, signed: bool) -> int:
    return int.from_bytes(cursor.take(width), "little", signed=signed)


def decode_choice(cursor: ByteCursor, count: int) -> int:
    """Uniform index into a closed set of count entries."""
    if count <= 0:
        msg = "count must be positive"
        raise ValueError(msg)
    if count == 1:
        return 0
    return _decode_int(cursor, 4, signed=False) % count


def decode_tag(cursor: ByteCursor, count: int) -> int:
    """Single-byte index into a small closed set."""
    if count <= 0:
        msg = "count must be positive"
        raise ValueError(msg)
    if count == 1:
        return 0
    return cursor.take_byte() % count


def decode_length(cursor: ByteCursor, limit: int) -> int:
    """Collection length in [0, limit]."""
    return cursor.take_byte() % (limit + 1)


def decode_bytes(cursor: ByteCursor, limit: int = MAX_BYTES_LEN) -> bytes:
    """Length-prefixed byte string of at most limit bytes."""
    return cursor.take(decode_length(cursor, limit))


def decode_string(cursor: ByteCursor) -> str:
    """Length-prefixed printable ASCII text."""
    raw = decode_bytes(cursor, MAX_STRING_LEN)
    return "".join(chr(_STRING_BASE + b % _STRING_SPAN) for b in raw)


def decode_symbol(cursor: ByteCursor) -> str:
    """Length-prefixed identifier over SYMBOL_ALPHABET."""
    raw = cursor.take(decode_length(cursor, MAX_SYMBOL_LEN))
    return "".join(SYMBOL_ALPHABET[b % len(SYMBOL_ALPHABET)] for b in raw)


def decode_address(cursor: ByteCursor) -> Address:
    """Address kind followed by its 32-byte key."""
    kind = _ADDRESS_KINDS[decode_tag(cursor, len(_ADDRESS_KINDS))]
    return Address(kind, cursor.take(ADDRESS_KEY_LEN))


# ============================================================================
# HOST VALUES
# ============================================================================


def _tags_at(depth: int) -> tuple[ValTag, ...]:
    return _ALL_TAGS if depth < MAX_VAL_DEPTH else _SCALAR_TAGS


def decode_val(cursor: ByteCursor, depth: int = 0) -> Val:
    """Tagged host value. Containers only appear above MAX_VAL_DEPTH."""
    tags = _tags_at(depth)
    tag = tags[decode_tag(cursor, len(tags))]
    match tag:
        case ValTag.VOID:
            return Val(tag)
        case ValTag.BOOL:
            return Val(tag, bool(cursor.take_byte() & 1))
        case ValTag.BYTES:
            return Val(tag, decode_bytes(cursor))
        case ValTag.STRING:
            return Val(tag, decode_string(cursor))
        case ValTag.SYMBOL:
            return Val(tag, decode_symbol(cursor))
        case ValTag.ADDRESS:
            return Val(tag, decode_address(cursor))
        case ValTag.VEC:
            return Val(tag, decode_vals(cursor, depth + 1))
        case ValTag.MAP:
            return Val(tag, decode_map_entries(cursor, depth + 1))
        case _:
            width, signed = _INT_LAYOUT[tag]
            return Val(tag, _decode_int(cursor, width, signed=signed))


def decode_vals(cursor: ByteCursor, depth: int) -> tuple[Val, ...]:
    """Length-prefixed sequence of vals at the given depth."""
    count = decode_length(cursor, MAX_COLLECTION_LEN)
    return tuple(decode_val(cursor, depth) for _ in range(count))


def decode_map_entries(cursor: ByteCursor, depth: int) -> MapEntries:
    """Length-prefixed sequence of key/value pairs, in decode order."""
    count = decode_length(cursor, MAX_COLLECTION_LEN)
    return tuple((decode_val(cursor, depth), decode_val(cursor, depth)) for _ in range(count))


def decode_operand(cursor: ByteCursor, kind: OperandKind) -> Operand:
    """Decode one operand slot in its source-neutral representation."""
    match kind:
        case (
            OperandKind.U32
            | OperandKind.U64
            | OperandKind.I64
            | OperandKind.U128
            | OperandKind.I128
        ):
            width, signed = _SCALAR_OPERAND_LAYOUT[kind]
            return _decode_int(cursor, width, signed=signed)
        case OperandKind.BYTES:
            return decode_bytes(cursor)
        case OperandKind.STRING:
            return decode_string(cursor)
        case OperandKind.SYMBOL:
            return decode_symbol(cursor)
        case OperandKind.ADDRESS:
            return decode_address(cursor)
        case OperandKind.VAL:
            return decode_val(cursor)
        case OperandKind.VEC:
            return decode_vals(cursor, _OPERAND_ELEMENT_DEPTH)
        case OperandKind.MAP:
            return decode_map_entries(cursor, _OPERAND_ELEMENT_DEPTH)
        case _ as unreachable:
            assert_never(unreachable)


# ============================================================================
# SIZE BOUNDS
# ============================================================================


def _tag_size(count: int) -> int:
    return 0 if count == 1 else 1


def _max_scalar_payload(tag: ValTag) -> int:
    match tag:
        case ValTag.VOID:
            return 0
        case ValTag.BOOL:
            return 1
        case ValTag.BYTES:
            return 1 + MAX_BYTES_LEN
        case ValTag.STRING:
            return 1 + MAX_STRING_LEN
        case ValTag.SYMBOL:
            return 1 + MAX_SYMBOL_LEN
        case ValTag.ADDRESS:
            return _tag_size(len(_ADDRESS_KINDS)) + ADDRESS_KEY_LEN
        case _:
            return _INT_LAYOUT[tag][0]


def max_val_size(depth: int = 0) -> int:
    """Most bytes decode_val can consume at the given depth."""
    tags = _tags_at(depth)
    largest = max(_max_scalar_payload(t) for t in tags if not t.is_container)
    if depth < MAX_VAL_DEPTH:
        element = max_val_size(depth + 1)
        largest = max(largest, 1 + 2 * MAX_COLLECTION_LEN * element)
    return _tag_size(len(tags)) + largest


def max_encoded_size(kind: OperandKind) -> int:
    """Most bytes decode_operand can consume for one operand of this kind."""
    match kind:
        case (
            OperandKind.U32
            | OperandKind.U64
            | OperandKind.I64
            | OperandKind.U128
            | OperandKind.I128
        ):
            return _SCALAR_OPERAND_LAYOUT[kind][0]
        case OperandKind.BYTES:
            return 1 + MAX_BYTES_LEN
        case OperandKind.STRING:
            return 1 + MAX_STRING_LEN
        case OperandKind.SYMBOL:
            return 1 + MAX_SYMBOL_LEN
        case OperandKind.ADDRESS:
            return _tag_size(len(_ADDRESS_KINDS)) + ADDRESS_KEY_LEN
        case OperandKind.VAL:
            return max_val_size(0)
        case OperandKind.VEC:
            return 1 + MAX_COLLECTION_LEN * max_val_size(_OPERAND_ELEMENT_DEPTH)
        case OperandKind.MAP:
            return 1 + 2 * MAX_COLLECTION_LEN * max_val_size(_OPERAND_ELEMENT_DEPTH)
        case _ as unreachable:
            assert_never(unreachable)


# ============================================================================
# ENCODERS
# ============================================================================


def encode_choice(index: int, count: int) -> bytes:
    """Bytes that make decode_choice(count) return index."""
    if not 0 <= index < count:
        msg = f"index {index} out of range for {count} choices"
        raise ValueError(msg)
    if count == 1:
        return b""
    return index.to_bytes(4, "little")


def _encode_tag(index: int, count: int) -> bytes:
    return b"" if count == 1 else bytes([index])


def _encode_length(length: int, limit: int) -> bytes:
    if length > limit:
        msg = f"length {length} exceeds limit {limit}"
        raise ValueError(msg)
    return bytes([length])


def _encode_string(text: str) -> bytes:
    codes = [ord(c) - _STRING_BASE for c in text]
    if any(not 0 <= code < _STRING_SPAN for code in codes):
        msg = f"{text!r} contains non-printable characters"
        raise ValueError(msg)
    return _encode_length(len(codes), MAX_STRING_LEN) + bytes(codes)


def _encode_symbol(name: str) -> bytes:
    if any(c not in SYMBOL_ALPHABET for c in name):
        msg = f"{name!r} is not a valid symbol"
        raise ValueError(msg)
    codes = bytes(SYMBOL_ALPHABET.index(c) for c in name)
    return _encode_length(len(codes), MAX_SYMBOL_LEN) + codes


def _encode_address(address: Address) -> bytes:
    kind = _encode_tag(_ADDRESS_KINDS.index(address.kind), len(_ADDRESS_KINDS))
    return kind + address.key


def encode_val(val: Val, depth: int = 0) -> bytes:
    """Bytes that make decode_val(depth) return val."""
    tags = _tags_at(depth)
    if val.tag not in tags:
        msg = f"{val.tag} values are not allowed at depth {depth}"
        raise ValueError(msg)
    head = _encode_tag(tags.index(val.tag), len(tags))
    match val.tag:
        case ValTag.VOID:
            return head
        case ValTag.BOOL:
            return head + bytes([1 if val.value else 0])
        case ValTag.BYTES:
            data: bytes = val.value  # type: ignore[assignment]
            return head + _encode_length(len(data), MAX_BYTES_LEN) + data
        case ValTag.STRING:
            return head + _encode_string(val.value)  # type: ignore[arg-type]
        case ValTag.SYMBOL:
            return head + _encode_symbol(val.value)  # type: ignore[arg-type]
        case ValTag.ADDRESS:
            return head + _encode_address(val.value)  # type: ignore[arg-type]
        case ValTag.VEC:
            return head + _encode_vals(val.value, depth + 1)  # type: ignore[arg-type]
        case ValTag.MAP:
            return head + _encode_map_entries(val.value, depth + 1)  # type: ignore[arg-type]
        case _:
            width, signed = _INT_LAYOUT[val.tag]
            return head + val.value.to_bytes(width, "little", signed=signed)  # type: ignore[attr-defined]


def _encode_vals(items: tuple[Val, ...], depth: int) -> bytes:
    body = b"".join(encode_val(v, depth) for v in items)
    return _encode_length(len(items), MAX_COLLECTION_LEN) + body


def _encode_map_entries(entries: MapEntries, depth: int) -> bytes:
    body = b"".join(encode_val(k, depth) + encode_val(v, depth) for k, v in entries)
    return _encode_length(len(entries), MAX_COLLECTION_LEN) + body


def encode_operand(kind: OperandKind, value: Operand) -> bytes:
    """Bytes that make decode_operand(kind) return value.

    Raises:
        ValueError: If value falls outside the decoder's budgets
    """
    match kind:
        case (
            OperandKind.U32
            | OperandKind.U64
            | OperandKind.I64
            | OperandKind.U128
            | OperandKind.I128
        ):
            width, signed = _SCALAR_OPERAND_LAYOUT[kind]
            return value.to_bytes(width, "little", signed=signed)  # type: ignore[union-attr]
        case OperandKind.BYTES:
            data: bytes = value  # type: ignore[assignment]
            return _encode_length(len(data), MAX_BYTES_LEN) + data
        case OperandKind.STRING:
            return _encode_string(value)  # type: ignore[arg-type]
        case OperandKind.SYMBOL:
            return _encode_symbol(value)  # type: ignore[arg-type]
        case OperandKind.ADDRESS:
            return _encode_address(value)  # type: ignore[arg-type]
        case OperandKind.VAL:
            return encode_val(value)  # type: ignore[arg-type]
        case OperandKind.VEC:
            return _encode_vals(value, _OPERAND_ELEMENT_DEPTH)  # type: ignore[arg-type]
        case OperandKind.MAP:
            return _encode_map_entries(value, _OPERAND_ELEMENT_DEPTH)  # type: ignore[arg-type]
        case _ as unreachable:
            assert_never(unreachable)
