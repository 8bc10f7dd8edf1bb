"""Source-neutral operand values.

Decoded instructions carry their operands in the representations defined
here. None of them is bound to a host environment; the adapter turns them into
host handles and raw payloads right before execution.

Representation by operand kind:
    u32, u64, i64, u128, i128 -> int
    bytes                     -> bytes
    string, symbol            -> str
    address                   -> Address
    val                       -> Val
    vec                       -> tuple[Val, ...]
    map                       -> tuple[tuple[Val, Val], ...]

All values are immutable and hashable with structural equality, so decoding
the same buffer twice yields equal instructions.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import assert_never

from hostfuzz.constants import ADDRESS_KEY_LEN
from hostfuzz.enums import AddressKind, OperandKind, ValTag

__all__ = [
    "Address",
    "MapEntries",
    "Operand",
    "Val",
    "format_operand",
    "int_range",
    "val_sort_key",
]

# Inclusive integer ranges of the numeric val tags.
_INT_RANGES: dict[ValTag, tuple[int, int]] = {
    ValTag.ERROR: (0, 2**32 - 1),
    ValTag.U32: (0, 2**32 - 1),
    ValTag.I32: (-(2**31), 2**31 - 1),
    ValTag.U64: (0, 2**64 - 1),
    ValTag.I64: (-(2**63), 2**63 - 1),
    ValTag.TIMEPOINT: (0, 2**64 - 1),
    ValTag.DURATION: (0, 2**64 - 1),
    ValTag.U128: (0, 2**128 - 1),
    ValTag.I128: (-(2**127), 2**127 - 1),
    ValTag.U256: (0, 2**256 - 1),
    ValTag.I256: (-(2**255), 2**255 - 1),
}


def int_range(tag: ValTag) -> tuple[int, int]:
    """Inclusive (min, max) of a numeric val tag.

    Raises:
        KeyError: If tag is not numeric
    """
    return _INT_RANGES[tag]


@dataclass(frozen=True, slots=True)
class Address:
    """Account or contract address.

    Attributes:
        kind: Account (public key) or contract (contract id)
        key: 32-byte public key or contract id
    """

    kind: AddressKind
    key: bytes

    def __post_init__(self) -> None:
        """Validate key length.

        Raises:
            ValueError: If key is not ADDRESS_KEY_LEN bytes
        """
        if len(self.key) != ADDRESS_KEY_LEN:
            msg = f"address key must be {ADDRESS_KEY_LEN} bytes, got {len(self.key)}"
            raise ValueError(msg)

    def __repr__(self) -> str:
        return f"Address({self.kind}:{self.key.hex()})"


@dataclass(frozen=True, slots=True)
class Val:
    """Host value with its type tag.

    Attributes:
        tag: Value type
        value: Python payload. None for void, bool for bool, int for the
            numeric tags (error carries its u32 code), bytes for bytes, str for
            string and symbol, Address for address, tuple of Val for vec, and
            tuple of (key, value) pairs for map.
    """

    tag: ValTag
    value: object = None

    def __post_init__(self) -> None:
        """Check the payload against the tag.

        Raises:
            ValueError: If the payload does not fit the tag
        """
        if not _payload_fits(self.tag, self.value):
            msg = f"{self.value!r} is not a valid {self.tag} payload"
            raise ValueError(msg)

    def __repr__(self) -> str:
        label = self.tag.value.title()
        match self.tag:
            case ValTag.VOID:
                return "Void"
            case ValTag.BOOL:
                return f"Bool({'true' if self.value else 'false'})"
            case ValTag.BYTES:
                return f"Bytes(0x{self.value.hex()})"  # type: ignore[attr-defined]
            case ValTag.STRING:
                return f"String({self.value!r})"
            case ValTag.SYMBOL:
                return f"Symbol({self.value})"
            case ValTag.ADDRESS:
                return repr(self.value)
            case ValTag.VEC:
                return _format_vec(self.value)  # type: ignore[arg-type]
            case ValTag.MAP:
                return _format_map(self.value)  # type: ignore[arg-type]
            case _:
                return f"{label}({self.value})"


type MapEntries = tuple[tuple[Val, Val], ...]
type Operand = int | bytes | str | Address | Val | tuple[Val, ...] | MapEntries


def _payload_fits(tag: ValTag, value: object) -> bool:
    match tag:
        case ValTag.VOID:
            return value is None
        case ValTag.BOOL:
            return isinstance(value, bool)
        case ValTag.BYTES:
            return isinstance(value, bytes)
        case ValTag.STRING | ValTag.SYMBOL:
            return isinstance(value, str)
        case ValTag.ADDRESS:
            return isinstance(value, Address)
        case ValTag.VEC:
            return isinstance(value, tuple) and all(isinstance(v, Val) for v in value)
        case ValTag.MAP:
            return isinstance(value, tuple) and all(
                isinstance(entry, tuple)
                and len(entry) == 2
                and isinstance(entry[0], Val)
                and isinstance(entry[1], Val)
                for entry in value
            )
        case _:
            if not isinstance(value, int) or isinstance(value, bool):
                return False
            low, high = _INT_RANGES[tag]
            return low <= value <= high


def _format_vec(items: tuple[Val, ...]) -> str:
    return "Vec[" + ", ".join(repr(v) for v in items) + "]"


def _format_map(entries: MapEntries) -> str:
    return "Map{" + ", ".join(f"{k!r}: {v!r}" for k, v in entries) + "}"


def format_operand(kind: OperandKind, value: Operand) -> str:
    """Render one decoded operand for instruction debug strings."""
    match kind:
        case (
            OperandKind.U32
            | OperandKind.U64
            | OperandKind.I64
            | OperandKind.U128
            | OperandKind.I128
        ):
            return str(value)
        case OperandKind.BYTES:
            return f"Bytes(0x{value.hex()})"  # type: ignore[union-attr]
        case OperandKind.STRING:
            return f"String({value!r})"
        case OperandKind.SYMBOL:
            return f"Symbol({value})"
        case OperandKind.ADDRESS | OperandKind.VAL:
            return repr(value)
        case OperandKind.VEC:
            return _format_vec(value)  # type: ignore[arg-type]
        case OperandKind.MAP:
            return _format_map(value)  # type: ignore[arg-type]
        case _ as unreachable:
            assert_never(unreachable)


_TAG_ORDER = {tag: index for index, tag in enumerate(ValTag)}
_KIND_ORDER = {kind: index for index, kind in enumerate(AddressKind)}


def val_sort_key(val: Val) -> tuple[object, ...]:
    """Total order over vals: by tag first, then by payload.

    Used for map key ordering and host-side value comparison.
    """
    rank = _TAG_ORDER[val.tag]
    match val.tag:
        case ValTag.VOID:
            return (rank,)
        case ValTag.ADDRESS:
            address: Address = val.value  # type: ignore[assignment]
            return (rank, _KIND_ORDER[address.kind], address.key)
        case ValTag.VEC:
            return (rank, tuple(val_sort_key(v) for v in val.value))  # type: ignore[attr-defined]
        case ValTag.MAP:
            return (
                rank,
                tuple(
                    (val_sort_key(k), val_sort_key(v))
                    for k, v in val.value  # type: ignore[attr-defined]
                ),
            )
        case _:
            return (rank, val.value)
