"""Interfaces of the host environment the harness drives.

The host is an external collaborator. The harness only relies on the
Protocols declared here; any object implementing them can be fuzzed. The
reference implementation lives in hostfuzz.sandbox.

Host-native argument forms:
    Handle: reference to an object (bytes, string, symbol, address, vec, map)
        living in one host environment's object table.
    RawVal: unchecked 64-bit value payload. The low byte carries the val tag
        index, the upper bits carry either a small inline value or an object
        slot.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from hostfuzz.enums import ValTag

if TYPE_CHECKING:
    from hostfuzz.adapter import AdaptedInstruction
    from hostfuzz.operands import Address, MapEntries, Val

__all__ = [
    "CostMeter",
    "Handle",
    "HostContext",
    "HostEnvironment",
    "RAW_TAG_BITS",
    "RawVal",
]

RAW_TAG_BITS: int = 8
"""Number of low payload bits holding the val tag index."""

_TAG_MASK = (1 << RAW_TAG_BITS) - 1
_PAYLOAD_MASK = (1 << 64) - 1
_TAGS: tuple[ValTag, ...] = tuple(ValTag)


@dataclass(frozen=True, slots=True)
class Handle:
    """Reference to an object in a host environment's object table.

    Only meaningful inside the environment that created it. The owner is
    excluded from equality and repr so debug strings stay stable across
    runs.

    Attributes:
        tag: Type of the referenced object
        slot: Index in the owner's object table
        owner: Host environment that created the handle
    """

    tag: ValTag
    slot: int
    owner: object = field(default=None, compare=False, repr=False)

    def __repr__(self) -> str:
        return f"{self.tag.value.title()}(obj#{self.slot})"


@dataclass(frozen=True, slots=True)
class RawVal:
    """Unchecked 64-bit host value payload.

    Attributes:
        payload: Raw bits, tag index in the low RAW_TAG_BITS bits
    """

    payload: int

    def __post_init__(self) -> None:
        """Validate payload width.

        Raises:
            ValueError: If payload does not fit in 64 unsigned bits
        """
        if not 0 <= self.payload <= _PAYLOAD_MASK:
            msg = f"raw payload out of u64 range: {self.payload}"
            raise ValueError(msg)

    @classmethod
    def from_parts(cls, tag: ValTag, body: int) -> RawVal:
        """Pack a tag and a body into a payload."""
        return cls((body << RAW_TAG_BITS | _TAGS.index(tag)) & _PAYLOAD_MASK)

    @property
    def tag(self) -> ValTag | None:
        """Tag encoded in the low bits, or None for an unknown tag index."""
        index = self.payload & _TAG_MASK
        return _TAGS[index] if index < len(_TAGS) else None

    @property
    def body(self) -> int:
        """Bits above the tag."""
        return self.payload >> RAW_TAG_BITS

    def __repr__(self) -> str:
        return f"RawVal(0x{self.payload:016x})"


class CostMeter(Protocol):
    """Host-side CPU and memory cost accounting."""

    def reset_unlimited(self) -> None:
        """Zero both counters and lift every limit."""
        ...

    def cpu_instruction_cost(self) -> int:
        """CPU units charged since the last reset."""
        ...

    def memory_bytes_cost(self) -> int:
        """Memory bytes charged since the last reset."""
        ...


class HostContext(Protocol):
    """Handle factory of a host environment.

    Used by the adapter to bind source-neutral operands to host objects.
    """

    def bytes_new(self, data: bytes) -> Handle: ...

    def string_new(self, text: str) -> Handle: ...

    def symbol_new(self, name: str) -> Handle: ...

    def address_new(self, address: Address) -> Handle: ...

    def vec_new(self, items: tuple[Val, ...]) -> Handle: ...

    def map_new(self, entries: MapEntries) -> Handle: ...

    def val_to_raw(self, val: Val) -> RawVal: ...


class HostEnvironment(HostContext, Protocol):
    """Sandboxed execution target: one call entry point plus a cost meter."""

    @property
    def budget(self) -> CostMeter:
        """Cost meter of this environment."""
        ...

    def try_run(self, instruction: AdaptedInstruction) -> object:
        """Execute one adapted instruction.

        Returns:
            Host result of the operation

        Raises:
            HostError: If the host rejects the operation
        """
        ...

    def reset(self) -> None:
        """Drop all state built up by earlier calls. The cost meter is kept."""
        ...
