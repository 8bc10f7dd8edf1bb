"""Host adapter: binds decoded instructions to one host environment.

Adaptation rules, one per operand kind:
    u32, u64, i64, u128, i128 -> passed through unchanged
    bytes                     -> context.bytes_new
    string                    -> context.string_new
    symbol                    -> context.symbol_new
    address                   -> context.address_new
    vec                       -> context.vec_new
    map                       -> context.map_new
    val                       -> context.val_to_raw

The dispatch is an exhaustive match ending in assert_never, so a new
OperandKind without a rule is a type-check failure rather than a run-time
surprise.

Object creation during adaptation is charged to the host's cost meter. The run
loop resets the meter before adapting, so those allocations are part of the
cost recorded for the instruction.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import assert_never

from hostfuzz.catalog import DecodedInstruction, Operation
from hostfuzz.enums import Category, OperandKind
from hostfuzz.host import Handle, HostContext, RawVal
from hostfuzz.operands import Address, MapEntries, Operand, Val

__all__ = [
    "AdaptedInstruction",
    "HostArg",
    "adapt",
    "adapt_operand",
]

type HostArg = int | Handle | RawVal


@dataclass(frozen=True, slots=True)
class AdaptedInstruction:
    """Operation plus host-native arguments, bound to one host context.

    repr() is the adapted-instruction debug string, e.g.
    ``Buf(BytesAppend(Bytes(obj#0), Bytes(obj#1)))``.

    Attributes:
        operation: Catalog entry to execute
        args: Host-native arguments in operand order
        context: Host environment that produced the handles
    """

    operation: Operation
    args: tuple[HostArg, ...]
    context: HostContext | None = field(default=None, compare=False, repr=False)

    @property
    def syscall(self) -> str:
        """Stable identifying name of the operation."""
        return self.operation.syscall

    def __repr__(self) -> str:
        op = self.operation
        label = op.category.label
        if not op.operands:
            return label if op.category is Category.TEST else f"{label}({op.name})"
        return f"{label}({op.name}({', '.join(repr(a) for a in self.args)}))"


def adapt_operand(kind: OperandKind, value: Operand, context: HostContext) -> HostArg:
    """Convert one source-neutral operand to its host-native form."""
    match kind:
        case (
            OperandKind.U32
            | OperandKind.U64
            | OperandKind.I64
            | OperandKind.U128
            | OperandKind.I128
        ):
            scalar: int = value  # type: ignore[assignment]
            return scalar
        case OperandKind.BYTES:
            data: bytes = value  # type: ignore[assignment]
            return context.bytes_new(data)
        case OperandKind.STRING:
            text: str = value  # type: ignore[assignment]
            return context.string_new(text)
        case OperandKind.SYMBOL:
            name: str = value  # type: ignore[assignment]
            return context.symbol_new(name)
        case OperandKind.ADDRESS:
            address: Address = value  # type: ignore[assignment]
            return context.address_new(address)
        case OperandKind.VEC:
            items: tuple[Val, ...] = value  # type: ignore[assignment]
            return context.vec_new(items)
        case OperandKind.MAP:
            entries: MapEntries = value  # type: ignore[assignment]
            return context.map_new(entries)
        case OperandKind.VAL:
            val: Val = value  # type: ignore[assignment]
            return context.val_to_raw(val)
        case _ as unreachable:
            assert_never(unreachable)


def adapt(decoded: DecodedInstruction, context: HostContext) -> AdaptedInstruction:
    """Bind every operand of decoded to context.

    Args:
        decoded: Source-neutral instruction
        context: Host environment that will execute the instruction

    Returns:
        Instruction whose handles belong to context
    """
    op = decoded.operation
    args = tuple(
        adapt_operand(kind, value, context)
        for kind, value in zip(op.operands, decoded.operands, strict=True)
    )
    return AdaptedInstruction(op, args, context)
