"""Instruction space: the closed catalog of host operations and its decoder.

The catalog is a two-level closed set. Categories come from the Category enum
in declaration order; each category holds an ordered tuple of operations, and
each operation declares the kinds of its operand slots.

Decoding walks the same two levels:

    category  = CATEGORIES[decode_choice(cursor, len(CATEGORIES))]
    operation = CATALOG[category][decode_choice(cursor, len(CATALOG[category]))]
    operands  = decode_operand(cursor, kind) for each declared kind, in order

Selection is uniform over the declared entries at each level. Adding, removing
or reordering entries changes which bytes select which operation; saved
buffers are only meaningful against the catalog that produced them.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from hostfuzz.codec import (
    ByteCursor,
    decode_choice,
    decode_operand,
    encode_choice,
    encode_operand,
    max_encoded_size,
)
from hostfuzz.enums import Category, OperandKind
from hostfuzz.operands import Operand, format_operand

__all__ = [
    "CATALOG",
    "CATEGORIES",
    "MAX_INSTRUCTION_SIZE",
    "MAX_OPERANDS",
    "DecodedInstruction",
    "Operation",
    "all_operations",
    "decode",
    "decode_instruction",
    "encode_instruction",
    "operation_for_syscall",
    "selector_bytes",
]

MAX_OPERANDS: int = 4
"""Largest operand list of any operation."""

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


@dataclass(frozen=True, slots=True)
class Operation:
    """One named host operation with a fixed operand signature.

    Attributes:
        category: Operation family
        name: CamelCase operation name (e.g. ``BytesAppend``)
        syscall: Stable identifying name used in telemetry
            (e.g. ``syscalls::buf::bytes_append``)
        operands: Operand kinds in call order
    """

    category: Category
    name: str
    syscall: str
    operands: tuple[OperandKind, ...]

    def __post_init__(self) -> None:
        """Validate operand count.

        Raises:
            ValueError: If more than MAX_OPERANDS operands are declared
        """
        if len(self.operands) > MAX_OPERANDS:
            msg = f"{self.name} declares {len(self.operands)} operands, max is {MAX_OPERANDS}"
            raise ValueError(msg)

    @property
    def arity(self) -> int:
        """Number of operand slots."""
        return len(self.operands)

    @property
    def signature(self) -> str:
        """Human-readable signature, e.g. ``BytesAppend(bytes, bytes)``."""
        return f"{self.name}({', '.join(self.operands)})"


def _op(
    category: Category,
    name: str,
    *operands: OperandKind,
    syscall: str | None = None,
) -> Operation:
    snake = syscall or _CAMEL_BOUNDARY.sub("_", name).lower()
    return Operation(category, name, f"syscalls::{category}::{snake}", operands)


# Short aliases keep the catalog table readable.
_U32 = OperandKind.U32
_U64 = OperandKind.U64
_I64 = OperandKind.I64
_U128 = OperandKind.U128
_I128 = OperandKind.I128
_BYTES = OperandKind.BYTES
_STRING = OperandKind.STRING
_SYMBOL = OperandKind.SYMBOL
_ADDRESS = OperandKind.ADDRESS
_VAL = OperandKind.VAL
_VEC = OperandKind.VEC
_MAP = OperandKind.MAP

_A = Category.ADDRESS
_BUF = Category.BUF
_CALL = Category.CALL
_CTX = Category.CONTEXT
_CRY = Category.CRYPTO
_INT = Category.INT
_LED = Category.LEDGER
_MP = Category.MAP
_PRNG = Category.PRNG
_TEST = Category.TEST
_VC = Category.VEC

CATALOG: Mapping[Category, tuple[Operation, ...]] = MappingProxyType({
    Category.ADDRESS: (
        _op(_A, "AccountPublicKeyToAddress", _BYTES),
        _op(_A, "AddressToAccountPublicKey", _ADDRESS),
        _op(_A, "AddressToContractId", _ADDRESS),
        _op(_A, "AuthorizeAsCurrContract", _VEC),
        _op(_A, "ContractIdToAddress", _BYTES),
        _op(_A, "RequireAuth", _ADDRESS),
        _op(_A, "RequireAuthForArgs", _ADDRESS, _VEC),
    ),
    Category.BUF: (
        _op(_BUF, "BytesAppend", _BYTES, _BYTES),
        _op(_BUF, "BytesBack", _BYTES),
        _op(_BUF, "BytesCopyFromLinearMemory", _BYTES, _U32, _U32, _U32),
        _op(_BUF, "BytesCopyToLinearMemory", _BYTES, _U32, _U32, _U32),
        _op(_BUF, "BytesDel", _BYTES, _U32),
        _op(_BUF, "BytesFront", _BYTES),
        _op(_BUF, "BytesGet", _BYTES, _U32),
        _op(_BUF, "BytesInsert", _BYTES, _U32, _U32),
        _op(_BUF, "BytesLen", _BYTES),
        _op(_BUF, "BytesNew"),
        _op(_BUF, "BytesNewFromLinearMemory", _U32, _U32),
        _op(_BUF, "BytesPop", _BYTES),
        _op(_BUF, "BytesPush", _BYTES, _U32),
        _op(_BUF, "BytesPut", _BYTES, _U32, _U32),
        _op(_BUF, "BytesSlice", _BYTES, _U32, _U32),
        _op(_BUF, "DeserializeFromBytes", _BYTES),
        _op(_BUF, "SerializeToBytes", _VAL),
        _op(_BUF, "StringCopyToLinearMemory", _STRING, _U32, _U32, _U32),
        _op(_BUF, "StringLen", _STRING),
        _op(_BUF, "StringNewFromLinearMemory", _U32, _U32),
        _op(_BUF, "SymbolCopyToLinearMemory", _SYMBOL, _U32, _U32, _U32),
        _op(_BUF, "SymbolIndexInLinearMemory", _SYMBOL, _U32, _U32),
        _op(_BUF, "SymbolLen", _SYMBOL),
        _op(_BUF, "SymbolNewFromLinearMemory", _U32, _U32),
    ),
    Category.CALL: (
        _op(_CALL, "Call", _ADDRESS, _SYMBOL, _VEC),
        _op(_CALL, "TryCall", _ADDRESS, _SYMBOL, _VEC),
    ),
    Category.CONTEXT: (
        _op(_CTX, "ContractEvent", _VEC, _VAL),
        _op(_CTX, "FailWithError", _VAL),
        _op(_CTX, "GetCurrentCallStack"),
        _op(_CTX, "GetCurrentContractAddress"),
        _op(_CTX, "GetInvokingContract"),
        _op(_CTX, "GetLedgerNetworkId"),
        _op(_CTX, "GetLedgerSequence"),
        _op(_CTX, "GetLedgerTimestamp"),
        _op(_CTX, "GetLedgerVersion"),
        _op(_CTX, "LogFromLinearMemory", _U32, _U32, _U32, _U32),
        _op(_CTX, "ObjCmp", _VAL, _VAL),
    ),
    Category.CRYPTO: (
        _op(_CRY, "ComputeHashKeccak256", _BYTES),
        _op(_CRY, "ComputeHashSha256", _BYTES),
        _op(_CRY, "RecoverKeyEcdsaSecp256k1", _BYTES, _BYTES, _U32),
        _op(_CRY, "VerifySigEd25519", _BYTES, _BYTES, _BYTES),
    ),
    Category.INT: (
        _op(_INT, "DurationObjFromU64", _U64),
        _op(_INT, "DurationObjToU64", _VAL),
        _op(_INT, "I256Add", _VAL, _VAL),
        _op(_INT, "I256Div", _VAL, _VAL),
        _op(_INT, "I256Mul", _VAL, _VAL),
        _op(_INT, "I256ObjFromBeBytes", _BYTES, syscall="i256_val_from_be_bytes"),
        _op(_INT, "I256ObjToBeBytes", _VAL, syscall="i256_val_to_be_bytes"),
        _op(_INT, "I256Pow", _VAL, _U32),
        _op(_INT, "I256Shl", _VAL, _U32),
        _op(_INT, "I256Shr", _VAL, _U32),
        _op(_INT, "I256Sub", _VAL, _VAL),
        _op(_INT, "ObjFromI64", _I64),
        _op(_INT, "ObjFromI128Pieces", _I64, _U64),
        _op(_INT, "ObjFromI256Pieces", _I64, _U64, _U64, _U64),
        _op(_INT, "ObjFromU64", _U64),
        _op(_INT, "ObjFromU128Pieces", _U64, _U64),
        _op(_INT, "ObjFromU256Pieces", _U64, _U64, _U64, _U64),
        _op(_INT, "ObjToI64", _I64),
        _op(_INT, "ObjToI128Hi64", _I128),
        _op(_INT, "ObjToI128Lo64", _I128),
        _op(_INT, "ObjToI256HiHi", _VAL),
        _op(_INT, "ObjToI256HiLo", _VAL),
        _op(_INT, "ObjToI256LoHi", _VAL),
        _op(_INT, "ObjToI256LoLo", _VAL),
        _op(_INT, "ObjToU64", _U64),
        _op(_INT, "ObjToU128Hi64", _U128),
        _op(_INT, "ObjToU128Lo64", _U128),
        _op(_INT, "ObjToU256HiHi", _VAL),
        _op(_INT, "ObjToU256HiLo", _VAL),
        _op(_INT, "ObjToU256LoHi", _VAL),
        _op(_INT, "ObjToU256LoLo", _VAL),
        _op(_INT, "TimepointObjFromU64", _U64),
        _op(_INT, "TimepointObjToU64", _VAL),
        _op(_INT, "U256Add", _VAL, _VAL),
        _op(_INT, "U256Div", _VAL, _VAL),
        _op(_INT, "U256Mul", _VAL, _VAL),
        _op(_INT, "U256ValFromBeBytes", _BYTES),
        _op(_INT, "U256ValToBeBytes", _VAL),
        _op(_INT, "U256Pow", _VAL, _U32),
        _op(_INT, "U256Shl", _VAL, _U32),
        _op(_INT, "U256Shr", _VAL, _U32),
        _op(_INT, "U256Sub", _VAL, _VAL),
    ),
    Category.LEDGER: (
        _op(_LED, "BumpContractData", _VAL, _U32),
        _op(_LED, "CreateAssetContract", _BYTES),
        _op(_LED, "CreateContract", _ADDRESS, _BYTES, _BYTES),
        _op(_LED, "DelContractData", _VAL),
        _op(_LED, "GetAssetContractId", _BYTES),
        _op(_LED, "GetContractData", _VAL),
        _op(_LED, "GetContractId", _ADDRESS, _BYTES),
        _op(_LED, "HasContractData", _VAL),
        _op(_LED, "PutContractData", _VAL, _VAL, _VAL),
        _op(_LED, "UpdateCurrentContractWasm", _BYTES),
        _op(_LED, "UploadWasm", _BYTES),
    ),
    Category.MAP: (
        _op(_MP, "MapDel", _MAP, _VAL),
        _op(_MP, "MapGet", _MAP, _VAL),
        _op(_MP, "MapHas", _MAP, _VAL),
        _op(_MP, "MapKeys", _MAP),
        _op(_MP, "MapLen", _MAP),
        _op(_MP, "MapMaxKey", _MAP),
        _op(_MP, "MapMinKey", _MAP),
        _op(_MP, "MapNew"),
        _op(_MP, "MapNewFromLinearMemory", _U32, _U32, _U32),
        _op(_MP, "MapNextKey", _MAP, _VAL),
        _op(_MP, "MapPrevKey", _MAP, _VAL),
        _op(_MP, "MapPut", _MAP, _VAL, _VAL),
        _op(_MP, "MapUnpackToLinearMemory", _MAP, _U32, _U32, _U32),
        _op(_MP, "MapValues", _MAP),
    ),
    Category.PRNG: (
        _op(_PRNG, "PrngBytesNew", _U32),
        _op(_PRNG, "PrngReseed", _BYTES),
        _op(_PRNG, "PrngU64InInclusiveRange", _U64, _U64),
        _op(_PRNG, "PrngVecShuffle", _VEC),
    ),
    Category.TEST: (
        _op(_TEST, "Dummy0"),
    ),
    Category.VEC: (
        _op(_VC, "VecAppend", _VEC, _VEC),
        _op(_VC, "VecBack", _VEC),
        _op(_VC, "VecBinarySearch", _VEC, _VAL),
        _op(_VC, "VecDel", _VEC, _U32),
        _op(_VC, "VecFirstIndexOf", _VEC, _VAL),
        _op(_VC, "VecFront", _VEC),
        _op(_VC, "VecGet", _VEC, _U32),
        _op(_VC, "VecInsert", _VEC, _U32, _VAL),
        _op(_VC, "VecLastIndexOf", _VEC, _VAL),
        _op(_VC, "VecLen", _VEC),
        _op(_VC, "VecNew", _VAL),
        _op(_VC, "VecNewFromLinearMemory", _U32, _U32),
        _op(_VC, "VecPopBack", _VEC),
        _op(_VC, "VecPopFront", _VEC),
        _op(_VC, "VecPushBack", _VEC, _VAL),
        _op(_VC, "VecPushFront", _VEC, _VAL),
        _op(_VC, "VecPut", _VEC, _U32, _VAL),
        _op(_VC, "VecSlice", _VEC, _U32, _U32),
        _op(_VC, "VecUnpackToLinearMemory", _VEC, _U32, _U32),
    ),
})

CATEGORIES: tuple[Category, ...] = tuple(Category)

_BY_SYSCALL: dict[str, Operation] = {
    op.syscall: op for ops in CATALOG.values() for op in ops
}


@dataclass(frozen=True, slots=True)
class DecodedInstruction:
    """Operation plus its operands in source-neutral form.

    repr() is the decoded-instruction debug string used in progress output
    and telemetry, e.g. ``Buf(BytesAppend(Bytes(0x01), Bytes(0x)))``.

    Attributes:
        operation: Selected catalog entry
        operands: One value per declared operand kind, in order
    """

    operation: Operation
    operands: tuple[Operand, ...]

    def __post_init__(self) -> None:
        """Validate arity against the operation.

        Raises:
            ValueError: If the operand count does not match the operation
        """
        if len(self.operands) != self.operation.arity:
            msg = (
                f"{self.operation.name} takes {self.operation.arity} operand(s), "
                f"got {len(self.operands)}"
            )
            raise ValueError(msg)

    @property
    def category(self) -> Category:
        """Operation family."""
        return self.operation.category

    @property
    def syscall(self) -> str:
        """Stable identifying name of the operation."""
        return self.operation.syscall

    def __repr__(self) -> str:
        op = self.operation
        if op.category is Category.TEST:
            return op.category.label
        if not self.operands:
            return f"{op.category.label}({op.name})"
        args = ", ".join(
            format_operand(kind, value)
            for kind, value in zip(op.operands, self.operands, strict=True)
        )
        return f"{op.category.label}({op.name}({args}))"


def decode(cursor: ByteCursor) -> DecodedInstruction:
    """Decode exactly one instruction from the cursor.

    Total and deterministic: returns a complete instruction or raises
    InsufficientInput. Never returns a partially decoded instruction.

    Raises:
        InsufficientInput: If the cursor runs out of bytes
    """
    category = CATEGORIES[decode_choice(cursor, len(CATEGORIES))]
    operations = CATALOG[category]
    operation = operations[decode_choice(cursor, len(operations))]
    operands = tuple(decode_operand(cursor, kind) for kind in operation.operands)
    return DecodedInstruction(operation, operands)


def decode_instruction(data: bytes) -> DecodedInstruction:
    """Decode one instruction from the start of a byte buffer."""
    return decode(ByteCursor(data))


def all_operations() -> tuple[Operation, ...]:
    """Every catalog entry, in decode order."""
    return tuple(op for category in CATEGORIES for op in CATALOG[category])


def operation_for_syscall(name: str) -> Operation:
    """Look up an operation by its syscall name.

    Raises:
        KeyError: If no operation has that syscall name
    """
    try:
        return _BY_SYSCALL[name]
    except KeyError:
        msg = f"unknown syscall: {name}"
        raise KeyError(msg) from None


def selector_bytes(operation: Operation) -> bytes:
    """Shortest prefix that makes decode select operation."""
    operations = CATALOG[operation.category]
    return encode_choice(
        CATEGORIES.index(operation.category), len(CATEGORIES)
    ) + encode_choice(operations.index(operation), len(operations))


def encode_instruction(instruction: DecodedInstruction) -> bytes:
    """Bytes that decode back to instruction."""
    op = instruction.operation
    body = b"".join(
        encode_operand(kind, value)
        for kind, value in zip(op.operands, instruction.operands, strict=True)
    )
    return selector_bytes(op) + body


MAX_INSTRUCTION_SIZE: int = max(
    len(selector_bytes(op)) + sum(max_encoded_size(kind) for kind in op.operands)
    for op in all_operations()
)
"""Buffers at least this long always decode successfully."""
