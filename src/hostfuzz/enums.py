"""Enumerations for hostfuzz type-safe constants.

Uses StrEnum (Python 3.11+) for automatic string conversion.
StrEnum members are strings themselves, eliminating boilerplate __str__ methods.

Member order is significant for Category, ValTag and AddressKind: the decoder
selects members by index, so reordering changes which bytes map to which
value.

Python 3.13+.
"""

from enum import StrEnum


class Category(StrEnum):
    """Operation family of the host syscall surface.

    StrEnum provides automatic string conversion: str(Category.BUF) == "buf"
    """

    ADDRESS = "address"
    BUF = "buf"
    CALL = "call"
    CONTEXT = "context"
    CRYPTO = "crypto"
    INT = "int"
    LEDGER = "ledger"
    MAP = "map"
    PRNG = "prng"
    TEST = "test"
    """No-op category: a single operand-less syscall."""
    VEC = "vec"

    @property
    def label(self) -> str:
        """Capitalized name used in instruction debug strings (e.g. ``Buf``)."""
        return self.value.title()


class OperandKind(StrEnum):
    """Type of one operand slot of an operation."""

    U32 = "u32"
    U64 = "u64"
    I64 = "i64"
    U128 = "u128"
    I128 = "i128"
    BYTES = "bytes"
    STRING = "string"
    SYMBOL = "symbol"
    ADDRESS = "address"
    VAL = "val"
    """Any host value, passed to the host as an unchecked raw payload."""
    VEC = "vec"
    MAP = "map"

    @property
    def is_scalar(self) -> bool:
        """True for plain integers that reach the host unchanged."""
        return self in _SCALAR_KINDS


_SCALAR_KINDS = frozenset(
    {OperandKind.U32, OperandKind.U64, OperandKind.I64, OperandKind.U128, OperandKind.I128}
)


class ValTag(StrEnum):
    """Type tag of a host value."""

    VOID = "void"
    BOOL = "bool"
    ERROR = "error"
    U32 = "u32"
    I32 = "i32"
    U64 = "u64"
    I64 = "i64"
    TIMEPOINT = "timepoint"
    DURATION = "duration"
    U128 = "u128"
    I128 = "i128"
    U256 = "u256"
    I256 = "i256"
    BYTES = "bytes"
    STRING = "string"
    SYMBOL = "symbol"
    ADDRESS = "address"
    VEC = "vec"
    MAP = "map"

    @property
    def is_container(self) -> bool:
        """True for tags whose value holds other vals."""
        return self in (ValTag.VEC, ValTag.MAP)


class AddressKind(StrEnum):
    """Address flavour: externally owned account or deployed contract."""

    ACCOUNT = "account"
    CONTRACT = "contract"


class HostErrorType(StrEnum):
    """Subsystem of the host that rejected an operation."""

    CONTEXT = "context"
    VALUE = "value"
    OBJECT = "object"
    CRYPTO = "crypto"
    STORAGE = "storage"
    BUDGET = "budget"
    WASM_VM = "wasm_vm"
    AUTH = "auth"
    CONTRACT = "contract"


class HostErrorCode(StrEnum):
    """Reason an operation was rejected by the host."""

    ARITH_DOMAIN = "arith_domain"
    INDEX_BOUNDS = "index_bounds"
    INVALID_INPUT = "invalid_input"
    MISSING_VALUE = "missing_value"
    EXISTING_VALUE = "existing_value"
    EXCEEDED_LIMIT = "exceeded_limit"
    INVALID_ACTION = "invalid_action"
    UNEXPECTED_TYPE = "unexpected_type"
    UNEXPECTED_SIZE = "unexpected_size"
    UNSUPPORTED = "unsupported"
    CONTRACT_ERROR = "contract_error"


__all__ = [
    "AddressKind",
    "Category",
    "HostErrorCode",
    "HostErrorType",
    "OperandKind",
    "ValTag",
]
