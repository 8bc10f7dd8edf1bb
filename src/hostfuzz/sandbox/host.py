"""In-process reference host environment.

SandboxHost implements the HostEnvironment protocol well enough to drive the
harness end to end without an external host. It is an emulation of the host
call boundary, not a model of any production host:

    - Object table: every bytes/string/symbol/address/vec/map object and every
      non-inline value lives in a slot; Handles and RawVals point at slots.
    - Linear memory: LINEAR_MEMORY_SIZE zeroed bytes shared by the
      *_linear_memory syscalls.
    - Contract data: key -> (value, storage type, live-until ledger).
    - Uploaded wasm by sha256 hash, deployed contracts by address.
    - Ledger info, emitted events, diagnostic logs.
    - A seeded PRNG.

Every rejection is a HostError. Any other exception escaping a handler is a
sandbox bug and surfaces as an Aborted outcome.

Python 3.13+.
"""

from __future__ import annotations

import hashlib
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hostfuzz.constants import (
    ADDRESS_KEY_LEN,
    LINEAR_MEMORY_SIZE,
    MAX_OBJECT_SIZE,
    MAX_SYMBOL_LEN,
    SYMBOL_ALPHABET,
)
from hostfuzz.enums import AddressKind, HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Address, MapEntries, Val, val_sort_key
from hostfuzz.sandbox.budget import Budget, CostType
from hostfuzz.sandbox.registry import SYSCALLS

if TYPE_CHECKING:
    from hostfuzz.adapter import AdaptedInstruction

__all__ = [
    "ContractEvent",
    "LedgerInfo",
    "SandboxHost",
    "StorageEntry",
    "VOID",
    "check_index",
    "check_length",
    "normalize_entries",
]

logger = logging.getLogger(__name__)

# Values whose payload fits in the RawVal body; everything else is an object.
_INLINE_TAGS = frozenset({ValTag.VOID, ValTag.BOOL, ValTag.ERROR, ValTag.U32, ValTag.I32})
_U32_MASK = (1 << 32) - 1
_SYMBOL_BYTES = frozenset(SYMBOL_ALPHABET.encode("ascii"))

# Bounded diagnostic histories; the host outlives many iterations.
_MAX_EVENTS = 1000
_MAX_LOGS = 1000
_MAX_CALL_DEPTH = 16

VOID = Val(ValTag.VOID)


@dataclass(frozen=True, slots=True)
class LedgerInfo:
    """Ledger header visible to contracts.

    Attributes:
        protocol_version: Host protocol version
        sequence: Current ledger sequence number
        timestamp: Close time in seconds since the epoch
        network_id: 32-byte network identifier
        max_entry_ttl: Longest lifetime a storage entry can be extended to
    """

    protocol_version: int = 20
    sequence: int = 1_000
    timestamp: int = 1_700_000_000
    network_id: bytes = hashlib.sha256(b"hostfuzz sandbox network").digest()
    max_entry_ttl: int = 3_110_400


@dataclass(slots=True)
class StorageEntry:
    """One contract data entry.

    Attributes:
        value: Stored value
        storage_type: 0 temporary, 1 persistent, 2 instance
        live_until: Last ledger sequence the entry is live at
    """

    value: Val
    storage_type: int
    live_until: int


@dataclass(frozen=True, slots=True)
class ContractEvent:
    """Event emitted by ContractEvent.

    Attributes:
        contract: Emitting contract
        topics: Event topics
        data: Event payload
    """

    contract: Address
    topics: tuple[Val, ...]
    data: Val


def normalize_entries(entries: MapEntries) -> MapEntries:
    """Sort map entries by key and keep the last value of duplicate keys."""
    latest: dict[Val, Val] = {}
    for key, value in entries:
        latest[key] = value
    return tuple(sorted(latest.items(), key=lambda kv: val_sort_key(kv[0])))


def _sandbox_contract() -> Address:
    return Address(AddressKind.CONTRACT, hashlib.sha256(b"hostfuzz sandbox contract").digest())


@dataclass(slots=True)
class _State:
    """Mutable host state, kept apart from the call surface."""

    objects: list[Val] = field(default_factory=list)
    memory: bytearray = field(default_factory=lambda: bytearray(LINEAR_MEMORY_SIZE))
    storage: dict[Val, StorageEntry] = field(default_factory=dict)
    wasm: dict[bytes, bytes] = field(default_factory=dict)
    contracts: dict[Address, bytes] = field(default_factory=dict)
    authorized: set[Address] = field(default_factory=set)
    call_stack: list[Address] = field(default_factory=list)
    events: deque[ContractEvent] = field(default_factory=lambda: deque(maxlen=_MAX_EVENTS))
    logs: deque[tuple[bytes, tuple[Val, ...]]] = field(
        default_factory=lambda: deque(maxlen=_MAX_LOGS),
    )


def _fresh_state() -> _State:
    state = _State()
    state.call_stack.append(_sandbox_contract())
    state.contracts[_sandbox_contract()] = b""
    return state


class SandboxHost:
    """Reference implementation of the HostEnvironment protocol.

    Example:
        >>> from hostfuzz.adapter import adapt
        >>> from hostfuzz.catalog import decode_instruction, selector_bytes
        >>> from hostfuzz.catalog import operation_for_syscall
        >>> host = SandboxHost()
        >>> op = operation_for_syscall("syscalls::buf::bytes_new")
        >>> instruction = adapt(decode_instruction(selector_bytes(op)), host)
        >>> host.bytes_of(host.try_run(instruction))
        b''
    """

    __slots__ = ("_budget", "_prng", "_seed", "_state", "ledger")

    def __init__(
        self,
        *,
        seed: int = 0,
        budget: Budget | None = None,
        ledger: LedgerInfo | None = None,
    ) -> None:
        """Initialize an empty host.

        Args:
            seed: Initial PRNG seed
            budget: Cost meter (defaults to an unlimited Budget)
            ledger: Ledger header (defaults to LedgerInfo())
        """
        self._budget = budget or Budget()
        self._seed = seed
        self._prng = random.Random(seed)
        self._state = _fresh_state()
        self.ledger = ledger or LedgerInfo()

    # ------------------------------------------------------------------
    # HostEnvironment
    # ------------------------------------------------------------------

    @property
    def budget(self) -> Budget:
        """Cost meter of this host."""
        return self._budget

    def reset(self) -> None:
        """Return to the state of a freshly constructed host.

        Objects, storage, contracts, authorizations, linear memory, events and
        frames are dropped and the PRNG is re-seeded. The cost meter and the
        ledger header are kept. Handles issued before the reset no longer
        resolve to their old objects.
        """
        self._prng.seed(self._seed)
        self._state = _fresh_state()
        logger.debug("Sandbox reset (seed %d)", self._seed)

    def try_run(self, instruction: AdaptedInstruction) -> object:
        """Dispatch one adapted instruction to its syscall handler.

        Raises:
            HostError: If the host rejects the operation
        """
        op = instruction.operation
        if len(instruction.args) != op.arity:
            msg = f"{op.syscall} takes {op.arity} argument(s), got {len(instruction.args)}"
            raise HostError(HostErrorType.CONTEXT, HostErrorCode.INVALID_INPUT, msg)
        try:
            handler = SYSCALLS.lookup(op.syscall)
        except KeyError:
            msg = f"no handler for {op.syscall}"
            raise HostError(HostErrorType.CONTEXT, HostErrorCode.UNSUPPORTED, msg) from None
        self._budget.charge(CostType.INVOKE_HOST_FUNCTION)
        return handler(self, *instruction.args)

    # ------------------------------------------------------------------
    # HostContext: handle factory
    # ------------------------------------------------------------------

    def bytes_new(self, data: bytes) -> Handle:
        return self.new_object(Val(ValTag.BYTES, data))

    def string_new(self, text: str) -> Handle:
        return self.new_object(Val(ValTag.STRING, text))

    def symbol_new(self, name: str) -> Handle:
        return self.new_object(Val(ValTag.SYMBOL, name))

    def address_new(self, address: Address) -> Handle:
        return self.new_object(Val(ValTag.ADDRESS, address))

    def vec_new(self, items: tuple[Val, ...]) -> Handle:
        return self.new_object(Val(ValTag.VEC, items))

    def map_new(self, entries: MapEntries) -> Handle:
        return self.new_object(Val(ValTag.MAP, normalize_entries(entries)))

    def val_to_raw(self, val: Val) -> RawVal:
        """Inline small values, store the rest in the object table."""
        match val.tag:
            case ValTag.VOID:
                return RawVal.from_parts(val.tag, 0)
            case ValTag.BOOL:
                return RawVal.from_parts(val.tag, 1 if val.value else 0)
            case ValTag.ERROR | ValTag.U32 | ValTag.I32:
                return RawVal.from_parts(val.tag, val.value & _U32_MASK)  # type: ignore[operator]
            case _:
                return RawVal.from_parts(val.tag, self.new_object(val).slot)

    # ------------------------------------------------------------------
    # Object table
    # ------------------------------------------------------------------

    @property
    def object_count(self) -> int:
        """Objects allocated over the lifetime of this host."""
        return len(self._state.objects)

    def new_object(self, val: Val) -> Handle:
        """Store val in a fresh slot and return its handle.

        Raises:
            HostError: If the object exceeds MAX_OBJECT_SIZE
        """
        size = _object_size(val)
        if size > MAX_OBJECT_SIZE:
            msg = f"{val.tag} object of size {size} exceeds {MAX_OBJECT_SIZE}"
            raise HostError(HostErrorType.OBJECT, HostErrorCode.EXCEEDED_LIMIT, msg)
        self._budget.charge(CostType.HOST_MEM_ALLOC, size)
        self._state.objects.append(val)
        return Handle(val.tag, len(self._state.objects) - 1, self)

    def void(self) -> RawVal:
        """Raw void value."""
        return self.val_to_raw(VOID)

    def _resolve(self, handle: object, tag: ValTag) -> Val:
        if not isinstance(handle, Handle):
            msg = f"expected {tag} handle, got {type(handle).__name__}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
        if handle.owner is not self:
            msg = f"{handle!r} belongs to another host"
            raise HostError(HostErrorType.OBJECT, HostErrorCode.INVALID_INPUT, msg)
        val = self._slot(handle.slot)
        if val.tag is not tag:
            msg = f"expected {tag} object, found {val.tag}"
            raise HostError(HostErrorType.OBJECT, HostErrorCode.UNEXPECTED_TYPE, msg)
        self._budget.charge(CostType.VISIT_OBJECT)
        return val

    def _slot(self, slot: int) -> Val:
        if slot >= len(self._state.objects):
            msg = f"no object in slot {slot}"
            raise HostError(HostErrorType.OBJECT, HostErrorCode.MISSING_VALUE, msg)
        return self._state.objects[slot]

    def bytes_of(self, handle: object) -> bytes:
        return self._resolve(handle, ValTag.BYTES).value  # type: ignore[return-value]

    def string_of(self, handle: object) -> str:
        return self._resolve(handle, ValTag.STRING).value  # type: ignore[return-value]

    def symbol_of(self, handle: object) -> str:
        return self._resolve(handle, ValTag.SYMBOL).value  # type: ignore[return-value]

    def address_of(self, handle: object) -> Address:
        return self._resolve(handle, ValTag.ADDRESS).value  # type: ignore[return-value]

    def vec_of(self, handle: object) -> tuple[Val, ...]:
        return self._resolve(handle, ValTag.VEC).value  # type: ignore[return-value]

    def map_of(self, handle: object) -> MapEntries:
        return self._resolve(handle, ValTag.MAP).value  # type: ignore[return-value]

    def val_of(self, raw: object) -> Val:
        """Interpret a raw payload.

        Raises:
            HostError: If the tag is unknown, the inline body is malformed,
                or the referenced object is missing or of another type
        """
        if not isinstance(raw, RawVal):
            msg = f"expected raw val, got {type(raw).__name__}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
        tag = raw.tag
        if tag is None:
            msg = f"unknown val tag in {raw!r}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
        body = raw.body
        if tag not in _INLINE_TAGS:
            val = self._slot(body)
            if val.tag is not tag:
                msg = f"{raw!r} tagged {tag} refers to a {val.tag} object"
                raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
            self._budget.charge(CostType.VISIT_OBJECT)
            return val
        limit = {ValTag.VOID: 0, ValTag.BOOL: 1}.get(tag, _U32_MASK)
        if body > limit:
            msg = f"malformed {tag} body in {raw!r}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg)
        match tag:
            case ValTag.VOID:
                return VOID
            case ValTag.BOOL:
                return Val(tag, body == 1)
            case ValTag.I32:
                return Val(tag, body - (1 << 32) if body >= 1 << 31 else body)
            case _:
                return Val(tag, body)

    # ------------------------------------------------------------------
    # Linear memory
    # ------------------------------------------------------------------

    def _check_range(self, pos: int, length: int) -> None:
        if pos + length > LINEAR_MEMORY_SIZE:
            msg = f"linear memory access [{pos}, {pos + length}) beyond {LINEAR_MEMORY_SIZE}"
            raise HostError(HostErrorType.WASM_VM, HostErrorCode.INDEX_BOUNDS, msg)

    def memory_read(self, pos: int, length: int) -> bytes:
        """Copy length bytes out of linear memory."""
        self._check_range(pos, length)
        self._budget.charge(CostType.HOST_MEM_CPY, length)
        return bytes(self._state.memory[pos : pos + length])

    def memory_write(self, pos: int, data: bytes) -> None:
        """Copy data into linear memory at pos."""
        self._check_range(pos, len(data))
        self._budget.charge(CostType.HOST_MEM_CPY, len(data))
        self._state.memory[pos : pos + len(data)] = data

    def read_symbol_slices(self, pos: int, count: int) -> list[str]:
        """Read count (u32 ptr, u32 len) slices at pos and decode them as symbols."""
        table = self.memory_read(pos, count * 8)
        names: list[str] = []
        for i in range(count):
            ptr = int.from_bytes(table[i * 8 : i * 8 + 4], "little")
            length = int.from_bytes(table[i * 8 + 4 : i * 8 + 8], "little")
            names.append(self.symbol_from_bytes(self.memory_read(ptr, length)))
        return names

    def read_raw_vals(self, pos: int, count: int) -> list[Val]:
        """Read count little-endian u64 payloads at pos and interpret them."""
        table = self.memory_read(pos, count * 8)
        return [
            self.val_of(RawVal(int.from_bytes(table[i * 8 : i * 8 + 8], "little")))
            for i in range(count)
        ]

    def write_raw_vals(self, pos: int, vals: tuple[Val, ...]) -> None:
        """Write the raw payload of each val at pos as little-endian u64."""
        self._check_range(pos, len(vals) * 8)
        data = b"".join(self.val_to_raw(v).payload.to_bytes(8, "little") for v in vals)
        self.memory_write(pos, data)

    @staticmethod
    def symbol_from_bytes(data: bytes) -> str:
        """Validate symbol characters and length.

        Raises:
            HostError: If data is too long or holds a non-symbol character
        """
        if len(data) > MAX_SYMBOL_LEN:
            msg = f"symbol of {len(data)} characters exceeds {MAX_SYMBOL_LEN}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.EXCEEDED_LIMIT, msg)
        if any(b not in _SYMBOL_BYTES for b in data):
            msg = f"invalid symbol characters: {data!r}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg)
        return data.decode("ascii")

    # ------------------------------------------------------------------
    # Contracts, auth, storage
    # ------------------------------------------------------------------

    @property
    def current_contract(self) -> Address:
        """Address of the executing contract."""
        return self._state.call_stack[-1]

    @property
    def call_stack(self) -> tuple[Address, ...]:
        """Contracts on the call stack, outermost first."""
        return tuple(self._state.call_stack)

    @property
    def events(self) -> tuple[ContractEvent, ...]:
        """Most recent emitted events."""
        return tuple(self._state.events)

    @property
    def logs(self) -> tuple[tuple[bytes, tuple[Val, ...]], ...]:
        """Most recent diagnostic log entries."""
        return tuple(self._state.logs)

    def emit_event(self, topics: tuple[Val, ...], data: Val) -> None:
        self._state.events.append(ContractEvent(self.current_contract, topics, data))

    def emit_log(self, message: bytes, vals: tuple[Val, ...]) -> None:
        logger.debug("contract log: %r %r", message, vals)
        self._state.logs.append((message, vals))

    def authorize(self, address: Address) -> None:
        self._state.authorized.add(address)

    def require_auth(self, address: Address) -> None:
        """Pass if address is the current contract or was authorized.

        Raises:
            HostError: If address has not authorized the invocation
        """
        if address != self.current_contract and address not in self._state.authorized:
            msg = f"{address!r} has not authorized this invocation"
            raise HostError(HostErrorType.AUTH, HostErrorCode.INVALID_ACTION, msg)

    def wasm_code(self, wasm_hash: bytes) -> bytes:
        """Uploaded wasm by hash.

        Raises:
            HostError: If no wasm with that hash was uploaded
        """
        check_length(wasm_hash, ADDRESS_KEY_LEN, "wasm hash")
        try:
            return self._state.wasm[wasm_hash]
        except KeyError:
            msg = f"no wasm uploaded with hash {wasm_hash.hex()}"
            raise HostError(HostErrorType.STORAGE, HostErrorCode.MISSING_VALUE, msg) from None

    def store_wasm(self, code: bytes) -> bytes:
        """Store code and return its sha256 hash."""
        self._budget.charge(CostType.COMPUTE_SHA256_HASH, len(code))
        digest = hashlib.sha256(code).digest()
        self._state.wasm[digest] = code
        return digest

    def deploy(self, address: Address, wasm_hash: bytes) -> None:
        """Bind a new contract address to uploaded wasm.

        Raises:
            HostError: If a contract already exists at address
        """
        if address in self._state.contracts:
            msg = f"contract {address!r} already exists"
            raise HostError(HostErrorType.STORAGE, HostErrorCode.EXISTING_VALUE, msg)
        self._state.contracts[address] = wasm_hash

    def contract_wasm(self, address: Address) -> bytes:
        """Wasm hash of a deployed contract.

        Raises:
            HostError: If no contract is deployed at address
        """
        try:
            return self._state.contracts[address]
        except KeyError:
            msg = f"no contract deployed at {address!r}"
            raise HostError(HostErrorType.STORAGE, HostErrorCode.MISSING_VALUE, msg) from None

    def set_contract_wasm(self, address: Address, wasm_hash: bytes) -> None:
        self._state.contracts[address] = wasm_hash

    def push_frame(self, address: Address) -> None:
        """Enter a contract call.

        Raises:
            HostError: If the call stack is already at its maximum depth
        """
        if len(self._state.call_stack) >= _MAX_CALL_DEPTH:
            msg = f"call depth exceeds {_MAX_CALL_DEPTH}"
            raise HostError(HostErrorType.CONTEXT, HostErrorCode.EXCEEDED_LIMIT, msg)
        self._state.call_stack.append(address)

    def pop_frame(self) -> None:
        self._state.call_stack.pop()

    def storage_entry(self, key: Val) -> StorageEntry:
        """Live entry under key.

        Raises:
            HostError: If there is no entry under key
        """
        self._budget.charge(CostType.STORAGE_ACCESS)
        try:
            return self._state.storage[key]
        except KeyError:
            msg = f"no contract data under {key!r}"
            raise HostError(HostErrorType.STORAGE, HostErrorCode.MISSING_VALUE, msg) from None

    def has_storage(self, key: Val) -> bool:
        self._budget.charge(CostType.STORAGE_ACCESS)
        return key in self._state.storage

    def put_storage(self, key: Val, value: Val, storage_type: int) -> None:
        self._budget.charge(CostType.STORAGE_ACCESS)
        live_until = self.ledger.sequence + 1
        existing = self._state.storage.get(key)
        if existing is not None:
            live_until = existing.live_until
        self._state.storage[key] = StorageEntry(value, storage_type, live_until)

    def del_storage(self, key: Val) -> None:
        self.storage_entry(key)
        del self._state.storage[key]

    def prng(self) -> random.Random:
        """PRNG of this host."""
        return self._prng


def check_length(data: bytes, expected: int, what: str) -> None:
    """Raise HostError(value, unexpected_size) unless len(data) == expected."""
    if len(data) != expected:
        msg = f"{what} must be {expected} bytes, got {len(data)}"
        raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_SIZE, msg)


def check_index(index: int, length: int, *, inclusive: bool = False) -> None:
    """Raise HostError(object, index_bounds) unless index is in range.

    With inclusive=True, index == length is allowed (insertion points).
    """
    upper = length if inclusive else length - 1
    if index > upper:
        msg = f"index {index} out of bounds for length {length}"
        raise HostError(HostErrorType.OBJECT, HostErrorCode.INDEX_BOUNDS, msg)


def _object_size(val: Val) -> int:
    match val.tag:
        case ValTag.BYTES:
            return len(val.value)  # type: ignore[arg-type]
        case ValTag.STRING | ValTag.SYMBOL:
            return len(val.value.encode("utf-8"))  # type: ignore[attr-defined]
        case ValTag.VEC:
            return 8 * len(val.value)  # type: ignore[arg-type]
        case ValTag.MAP:
            return 16 * len(val.value)  # type: ignore[arg-type]
        case ValTag.ADDRESS | ValTag.U256 | ValTag.I256:
            return 32
        case ValTag.U128 | ValTag.I128:
            return 16
        case _:
            return 8


