"""Context syscalls: events, logs, ledger info, call stack, comparison."""

from __future__ import annotations

from typing import NoReturn

from hostfuzz.constants import MAX_EVENT_TOPICS
from hostfuzz.enums import HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Val, val_sort_key
from hostfuzz.sandbox.budget import CostType
from hostfuzz.sandbox.host import SandboxHost
from hostfuzz.sandbox.registry import SYSCALLS


@SYSCALLS.register("syscalls::context::contract_event")
def contract_event(host: SandboxHost, topics: Handle, data: RawVal) -> RawVal:
    items = host.vec_of(topics)
    if len(items) > MAX_EVENT_TOPICS:
        msg = f"{len(items)} topics exceed the limit of {MAX_EVENT_TOPICS}"
        raise HostError(HostErrorType.VALUE, HostErrorCode.EXCEEDED_LIMIT, msg)
    for topic in items:
        if topic.tag.is_container:
            msg = f"event topics cannot be {topic.tag}"
            raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
    host.emit_event(items, host.val_of(data))
    return host.void()


@SYSCALLS.register("syscalls::context::fail_with_error")
def fail_with_error(host: SandboxHost, error: RawVal) -> NoReturn:
    """Always fails: with the contract error carried by error, if it is one."""
    val = host.val_of(error)
    if val.tag is not ValTag.ERROR:
        msg = f"fail_with_error needs an error value, got {val.tag}"
        raise HostError(HostErrorType.VALUE, HostErrorCode.UNEXPECTED_TYPE, msg)
    msg = f"contract failed with error code {val.value}"
    raise HostError(HostErrorType.CONTRACT, HostErrorCode.CONTRACT_ERROR, msg)


@SYSCALLS.register("syscalls::context::get_current_call_stack")
def get_current_call_stack(host: SandboxHost) -> Handle:
    return host.vec_new(tuple(Val(ValTag.ADDRESS, a) for a in host.call_stack))


@SYSCALLS.register("syscalls::context::get_current_contract_address")
def get_current_contract_address(host: SandboxHost) -> Handle:
    return host.address_new(host.current_contract)


@SYSCALLS.register("syscalls::context::get_invoking_contract")
def get_invoking_contract(host: SandboxHost) -> Handle:
    stack = host.call_stack
    if len(stack) < 2:
        msg = "current contract was not invoked by another contract"
        raise HostError(HostErrorType.CONTEXT, HostErrorCode.MISSING_VALUE, msg)
    return host.address_new(stack[-2])


@SYSCALLS.register("syscalls::context::get_ledger_network_id")
def get_ledger_network_id(host: SandboxHost) -> Handle:
    return host.bytes_new(host.ledger.network_id)


@SYSCALLS.register("syscalls::context::get_ledger_sequence")
def get_ledger_sequence(host: SandboxHost) -> int:
    return host.ledger.sequence


@SYSCALLS.register("syscalls::context::get_ledger_timestamp")
def get_ledger_timestamp(host: SandboxHost) -> RawVal:
    return host.val_to_raw(Val(ValTag.U64, host.ledger.timestamp))


@SYSCALLS.register("syscalls::context::get_ledger_version")
def get_ledger_version(host: SandboxHost) -> int:
    return host.ledger.protocol_version


@SYSCALLS.register("syscalls::context::log_from_linear_memory")
def log_from_linear_memory(
    host: SandboxHost, msg_pos: int, msg_len: int, vals_pos: int, vals_len: int
) -> RawVal:
    """Record a diagnostic message and the raw vals stored next to it."""
    message = host.memory_read(msg_pos, msg_len)
    vals = tuple(host.read_raw_vals(vals_pos, vals_len))
    host.emit_log(message, vals)
    return host.void()


@SYSCALLS.register("syscalls::context::obj_cmp")
def obj_cmp(host: SandboxHost, a: RawVal, b: RawVal) -> int:
    """-1, 0 or 1 by the host's total order over values."""
    left = val_sort_key(host.val_of(a))
    right = val_sort_key(host.val_of(b))
    host.budget.charge(CostType.HOST_MEM_CMP)
    return (left > right) - (left < right)
