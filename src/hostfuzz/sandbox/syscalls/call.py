"""Cross-contract call syscalls.

The sandbox has no wasm VM. Every deployed contract exposes the same two
built-in functions:

    echo  returns its argument vec
    len   returns the number of arguments as u32

Any other function name is missing. TryCall turns a callee failure into an
error value instead of propagating it.
"""

from __future__ import annotations

from hostfuzz.enums import HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Val
from hostfuzz.sandbox.host import SandboxHost
from hostfuzz.sandbox.registry import SYSCALLS

_ERROR_CODES = tuple(HostErrorCode)


def _invoke(host: SandboxHost, contract: Handle, func: Handle, args: Handle) -> RawVal:
    target = host.address_of(contract)
    name = host.symbol_of(func)
    items = host.vec_of(args)
    host.contract_wasm(target)
    host.push_frame(target)
    try:
        match name:
            case "echo":
                return host.val_to_raw(Val(ValTag.VEC, items))
            case "len":
                return host.val_to_raw(Val(ValTag.U32, len(items)))
            case _:
                msg = f"contract {target!r} has no function {name!r}"
                raise HostError(HostErrorType.WASM_VM, HostErrorCode.MISSING_VALUE, msg)
    finally:
        host.pop_frame()


@SYSCALLS.register("syscalls::call::call")
def call(host: SandboxHost, contract: Handle, func: Handle, args: Handle) -> RawVal:
    return _invoke(host, contract, func, args)


@SYSCALLS.register("syscalls::call::try_call")
def try_call(host: SandboxHost, contract: Handle, func: Handle, args: Handle) -> RawVal:
    """Like call, but a HostError becomes an error value carrying its code index."""
    try:
        return _invoke(host, contract, func, args)
    except HostError as error:
        if error.error_type is HostErrorType.BUDGET:
            raise
        return host.val_to_raw(Val(ValTag.ERROR, _ERROR_CODES.index(error.code)))
