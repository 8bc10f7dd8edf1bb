"""Address syscalls: conversions between keys and addresses, authorization."""

from __future__ import annotations

from hostfuzz.constants import ADDRESS_KEY_LEN
from hostfuzz.enums import AddressKind, HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Address
from hostfuzz.sandbox.host import SandboxHost, check_length
from hostfuzz.sandbox.registry import SYSCALLS


@SYSCALLS.register("syscalls::address::account_public_key_to_address")
def account_public_key_to_address(host: SandboxHost, key: Handle) -> Handle:
    data = host.bytes_of(key)
    check_length(data, ADDRESS_KEY_LEN, "account public key")
    return host.address_new(Address(AddressKind.ACCOUNT, data))


@SYSCALLS.register("syscalls::address::address_to_account_public_key")
def address_to_account_public_key(host: SandboxHost, address: Handle) -> Handle | RawVal:
    """Public key of an account address, void for a contract address."""
    target = host.address_of(address)
    if target.kind is not AddressKind.ACCOUNT:
        return host.void()
    return host.bytes_new(target.key)


@SYSCALLS.register("syscalls::address::address_to_contract_id")
def address_to_contract_id(host: SandboxHost, address: Handle) -> Handle | RawVal:
    """Contract id of a contract address, void for an account address."""
    target = host.address_of(address)
    if target.kind is not AddressKind.CONTRACT:
        return host.void()
    return host.bytes_new(target.key)


@SYSCALLS.register("syscalls::address::authorize_as_curr_contract")
def authorize_as_curr_contract(host: SandboxHost, entries: Handle) -> RawVal:
    """Authorize every address in entries for the rest of the host's life."""
    items = host.vec_of(entries)
    for item in items:
        if item.tag is not ValTag.ADDRESS:
            msg = f"auth entries must be addresses, got {item.tag}"
            raise HostError(HostErrorType.AUTH, HostErrorCode.UNEXPECTED_TYPE, msg)
    for item in items:
        host.authorize(item.value)  # type: ignore[arg-type]
    return host.void()


@SYSCALLS.register("syscalls::address::contract_id_to_address")
def contract_id_to_address(host: SandboxHost, contract_id: Handle) -> Handle:
    data = host.bytes_of(contract_id)
    check_length(data, ADDRESS_KEY_LEN, "contract id")
    return host.address_new(Address(AddressKind.CONTRACT, data))


@SYSCALLS.register("syscalls::address::require_auth")
def require_auth(host: SandboxHost, address: Handle) -> RawVal:
    host.require_auth(host.address_of(address))
    return host.void()


@SYSCALLS.register("syscalls::address::require_auth_for_args")
def require_auth_for_args(host: SandboxHost, address: Handle, args: Handle) -> RawVal:
    target = host.address_of(address)
    host.vec_of(args)
    host.require_auth(target)
    return host.void()
