"""Ledger syscalls: contract data storage, wasm upload and contract deployment.

Contract ids are derived with sha256 over a domain tag and the inputs, so
GetContractId / GetAssetContractId predict what CreateContract /
CreateAssetContract will deploy.
"""

from __future__ import annotations

import hashlib

from hostfuzz.constants import ADDRESS_KEY_LEN
from hostfuzz.enums import AddressKind, HostErrorCode, HostErrorType, ValTag
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Address
from hostfuzz.sandbox.host import SandboxHost, check_length
from hostfuzz.sandbox.registry import SYSCALLS

_WASM_MAGIC = b"\x00asm"
_WASM_HEADER_LEN = 8
# Temporary, persistent, instance.
_STORAGE_TYPES = range(3)


def _contract_address(deployer: Address, salt: bytes) -> Address:
    digest = hashlib.sha256(b"contract" + deployer.key + salt).digest()
    return Address(AddressKind.CONTRACT, digest)


def _asset_address(asset: bytes) -> Address:
    return Address(AddressKind.CONTRACT, hashlib.sha256(b"asset" + asset).digest())


def _asset(host: SandboxHost, b: Handle) -> bytes:
    data = host.bytes_of(b)
    if not data:
        msg = "serialized asset is empty"
        raise HostError(HostErrorType.VALUE, HostErrorCode.INVALID_INPUT, msg)
    return data


# --- Contract data ---


@SYSCALLS.register("syscalls::ledger::bump_contract_data")
def bump_contract_data(host: SandboxHost, k: RawVal, min_ledgers_to_live: int) -> RawVal:
    """Extend the entry's lifetime to at least min_ledgers_to_live from now."""
    entry = host.storage_entry(host.val_of(k))
    target = host.ledger.sequence + min_ledgers_to_live
    if min_ledgers_to_live > host.ledger.max_entry_ttl:
        msg = f"lifetime {min_ledgers_to_live} exceeds max {host.ledger.max_entry_ttl}"
        raise HostError(HostErrorType.STORAGE, HostErrorCode.EXCEEDED_LIMIT, msg)
    entry.live_until = max(entry.live_until, target)
    return host.void()


@SYSCALLS.register("syscalls::ledger::del_contract_data")
def del_contract_data(host: SandboxHost, k: RawVal) -> RawVal:
    host.del_storage(host.val_of(k))
    return host.void()


@SYSCALLS.register("syscalls::ledger::get_contract_data")
def get_contract_data(host: SandboxHost, k: RawVal) -> RawVal:
    return host.val_to_raw(host.storage_entry(host.val_of(k)).value)


@SYSCALLS.register("syscalls::ledger::has_contract_data")
def has_contract_data(host: SandboxHost, k: RawVal) -> bool:
    return host.has_storage(host.val_of(k))


@SYSCALLS.register("syscalls::ledger::put_contract_data")
def put_contract_data(host: SandboxHost, k: RawVal, v: RawVal, t: RawVal) -> RawVal:
    """Store v under k. t is a u32 storage type: 0 temporary, 1 persistent, 2 instance."""
    key = host.val_of(k)
    value = host.val_of(v)
    storage_type = host.val_of(t)
    if storage_type.tag is not ValTag.U32 or storage_type.value not in _STORAGE_TYPES:
        msg = f"invalid storage type {storage_type!r}"
        raise HostError(HostErrorType.STORAGE, HostErrorCode.INVALID_INPUT, msg)
    host.put_storage(key, value, storage_type.value)  # type: ignore[arg-type]
    return host.void()


# --- Wasm and contracts ---


@SYSCALLS.register("syscalls::ledger::upload_wasm")
def upload_wasm(host: SandboxHost, wasm: Handle) -> Handle:
    code = host.bytes_of(wasm)
    if len(code) < _WASM_HEADER_LEN or not code.startswith(_WASM_MAGIC):
        msg = "not a wasm module"
        raise HostError(HostErrorType.WASM_VM, HostErrorCode.INVALID_INPUT, msg)
    return host.bytes_new(host.store_wasm(code))


@SYSCALLS.register("syscalls::ledger::update_current_contract_wasm")
def update_current_contract_wasm(host: SandboxHost, hash_: Handle) -> RawVal:
    wasm_hash = host.bytes_of(hash_)
    host.wasm_code(wasm_hash)
    host.set_contract_wasm(host.current_contract, wasm_hash)
    return host.void()


@SYSCALLS.register("syscalls::ledger::create_contract")
def create_contract(host: SandboxHost, deployer: Handle, wasm_hash: Handle, salt: Handle) -> Handle:
    owner = host.address_of(deployer)
    code_hash = host.bytes_of(wasm_hash)
    salt_bytes = host.bytes_of(salt)
    check_length(salt_bytes, ADDRESS_KEY_LEN, "salt")
    host.wasm_code(code_hash)
    host.require_auth(owner)
    address = _contract_address(owner, salt_bytes)
    host.deploy(address, code_hash)
    return host.address_new(address)


@SYSCALLS.register("syscalls::ledger::get_contract_id")
def get_contract_id(host: SandboxHost, deployer: Handle, salt: Handle) -> Handle:
    owner = host.address_of(deployer)
    salt_bytes = host.bytes_of(salt)
    check_length(salt_bytes, ADDRESS_KEY_LEN, "salt")
    return host.address_new(_contract_address(owner, salt_bytes))


@SYSCALLS.register("syscalls::ledger::create_asset_contract")
def create_asset_contract(host: SandboxHost, serialized_asset: Handle) -> Handle:
    address = _asset_address(_asset(host, serialized_asset))
    host.deploy(address, b"")
    return host.address_new(address)


@SYSCALLS.register("syscalls::ledger::get_asset_contract_id")
def get_asset_contract_id(host: SandboxHost, serialized_asset: Handle) -> Handle:
    return host.address_new(_asset_address(_asset(host, serialized_asset)))
