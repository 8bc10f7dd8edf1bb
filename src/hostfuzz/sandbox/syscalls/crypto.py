"""Crypto syscalls.

SHA-256 comes from hashlib, Keccak-256 from pycryptodome, Ed25519
verification from the cryptography package and secp256k1 public key recovery
from coincurve. Size and range checks run before anything is charged.
"""

from __future__ import annotations

import hashlib

from Crypto.Hash import keccak
from coincurve import PublicKey
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from hostfuzz.enums import HostErrorCode, HostErrorType
from hostfuzz.errors import HostError
from hostfuzz.host import Handle, RawVal
from hostfuzz.sandbox.budget import CostType
from hostfuzz.sandbox.host import SandboxHost
from hostfuzz.sandbox.registry import SYSCALLS

_DIGEST_LEN = 32
_ED25519_KEY_LEN = 32
_SIGNATURE_LEN = 64
_MAX_RECOVERY_ID = 3


def _require_size(data: bytes, expected: int, what: str) -> None:
    if len(data) != expected:
        msg = f"{what} must be {expected} bytes, got {len(data)}"
        raise HostError(HostErrorType.CRYPTO, HostErrorCode.INVALID_INPUT, msg)


@SYSCALLS.register("syscalls::crypto::compute_hash_keccak256")
def compute_hash_keccak256(host: SandboxHost, data: Handle) -> Handle:
    payload = host.bytes_of(data)
    host.budget.charge(CostType.COMPUTE_KECCAK256_HASH, len(payload))
    return host.bytes_new(keccak.new(digest_bits=256, data=payload).digest())


@SYSCALLS.register("syscalls::crypto::compute_hash_sha256")
def compute_hash_sha256(host: SandboxHost, data: Handle) -> Handle:
    payload = host.bytes_of(data)
    host.budget.charge(CostType.COMPUTE_SHA256_HASH, len(payload))
    return host.bytes_new(hashlib.sha256(payload).digest())


@SYSCALLS.register("syscalls::crypto::recover_key_ecdsa_secp256k1")
def recover_key_ecdsa_secp256k1(
    host: SandboxHost, msg_digest: Handle, signature: Handle, recovery_id: int
) -> Handle:
    """Recover the uncompressed SEC1 public key (65 bytes) that signed msg_digest."""
    digest = host.bytes_of(msg_digest)
    sig = host.bytes_of(signature)
    _require_size(digest, _DIGEST_LEN, "message digest")
    _require_size(sig, _SIGNATURE_LEN, "signature")
    if recovery_id > _MAX_RECOVERY_ID:
        msg = f"recovery id {recovery_id} is not in 0..{_MAX_RECOVERY_ID}"
        raise HostError(HostErrorType.CRYPTO, HostErrorCode.INVALID_INPUT, msg)
    host.budget.charge(CostType.RECOVER_ECDSA_SECP256K1_KEY)
    try:
        key = PublicKey.from_signature_and_message(
            sig + bytes([recovery_id]), digest, hasher=None
        )
    except ValueError as exc:
        msg = f"cannot recover public key: {exc}"
        raise HostError(HostErrorType.CRYPTO, HostErrorCode.INVALID_INPUT, msg) from exc
    return host.bytes_new(key.format(compressed=False))


@SYSCALLS.register("syscalls::crypto::verify_sig_ed25519")
def verify_sig_ed25519(
    host: SandboxHost, public_key: Handle, message: Handle, signature: Handle
) -> RawVal:
    key = host.bytes_of(public_key)
    payload = host.bytes_of(message)
    sig = host.bytes_of(signature)
    _require_size(key, _ED25519_KEY_LEN, "public key")
    _require_size(sig, _SIGNATURE_LEN, "signature")
    host.budget.charge(CostType.VERIFY_ED25519_SIG, len(payload))
    try:
        Ed25519PublicKey.from_public_bytes(key).verify(sig, payload)
    except ValueError as exc:
        msg = f"invalid public key: {exc}"
        raise HostError(HostErrorType.CRYPTO, HostErrorCode.INVALID_INPUT, msg) from exc
    except InvalidSignature as exc:
        msg = "signature verification failed"
        raise HostError(HostErrorType.CRYPTO, HostErrorCode.INVALID_INPUT, msg) from exc
    return host.void()
