"""Syscall handlers of the reference sandbox, one module per category.

Importing this package registers every handler in SYSCALLS.
"""

from hostfuzz.sandbox.registry import SYSCALLS
from hostfuzz.sandbox.syscalls import (
    address,
    buf,
    call,
    context,
    crypto,
    integer,
    ledger,
    maps,
    prng,
    testing,
    vectors,
)

__all__ = [
    "SYSCALLS",
    "address",
    "buf",
    "call",
    "context",
    "crypto",
    "integer",
    "ledger",
    "maps",
    "prng",
    "testing",
    "vectors",
]
