"""Reference sandbox host.

An in-process stand-in for the external host environment: object table,
linear memory, contract storage, a cost meter, and a handler for every
catalog syscall.

Public API:
    SandboxHost - HostEnvironment implementation
    Budget - CostMeter implementation with per-cost-type linear models
    CostType, CostModel - Cost model building blocks
    LedgerInfo - Ledger header visible to syscalls
    SYSCALLS - Syscall name to handler registry

Python 3.13+.
"""

from hostfuzz.sandbox.budget import Budget, CostModel, CostType
from hostfuzz.sandbox.host import LedgerInfo, SandboxHost

# Registers every handler; must follow the host import.
from hostfuzz.sandbox.syscalls import SYSCALLS

__all__ = [
    "SYSCALLS",
    "Budget",
    "CostModel",
    "CostType",
    "LedgerInfo",
    "SandboxHost",
]
