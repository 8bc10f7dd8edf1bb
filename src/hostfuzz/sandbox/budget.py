"""Cost meter of the reference sandbox.

Each chargeable host action belongs to a CostType with a linear cost model:

    cpu = cpu_const + cpu_per_unit * units
    mem = mem_const + mem_per_unit * units

where units is the size of the input (bytes copied, elements visited, ...).
Limits are optional. Charging past a limit raises HostError(budget,
exceeded_limit) and leaves the counters at their pre-charge values.

Python 3.13+. Zero external dependencies.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

from hostfuzz.enums import HostErrorCode, HostErrorType
from hostfuzz.errors import HostError

__all__ = [
    "DEFAULT_COST_MODELS",
    "Budget",
    "CostModel",
    "CostType",
]


class CostType(StrEnum):
    """Chargeable host action."""

    INVOKE_HOST_FUNCTION = "invoke_host_function"
    VISIT_OBJECT = "visit_object"
    HOST_MEM_ALLOC = "host_mem_alloc"
    HOST_MEM_CPY = "host_mem_cpy"
    HOST_MEM_CMP = "host_mem_cmp"
    VALUE_SER = "value_ser"
    VALUE_DESER = "value_deser"
    COMPUTE_SHA256_HASH = "compute_sha256_hash"
    COMPUTE_KECCAK256_HASH = "compute_keccak256_hash"
    RECOVER_ECDSA_SECP256K1_KEY = "recover_ecdsa_secp256k1_key"
    VERIFY_ED25519_SIG = "verify_ed25519_sig"
    INT256_ARITH = "int256_arith"
    STORAGE_ACCESS = "storage_access"
    PRNG_GENERATE = "prng_generate"


@dataclass(frozen=True, slots=True)
class CostModel:
    """Linear cost of one CostType.

    Attributes:
        cpu_const: CPU units per charge
        cpu_per_unit: CPU units per input unit
        mem_const: Memory bytes per charge
        mem_per_unit: Memory bytes per input unit
    """

    cpu_const: int
    cpu_per_unit: int = 0
    mem_const: int = 0
    mem_per_unit: int = 0

    def __post_init__(self) -> None:
        """Validate coefficients.

        Raises:
            ValueError: If any coefficient is negative
        """
        if min(self.cpu_const, self.cpu_per_unit, self.mem_const, self.mem_per_unit) < 0:
            msg = "cost model coefficients must be non-negative"
            raise ValueError(msg)

    def cost(self, units: int) -> tuple[int, int]:
        """(cpu, mem) charged for units of input."""
        return (
            self.cpu_const + self.cpu_per_unit * units,
            self.mem_const + self.mem_per_unit * units,
        )


DEFAULT_COST_MODELS: Mapping[CostType, CostModel] = MappingProxyType({
    CostType.INVOKE_HOST_FUNCTION: CostModel(cpu_const=500, mem_const=16),
    CostType.VISIT_OBJECT: CostModel(cpu_const=60),
    CostType.HOST_MEM_ALLOC: CostModel(cpu_const=430, cpu_per_unit=1, mem_const=16, mem_per_unit=1),
    CostType.HOST_MEM_CPY: CostModel(cpu_const=40, cpu_per_unit=1),
    CostType.HOST_MEM_CMP: CostModel(cpu_const=20, cpu_per_unit=1),
    CostType.VALUE_SER: CostModel(cpu_const=600, cpu_per_unit=3, mem_const=20, mem_per_unit=3),
    CostType.VALUE_DESER: CostModel(cpu_const=1000, cpu_per_unit=3, mem_const=16, mem_per_unit=3),
    CostType.COMPUTE_SHA256_HASH: CostModel(cpu_const=3700, cpu_per_unit=7),
    CostType.COMPUTE_KECCAK256_HASH: CostModel(cpu_const=3800, cpu_per_unit=7, mem_const=40),
    CostType.RECOVER_ECDSA_SECP256K1_KEY: CostModel(cpu_const=2_300_000, mem_const=200),
    CostType.VERIFY_ED25519_SIG: CostModel(cpu_const=377_000, cpu_per_unit=4),
    CostType.INT256_ARITH: CostModel(cpu_const=1200, mem_const=32),
    CostType.STORAGE_ACCESS: CostModel(cpu_const=2000, mem_const=64),
    CostType.PRNG_GENERATE: CostModel(cpu_const=1100, cpu_per_unit=2),
})


class Budget:
    """CPU and memory cost meter with optional limits.

    Implements the CostMeter protocol consumed by the run loop.

    Example:
        >>> budget = Budget()
        >>> budget.charge(CostType.HOST_MEM_CPY, 10)
        >>> budget.cpu_instruction_cost()
        50
        >>> budget.reset_unlimited()
        >>> budget.cpu_instruction_cost()
        0
    """

    __slots__ = ("_counts", "_cpu", "_cpu_limit", "_mem", "_mem_limit", "_models")

    def __init__(
        self,
        *,
        cpu_limit: int | None = None,
        mem_limit: int | None = None,
        models: Mapping[CostType, CostModel] | None = None,
    ) -> None:
        """Initialize meter with zeroed counters.

        Args:
            cpu_limit: CPU units allowed before charging fails, None for no limit
            mem_limit: Memory bytes allowed before charging fails, None for no limit
            models: Cost model per type (defaults to DEFAULT_COST_MODELS)
        """
        self._models = models or DEFAULT_COST_MODELS
        self._cpu_limit = cpu_limit
        self._mem_limit = mem_limit
        self._cpu = 0
        self._mem = 0
        self._counts: dict[CostType, int] = {}

    def reset_unlimited(self) -> None:
        """Zero both counters and lift both limits."""
        self.reset_limits(None, None)

    def reset_limits(self, cpu_limit: int | None, mem_limit: int | None) -> None:
        """Zero both counters and install new limits."""
        self._cpu_limit = cpu_limit
        self._mem_limit = mem_limit
        self._cpu = 0
        self._mem = 0
        self._counts.clear()

    def charge(self, cost_type: CostType, units: int = 0) -> None:
        """Charge one action of cost_type on units of input.

        Raises:
            HostError: If a limit would be exceeded
        """
        cpu, mem = self._models[cost_type].cost(units)
        if self._cpu_limit is not None and self._cpu + cpu > self._cpu_limit:
            msg = f"cpu limit {self._cpu_limit} exceeded by {cost_type}"
            raise HostError(HostErrorType.BUDGET, HostErrorCode.EXCEEDED_LIMIT, msg)
        if self._mem_limit is not None and self._mem + mem > self._mem_limit:
            msg = f"memory limit {self._mem_limit} exceeded by {cost_type}"
            raise HostError(HostErrorType.BUDGET, HostErrorCode.EXCEEDED_LIMIT, msg)
        self._cpu += cpu
        self._mem += mem
        self._counts[cost_type] = self._counts.get(cost_type, 0) + 1

    def cpu_instruction_cost(self) -> int:
        """CPU units charged since the last reset."""
        return self._cpu

    def memory_bytes_cost(self) -> int:
        """Memory bytes charged since the last reset."""
        return self._mem

    def charges(self, cost_type: CostType) -> int:
        """Number of charges of cost_type since the last reset."""
        return self._counts.get(cost_type, 0)
