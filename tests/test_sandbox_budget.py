"""Tests for the sandbox cost meter and syscall registry."""

from __future__ import annotations

import pytest

from hostfuzz.catalog import all_operations
from hostfuzz.enums import HostErrorCode, HostErrorType
from hostfuzz.errors import HostError
from hostfuzz.sandbox import SYSCALLS, Budget, CostModel, CostType
from hostfuzz.sandbox.budget import DEFAULT_COST_MODELS
from hostfuzz.sandbox.registry import SyscallRegistry


class TestCostModel:
    """Linear cost models."""

    def test_cost_is_linear(self) -> None:
        """cost() applies constant plus per-unit terms."""
        model = CostModel(cpu_const=10, cpu_per_unit=2, mem_const=1, mem_per_unit=3)
        assert model.cost(0) == (10, 1)
        assert model.cost(5) == (20, 16)

    def test_rejects_negative_coefficients(self) -> None:
        """Coefficients must be non-negative."""
        with pytest.raises(ValueError, match="non-negative"):
            CostModel(cpu_const=-1)

    def test_every_cost_type_has_a_default(self) -> None:
        """DEFAULT_COST_MODELS covers every CostType."""
        assert set(DEFAULT_COST_MODELS) == set(CostType)


class TestBudget:
    """Charging, limits and resets."""

    def test_charges_accumulate(self) -> None:
        """Charges add up on both counters."""
        budget = Budget()
        budget.charge(CostType.HOST_MEM_CPY, 10)
        budget.charge(CostType.HOST_MEM_ALLOC, 4)
        assert budget.cpu_instruction_cost() == 50 + 434
        assert budget.memory_bytes_cost() == 20
        assert budget.charges(CostType.HOST_MEM_CPY) == 1

    def test_reset_unlimited_zeroes(self) -> None:
        """reset_unlimited clears counters and charge counts."""
        budget = Budget(cpu_limit=10_000)
        budget.charge(CostType.VISIT_OBJECT)
        budget.reset_unlimited()
        assert budget.cpu_instruction_cost() == 0
        assert budget.memory_bytes_cost() == 0
        assert budget.charges(CostType.VISIT_OBJECT) == 0
        budget.charge(CostType.VERIFY_ED25519_SIG, 1000)

    def test_cpu_limit(self) -> None:
        """Exceeding the CPU limit fails without charging."""
        budget = Budget(cpu_limit=100)
        budget.charge(CostType.VISIT_OBJECT)
        with pytest.raises(HostError) as exc_info:
            budget.charge(CostType.VISIT_OBJECT)
        assert exc_info.value.error_type is HostErrorType.BUDGET
        assert exc_info.value.code is HostErrorCode.EXCEEDED_LIMIT
        assert budget.cpu_instruction_cost() == 60

    def test_memory_limit(self) -> None:
        """Exceeding the memory limit fails as well."""
        budget = Budget(mem_limit=10)
        with pytest.raises(HostError, match="memory limit"):
            budget.charge(CostType.HOST_MEM_ALLOC, 1)
        assert budget.memory_bytes_cost() == 0

    def test_custom_models(self) -> None:
        """Models can be replaced wholesale."""
        models = dict.fromkeys(CostType, CostModel(cpu_const=1))
        budget = Budget(models=models)
        budget.charge(CostType.PRNG_GENERATE, 1000)
        assert budget.cpu_instruction_cost() == 1


class TestSyscallRegistry:
    """Handler registration."""

    def test_register_and_lookup(self) -> None:
        """Registered handlers are returned unchanged."""
        registry = SyscallRegistry()

        @registry.register("syscalls::test::dummy0")
        def handler(host: object) -> None:
            return None

        assert registry.lookup("syscalls::test::dummy0") is handler
        assert list(registry) == ["syscalls::test::dummy0"]
        assert len(registry) == 1

    def test_duplicate_registration(self) -> None:
        """A syscall can only have one handler."""
        registry = SyscallRegistry()
        registry.register("syscalls::test::dummy0")(lambda host: None)
        with pytest.raises(ValueError, match="duplicate"):
            registry.register("syscalls::test::dummy0")(lambda host: None)

    def test_missing_lookup(self) -> None:
        """Unknown syscalls raise KeyError."""
        with pytest.raises(KeyError):
            SyscallRegistry().lookup("syscalls::test::dummy0")

    def test_every_catalog_syscall_has_a_handler(self) -> None:
        """The sandbox implements the whole catalog and nothing else."""
        names = [op.syscall for op in all_operations()]
        assert SYSCALLS.missing(names) == []
        assert set(SYSCALLS) == set(names)
