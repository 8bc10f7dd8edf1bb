"""Tests for hostfuzz.adapter: binding decoded operands to a host context."""

from __future__ import annotations

import pytest
from hypothesis import given

from hostfuzz.adapter import AdaptedInstruction, adapt, adapt_operand
from hostfuzz.catalog import DecodedInstruction, decode_instruction, operation_for_syscall
from hostfuzz.enums import AddressKind, OperandKind, ValTag
from hostfuzz.host import Handle, RawVal
from hostfuzz.operands import Address, MapEntries, Val
from hostfuzz.sandbox import SandboxHost
from tests.strategies import decoded_instructions


class RecordingContext:
    """HostContext that stores every created object in a list."""

    def __init__(self) -> None:
        self.objects: list[Val] = []

    def _new(self, val: Val) -> Handle:
        self.objects.append(val)
        return Handle(val.tag, len(self.objects) - 1, self)

    def bytes_new(self, data: bytes) -> Handle:
        return self._new(Val(ValTag.BYTES, data))

    def string_new(self, text: str) -> Handle:
        return self._new(Val(ValTag.STRING, text))

    def symbol_new(self, name: str) -> Handle:
        return self._new(Val(ValTag.SYMBOL, name))

    def address_new(self, address: Address) -> Handle:
        return self._new(Val(ValTag.ADDRESS, address))

    def vec_new(self, items: tuple[Val, ...]) -> Handle:
        return self._new(Val(ValTag.VEC, items))

    def map_new(self, entries: MapEntries) -> Handle:
        return self._new(Val(ValTag.MAP, entries))

    def val_to_raw(self, val: Val) -> RawVal:
        return RawVal.from_parts(val.tag, self._new(val).slot)


class TestAdaptOperand:
    """Per-kind conversion."""

    @pytest.mark.parametrize(
        "kind", [OperandKind.U32, OperandKind.U64, OperandKind.I64, OperandKind.U128, OperandKind.I128]
    )
    def test_scalars_pass_through(self, kind: OperandKind) -> None:
        """Plain integers reach the host unchanged and create no objects."""
        context = RecordingContext()
        assert adapt_operand(kind, 42, context) == 42
        assert context.objects == []

    def test_bytes_become_handle(self) -> None:
        """bytes operands are stored as bytes objects."""
        context = RecordingContext()
        handle = adapt_operand(OperandKind.BYTES, b"\x01", context)
        assert isinstance(handle, Handle)
        assert handle.tag is ValTag.BYTES
        assert context.objects == [Val(ValTag.BYTES, b"\x01")]

    def test_address_becomes_handle(self) -> None:
        """address operands are stored as address objects."""
        context = RecordingContext()
        address = Address(AddressKind.ACCOUNT, b"\x07" * 32)
        handle = adapt_operand(OperandKind.ADDRESS, address, context)
        assert repr(handle) == "Address(obj#0)"

    def test_val_becomes_raw(self) -> None:
        """val operands are passed as raw payloads."""
        context = RecordingContext()
        raw = adapt_operand(OperandKind.VAL, Val(ValTag.U32, 5), context)
        assert isinstance(raw, RawVal)
        assert raw.tag is ValTag.U32

    def test_map_becomes_handle(self) -> None:
        """map operands are stored as map objects."""
        context = RecordingContext()
        entries = ((Val(ValTag.U32, 1), Val(ValTag.VOID)),)
        handle = adapt_operand(OperandKind.MAP, entries, context)
        assert handle == Handle(ValTag.MAP, 0)


class TestAdapt:
    """Whole-instruction adaptation."""

    def test_binds_context(self) -> None:
        """The adapted instruction remembers the context that made its handles."""
        context = RecordingContext()
        decoded = decode_instruction(b"\x00" * 64)
        adapted = adapt(decoded, context)
        assert adapted.context is context
        assert adapted.syscall == decoded.syscall

    def test_repr_uses_handles(self) -> None:
        """Adapted debug strings show handles in place of payloads."""
        op = operation_for_syscall("syscalls::buf::bytes_append")
        adapted = adapt(DecodedInstruction(op, (b"\x01", b"")), RecordingContext())
        assert repr(adapted) == "Buf(BytesAppend(Bytes(obj#0), Bytes(obj#1)))"

    def test_repr_scalars_and_test_category(self) -> None:
        """Scalars render as numbers, the test instruction as its label."""
        context = RecordingContext()
        op = operation_for_syscall("syscalls::int::obj_from_u64")
        assert repr(adapt(DecodedInstruction(op, (9,)), context)) == "Int(ObjFromU64(9))"
        dummy = operation_for_syscall("syscalls::test::dummy0")
        assert repr(AdaptedInstruction(dummy, ())) == "Test"

    def test_equality_ignores_context(self) -> None:
        """Two adaptations of the same instruction compare equal."""
        decoded = decode_instruction(b"\x00" * 64)
        assert adapt(decoded, RecordingContext()) == adapt(decoded, RecordingContext())

    @given(instruction=decoded_instructions())
    def test_adaptation_is_total(self, instruction: DecodedInstruction) -> None:
        """Every decoded instruction adapts with one argument per operand."""
        adapted = adapt(instruction, RecordingContext())
        assert len(adapted.args) == instruction.operation.arity
        for kind, arg in zip(instruction.operation.operands, adapted.args, strict=True):
            if kind.is_scalar:
                assert isinstance(arg, int)
            elif kind is OperandKind.VAL:
                assert isinstance(arg, RawVal)
            else:
                assert isinstance(arg, Handle)

    @given(instruction=decoded_instructions())
    def test_sandbox_adaptation_is_total(self, instruction: DecodedInstruction) -> None:
        """The reference sandbox accepts every decoded operand."""
        host = SandboxHost()
        adapted = adapt(instruction, host)
        assert adapted.context is host
