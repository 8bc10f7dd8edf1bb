"""Tests for hostfuzz.catalog: catalog shape, instruction decoding and encoding."""

from __future__ import annotations

import pytest
from hypothesis import event, given
from hypothesis import strategies as st

from hostfuzz.catalog import (
    CATALOG,
    CATEGORIES,
    MAX_INSTRUCTION_SIZE,
    MAX_OPERANDS,
    DecodedInstruction,
    Operation,
    all_operations,
    decode_instruction,
    encode_instruction,
    operation_for_syscall,
    selector_bytes,
)
from hostfuzz.enums import Category, OperandKind, ValTag
from hostfuzz.errors import InsufficientInput
from hostfuzz.operands import Val
from tests.strategies import decoded_instructions, instruction_buffers

_EXPECTED_COUNTS = {
    Category.ADDRESS: 7,
    Category.BUF: 24,
    Category.CALL: 2,
    Category.CONTEXT: 11,
    Category.CRYPTO: 4,
    Category.INT: 43,
    Category.LEDGER: 11,
    Category.MAP: 14,
    Category.PRNG: 4,
    Category.TEST: 1,
    Category.VEC: 19,
}


class TestCatalogShape:
    """Closed catalog contents."""

    def test_categories_in_enum_order(self) -> None:
        """Categories are decoded in declaration order."""
        assert CATEGORIES == tuple(Category)
        assert tuple(CATALOG) == CATEGORIES

    @pytest.mark.parametrize(("category", "count"), list(_EXPECTED_COUNTS.items()))
    def test_operation_counts(self, category: Category, count: int) -> None:
        """Each category holds its full operation list."""
        assert len(CATALOG[category]) == count

    def test_total_operation_count(self) -> None:
        """all_operations flattens every category."""
        assert len(all_operations()) == sum(_EXPECTED_COUNTS.values())

    def test_syscall_names_unique(self) -> None:
        """No two operations share a syscall name."""
        names = [op.syscall for op in all_operations()]
        assert len(names) == len(set(names))

    def test_syscall_names_follow_category(self) -> None:
        """Syscall names are syscalls::<category>::<snake_case>."""
        for op in all_operations():
            prefix = f"syscalls::{op.category}::"
            assert op.syscall.startswith(prefix)
            assert op.syscall[len(prefix) :].islower()

    def test_snake_case_conversion(self) -> None:
        """CamelCase names become snake_case syscall names."""
        assert operation_for_syscall("syscalls::buf::bytes_copy_to_linear_memory").name == (
            "BytesCopyToLinearMemory"
        )
        assert operation_for_syscall("syscalls::int::obj_from_i128_pieces").name == (
            "ObjFromI128Pieces"
        )

    def test_i256_be_bytes_names(self) -> None:
        """I256ObjFromBeBytes keeps its historical val-based syscall name."""
        op = operation_for_syscall("syscalls::int::i256_val_from_be_bytes")
        assert op.name == "I256ObjFromBeBytes"

    def test_arity_bounded(self) -> None:
        """No operation declares more than MAX_OPERANDS operands."""
        assert max(op.arity for op in all_operations()) <= MAX_OPERANDS

    def test_operation_rejects_too_many_operands(self) -> None:
        """Operation validates its operand count."""
        with pytest.raises(ValueError, match="operands"):
            Operation(Category.TEST, "Wide", "syscalls::test::wide", (OperandKind.U32,) * 5)

    def test_unknown_syscall(self) -> None:
        """Lookup of an unknown name raises KeyError."""
        with pytest.raises(KeyError, match="unknown syscall"):
            operation_for_syscall("syscalls::buf::nope")

    def test_signature(self) -> None:
        """signature lists operand kinds in order."""
        op = operation_for_syscall("syscalls::buf::bytes_append")
        assert op.signature == "BytesAppend(bytes, bytes)"


class TestDecodeInstruction:
    """decode_instruction behaviour on concrete buffers."""

    def test_all_zero_buffer(self) -> None:
        """Zeros select the first operation of the first category with empty bytes."""
        decoded = decode_instruction(b"\x00" * 512)
        assert decoded.syscall == "syscalls::address::account_public_key_to_address"
        assert decoded.operands == (b"",)
        assert repr(decoded) == "Address(AccountPublicKeyToAddress(Bytes(0x)))"

    def test_empty_buffer_is_insufficient(self) -> None:
        """Nothing can be decoded from no bytes."""
        with pytest.raises(InsufficientInput):
            decode_instruction(b"")

    def test_truncated_operands_are_insufficient(self) -> None:
        """A selector without its operands raises instead of returning a partial."""
        op = operation_for_syscall("syscalls::int::obj_from_u64")
        with pytest.raises(InsufficientInput):
            decode_instruction(selector_bytes(op) + b"\x01\x02")

    def test_test_category_repr(self) -> None:
        """The no-op test instruction renders as its category label."""
        op = operation_for_syscall("syscalls::test::dummy0")
        assert repr(decode_instruction(selector_bytes(op))) == "Test"

    def test_operand_less_repr(self) -> None:
        """Operations without operands render without an argument list."""
        op = operation_for_syscall("syscalls::buf::bytes_new")
        assert repr(decode_instruction(selector_bytes(op))) == "Buf(BytesNew)"

    def test_repr_renders_operands(self) -> None:
        """Operands are rendered in declaration order."""
        op = operation_for_syscall("syscalls::vec::vec_insert")
        decoded = DecodedInstruction(op, ((), 7, Val(ValTag.U32, 3)))
        assert repr(decoded) == "Vec(VecInsert(Vec[], 7, U32(3)))"

    def test_decoded_instruction_checks_arity(self) -> None:
        """DecodedInstruction refuses the wrong number of operands."""
        op = operation_for_syscall("syscalls::buf::bytes_append")
        with pytest.raises(ValueError, match="takes 2"):
            DecodedInstruction(op, (b"",))

    def test_test_selector_is_four_bytes(self) -> None:
        """Single-entry categories need no operation discriminant."""
        assert len(selector_bytes(operation_for_syscall("syscalls::test::dummy0"))) == 4

    @pytest.mark.parametrize("op", all_operations(), ids=lambda op: op.syscall)
    def test_every_operation_reachable(self, op: Operation) -> None:
        """selector_bytes selects each operation when padded to full size."""
        decoded = decode_instruction(selector_bytes(op) + b"\x00" * MAX_INSTRUCTION_SIZE)
        assert decoded.operation is op


class TestDecodeProperties:
    """Totality, determinism and encode/decode agreement."""

    @given(data=st.binary(min_size=MAX_INSTRUCTION_SIZE, max_size=MAX_INSTRUCTION_SIZE + 64))
    def test_long_buffers_always_decode(self, data: bytes) -> None:
        """Buffers of at least MAX_INSTRUCTION_SIZE bytes never run dry."""
        decoded = decode_instruction(data)
        event(f"category={decoded.category}")
        assert len(decoded.operands) == decoded.operation.arity

    @given(data=st.binary(max_size=64))
    def test_decode_is_total(self, data: bytes) -> None:
        """Short buffers either decode or raise InsufficientInput."""
        try:
            decode_instruction(data)
        except InsufficientInput:
            event("outcome=insufficient")
        else:
            event("outcome=decoded")

    @given(data=st.binary(min_size=4, max_size=256))
    def test_decode_is_deterministic(self, data: bytes) -> None:
        """The same bytes always decode to the same instruction."""
        try:
            first = decode_instruction(data)
        except InsufficientInput:
            return
        assert decode_instruction(data) == first
        assert repr(decode_instruction(data)) == repr(first)

    @given(pair=instruction_buffers())
    def test_encoded_buffer_decodes_back(self, pair: tuple[DecodedInstruction, bytes]) -> None:
        """encode_instruction output decodes to the original instruction."""
        instruction, buffer = pair
        assert decode_instruction(buffer) == instruction

    @given(instruction=decoded_instructions())
    def test_encoding_within_max_size(self, instruction: DecodedInstruction) -> None:
        """No encoded instruction exceeds MAX_INSTRUCTION_SIZE."""
        assert len(encode_instruction(instruction)) <= MAX_INSTRUCTION_SIZE
