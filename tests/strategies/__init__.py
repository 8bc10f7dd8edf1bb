"""Hypothesis strategies for hostfuzz property-based testing.

Strategies are organized by domain:

- instructions: operand values, vals, catalog operations and instruction
  buffers

Usage:
    from tests.strategies import instruction_buffers, vals
    from tests.strategies.instructions import decoded_instructions

Event-Emitting Strategies (HypoFuzz-Optimized):
    These strategies emit hypothesis.event() calls for coverage-guided fuzzing:
    - operations, decoded_instructions, instruction_buffers
"""

from .instructions import (
    addresses,
    decoded_instructions,
    instruction_buffers,
    map_entries,
    operand_for,
    operations,
    scalar_vals,
    symbols,
    vals,
)

__all__ = [
    "addresses",
    "decoded_instructions",
    "instruction_buffers",
    "map_entries",
    "operand_for",
    "operations",
    "scalar_vals",
    "symbols",
    "vals",
]
