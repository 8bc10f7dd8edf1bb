"""Shared constants for hostfuzz.

Constants are grouped by domain:
- Run loop defaults: iteration count, buffer size, telemetry file
- Operand budgets: length and nesting limits applied while decoding
- Sandbox limits: linear memory and object size bounds of the reference host

Python 3.13+. Zero external dependencies.
"""

# ruff: noqa: RUF022 - __all__ organized by category for readability
__all__ = [
    # Run loop defaults
    "BUFFER_SIZE",
    "DEFAULT_RUNS",
    "DEFAULT_LOG_PATH",
    "LOG_HEADER",
    "MEMORY_SAMPLE_INTERVAL",
    # Operand budgets
    "MAX_BYTES_LEN",
    "MAX_STRING_LEN",
    "MAX_SYMBOL_LEN",
    "MAX_COLLECTION_LEN",
    "MAX_VAL_DEPTH",
    "SYMBOL_ALPHABET",
    "ADDRESS_KEY_LEN",
    # Sandbox limits
    "LINEAR_MEMORY_SIZE",
    "MAX_OBJECT_SIZE",
    "MAX_EVENT_TOPICS",
]

# ============================================================================
# RUN LOOP DEFAULTS
# ============================================================================

# Size of the random buffer handed to the decoder on every iteration.
BUFFER_SIZE: int = 512

# Iterations per invocation when no count is given on the command line.
DEFAULT_RUNS: int = 10_000

# Telemetry log, opened in append mode relative to the working directory.
DEFAULT_LOG_PATH: str = "budget.csv"

# Literal header line of the telemetry log. Re-written on every run.
LOG_HEADER: str = "Syscalls|SyscallsInput|ArbitraryInput|CPU|MEM|Duration"

# RSS is sampled through psutil every N iterations.
MEMORY_SAMPLE_INTERVAL: int = 100

# ============================================================================
# OPERAND BUDGETS
# ============================================================================
#
# Collections are kept small so the operand space stays dense. A 512-byte
# buffer covers most instructions; the largest possible instruction is
# catalog.MAX_INSTRUCTION_SIZE bytes.

MAX_BYTES_LEN: int = 64
MAX_STRING_LEN: int = 64

# Host symbols are at most 32 characters from SYMBOL_ALPHABET.
MAX_SYMBOL_LEN: int = 32

# Elements in a decoded vec, entries in a decoded map.
MAX_COLLECTION_LEN: int = 3

# A val at depth < MAX_VAL_DEPTH may be a vec or map; deeper vals are scalars.
MAX_VAL_DEPTH: int = 1

SYMBOL_ALPHABET: str = "_0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

# Account public keys and contract ids.
ADDRESS_KEY_LEN: int = 32

# ============================================================================
# SANDBOX LIMITS
# ============================================================================

# Guest linear memory visible to the *_linear_memory syscalls.
LINEAR_MEMORY_SIZE: int = 64 * 1024

# Largest bytes/string/vec object the sandbox will materialize.
MAX_OBJECT_SIZE: int = 64 * 1024

MAX_EVENT_TOPICS: int = 4
