"""hostfuzz - Randomized syscall fuzzer for a smart-contract host environment.

Turns arbitrary byte buffers into well-typed host syscalls, executes them in
isolation, and records the CPU and memory cost of every completed call.

Public API:
    FuzzRunner - Sequential decode/adapt/execute/record loop
    RunConfig - Settings of one fuzzing run
    decode_instruction - Decode one instruction from a byte buffer
    adapt - Bind a decoded instruction to a host context
    run_isolated - Execute an adapted instruction and classify the outcome
    SandboxHost - In-process reference host environment

Exceptions:
    HostFuzzError - Base exception class
    InsufficientInput - Buffer too short for the selected instruction
    HostError - Host rejected an operation
    PersistenceError - Telemetry log could not be written

Submodules:
    hostfuzz.catalog - Operation catalog and instruction decoding
    hostfuzz.codec - Operand decoding and encoding primitives
    hostfuzz.host - Host protocols, handles and raw values
    hostfuzz.telemetry - Telemetry log format, writer and reader
    hostfuzz.sandbox - Reference sandbox and its syscall handlers
"""

from .adapter import adapt
from .catalog import decode_instruction
from .errors import HostError, HostFuzzError, InsufficientInput, PersistenceError
from .isolation import run_isolated
from .runner import FuzzRunner, RunConfig
from .sandbox import SandboxHost

# Version information - Auto-populated from package metadata
try:
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as _get_version
except ImportError as e:
    raise RuntimeError("importlib.metadata unavailable - Python version too old? " + str(e)) from e

try:
    __version__ = _get_version("hostfuzz")
except PackageNotFoundError:
    # Development mode: package not installed yet
    __version__ = "0.0.0+dev"

__all__ = [
    "FuzzRunner",
    "HostError",
    "HostFuzzError",
    "InsufficientInput",
    "PersistenceError",
    "RunConfig",
    "SandboxHost",
    "__version__",
    "adapt",
    "decode_instruction",
    "run_isolated",
]
