"""hostfuzz exception hierarchy.

Three failure families are kept apart on purpose:

- InsufficientInput: the byte source ran dry while decoding. The iteration
  is skipped without a trace.
- HostError: the host rejected the operation through its error return. From
  the harness's point of view this is healthy behaviour and is recorded like
  any other result.
- PersistenceError: the telemetry log could not be written. Fatal.

Anything else escaping the host call is an abrupt termination and is turned
into an ``Aborted`` outcome by the isolation boundary, never raised from it.

Python 3.13+. Zero external dependencies.
"""

from hostfuzz.enums import HostErrorCode, HostErrorType

__all__ = [
    "ForeignHandleError",
    "HostError",
    "HostFuzzError",
    "InsufficientInput",
    "PersistenceError",
]


class HostFuzzError(Exception):
    """Base exception for all hostfuzz errors."""


class InsufficientInput(HostFuzzError, EOFError):
    """Byte cursor exhausted before a complete instruction could be decoded.

    Attributes:
        needed: Bytes the failed read asked for
        remaining: Bytes that were left in the cursor
        position: Cursor offset at the failed read
    """

    def __init__(self, needed: int, remaining: int, position: int) -> None:
        """Initialize InsufficientInput.

        Args:
            needed: Bytes the failed read asked for
            remaining: Bytes that were left in the cursor
            position: Cursor offset at the failed read
        """
        super().__init__(
            f"Needed {needed} byte(s) at offset {position}, only {remaining} left"
        )
        self.needed = needed
        self.remaining = remaining
        self.position = position


class HostError(HostFuzzError):
    """Explicit error return of the host environment.

    Raised by ``try_run`` implementations (and by the reference sandbox's
    handlers) when an operation is rejected: bad argument, missing value,
    missing authorization, exhausted budget, and so on.

    Attributes:
        error_type: Host subsystem reporting the error
        code: Reason for the rejection
    """

    def __init__(
        self,
        error_type: HostErrorType,
        code: HostErrorCode,
        message: str = "",
    ) -> None:
        """Initialize HostError.

        Args:
            error_type: Host subsystem reporting the error
            code: Reason for the rejection
            message: Human-readable detail
        """
        text = f"Error({error_type}, {code})"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
        self.error_type = error_type
        self.code = code
        self.message = message


class PersistenceError(HostFuzzError):
    """Telemetry record could not be persisted. Aborts the run."""


class ForeignHandleError(HostFuzzError):
    """Host handle used with a host environment that did not create it.

    This is a programming error in the harness, not a finding: it is raised
    before the host call and is not contained by the isolation boundary.
    """
